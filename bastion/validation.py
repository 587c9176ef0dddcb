"""
BASTION Request Validation

Structural checks on a response request. Validation is side-effect free
and returns a verdict; whether an invalid request is rejected is the
caller's decision (see BastionConfig.validate_requests).
"""

from typing import List, Optional

from bastion.types import (
    ALL_ZONES,
    MAX_TRIGGER_EVENT_LENGTH,
    AuthLevel,
    ResponseRequest,
    ResponseType,
)

MIN_SEVERITY = 1
MAX_SEVERITY = 10


def validation_errors(request: Optional[ResponseRequest]) -> List[str]:
    """
    List every structural problem with a request.

    Args:
        request: Request to check

    Returns:
        Human-readable reasons; empty if the request is valid
    """
    if request is None:
        return ["request is missing"]

    errors = []

    if not isinstance(request.type, ResponseType):
        errors.append(f"unknown response type {request.type!r}")

    if not MIN_SEVERITY <= request.severity <= MAX_SEVERITY:
        errors.append(f"severity {request.severity} outside {MIN_SEVERITY}-{MAX_SEVERITY}")

    if not min(AuthLevel) <= request.auth_level <= max(AuthLevel):
        errors.append(
            f"auth level {request.auth_level} outside {int(min(AuthLevel))}-{int(max(AuthLevel))}"
        )

    if request.target_zones < 0 or request.target_zones > ALL_ZONES:
        errors.append("target zones exceed 32-bit mask")
    elif (
        isinstance(request.type, ResponseType)
        and request.type.zone_scoped
        and request.target_zones == 0
    ):
        errors.append(f"{request.type.name} requires at least one target zone")

    if not request.trigger_event:
        errors.append("trigger event is empty")
    elif len(request.trigger_event) > MAX_TRIGGER_EVENT_LENGTH:
        errors.append(f"trigger event longer than {MAX_TRIGGER_EVENT_LENGTH} characters")

    if request.duration < 0:
        errors.append("duration is negative")
    if request.retry_count < 0:
        errors.append("retry count is negative")
    if request.timeout_seconds < 0:
        errors.append("timeout is negative")

    return errors


def validate_request(request: Optional[ResponseRequest]) -> bool:
    """Check a request's structural validity."""
    return not validation_errors(request)
