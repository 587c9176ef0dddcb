"""
BASTION Test Fixtures Package.

Request builders and controller doubles shared by the unit, integration
and end-to-end tests.

Usage:
    from tests.fixtures import make_request, failing

    request = make_request(ResponseType.NETWORK_ISOLATE, target_zones=zone_mask(0, 5))
"""

from unittest.mock import AsyncMock

from bastion.types import ALL_ZONES, AuthLevel, ResponseRequest, ResponseType


def make_request(
    response_type: ResponseType = ResponseType.LOCKDOWN,
    severity: int = 5,
    target_zones: int = ALL_ZONES,
    **kwargs,
) -> ResponseRequest:
    """Build a valid request with test defaults."""
    kwargs.setdefault("trigger_event", "Test event")
    kwargs.setdefault("auth_level", AuthLevel.SECURITY)
    return ResponseRequest(
        type=response_type,
        severity=severity,
        target_zones=target_zones,
        **kwargs,
    )


def failing(exc: Exception = None) -> AsyncMock:
    """Controller operation double that fails: raises exc, or returns False."""
    if exc is not None:
        return AsyncMock(side_effect=exc)
    return AsyncMock(return_value=False)


def succeeding() -> AsyncMock:
    """Controller operation double that succeeds."""
    return AsyncMock(return_value=True)
