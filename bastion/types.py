"""
BASTION Shared Type Definitions

Data structures shared across the response system: the response request
a caller submits, the execution report a dispatch publishes, and the
enumerations and zone helpers both of them are built from.

Types are organized by category:
    - Zone bitmask helpers
    - Response, mode and result enumerations
    - Request and report structures

Usage:
    from bastion.types import ResponseRequest, ResponseType, ALL_ZONES
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Iterator, Optional, TypeAlias


# =============================================================================
# Zones
# =============================================================================

ZoneMask: TypeAlias = int

ZONE_COUNT = 32
ALL_ZONES: ZoneMask = 0xFFFFFFFF
NO_ZONES: ZoneMask = 0

# Field bounds inherited from the facility controller protocol
MAX_TRIGGER_EVENT_LENGTH = 63
MAX_STATUS_SUMMARY_LENGTH = 512
MAX_ERROR_DETAILS_LENGTH = 256


def iter_zones(mask: ZoneMask) -> Iterator[int]:
    """Yield the zone index of every set bit in a 32-bit zone mask, lowest first."""
    for zone in range(ZONE_COUNT):
        if mask & (1 << zone):
            yield zone


def zone_mask(*zones: int) -> ZoneMask:
    """Build a zone mask from zone indices.

    Raises:
        ValueError: If a zone index is outside 0-31
    """
    mask = 0
    for zone in zones:
        if not 0 <= zone < ZONE_COUNT:
            raise ValueError(f"Zone {zone} out of range (0-{ZONE_COUNT - 1})")
        mask |= 1 << zone
    return mask


def format_zones(mask: ZoneMask) -> str:
    """Format a zone mask the way controller logs print it."""
    return f"0x{mask & ALL_ZONES:08X}"


def bounded(text: str, limit: int) -> str:
    """Truncate text to a field bound."""
    return text if len(text) <= limit else text[: limit - 3] + "..."


# =============================================================================
# Enumerations
# =============================================================================

class ResponseType(IntEnum):
    """Kinds of integrated response a request can ask for."""
    LOCKDOWN = 1
    NETWORK_ISOLATE = 2
    SERVICE_FAILOVER = 3
    EVACUATION = 4
    BACKUP_ACTIVATE = 5
    COMMS_PRIORITY = 6
    PARTIAL_CONTAIN = 7
    FULL_RECOVERY = 8

    @property
    def zone_scoped(self) -> bool:
        """True if the response acts on specific zones and needs a non-zero mask."""
        return self in _ZONE_SCOPED


_ZONE_SCOPED = frozenset({
    ResponseType.LOCKDOWN,
    ResponseType.NETWORK_ISOLATE,
    ResponseType.EVACUATION,
    ResponseType.PARTIAL_CONTAIN,
})


class SystemMode(IntEnum):
    """Facility operating mode."""
    NORMAL = 0
    HEIGHTENED_SECURITY = 1
    EMERGENCY = 2
    LOCKDOWN = 3
    RECOVERY = 4


class ResultCode(IntEnum):
    """Result codes shared by init, dispatch and execution reports.

    Sequence step failures use small negative codes (-1 to -4) identifying
    the failing step position within its sequence.
    """
    SUCCESS = 0
    INIT_FAILED = -1
    INVALID_PARAM = -2
    HARDWARE_UNAVAILABLE = -3
    NETWORK_FAILURE = -4
    ACCESS_DENIED = -5
    TIMEOUT = -6
    CRITICAL_FAILURE = -99


class AuthLevel(IntEnum):
    """Clearance required to invoke a response."""
    STAFF = 1
    RESEARCH = 2
    SECURITY = 3
    DEPARTMENT_HEAD = 4
    EXECUTIVE = 5


class StepStatus(Enum):
    """Outcome of a single sequence step."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    WARNING = "warning"


# =============================================================================
# Request
# =============================================================================

@dataclass(frozen=True)
class ResponseRequest:
    """A response request. Immutable once submitted.

    Attributes:
        type: Response to execute
        severity: Severity level, 1-10
        target_zones: Bitmask of target zones (zero only for zone-independent types)
        duration: Seconds the response should remain active
        auth_level: Clearance required to invoke this request, 1-5
        trigger_event: Short description of what triggered the request
        timestamp: Creation time; also the report's response_id
        retry_count: Retry attempts a handler may use (reserved)
        timeout_seconds: Dispatch deadline in seconds, 0 for the configured default
    """
    type: ResponseType
    severity: int
    target_zones: ZoneMask = NO_ZONES
    duration: int = 0
    auth_level: int = AuthLevel.STAFF
    trigger_event: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    retry_count: int = 0
    timeout_seconds: int = 0

    @classmethod
    def emergency_lockdown(cls, level: int) -> "ResponseRequest":
        """Build the maximal-severity lockdown fired by the panic trigger."""
        return cls(
            type=ResponseType.LOCKDOWN,
            severity=10,
            target_zones=ALL_ZONES,
            duration=3600,
            auth_level=AuthLevel.EXECUTIVE,
            trigger_event=f"Manual emergency trigger (level {level})",
            timestamp=datetime.now(),
        )

    @property
    def zones(self) -> list[int]:
        """Zone indices targeted by this request."""
        return list(iter_zones(self.target_zones))

    def describe(self) -> str:
        """One-line description for logs."""
        type_name = self.type.name if isinstance(self.type, ResponseType) else repr(self.type)
        return (
            f"{type_name} severity={self.severity} "
            f"zones={format_zones(self.target_zones)} event='{self.trigger_event}'"
        )


# =============================================================================
# Report
# =============================================================================

@dataclass(frozen=True)
class StepOutcome:
    """Result of one controller call within a sequence."""
    name: str
    status: StepStatus
    code: int = 0
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != StepStatus.FAILED


@dataclass(frozen=True)
class ExecutionReport:
    """Outcome of one dispatch.

    A report is built off to the side and published as a whole; once
    published it is never modified. A default-constructed report stands in
    before any dispatch has run.
    """
    response_id: Optional[datetime] = None
    overall_result: int = ResultCode.SUCCESS
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    sub_operations: int = 0
    success_count: int = 0
    failed_count: int = 0
    warning_count: int = 0
    system_mode: SystemMode = SystemMode.NORMAL
    status_summary: str = ""
    error_details: str = ""
    response_type: Optional[ResponseType] = None
    steps: tuple[StepOutcome, ...] = ()

    @property
    def succeeded(self) -> bool:
        """True if the dispatch completed with no failed step."""
        return self.overall_result == ResultCode.SUCCESS

    @property
    def duration_seconds(self) -> Optional[float]:
        """Wall-clock duration of the dispatch."""
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "response_id": self.response_id.isoformat() if self.response_id else None,
            "overall_result": self.overall_result,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "sub_operations": self.sub_operations,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "warning_count": self.warning_count,
            "system_mode": self.system_mode.name,
            "status_summary": self.status_summary,
            "error_details": self.error_details,
            "response_type": self.response_type.name if self.response_type else None,
            "steps": [
                {"name": s.name, "status": s.status.value, "code": s.code, "detail": s.detail}
                for s in self.steps
            ],
        }
