"""
BASTION Custom Exceptions

Provides the exception hierarchy for the BASTION facility emergency-response
orchestrator. Initialization failures and dispatch failures carry the numeric
result code reported by the response system so callers can log or correlate
them with execution reports.

Exception Hierarchy:
    BastionError (base)
    ├── ConfigurationError
    ├── InitializationError
    │   ├── HardwareUnreadyError
    │   ├── NetworkInitError
    │   └── AccessInitError
    └── DispatchError
        ├── InvalidRequestError
        │   └── NotInitializedError
        ├── StepFailureError
        ├── UnknownResponseTypeError
        └── DispatchTimeoutError
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from bastion.types import ExecutionReport, ResultCode


class BastionError(Exception):
    """Base exception for all BASTION errors.

    Attributes:
        message: Human-readable error description
        details: Optional dict with additional error context
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(BastionError):
    """Error in configuration file or settings.

    Raised when configuration validation fails, a configuration file is
    missing or unparseable, or a runtime config update is rejected.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_file: Optional[str] = None,
    ) -> None:
        details = {}
        if config_key:
            details["config_key"] = config_key
        if config_file:
            details["config_file"] = config_file
        super().__init__(message, details)
        self.config_key = config_key
        self.config_file = config_file


# =============================================================================
# Initialization Errors
# =============================================================================

class InitStage(Enum):
    """Readiness checks performed by init, in order, with their codes."""
    LOCK = -1
    HARDWARE = -2
    NETWORK = -3
    ACCESS = -4


class InitializationError(BastionError):
    """Response system initialization failed.

    The system is left uninitialized; nothing brought up by earlier
    checks remains active.
    """

    def __init__(self, message: str, stage: InitStage = InitStage.LOCK) -> None:
        super().__init__(message, {"stage": stage.name.lower(), "code": stage.value})
        self.stage = stage
        self.code = stage.value


class HardwareUnreadyError(InitializationError):
    """Hardware readiness probe reported not ready."""

    def __init__(self, message: str = "Hardware subsystem not ready") -> None:
        super().__init__(message, InitStage.HARDWARE)


class NetworkInitError(InitializationError):
    """Network isolation backend failed to initialize."""

    def __init__(self, message: str = "Network subsystem initialization failed") -> None:
        super().__init__(message, InitStage.NETWORK)


class AccessInitError(InitializationError):
    """Physical access control failed to initialize."""

    def __init__(self, message: str = "Access control initialization failed") -> None:
        super().__init__(message, InitStage.ACCESS)


# =============================================================================
# Dispatch Errors
# =============================================================================

class DispatchError(BastionError):
    """Base class for response dispatch errors.

    Attributes:
        code: Numeric result code (matches report.overall_result when a
              report was published)
        report: The published execution report, or None when the request
                was rejected before any report was written
    """

    def __init__(
        self,
        message: str,
        code: int,
        report: Optional[ExecutionReport] = None,
        **kwargs: Any,
    ) -> None:
        details = {"code": code}
        details.update(kwargs)
        super().__init__(message, details)
        self.code = code
        self.report = report


class InvalidRequestError(DispatchError):
    """Request is missing or malformed. No lock is taken, no report written."""

    def __init__(self, message: str, reasons: Optional[list[str]] = None) -> None:
        if reasons:
            super().__init__(message, int(ResultCode.INVALID_PARAM), reasons=reasons)
        else:
            super().__init__(message, int(ResultCode.INVALID_PARAM))
        self.reasons = list(reasons) if reasons else []


class NotInitializedError(InvalidRequestError):
    """Dispatch attempted before init() succeeded or after cleanup()."""

    def __init__(self, message: str = "Response system not initialized") -> None:
        super().__init__(message)


class StepFailureError(DispatchError):
    """A sequence completed with at least one failed step.

    The code identifies the first step that failed; later failures are
    only visible in the report's counters and step list.
    """

    def __init__(
        self,
        message: str,
        code: int,
        report: ExecutionReport,
        step: Optional[str] = None,
    ) -> None:
        if step:
            super().__init__(message, code, report, step=step)
        else:
            super().__init__(message, code, report)
        self.step = step


class UnknownResponseTypeError(DispatchError):
    """No sequence handler exists for the request's type."""

    def __init__(self, message: str, report: ExecutionReport, response_type: Any = None) -> None:
        super().__init__(
            message,
            int(ResultCode.CRITICAL_FAILURE),
            report,
            response_type=response_type,
        )
        self.response_type = response_type


class DispatchTimeoutError(DispatchError):
    """Sequence handler exceeded the dispatch deadline and was cancelled."""

    def __init__(self, message: str, report: ExecutionReport, timeout_seconds: float) -> None:
        super().__init__(
            message,
            int(ResultCode.TIMEOUT),
            report,
            timeout_seconds=timeout_seconds,
        )
        self.timeout_seconds = timeout_seconds
