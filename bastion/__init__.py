"""
BASTION - Facility Emergency Response Orchestrator

Coordinates the subsystems of a secure facility (physical access, network
segmentation, service failover, surveillance, evacuation, backups and
containment) into serialized, reported emergency responses, with a
non-blocking panic trigger for immediate full lockdown.

Architecture:
    - One ResponseExecutor owns the subsystem state and dispatch lock
    - One sequence handler per response type drives the controllers
    - Controllers are pluggable: simulators, or iptables/systemctl backends
"""

__version__ = "0.1.0"

# Version tuple for programmatic comparison
VERSION_INFO = (0, 1, 0)

from bastion.exceptions import BastionError

from bastion.types import (
    ALL_ZONES,
    AuthLevel,
    ExecutionReport,
    ResponseRequest,
    ResponseType,
    ResultCode,
    SystemMode,
)

from bastion.executor import ResponseExecutor, create_executor

__all__ = [
    "__version__",
    "VERSION_INFO",
    "BastionError",
    "ALL_ZONES",
    "AuthLevel",
    "ExecutionReport",
    "ResponseRequest",
    "ResponseType",
    "ResultCode",
    "SystemMode",
    "ResponseExecutor",
    "create_executor",
]
