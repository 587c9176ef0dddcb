"""
BASTION Subsystem Controller Interfaces

Capability interfaces for the facility subsystems the response system
drives. Controllers are external collaborators: door and lock hardware,
firewall segmentation, the service manager, surveillance, evacuation
lighting and power, backup systems and containment.

Every fallible operation reports failure by returning False or raising;
returning None or True counts as success. Methods may be coroutines or
plain functions; the sequence engine awaits whatever is awaitable.

Controllers are only ever driven by one in-flight sequence at a time (the
dispatch lock guarantees it), so implementations need not be thread-safe.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from bastion.types import ZoneMask

if TYPE_CHECKING:
    from bastion.config import BastionConfig


# =============================================================================
# Protocols
# =============================================================================

@runtime_checkable
class AccessController(Protocol):
    """Physical access control (doors, locks, evacuation routes)."""

    async def initialize(self) -> bool: ...

    async def lock_physical_access(self, zones: ZoneMask, duration: int) -> bool: ...

    async def unlock_evacuation_routes(self, zones: ZoneMask) -> bool: ...

    async def restore_normal_access(self) -> None: ...


@runtime_checkable
class NetworkController(Protocol):
    """Network segmentation and isolation backend."""

    async def initialize(self) -> bool: ...

    async def isolate_segments(self, zones: ZoneMask, severity: int) -> bool: ...

    async def create_rule_set(self) -> bool: ...

    async def add_zone_rule(self, zone: int) -> bool: ...

    async def activate_rule_set(self) -> bool: ...

    async def cleanup_rules(self) -> None: ...


@runtime_checkable
class ServiceController(Protocol):
    """Process and service lifecycle manager."""

    async def stop_non_critical(self, zones: ZoneMask) -> bool: ...

    async def stop_service(self, name: str) -> bool: ...

    async def start_backup(self, name: str) -> bool: ...

    async def stop_emergency_services(self) -> None: ...


@runtime_checkable
class SurveillanceController(Protocol):
    """Camera and sensor surveillance."""

    async def enhance(self, zones: ZoneMask) -> bool: ...


@runtime_checkable
class EvacuationController(Protocol):
    """Evacuation hardware. These operations have no failure result."""

    async def activate_lighting(self, zones: ZoneMask) -> None: ...

    async def power_down_non_essential(self, zones: ZoneMask) -> None: ...

    async def enable_emergency_comms(self) -> None: ...


@runtime_checkable
class BackupController(Protocol):
    """Backup system activation."""

    async def activate(self, severity: int) -> bool: ...


@runtime_checkable
class ContainmentController(Protocol):
    """Partial containment and full recovery procedures."""

    async def partial_contain(self, zones: ZoneMask, severity: int) -> bool: ...

    async def full_recovery(self) -> bool: ...


@runtime_checkable
class HardwareProbe(Protocol):
    """Live hardware readiness check."""

    async def check_ready(self) -> bool: ...


# =============================================================================
# Controller Bundle
# =============================================================================

@dataclass
class FacilityControllers:
    """The set of subsystem controllers handed to the response executor."""
    access: AccessController
    network: NetworkController
    service: ServiceController
    surveillance: SurveillanceController
    evacuation: EvacuationController
    backup: BackupController
    containment: ContainmentController
    hardware: HardwareProbe


def create_controllers(config: Optional["BastionConfig"] = None) -> FacilityControllers:
    """
    Build the controller bundle selected by configuration.

    The "simulator" backend simulates every subsystem. The "system" backend
    drives iptables and systemctl for network isolation and service
    failover and simulates the hardware-only subsystems.

    Args:
        config: Loaded configuration (defaults if None)

    Returns:
        FacilityControllers bundle
    """
    from bastion.config import BastionConfig
    from services.simulators import create_simulated_controllers
    from services.system import CommandRunner, IptablesNetworkController, SystemctlServiceController

    config = config or BastionConfig()
    controllers = create_simulated_controllers()

    if config.controllers.backend == "system":
        controllers.network = IptablesNetworkController(
            config.network,
            runner=CommandRunner(timeout=config.network.command_timeout, dry_run=config.controllers.dry_run),
        )
        controllers.service = SystemctlServiceController(
            config.failover,
            systemctl_path=config.controllers.systemctl_path,
            runner=CommandRunner(timeout=config.controllers.command_timeout, dry_run=config.controllers.dry_run),
        )

    return controllers
