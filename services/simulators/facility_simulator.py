"""
BASTION Facility Simulator

Simulated subsystem controllers for running the response system without
facility hardware. Each simulator keeps the state a real subsystem would
(locked zones, firewall rules, running services) so tests and dry runs can
check what a sequence did.

Features:
- Every call recorded in order, with its arguments
- Per-operation fault injection (failure, exception, delay)
- Optional per-call latency
- Call statistics
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from bastion.controllers import FacilityControllers
from bastion.types import NO_ZONES, ZoneMask, format_zones, iter_zones
from services.simulators.fault_injection import FaultInjector

logger = logging.getLogger("BASTION.Simulator")


@dataclass
class SimulatorStats:
    """Statistics tracked by simulators."""
    started_at: Optional[datetime] = None
    calls_received: int = 0
    calls_succeeded: int = 0
    calls_failed: int = 0

    def reset(self) -> None:
        """Reset all statistics."""
        self.started_at = None
        self.calls_received = 0
        self.calls_succeeded = 0
        self.calls_failed = 0


class SimulatedController:
    """
    Base class for simulated subsystem controllers.

    Provides call recording, fault injection, latency and statistics.
    """

    name = "subsystem"

    def __init__(self, injector: Optional[FaultInjector] = None, latency_sec: float = 0.0):
        self.injector = injector or FaultInjector(load_env=False)
        self.latency_sec = latency_sec
        self.stats = SimulatorStats(started_at=datetime.now())
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []

    async def _perform(self, operation: str, *args, zones: Optional[ZoneMask] = None) -> bool:
        """
        Record a call and decide its outcome.

        Returns:
            False if an injected fault makes the call fail

        Raises:
            SimulatedFaultError: If an injected fault raises
        """
        self.calls.append((operation, args))
        self.stats.calls_received += 1

        if self.latency_sec > 0:
            await asyncio.sleep(self.latency_sec)

        try:
            ok = await self.injector.apply(operation, zones)
        except Exception:
            self.stats.calls_failed += 1
            raise

        if ok:
            self.stats.calls_succeeded += 1
        else:
            self.stats.calls_failed += 1
            logger.warning(f"[{self.name}] {operation} failed")
        return ok

    def call_count(self, operation: str) -> int:
        """Number of times an operation was called."""
        return sum(1 for name, _ in self.calls if name == operation)

    def call_names(self) -> List[str]:
        """Operation names in call order."""
        return [name for name, _ in self.calls]

    def reset_calls(self):
        """Forget recorded calls and statistics."""
        self.calls.clear()
        self.stats.reset()
        self.stats.started_at = datetime.now()

    def get_stats(self) -> Dict[str, Any]:
        """Get simulator statistics."""
        return {
            "name": self.name,
            "started_at": self.stats.started_at.isoformat() if self.stats.started_at else None,
            "calls_received": self.stats.calls_received,
            "calls_succeeded": self.stats.calls_succeeded,
            "calls_failed": self.stats.calls_failed,
        }


# =============================================================================
# Subsystems
# =============================================================================

class SimulatedHardwareProbe(SimulatedController):
    """Hardware readiness probe; `ready` can be flipped by tests."""

    name = "hardware"

    def __init__(self, injector: Optional[FaultInjector] = None, latency_sec: float = 0.0):
        super().__init__(injector, latency_sec)
        self.ready = True

    async def check_ready(self) -> bool:
        if not await self._perform("check_ready"):
            return False
        return self.ready


class SimulatedAccessController(SimulatedController):
    """Door and lock control."""

    name = "access"

    def __init__(self, injector: Optional[FaultInjector] = None, latency_sec: float = 0.0):
        super().__init__(injector, latency_sec)
        self.initialized = False
        self.locked_zones: ZoneMask = NO_ZONES
        self.evacuation_routes_open: ZoneMask = NO_ZONES
        self.lock_duration = 0

    async def initialize(self) -> bool:
        if not await self._perform("initialize"):
            return False
        self.initialized = True
        logger.info("[ACCESS] Access control initialized")
        return True

    async def lock_physical_access(self, zones: ZoneMask, duration: int) -> bool:
        logger.info(f"[ACCESS] Locking physical access for zones {format_zones(zones)}, duration {duration}s")
        if not await self._perform("lock_physical_access", zones, duration, zones=zones):
            return False
        self.locked_zones |= zones
        self.lock_duration = duration
        return True

    async def unlock_evacuation_routes(self, zones: ZoneMask) -> bool:
        logger.info(f"[ACCESS] Unlocking evacuation routes for zones {format_zones(zones)}")
        if not await self._perform("unlock_evacuation_routes", zones, zones=zones):
            return False
        self.evacuation_routes_open |= zones
        self.locked_zones &= ~zones
        return True

    async def restore_normal_access(self) -> None:
        logger.info("[ACCESS] Restoring normal access")
        await self._perform("restore_normal_access")
        self.locked_zones = NO_ZONES
        self.evacuation_routes_open = NO_ZONES


class SimulatedNetworkController(SimulatedController):
    """Firewall segmentation, modelled as a rule set of isolated zones."""

    name = "network"

    def __init__(self, injector: Optional[FaultInjector] = None, latency_sec: float = 0.0):
        super().__init__(injector, latency_sec)
        self.initialized = False
        self.rule_set_created = False
        self.rule_set_active = False
        self.isolated_zones: List[int] = []

    async def initialize(self) -> bool:
        if not await self._perform("initialize"):
            return False
        self.initialized = True
        logger.info("[NETWORK] Network controller initialized")
        return True

    async def isolate_segments(self, zones: ZoneMask, severity: int) -> bool:
        logger.info(f"[NETWORK] Isolating segments for zones {format_zones(zones)}, severity {severity}")
        if not await self._perform("isolate_segments", zones, severity, zones=zones):
            return False
        self.rule_set_created = True
        self.isolated_zones = sorted(set(self.isolated_zones) | set(iter_zones(zones)))
        self.rule_set_active = True
        return True

    async def create_rule_set(self) -> bool:
        logger.info("[NETWORK] Creating emergency rule set")
        if not await self._perform("create_rule_set"):
            return False
        self.rule_set_created = True
        self.isolated_zones = []
        return True

    async def add_zone_rule(self, zone: int) -> bool:
        logger.info(f"[NETWORK] Adding isolation rule for zone {zone}")
        if not await self._perform("add_zone_rule", zone, zones=1 << zone):
            return False
        if zone not in self.isolated_zones:
            self.isolated_zones.append(zone)
        return True

    async def activate_rule_set(self) -> bool:
        logger.info("[NETWORK] Activating emergency rule set")
        if not await self._perform("activate_rule_set"):
            return False
        self.rule_set_active = True
        return True

    async def cleanup_rules(self) -> None:
        logger.info("[NETWORK] Cleaning up emergency rules")
        await self._perform("cleanup_rules")
        self.rule_set_created = False
        self.rule_set_active = False
        self.isolated_zones = []


class SimulatedServiceController(SimulatedController):
    """Service manager with primaries and their backups."""

    name = "service"

    def __init__(self, injector: Optional[FaultInjector] = None, latency_sec: float = 0.0):
        super().__init__(injector, latency_sec)
        self.stopped_services: Set[str] = set()
        self.running_backups: Set[str] = set()
        self.non_critical_stopped = False

    async def stop_non_critical(self, zones: ZoneMask) -> bool:
        logger.info(f"[SERVICES] Stopping non-critical services in zones {format_zones(zones)}")
        if not await self._perform("stop_non_critical", zones, zones=zones):
            return False
        self.non_critical_stopped = True
        return True

    async def stop_service(self, name: str) -> bool:
        logger.info(f"[FAILOVER] Stopping service {name}")
        if not await self._perform("stop_service", name):
            return False
        self.stopped_services.add(name)
        return True

    async def start_backup(self, name: str) -> bool:
        logger.info(f"[FAILOVER] Starting backup for {name}")
        if not await self._perform("start_backup", name):
            return False
        self.running_backups.add(name)
        return True

    async def stop_emergency_services(self) -> None:
        logger.info("[SERVICES] Stopping emergency services")
        await self._perform("stop_emergency_services")
        self.running_backups.clear()
        self.non_critical_stopped = False


class SimulatedSurveillanceController(SimulatedController):
    name = "surveillance"

    def __init__(self, injector: Optional[FaultInjector] = None, latency_sec: float = 0.0):
        super().__init__(injector, latency_sec)
        self.enhanced_zones: ZoneMask = NO_ZONES

    async def enhance(self, zones: ZoneMask) -> bool:
        logger.info(f"[SURVEILLANCE] Enhancing monitoring for zones {format_zones(zones)}")
        if not await self._perform("enhance", zones, zones=zones):
            return False
        self.enhanced_zones |= zones
        return True


class SimulatedEvacuationController(SimulatedController):
    name = "evacuation"

    def __init__(self, injector: Optional[FaultInjector] = None, latency_sec: float = 0.0):
        super().__init__(injector, latency_sec)
        self.lit_zones: ZoneMask = NO_ZONES
        self.powered_down_zones: ZoneMask = NO_ZONES
        self.emergency_comms = False

    async def activate_lighting(self, zones: ZoneMask) -> None:
        logger.info(f"[EVACUATION] Activating evacuation lighting for zones {format_zones(zones)}")
        if await self._perform("activate_lighting", zones, zones=zones):
            self.lit_zones |= zones

    async def power_down_non_essential(self, zones: ZoneMask) -> None:
        logger.info(f"[EVACUATION] Powering down non-essential systems in zones {format_zones(zones)}")
        if await self._perform("power_down_non_essential", zones, zones=zones):
            self.powered_down_zones |= zones

    async def enable_emergency_comms(self) -> None:
        logger.info("[EVACUATION] Enabling emergency communications")
        if await self._perform("enable_emergency_comms"):
            self.emergency_comms = True


class SimulatedBackupController(SimulatedController):
    name = "backup"

    def __init__(self, injector: Optional[FaultInjector] = None, latency_sec: float = 0.0):
        super().__init__(injector, latency_sec)
        self.active = False
        self.severity = 0

    async def activate(self, severity: int) -> bool:
        logger.info(f"[BACKUP] Activating emergency backups, severity {severity}")
        if not await self._perform("activate", severity):
            return False
        self.active = True
        self.severity = severity
        return True


class SimulatedContainmentController(SimulatedController):
    name = "containment"

    def __init__(self, injector: Optional[FaultInjector] = None, latency_sec: float = 0.0):
        super().__init__(injector, latency_sec)
        self.contained_zones: ZoneMask = NO_ZONES
        self.recovered = False

    async def partial_contain(self, zones: ZoneMask, severity: int) -> bool:
        logger.info(f"[CONTAINMENT] Partial containment for zones {format_zones(zones)}, severity {severity}")
        if not await self._perform("partial_contain", zones, severity, zones=zones):
            return False
        self.contained_zones |= zones
        self.recovered = False
        return True

    async def full_recovery(self) -> bool:
        logger.info("[CONTAINMENT] Starting full recovery")
        if not await self._perform("full_recovery"):
            return False
        self.contained_zones = NO_ZONES
        self.recovered = True
        return True


# =============================================================================
# Factory
# =============================================================================

def create_simulated_controllers(
    injector: Optional[FaultInjector] = None,
    latency_sec: float = 0.0,
) -> FacilityControllers:
    """
    Build a controller bundle made entirely of simulators.

    Args:
        injector: Fault injector shared by all simulators (one that reads
                  FAULT_* environment variables is created if None)
        latency_sec: Delay added to every simulated call

    Returns:
        FacilityControllers of simulated subsystems
    """
    injector = injector or FaultInjector()
    return FacilityControllers(
        access=SimulatedAccessController(injector, latency_sec),
        network=SimulatedNetworkController(injector, latency_sec),
        service=SimulatedServiceController(injector, latency_sec),
        surveillance=SimulatedSurveillanceController(injector, latency_sec),
        evacuation=SimulatedEvacuationController(injector, latency_sec),
        backup=SimulatedBackupController(injector, latency_sec),
        containment=SimulatedContainmentController(injector, latency_sec),
        hardware=SimulatedHardwareProbe(injector, latency_sec),
    )
