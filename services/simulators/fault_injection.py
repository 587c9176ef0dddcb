"""
Configurable Fault Injection for BASTION Simulators

Injects failures into simulated controller operations so the response
sequences' failure handling can be exercised without real hardware.

Fault Types:
- ERROR: the operation reports failure (returns False)
- EXCEPTION: the operation raises SimulatedFaultError
- DELAY: the operation is slowed down, then proceeds normally

Faults are configured per controller operation name, optionally limited to
operations that touch particular zones.

Usage:
    from services.simulators.fault_injection import FaultInjector, FaultType

    injector = FaultInjector()
    injector.enable_fault("lock_physical_access", FaultType.ERROR)

    # In simulator code:
    if not await injector.apply("lock_physical_access", zones):
        return False

Environment (read when the injector is created):
    FAULT_<OPERATION>_TYPE=error|exception|delay
    FAULT_<OPERATION>_PROBABILITY=0.5
    FAULT_<OPERATION>_DELAY=2.0
"""

import asyncio
import logging
import os
import random
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from bastion.types import ZoneMask, format_zones

logger = logging.getLogger("BASTION.FaultInjection")


# Controller operations a fault can be attached to
OPERATIONS = (
    "check_ready",
    "initialize",
    "lock_physical_access",
    "unlock_evacuation_routes",
    "restore_normal_access",
    "isolate_segments",
    "create_rule_set",
    "add_zone_rule",
    "activate_rule_set",
    "cleanup_rules",
    "stop_non_critical",
    "stop_service",
    "start_backup",
    "stop_emergency_services",
    "enhance",
    "activate_lighting",
    "power_down_non_essential",
    "enable_emergency_comms",
    "activate",
    "partial_contain",
    "full_recovery",
)


class FaultType(Enum):
    """Types of faults that can be injected."""
    ERROR = "error"             # Operation returns False
    EXCEPTION = "exception"     # Operation raises
    DELAY = "delay"             # Slow response, then normal behavior


class SimulatedFaultError(RuntimeError):
    """Raised by a simulated operation when an EXCEPTION fault fires."""

    def __init__(self, operation: str, message: Optional[str] = None):
        self.operation = operation
        super().__init__(message or f"Simulated fault in {operation}")


@dataclass
class FaultConfig:
    """Configuration for one operation's fault."""
    fault_type: FaultType = FaultType.ERROR
    enabled: bool = False
    probability: float = 1.0                # 0.0 to 1.0
    delay_sec: float = 0.0
    message: Optional[str] = None
    zones: Optional[ZoneMask] = None        # None = any zones

    # Timing constraints
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    cooldown_sec: float = 0.0
    max_occurrences: int = -1               # -1 = unlimited

    # State tracking
    occurrence_count: int = 0
    last_triggered: Optional[datetime] = None


class FaultInjector:
    """
    Per-operation fault injection for the simulated controllers.

    Example:
        injector = FaultInjector()

        # Every second zone rule fails
        injector.enable_fault("add_zone_rule", FaultType.ERROR, probability=0.5)

        # Door locks in zone 3 raise
        injector.enable_fault("lock_physical_access", FaultType.EXCEPTION, zones=1 << 3)
    """

    def __init__(self, load_env: bool = True):
        self._faults: Dict[str, FaultConfig] = {}
        self._enabled = True
        self._callbacks: List[Callable] = []

        if load_env:
            self._load_env_config()

    def _load_env_config(self):
        """Load fault configuration from environment variables."""
        for operation in OPERATIONS:
            prefix = f"FAULT_{operation.upper()}"

            kind = os.environ.get(f"{prefix}_TYPE", "").lower()
            if not kind:
                continue
            try:
                fault_type = FaultType(kind)
            except ValueError:
                logger.warning(f"Ignoring {prefix}_TYPE: unknown fault type '{kind}'")
                continue

            probability = float(os.environ.get(f"{prefix}_PROBABILITY", "1.0"))
            delay = float(os.environ.get(f"{prefix}_DELAY", "0"))
            self.enable_fault(operation, fault_type, probability=probability, delay_sec=delay)
            logger.info(f"Loaded fault config from env: {operation} {fault_type.name} "
                        f"(prob={probability}, delay={delay})")

    @property
    def enabled(self) -> bool:
        """Check if fault injection is enabled globally."""
        return self._enabled

    def set_enabled(self, enabled: bool):
        """Enable or disable all fault injection."""
        self._enabled = enabled
        logger.info(f"Fault injection {'enabled' if enabled else 'disabled'}")

    def enable_fault(
        self,
        operation: str,
        fault_type: FaultType = FaultType.ERROR,
        probability: float = 1.0,
        delay_sec: float = 0.0,
        message: Optional[str] = None,
        zones: Optional[ZoneMask] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        cooldown_sec: float = 0.0,
        max_occurrences: int = -1,
    ):
        """
        Attach a fault to a controller operation.

        Args:
            operation: Operation name, e.g. "lock_physical_access"
            fault_type: What happens when the fault fires
            probability: Probability of the fault firing per call (0.0-1.0)
            delay_sec: Delay applied by DELAY faults
            message: Exception message for EXCEPTION faults
            zones: Only fire for calls touching one of these zones
            start_time: When the fault becomes active
            end_time: When the fault expires
            cooldown_sec: Minimum time between firings
            max_occurrences: Maximum number of firings (-1 = unlimited)
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown controller operation: {operation}")

        self._faults[operation] = FaultConfig(
            fault_type=fault_type,
            enabled=True,
            probability=max(0.0, min(1.0, probability)),
            delay_sec=delay_sec,
            message=message,
            zones=zones,
            start_time=start_time,
            end_time=end_time,
            cooldown_sec=cooldown_sec,
            max_occurrences=max_occurrences,
        )
        logger.info(f"Enabled fault: {operation} {fault_type.name} (prob={probability})")

    def disable_fault(self, operation: str):
        """Disable the fault on one operation."""
        config = self._faults.get(operation)
        if config:
            config.enabled = False
            logger.info(f"Disabled fault: {operation}")

    def disable_all(self):
        """Disable all faults, keeping their counters."""
        for config in self._faults.values():
            config.enabled = False
        logger.info("All faults disabled")

    def reset(self):
        """Drop all fault configurations and counters."""
        self._faults = {}
        logger.info("Fault injector reset")

    def get_fault_config(self, operation: str) -> Optional[FaultConfig]:
        """Get the fault configured for an operation, if any."""
        return self._faults.get(operation)

    def should_inject(self, operation: str, zones: Optional[ZoneMask] = None) -> Optional[FaultConfig]:
        """
        Decide whether the fault on an operation fires for this call.

        Args:
            operation: Operation being called
            zones: Zones the call touches (None if not zone-scoped)

        Returns:
            The firing fault's config, or None
        """
        if not self._enabled:
            return None

        config = self._faults.get(operation)
        if config is None or not config.enabled:
            return None

        now = datetime.now()

        if config.start_time and now < config.start_time:
            return None
        if config.end_time and now > config.end_time:
            return None

        if config.last_triggered and config.cooldown_sec > 0:
            elapsed = (now - config.last_triggered).total_seconds()
            if elapsed < config.cooldown_sec:
                return None

        if config.max_occurrences >= 0 and config.occurrence_count >= config.max_occurrences:
            return None

        if config.zones is not None and zones is not None and not config.zones & zones:
            return None

        if random.random() > config.probability:
            return None

        config.occurrence_count += 1
        config.last_triggered = now

        zone_note = f" zones {format_zones(zones)}" if zones is not None else ""
        logger.warning(f"FAULT INJECTED: {operation} {config.fault_type.name}{zone_note} "
                       f"(count={config.occurrence_count})")

        for callback in self._callbacks:
            try:
                callback(operation, config)
            except Exception as e:
                logger.error(f"Fault callback error: {e}")

        return config

    async def apply(self, operation: str, zones: Optional[ZoneMask] = None) -> bool:
        """
        Apply any fault for this call.

        Returns:
            False if the operation should report failure, True to proceed

        Raises:
            SimulatedFaultError: If an EXCEPTION fault fires
        """
        config = self.should_inject(operation, zones)
        if config is None:
            return True

        if config.fault_type == FaultType.DELAY:
            if config.delay_sec > 0:
                logger.debug(f"Applying {config.delay_sec}s delay to {operation}")
                await asyncio.sleep(config.delay_sec)
            return True
        if config.fault_type == FaultType.EXCEPTION:
            raise SimulatedFaultError(operation, config.message)
        return False

    def register_callback(self, callback: Callable):
        """Register callback for fault events: callback(operation, config)."""
        self._callbacks.append(callback)

    def get_status(self) -> Dict[str, Any]:
        """Get current fault injection status."""
        active_faults = []
        for operation, config in self._faults.items():
            if config.enabled:
                active_faults.append({
                    "operation": operation,
                    "type": config.fault_type.value,
                    "probability": config.probability,
                    "occurrences": config.occurrence_count,
                    "delay_sec": config.delay_sec,
                    "zones": format_zones(config.zones) if config.zones is not None else None,
                })

        return {
            "enabled": self._enabled,
            "active_faults": active_faults,
            "total_injections": sum(c.occurrence_count for c in self._faults.values()),
        }
