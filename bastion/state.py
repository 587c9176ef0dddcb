"""
BASTION Subsystem State

Lifecycle state of one response system instance: initialization and
emergency flags, the facility mode, the last published execution report,
and the dispatch lock guarding them.

One SubsystemState is owned by each ResponseExecutor; there is no
module-level instance.
"""

import asyncio
import logging
from typing import Optional

from bastion.types import ExecutionReport, SystemMode

logger = logging.getLogger("BASTION.State")

# Ordering used when a response raises the facility mode
MODE_STRENGTH = {
    SystemMode.NORMAL: 0,
    SystemMode.RECOVERY: 1,
    SystemMode.HEIGHTENED_SECURITY: 2,
    SystemMode.EMERGENCY: 3,
    SystemMode.LOCKDOWN: 4,
}


class SubsystemState:
    """
    Process-wide response system state.

    The lock serializes dispatches. The emergency flags are written by the
    emergency trigger without holding it; readers see a point-in-time value.
    """

    def __init__(self):
        self.initialized: bool = False
        self.emergency_mode: bool = False
        self.current_level: int = 0
        self.mode: SystemMode = SystemMode.NORMAL
        self.lock: Optional[asyncio.Lock] = None
        self._last_report: ExecutionReport = ExecutionReport()

    @property
    def last_report(self) -> ExecutionReport:
        """The current report; a default report before any dispatch."""
        return self._last_report

    def publish(self, report: ExecutionReport):
        """Make a completed report current. Call with the lock held."""
        self._last_report = report

    def mark_initialized(self):
        """Enter the initialized state with emergency flags cleared."""
        self.initialized = True
        self.emergency_mode = False
        self.current_level = 0
        self.mode = SystemMode.NORMAL

    def enter_emergency(self, level: int):
        """Record an emergency trigger."""
        self.emergency_mode = True
        self.current_level = level
        self.escalate(SystemMode.EMERGENCY)

    def escalate(self, mode: SystemMode):
        """Raise the facility mode; never lowers it."""
        if MODE_STRENGTH[mode] > MODE_STRENGTH[self.mode]:
            logger.info(f"System mode {self.mode.name} -> {mode.name}")
            self.mode = mode

    def clear_emergency(self):
        """Return to normal operation."""
        if self.emergency_mode:
            logger.info(f"Emergency mode cleared (was level {self.current_level})")
        self.emergency_mode = False
        self.current_level = 0
        self.mode = SystemMode.NORMAL

    def reset(self):
        """Drop the lock and leave the initialized state."""
        self.lock = None
        self.initialized = False
