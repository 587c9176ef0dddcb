"""
BASTION Watchdog Module.

Periodically probes facility hardware readiness so a degraded subsystem is
noticed before the next response has to run against it.

Key Features:
- Hardware readiness probe on a configurable interval
- Consecutive-failure tracking (degraded, then failed)
- Status callbacks on every check
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from bastion.controllers import HardwareProbe

logger = logging.getLogger("BASTION.Watchdog")

FAILED_AFTER = 3


class HealthState(Enum):
    """Hardware health states."""
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class HealthStatus:
    """Current hardware health."""
    state: HealthState = HealthState.UNKNOWN
    last_check: Optional[datetime] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    checks_run: int = 0

    @property
    def is_healthy(self) -> bool:
        return self.state == HealthState.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "state": self.state.value,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "last_error": self.last_error,
            "consecutive_failures": self.consecutive_failures,
            "checks_run": self.checks_run,
        }


class HealthMonitor:
    """
    Runs the hardware readiness probe in the background.

    An interval of 0 disables periodic checks; check_once() still works.
    """

    def __init__(self, probe: HardwareProbe, interval_sec: float = 30.0):
        """
        Initialize health monitor.

        Args:
            probe: Hardware readiness probe
            interval_sec: Seconds between checks
        """
        self._probe = probe
        self._interval = interval_sec
        self._running = False
        self._check_task: Optional[asyncio.Task] = None
        self._callbacks: List[Callable] = []
        self.status = HealthStatus()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._running

    def set_interval(self, interval_sec: float):
        """Change the check interval; takes effect after the current wait. 0 stops the loop."""
        self._interval = interval_sec

    async def check_once(self) -> bool:
        """
        Probe hardware readiness and update status.

        Returns:
            True if hardware reported ready
        """
        try:
            result = self._probe.check_ready()
            if inspect.isawaitable(result):
                result = await result
            ready = bool(result)
            error = None if ready else "Hardware not ready"
        except Exception as e:
            ready = False
            error = f"Readiness probe error: {e}"

        self.status.last_check = datetime.now()
        self.status.checks_run += 1

        if ready:
            if self.status.state != HealthState.HEALTHY:
                logger.info("Facility hardware is healthy")
            self.status.state = HealthState.HEALTHY
            self.status.consecutive_failures = 0
            self.status.last_error = None
        else:
            self.status.consecutive_failures += 1
            self.status.last_error = error
            if self.status.consecutive_failures >= FAILED_AFTER:
                if self.status.state != HealthState.FAILED:
                    logger.critical(f"Facility hardware failed: {error}")
                self.status.state = HealthState.FAILED
            else:
                self.status.state = HealthState.DEGRADED
                logger.warning(f"Facility hardware degraded: {error}")

        for callback in self._callbacks:
            try:
                result = callback(self.status)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Health status callback failed: {e}")

        return ready

    async def _check_loop(self):
        """Periodic check of hardware readiness."""
        while self._running and self._interval > 0:
            await asyncio.sleep(self._interval)
            if not self._running or self._interval <= 0:
                break
            await self.check_once()
        self._running = False

    async def start(self):
        """Start periodic monitoring."""
        if self._running or self._interval <= 0:
            return

        self._running = True
        self._check_task = asyncio.create_task(self._check_loop())
        logger.info(f"Health monitor started ({self._interval:.0f}s interval)")

    async def stop(self):
        """Stop periodic monitoring."""
        self._running = False
        if self._check_task:
            self._check_task.cancel()
            try:
                await self._check_task
            except asyncio.CancelledError:
                pass
            self._check_task = None
            logger.info("Health monitor stopped")

    def register_status_callback(self, callback: Callable):
        """Register callback for status updates."""
        self._callbacks.append(callback)
