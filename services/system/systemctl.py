"""
BASTION systemd Service Controller

Service failover backed by systemctl. A service's backup is the unit named
<service><backup_suffix>, e.g. auth-service-backup.
"""

import logging
from typing import List, Optional

from bastion.config import FailoverConfig
from bastion.types import ZoneMask, format_zones
from services.system.commands import CommandRunner

logger = logging.getLogger("BASTION.Systemctl")


class SystemctlServiceController:
    """ServiceController driving systemctl."""

    def __init__(
        self,
        config: Optional[FailoverConfig] = None,
        systemctl_path: str = "systemctl",
        command_timeout: float = 30.0,
        runner: Optional[CommandRunner] = None,
    ):
        self.config = config or FailoverConfig()
        self.systemctl_path = systemctl_path
        self.runner = runner or CommandRunner(timeout=command_timeout)
        # Backups started by failover, stopped again on cleanup
        self.started_backups: List[str] = []

    def backup_unit(self, name: str) -> str:
        return f"{name}{self.config.backup_suffix}"

    async def _systemctl(self, action: str, unit: str) -> bool:
        result = await self.runner.run([self.systemctl_path, action, unit])
        return result.ok

    async def stop_service(self, name: str) -> bool:
        ok = await self._systemctl("stop", name)
        if ok:
            logger.info(f"Stopped {name}")
        return ok

    async def start_backup(self, name: str) -> bool:
        unit = self.backup_unit(name)
        ok = await self._systemctl("start", unit)
        if ok:
            logger.info(f"Started {unit}")
            if unit not in self.started_backups:
                self.started_backups.append(unit)
        return ok

    async def stop_non_critical(self, zones: ZoneMask) -> bool:
        """Stop every configured non-critical service."""
        services = self.config.non_critical_services
        logger.info(f"Stopping {len(services)} non-critical services (zones {format_zones(zones)})")
        ok = True
        for name in services:
            if not await self._systemctl("stop", name):
                ok = False
        return ok

    async def stop_emergency_services(self) -> None:
        """Stop backups started by failover."""
        for unit in list(self.started_backups):
            if await self._systemctl("stop", unit):
                self.started_backups.remove(unit)
            else:
                logger.warning(f"Could not stop {unit}")
