"""
BASTION iptables Network Controller

Network isolation backed by iptables. The emergency rule set is a dedicated
chain holding one DROP rule per isolated zone subnet; activating it jumps
FORWARD traffic through the chain.

Rule layout (defaults):
    iptables -N BASTION_EMERGENCY
    iptables -A BASTION_EMERGENCY -s 10.0.<zone>.0/24 -j DROP
    iptables -I FORWARD -j BASTION_EMERGENCY
"""

import logging
from typing import List, Optional

from bastion.config import NetworkConfig
from bastion.types import ZoneMask, format_zones, iter_zones
from services.system.commands import CommandResult, CommandRunner

logger = logging.getLogger("BASTION.Iptables")


class IptablesNetworkController:
    """NetworkController driving iptables."""

    def __init__(self, config: Optional[NetworkConfig] = None, runner: Optional[CommandRunner] = None):
        self.config = config or NetworkConfig()
        self.runner = runner or CommandRunner(timeout=self.config.command_timeout)
        self._active = False

    @property
    def chain(self) -> str:
        return self.config.chain_name

    def zone_subnet(self, zone: int) -> str:
        """Subnet isolated for a zone."""
        return self.config.zone_subnet_template.format(zone=zone)

    async def _iptables(self, *args: str) -> CommandResult:
        return await self.runner.run([self.config.iptables_path, *args])

    async def initialize(self) -> bool:
        """Check iptables is usable."""
        result = await self._iptables("-L", "-n")
        if result.ok:
            logger.info("iptables backend ready")
        else:
            logger.error(f"iptables unavailable: {result.stderr or result.returncode}")
        return result.ok

    async def create_rule_set(self) -> bool:
        """Create the emergency chain, emptying it if it already exists."""
        await self._iptables("-F", self.chain)
        result = await self._iptables("-N", self.chain)
        if not result.ok and "exists" not in result.stderr:
            return False
        logger.info(f"Emergency chain {self.chain} ready")
        return True

    async def add_zone_rule(self, zone: int) -> bool:
        """Append a DROP rule for one zone's subnet."""
        subnet = self.zone_subnet(zone)
        result = await self._iptables("-A", self.chain, "-s", subnet, "-j", "DROP")
        if result.ok:
            logger.info(f"Zone {zone} isolated ({subnet})")
        return result.ok

    async def activate_rule_set(self) -> bool:
        """Send FORWARD traffic through the emergency chain."""
        if self._active:
            return True
        result = await self._iptables("-I", "FORWARD", "-j", self.chain)
        self._active = result.ok
        if result.ok:
            logger.info(f"Emergency chain {self.chain} active")
        return result.ok

    async def isolate_segments(self, zones: ZoneMask, severity: int) -> bool:
        """Build and activate the rule set for every zone in the mask."""
        logger.info(f"Isolating zones {format_zones(zones)} (severity {severity})")
        if not await self.create_rule_set():
            return False

        failed: List[int] = []
        for zone in iter_zones(zones):
            if not await self.add_zone_rule(zone):
                failed.append(zone)

        activated = await self.activate_rule_set()
        if failed:
            logger.error(f"Isolation rules failed for zones {failed}")
        return activated and not failed

    async def cleanup_rules(self) -> None:
        """Detach and delete the emergency chain."""
        await self._iptables("-D", "FORWARD", "-j", self.chain)
        await self._iptables("-F", self.chain)
        await self._iptables("-X", self.chain)
        self._active = False
        logger.info(f"Emergency chain {self.chain} removed")
