"""
BASTION System Backends

Controllers that act on the host: iptables for network isolation and
systemctl for service failover.
"""

from services.system.commands import CommandResult, CommandRunner
from services.system.iptables import IptablesNetworkController
from services.system.systemctl import SystemctlServiceController

__all__ = [
    "CommandResult",
    "CommandRunner",
    "IptablesNetworkController",
    "SystemctlServiceController",
]
