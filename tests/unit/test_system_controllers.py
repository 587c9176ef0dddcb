"""
Unit tests for the host-backed controllers (iptables, systemctl) and the
command runner they share.

Subprocesses are mocked; nothing here touches the host firewall or init
system.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from bastion.config import FailoverConfig, NetworkConfig
from bastion.types import zone_mask
from services.system import (
    CommandResult,
    CommandRunner,
    IptablesNetworkController,
    SystemctlServiceController,
)


def fake_process(returncode=0, stdout=b"", stderr=b""):
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.wait = AsyncMock(return_value=returncode)
    return process


class RecordingRunner:
    """CommandRunner stand-in that records commands and fails selected ones."""

    def __init__(self, fail_on=(), stderr=""):
        self.commands = []
        self.fail_on = set(fail_on)
        self.stderr = stderr

    async def run(self, args):
        args = list(args)
        self.commands.append(args)
        failed = " ".join(args[1:]) in self.fail_on
        return CommandResult(
            args=args,
            returncode=1 if failed else 0,
            stderr=self.stderr if failed else "",
        )


# =============================================================================
# CommandRunner
# =============================================================================

class TestCommandRunner:
    """Tests for CommandRunner."""

    @pytest.mark.asyncio
    async def test_success(self):
        with patch("asyncio.create_subprocess_exec",
                   AsyncMock(return_value=fake_process(0, b"ok\n"))) as spawn:
            result = await CommandRunner().run(["iptables", "-L", "-n"])

        spawn.assert_awaited_once()
        assert spawn.await_args.args == ("iptables", "-L", "-n")
        assert result.ok
        assert result.stdout == "ok"

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        with patch("asyncio.create_subprocess_exec",
                   AsyncMock(return_value=fake_process(4, stderr=b"Permission denied\n"))):
            result = await CommandRunner().run(["iptables", "-L"])
        assert not result.ok
        assert result.returncode == 4
        assert result.stderr == "Permission denied"

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        with patch("asyncio.create_subprocess_exec",
                   AsyncMock(side_effect=FileNotFoundError())):
            result = await CommandRunner().run(["no-such-tool"])
        assert result.returncode == 127
        assert not result.ok

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        async def hang():
            await asyncio.sleep(5)

        process = fake_process()
        process.communicate = hang
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            result = await CommandRunner(timeout=0.05).run(["systemctl", "stop", "x"])

        process.kill.assert_called_once()
        assert result.timed_out
        assert not result.ok

    @pytest.mark.asyncio
    async def test_cancel_kills_process(self):
        async def hang():
            await asyncio.sleep(5)

        process = fake_process()
        process.returncode = None
        process.communicate = hang
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            task = asyncio.create_task(CommandRunner(timeout=30).run(["systemctl", "stop", "x"]))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_outer_deadline_kills_process(self):
        async def hang():
            await asyncio.sleep(5)

        process = fake_process()
        process.returncode = None
        process.communicate = hang
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(CommandRunner(timeout=30).run(["iptables", "-F"]), 0.05)

        process.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_dry_run(self):
        with patch("asyncio.create_subprocess_exec", AsyncMock()) as spawn:
            result = await CommandRunner(dry_run=True).run(["iptables", "-F"])
        spawn.assert_not_called()
        assert result.ok


# =============================================================================
# IptablesNetworkController
# =============================================================================

class TestIptablesNetworkController:
    """Tests for IptablesNetworkController."""

    def make(self, **runner_kwargs):
        runner = RecordingRunner(**runner_kwargs)
        return IptablesNetworkController(NetworkConfig(), runner=runner), runner

    def test_zone_subnet(self):
        network = IptablesNetworkController(NetworkConfig(zone_subnet_template="192.168.{zone}.0/24"))
        assert network.zone_subnet(7) == "192.168.7.0/24"

    @pytest.mark.asyncio
    async def test_initialize(self):
        network, runner = self.make()
        assert await network.initialize()
        assert runner.commands == [["iptables", "-L", "-n"]]

    @pytest.mark.asyncio
    async def test_initialize_failure(self):
        network, _ = self.make(fail_on={"-L -n"})
        assert not await network.initialize()

    @pytest.mark.asyncio
    async def test_create_rule_set_existing_chain(self):
        network, _ = self.make(fail_on={"-N BASTION_EMERGENCY"}, stderr="Chain already exists.")
        assert await network.create_rule_set()

    @pytest.mark.asyncio
    async def test_create_rule_set_failure(self):
        network, _ = self.make(fail_on={"-N BASTION_EMERGENCY"}, stderr="Permission denied")
        assert not await network.create_rule_set()

    @pytest.mark.asyncio
    async def test_isolate_segments(self):
        network, runner = self.make()
        assert await network.isolate_segments(zone_mask(1, 4), severity=8)

        assert ["iptables", "-N", "BASTION_EMERGENCY"] in runner.commands
        assert ["iptables", "-A", "BASTION_EMERGENCY", "-s", "10.0.1.0/24", "-j", "DROP"] in runner.commands
        assert ["iptables", "-A", "BASTION_EMERGENCY", "-s", "10.0.4.0/24", "-j", "DROP"] in runner.commands
        assert runner.commands[-1] == ["iptables", "-I", "FORWARD", "-j", "BASTION_EMERGENCY"]

    @pytest.mark.asyncio
    async def test_isolate_segments_partial_failure(self):
        network, runner = self.make(fail_on={"-A BASTION_EMERGENCY -s 10.0.4.0/24 -j DROP"})
        assert not await network.isolate_segments(zone_mask(1, 4), severity=8)
        # The remaining rules are still activated
        assert runner.commands[-1][1:3] == ["-I", "FORWARD"]

    @pytest.mark.asyncio
    async def test_activate_only_once(self):
        network, runner = self.make()
        await network.activate_rule_set()
        await network.activate_rule_set()
        assert sum(1 for c in runner.commands if c[1] == "-I") == 1

    @pytest.mark.asyncio
    async def test_cleanup(self):
        network, runner = self.make()
        await network.activate_rule_set()
        await network.cleanup_rules()
        assert runner.commands[-3:] == [
            ["iptables", "-D", "FORWARD", "-j", "BASTION_EMERGENCY"],
            ["iptables", "-F", "BASTION_EMERGENCY"],
            ["iptables", "-X", "BASTION_EMERGENCY"],
        ]
        await network.activate_rule_set()
        assert runner.commands[-1][1] == "-I"


# =============================================================================
# SystemctlServiceController
# =============================================================================

class TestSystemctlServiceController:
    """Tests for SystemctlServiceController."""

    def make(self, **runner_kwargs):
        runner = RecordingRunner(**runner_kwargs)
        config = FailoverConfig(non_critical_services=["reporting", "kiosk"])
        return SystemctlServiceController(config, runner=runner), runner

    @pytest.mark.asyncio
    async def test_failover_pair(self):
        service, runner = self.make()
        assert await service.stop_service("auth-service")
        assert await service.start_backup("auth-service")
        assert runner.commands == [
            ["systemctl", "stop", "auth-service"],
            ["systemctl", "start", "auth-service-backup"],
        ]
        assert service.started_backups == ["auth-service-backup"]

    @pytest.mark.asyncio
    async def test_failed_backup_not_tracked(self):
        service, _ = self.make(fail_on={"start db-service-backup"})
        assert not await service.start_backup("db-service")
        assert service.started_backups == []

    @pytest.mark.asyncio
    async def test_stop_non_critical(self):
        service, runner = self.make(fail_on={"stop kiosk"})
        assert not await service.stop_non_critical(zone_mask(0))
        assert runner.commands == [
            ["systemctl", "stop", "reporting"],
            ["systemctl", "stop", "kiosk"],
        ]

    @pytest.mark.asyncio
    async def test_stop_emergency_services(self):
        service, runner = self.make()
        await service.start_backup("auth-service")
        await service.start_backup("api-gateway")
        await service.stop_emergency_services()

        assert service.started_backups == []
        assert runner.commands[-2:] == [
            ["systemctl", "stop", "auth-service-backup"],
            ["systemctl", "stop", "api-gateway-backup"],
        ]

    def test_custom_suffix(self):
        service = SystemctlServiceController(FailoverConfig(backup_suffix=".standby"))
        assert service.backup_unit("db") == "db.standby"
