"""
Unit tests for BASTION simulators and fault injection.
"""

from datetime import datetime, timedelta

import pytest

from bastion.controllers import (
    AccessController,
    BackupController,
    ContainmentController,
    EvacuationController,
    HardwareProbe,
    NetworkController,
    ServiceController,
    SurveillanceController,
)
from bastion.types import ALL_ZONES, zone_mask
from services.simulators import (
    FaultInjector,
    FaultType,
    SimulatedAccessController,
    SimulatedFaultError,
    SimulatedNetworkController,
    create_simulated_controllers,
)


# =============================================================================
# Fault Injection
# =============================================================================

class TestFaultInjector:
    """Tests for FaultInjector."""

    def test_no_faults_by_default(self):
        injector = FaultInjector(load_env=False)
        assert injector.should_inject("lock_physical_access") is None

    def test_fault_fires(self):
        injector = FaultInjector(load_env=False)
        injector.enable_fault("lock_physical_access", FaultType.ERROR)
        config = injector.should_inject("lock_physical_access")
        assert config is not None
        assert config.occurrence_count == 1

    def test_unknown_operation_rejected(self):
        with pytest.raises(ValueError):
            FaultInjector(load_env=False).enable_fault("launch_missiles")

    def test_zero_probability_never_fires(self):
        injector = FaultInjector(load_env=False)
        injector.enable_fault("enhance", probability=0.0)
        assert all(injector.should_inject("enhance") is None for _ in range(50))

    def test_max_occurrences(self):
        injector = FaultInjector(load_env=False)
        injector.enable_fault("enhance", max_occurrences=2)
        fired = [injector.should_inject("enhance") is not None for _ in range(4)]
        assert fired == [True, True, False, False]

    def test_zone_targeting(self):
        injector = FaultInjector(load_env=False)
        injector.enable_fault("add_zone_rule", zones=zone_mask(5))
        assert injector.should_inject("add_zone_rule", zone_mask(4)) is None
        assert injector.should_inject("add_zone_rule", zone_mask(5)) is not None
        assert injector.should_inject("add_zone_rule", ALL_ZONES) is not None

    def test_time_window(self):
        injector = FaultInjector(load_env=False)
        injector.enable_fault("enhance", start_time=datetime.now() + timedelta(hours=1))
        assert injector.should_inject("enhance") is None
        injector.enable_fault("enhance", end_time=datetime.now() - timedelta(hours=1))
        assert injector.should_inject("enhance") is None

    def test_cooldown(self):
        injector = FaultInjector(load_env=False)
        injector.enable_fault("enhance", cooldown_sec=60)
        assert injector.should_inject("enhance") is not None
        assert injector.should_inject("enhance") is None

    def test_global_disable(self):
        injector = FaultInjector(load_env=False)
        injector.enable_fault("enhance")
        injector.set_enabled(False)
        assert not injector.enabled
        assert injector.should_inject("enhance") is None

    def test_disable_and_reset(self):
        injector = FaultInjector(load_env=False)
        injector.enable_fault("enhance")
        injector.enable_fault("activate")
        injector.disable_fault("enhance")
        assert injector.should_inject("enhance") is None
        injector.disable_all()
        assert injector.should_inject("activate") is None
        injector.reset()
        assert injector.get_fault_config("activate") is None

    def test_callbacks(self):
        injector = FaultInjector(load_env=False)
        seen = []
        injector.register_callback(lambda op, cfg: seen.append(op))
        injector.enable_fault("enhance")
        injector.should_inject("enhance")
        assert seen == ["enhance"]

    def test_env_config(self, monkeypatch):
        monkeypatch.setenv("FAULT_ADD_ZONE_RULE_TYPE", "exception")
        monkeypatch.setenv("FAULT_ADD_ZONE_RULE_PROBABILITY", "0.25")
        monkeypatch.setenv("FAULT_ENHANCE_TYPE", "bogus")
        injector = FaultInjector()
        config = injector.get_fault_config("add_zone_rule")
        assert config.fault_type == FaultType.EXCEPTION
        assert config.probability == 0.25
        assert injector.get_fault_config("enhance") is None

    def test_get_status(self):
        injector = FaultInjector(load_env=False)
        injector.enable_fault("enhance", FaultType.DELAY, delay_sec=1.5, zones=zone_mask(0))
        injector.should_inject("enhance")
        status = injector.get_status()
        assert status["enabled"]
        assert status["total_injections"] == 1
        assert status["active_faults"][0]["operation"] == "enhance"
        assert status["active_faults"][0]["type"] == "delay"
        assert status["active_faults"][0]["zones"] == "0x00000001"

    @pytest.mark.asyncio
    async def test_apply(self):
        injector = FaultInjector(load_env=False)
        assert await injector.apply("enhance")

        injector.enable_fault("enhance", FaultType.ERROR)
        assert not await injector.apply("enhance")

        injector.enable_fault("enhance", FaultType.EXCEPTION, message="camera offline")
        with pytest.raises(SimulatedFaultError, match="camera offline"):
            await injector.apply("enhance")

        injector.enable_fault("enhance", FaultType.DELAY, delay_sec=0.01)
        assert await injector.apply("enhance")


# =============================================================================
# Simulated Controllers
# =============================================================================

class TestSimulatedControllers:
    """Tests for the simulated subsystems."""

    def test_bundle_satisfies_interfaces(self):
        controllers = create_simulated_controllers(FaultInjector(load_env=False))
        assert isinstance(controllers.access, AccessController)
        assert isinstance(controllers.network, NetworkController)
        assert isinstance(controllers.service, ServiceController)
        assert isinstance(controllers.surveillance, SurveillanceController)
        assert isinstance(controllers.evacuation, EvacuationController)
        assert isinstance(controllers.backup, BackupController)
        assert isinstance(controllers.containment, ContainmentController)
        assert isinstance(controllers.hardware, HardwareProbe)

    def test_shared_injector(self):
        injector = FaultInjector(load_env=False)
        controllers = create_simulated_controllers(injector)
        assert controllers.access.injector is injector
        assert controllers.network.injector is injector

    @pytest.mark.asyncio
    async def test_records_calls(self):
        access = SimulatedAccessController()
        await access.lock_physical_access(zone_mask(1, 2), 600)
        assert access.calls == [("lock_physical_access", (zone_mask(1, 2), 600))]
        assert access.locked_zones == zone_mask(1, 2)
        assert access.get_stats()["calls_succeeded"] == 1

    @pytest.mark.asyncio
    async def test_failed_call_leaves_state(self):
        injector = FaultInjector(load_env=False)
        injector.enable_fault("lock_physical_access")
        access = SimulatedAccessController(injector)

        assert not await access.lock_physical_access(ALL_ZONES, 60)
        assert access.locked_zones == 0
        assert access.stats.calls_failed == 1

    @pytest.mark.asyncio
    async def test_network_rule_set(self):
        network = SimulatedNetworkController()
        await network.create_rule_set()
        await network.add_zone_rule(3)
        await network.add_zone_rule(3)
        await network.activate_rule_set()
        assert network.isolated_zones == [3]
        assert network.rule_set_active

        await network.cleanup_rules()
        assert not network.rule_set_active
        assert network.isolated_zones == []

    @pytest.mark.asyncio
    async def test_reset_calls(self):
        network = SimulatedNetworkController()
        await network.initialize()
        network.reset_calls()
        assert network.calls == []
        assert network.stats.calls_received == 0

    @pytest.mark.asyncio
    async def test_latency(self):
        access = SimulatedAccessController(latency_sec=0.05)
        started = datetime.now()
        await access.initialize()
        assert (datetime.now() - started).total_seconds() >= 0.04
