"""
Pytest Fixtures for BASTION Testing.

Provides the simulated controller bundle, a fault injector that ignores the
environment, and an initialized executor that is cleaned up after the test.

Usage:
    # In test files, fixtures are automatically available:
    async def test_lockdown(executor, controllers):
        report = await executor.dispatch(make_request())
        assert controllers.access.locked_zones == ALL_ZONES
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio

from bastion.config import BastionConfig, FailoverConfig, SystemConfig
from bastion.controllers import FacilityControllers
from bastion.executor import ResponseExecutor
from services.simulators import FaultInjector, create_simulated_controllers


@pytest.fixture
def injector() -> FaultInjector:
    """Fault injector with no faults configured."""
    return FaultInjector(load_env=False)


@pytest.fixture
def controllers(injector) -> FacilityControllers:
    """Simulated controllers sharing the test's fault injector."""
    return create_simulated_controllers(injector)


@pytest.fixture
def config() -> BastionConfig:
    """Configuration tuned for fast tests: no failover pacing, no health loop."""
    return BastionConfig(
        system=SystemConfig(health_check_interval=0),
        failover=FailoverConfig(inter_service_delay=0.0),
    )


@pytest_asyncio.fixture
async def executor(controllers, config) -> AsyncGenerator[ResponseExecutor, None]:
    """Initialized executor over the simulated controllers."""
    executor = ResponseExecutor(controllers, config)
    await executor.init()
    yield executor
    await executor.cleanup()
