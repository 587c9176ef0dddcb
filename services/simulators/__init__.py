"""
BASTION Simulators Package

Simulated facility subsystems for running and testing the response system
without hardware. The simulators implement the same controller interfaces
as the real backends.

All simulators support:
- Call recording for assertions
- Fault injection for error testing
- Configurable latency
"""

from services.simulators.facility_simulator import (
    SimulatedAccessController,
    SimulatedBackupController,
    SimulatedContainmentController,
    SimulatedController,
    SimulatedEvacuationController,
    SimulatedHardwareProbe,
    SimulatedNetworkController,
    SimulatedServiceController,
    SimulatedSurveillanceController,
    SimulatorStats,
    create_simulated_controllers,
)
from services.simulators.fault_injection import (
    FaultConfig,
    FaultInjector,
    FaultType,
    SimulatedFaultError,
)

__all__ = [
    "SimulatorStats",
    "SimulatedController",
    "SimulatedAccessController",
    "SimulatedNetworkController",
    "SimulatedServiceController",
    "SimulatedSurveillanceController",
    "SimulatedEvacuationController",
    "SimulatedBackupController",
    "SimulatedContainmentController",
    "SimulatedHardwareProbe",
    "create_simulated_controllers",
    "FaultType",
    "FaultConfig",
    "FaultInjector",
    "SimulatedFaultError",
]
