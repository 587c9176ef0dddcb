"""
BASTION Services Package

Controller backends the response executor drives.

Backends
========

Simulation (services.simulators)
--------------------------------
- Simulated controllers for every facility subsystem, recording their calls
- FaultInjector: per-operation error, exception and delay faults

Host Integration (services.system)
----------------------------------
- IptablesNetworkController: zone isolation through an iptables chain
- SystemctlServiceController: service failover through systemd units
- CommandRunner: subprocess execution with timeouts and dry-run

Selection
---------
bastion.controllers.create_controllers() builds the bundle named by
`controllers.backend` in the configuration.
"""
