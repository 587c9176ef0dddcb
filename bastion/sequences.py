"""
BASTION Response Sequences

One sequence handler per response type. Each handler drives a fixed,
ordered list of controller calls through a StepTracker and returns a
single result code.

Sequence Policy:
1. Continue on failure -> every step is attempted once
2. First failure wins -> the returned code is that of the first failed step
3. Zone fan-out -> zone-scoped steps run once per set bit of the mask
4. Best-effort steps -> never fail the sequence; exceptions become warnings
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, ClassVar, Dict, List, Optional

from bastion.config import BastionConfig, FailoverConfig
from bastion.controllers import FacilityControllers
from bastion.types import (
    ResponseRequest,
    ResponseType,
    ResultCode,
    StepOutcome,
    StepStatus,
    format_zones,
    iter_zones,
)

logger = logging.getLogger("BASTION.Sequences")


# =============================================================================
# Step Tracking
# =============================================================================

async def invoke(operation: Callable, *args) -> Any:
    """Call a controller operation that may be sync or async."""
    result = operation(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class StepTracker:
    """
    Runs the steps of one sequence and records their outcomes.

    Lives for a single dispatch. If the sequence is cancelled by the
    dispatch deadline, the outcomes recorded so far remain readable.
    """

    def __init__(self):
        self.outcomes: List[StepOutcome] = []
        self._first_failure: int = ResultCode.SUCCESS
        self._first_failed_step: Optional[str] = None

    @property
    def result(self) -> int:
        """Code of the first failed step, or SUCCESS."""
        return self._first_failure

    @property
    def first_failed_step(self) -> Optional[str]:
        return self._first_failed_step

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == StepStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == StepStatus.FAILED)

    @property
    def warnings(self) -> int:
        return sum(1 for o in self.outcomes if o.status == StepStatus.WARNING)

    async def run(self, name: str, failure_code: int, operation: Callable, *args) -> bool:
        """
        Attempt one fallible step.

        Args:
            name: Step name for logs and the report
            failure_code: Code returned by the sequence if this is the first failure
            operation: Controller operation to call
            *args: Operation arguments

        Returns:
            True if the step succeeded
        """
        detail = None
        try:
            ok = await invoke(operation, *args) is not False
            if not ok:
                detail = f"{name} reported failure"
        except asyncio.CancelledError:
            raise
        except Exception as e:
            ok = False
            detail = f"{name} raised {type(e).__name__}: {e}"

        if ok:
            self.outcomes.append(StepOutcome(name, StepStatus.SUCCEEDED))
            logger.info(f"Step {name} succeeded")
        else:
            self.outcomes.append(StepOutcome(name, StepStatus.FAILED, failure_code, detail))
            logger.error(f"Step {name} failed: {detail}")
            if self._first_failed_step is None:
                self._first_failure = failure_code
                self._first_failed_step = name
        return ok

    async def best_effort(self, name: str, operation: Callable, *args):
        """Attempt a step that has no failure path; an exception is kept as a warning."""
        try:
            await invoke(operation, *args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            detail = f"{name} raised {type(e).__name__}: {e}"
            self.outcomes.append(StepOutcome(name, StepStatus.WARNING, detail=detail))
            logger.warning(f"Best-effort step {detail}")
            return
        self.outcomes.append(StepOutcome(name, StepStatus.SUCCEEDED))
        logger.info(f"Step {name} completed")


# =============================================================================
# Sequence Handlers
# =============================================================================

class SequenceHandler:
    """Base class for the per-type response sequences."""

    response_type: ClassVar[ResponseType]
    summary: ClassVar[str] = "Response sequence completed"

    async def execute(
        self,
        request: ResponseRequest,
        controllers: FacilityControllers,
        tracker: StepTracker,
    ) -> int:
        """Run the sequence and return its result code."""
        raise NotImplementedError


class LockdownSequence(SequenceHandler):
    """Full facility lockdown: doors, network, services, surveillance."""

    response_type = ResponseType.LOCKDOWN
    summary = "Full lockdown sequence completed"

    ACCESS_FAILED = -1
    NETWORK_FAILED = -2
    SERVICES_FAILED = -3
    SURVEILLANCE_FAILED = -4

    async def execute(self, request, controllers, tracker):
        zones = request.target_zones
        logger.info(f"Executing lockdown sequence, severity {request.severity}")

        await tracker.run(
            "lock_physical_access", self.ACCESS_FAILED,
            controllers.access.lock_physical_access, zones, request.duration,
        )
        await tracker.run(
            "isolate_network_segments", self.NETWORK_FAILED,
            controllers.network.isolate_segments, zones, request.severity,
        )
        await tracker.run(
            "stop_non_critical_services", self.SERVICES_FAILED,
            controllers.service.stop_non_critical, zones,
        )
        await tracker.run(
            "enhance_surveillance", self.SURVEILLANCE_FAILED,
            controllers.surveillance.enhance, zones,
        )

        logger.info(f"Lockdown sequence finished: {tracker.succeeded}/{tracker.attempted} steps succeeded")
        return tracker.result


class NetworkIsolationSequence(SequenceHandler):
    """Per-zone network isolation followed by rule-set activation."""

    response_type = ResponseType.NETWORK_ISOLATE
    summary = "Network isolation completed"

    RULE_SET_FAILED = -1
    ZONE_RULE_FAILED = -2
    ACTIVATION_FAILED = -3

    async def execute(self, request, controllers, tracker):
        network = controllers.network
        logger.info(f"Executing network isolation, target zones {format_zones(request.target_zones)}")

        await tracker.run("create_rule_set", self.RULE_SET_FAILED, network.create_rule_set)

        for zone in iter_zones(request.target_zones):
            await tracker.run(f"isolate_zone_{zone}", self.ZONE_RULE_FAILED, network.add_zone_rule, zone)

        await tracker.run("activate_rule_set", self.ACTIVATION_FAILED, network.activate_rule_set)

        logger.info("Network isolation finished")
        return tracker.result


class ServiceFailoverSequence(SequenceHandler):
    """
    Move each critical service to its backup.

    A primary that stopped is not restarted if its backup fails to start.
    """

    response_type = ResponseType.SERVICE_FAILOVER
    summary = "Service failover completed"

    STOP_FAILED = -1
    START_FAILED = -2

    def __init__(self, config: Optional[FailoverConfig] = None):
        self.config = config or FailoverConfig()

    async def execute(self, request, controllers, tracker):
        service = controllers.service
        services = self.config.critical_services
        logger.info(f"Executing service failover for {len(services)} services")

        for index, name in enumerate(services):
            if index > 0 and self.config.inter_service_delay > 0:
                await asyncio.sleep(self.config.inter_service_delay)

            await tracker.run(f"stop_{name}", self.STOP_FAILED, service.stop_service, name)
            await tracker.run(f"start_{name}_backup", self.START_FAILED, service.start_backup, name)

        return tracker.result


class EvacuationSequence(SequenceHandler):
    """Unlock evacuation routes, then lighting, power and comms."""

    response_type = ResponseType.EVACUATION
    summary = "Evacuation protocol completed"

    UNLOCK_FAILED = -1

    async def execute(self, request, controllers, tracker):
        zones = request.target_zones
        evacuation = controllers.evacuation
        logger.info("Executing evacuation protocol")

        await tracker.run(
            "unlock_evacuation_routes", self.UNLOCK_FAILED,
            controllers.access.unlock_evacuation_routes, zones,
        )
        await tracker.best_effort("activate_evacuation_lighting", evacuation.activate_lighting, zones)
        await tracker.best_effort("power_down_non_essential", evacuation.power_down_non_essential, zones)
        await tracker.best_effort("enable_emergency_comms", evacuation.enable_emergency_comms)

        logger.info("Evacuation protocol finished")
        return tracker.result


class BackupActivationSequence(SequenceHandler):
    response_type = ResponseType.BACKUP_ACTIVATE
    summary = "Emergency backup activation completed"

    ACTIVATION_FAILED = -1

    async def execute(self, request, controllers, tracker):
        await tracker.run(
            "activate_emergency_backups", self.ACTIVATION_FAILED,
            controllers.backup.activate, request.severity,
        )
        return tracker.result


class PartialContainmentSequence(SequenceHandler):
    response_type = ResponseType.PARTIAL_CONTAIN
    summary = "Partial containment completed"

    CONTAINMENT_FAILED = -1

    async def execute(self, request, controllers, tracker):
        await tracker.run(
            "partial_containment", self.CONTAINMENT_FAILED,
            controllers.containment.partial_contain, request.target_zones, request.severity,
        )
        return tracker.result


class FullRecoverySequence(SequenceHandler):
    response_type = ResponseType.FULL_RECOVERY
    summary = "Full recovery sequence completed"

    RECOVERY_FAILED = -1

    async def execute(self, request, controllers, tracker):
        await tracker.run("full_recovery", self.RECOVERY_FAILED, controllers.containment.full_recovery)
        return tracker.result


# =============================================================================
# Registry
# =============================================================================

def build_handler_registry(config: Optional[BastionConfig] = None) -> Dict[ResponseType, SequenceHandler]:
    """
    Build the response-type to handler map used by the dispatcher.

    COMMS_PRIORITY has no sequence; dispatching it is a critical failure.

    Args:
        config: Configuration supplying failover settings

    Returns:
        Mapping of response type to handler instance
    """
    config = config or BastionConfig()
    handlers: List[SequenceHandler] = [
        LockdownSequence(),
        NetworkIsolationSequence(),
        ServiceFailoverSequence(config.failover),
        EvacuationSequence(),
        BackupActivationSequence(),
        PartialContainmentSequence(),
        FullRecoverySequence(),
    ]
    return {handler.response_type: handler for handler in handlers}
