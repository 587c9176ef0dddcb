"""
BASTION Response Executor
Dispatch and execution tracking for facility emergency responses.

The ResponseExecutor is responsible for:
- Subsystem lifecycle (init readiness checks, cleanup)
- Serialized dispatch of response requests to their sequence handlers
- Publishing one execution report per dispatch
- The emergency trigger: a non-blocking path to a maximal lockdown

Architecture:
    caller ──> dispatch() ──┐
                            ├──> [state lock] ──> SequenceHandler ──> Controllers
    trigger_emergency() ──> queue ──> emergency worker ──┘
                                                          │
                                       ReportBuilder ──> last report

Ordinary and emergency dispatches share the lock, so they never overlap;
emergency requests get no scheduling priority over a caller already waiting.

Usage:
    from bastion.executor import create_executor

    executor = create_executor(config)
    await executor.init()

    report = await executor.dispatch(request)

    executor.trigger_emergency(level=9)     # returns immediately

    await executor.cleanup()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from bastion.config import BastionConfig, SystemConfig
from bastion.controllers import FacilityControllers, create_controllers
from bastion.exceptions import (
    AccessInitError,
    ConfigurationError,
    DispatchTimeoutError,
    HardwareUnreadyError,
    InitializationError,
    InitStage,
    InvalidRequestError,
    NetworkInitError,
    NotInitializedError,
    StepFailureError,
    UnknownResponseTypeError,
)
from bastion.report import ReportBuilder
from bastion.sequences import SequenceHandler, StepTracker, build_handler_registry, invoke
from bastion.state import SubsystemState
from bastion.types import (
    ExecutionReport,
    ResponseRequest,
    ResponseType,
    ResultCode,
    SystemMode,
)
from bastion.validation import validation_errors
from bastion.watchdog import HealthMonitor

logger = logging.getLogger("BASTION.Executor")


__all__ = [
    "ResponseExecutor",
    "create_executor",
]


# Mode each response moves the facility towards when it succeeds
RESPONSE_MODES: Dict[ResponseType, SystemMode] = {
    ResponseType.LOCKDOWN: SystemMode.LOCKDOWN,
    ResponseType.NETWORK_ISOLATE: SystemMode.HEIGHTENED_SECURITY,
    ResponseType.PARTIAL_CONTAIN: SystemMode.HEIGHTENED_SECURITY,
    ResponseType.SERVICE_FAILOVER: SystemMode.EMERGENCY,
    ResponseType.EVACUATION: SystemMode.EMERGENCY,
    ResponseType.BACKUP_ACTIVATE: SystemMode.EMERGENCY,
}

MIN_EMERGENCY_LEVEL = 1
MAX_EMERGENCY_LEVEL = 10


class ResponseExecutor:
    """
    Facility emergency response executor.

    One instance owns the subsystem state (flags, lock, last report) and is
    passed to whatever needs to dispatch or trigger responses.
    """

    def __init__(
        self,
        controllers: FacilityControllers,
        config: Optional[BastionConfig] = None,
    ):
        """
        Initialize the executor. Call init() before dispatching.

        Args:
            controllers: Subsystem controllers to drive
            config: Configuration (defaults if None)
        """
        self._controllers = controllers
        self._config = config or BastionConfig()
        self._system_config: SystemConfig = self._config.system
        self._state = SubsystemState()
        self._handlers: Dict[ResponseType, SequenceHandler] = build_handler_registry(self._config)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._emergency_queue: Optional[asyncio.Queue] = None
        self._emergency_worker: Optional[asyncio.Task] = None
        self._report_callbacks: List[Callable] = []

        self._health_monitor = HealthMonitor(
            controllers.hardware,
            interval_sec=self._system_config.health_check_interval,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def initialized(self) -> bool:
        return self._state.initialized

    @property
    def emergency_mode(self) -> bool:
        return self._state.emergency_mode

    @property
    def current_level(self) -> int:
        return self._state.current_level

    @property
    def system_config(self) -> SystemConfig:
        return self._system_config

    @property
    def health_monitor(self) -> HealthMonitor:
        return self._health_monitor

    @property
    def handlers(self) -> Dict[ResponseType, SequenceHandler]:
        return self._handlers

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def init(self):
        """
        Run readiness checks and enter the initialized state.

        Calling init on an initialized executor does nothing.

        Raises:
            InitializationError: If a readiness check fails; the executor
                is left uninitialized
        """
        if self._state.initialized:
            return

        logger.info("Initializing integrated response system...")

        try:
            self._loop = asyncio.get_running_loop()
            self._state.lock = asyncio.Lock()
            self._emergency_queue = asyncio.Queue(maxsize=self._config.emergency_queue_size)
        except RuntimeError as e:
            self._abort_init()
            raise InitializationError(f"Dispatch lock setup failed: {e}", InitStage.LOCK) from e

        if not await self._probe_hardware():
            self._abort_init()
            logger.error("Hardware subsystem check failed")
            raise HardwareUnreadyError()

        if not await self._check(self._controllers.network.initialize, "Network initialization"):
            self._abort_init()
            logger.error("Network subsystem initialization failed")
            raise NetworkInitError()

        if not await self._check(self._controllers.access.initialize, "Access control initialization"):
            await self._best_effort("cleanup_network_rules", self._controllers.network.cleanup_rules)
            self._abort_init()
            logger.error("Access control initialization failed")
            raise AccessInitError()

        self._state.mark_initialized()
        self._emergency_worker = asyncio.create_task(self._run_emergency_worker())
        await self._health_monitor.start()

        logger.info("Integrated response system initialized")

    def _abort_init(self):
        self._state.reset()
        self._emergency_queue = None
        self._loop = None

    async def _probe_hardware(self) -> bool:
        try:
            return bool(await invoke(self._controllers.hardware.check_ready))
        except Exception as e:
            logger.error(f"Hardware readiness probe raised: {e}")
            return False

    async def _check(self, operation: Callable, name: str) -> bool:
        try:
            return await invoke(operation) is not False
        except Exception as e:
            logger.error(f"{name} raised: {e}")
            return False

    async def _best_effort(self, name: str, operation: Callable):
        try:
            await invoke(operation)
        except Exception as e:
            logger.error(f"Cleanup step {name} failed: {e}")

    async def cleanup(self):
        """
        Reverse subsystem effects and leave the initialized state.

        A dispatch already running, including an emergency lockdown taken
        off the queue, finishes and publishes its report first. Emergency
        requests still queued are dropped; dispatches waiting on the lock
        fail with NotInitializedError.

        Safe to call when not initialized and safe to call repeatedly.
        """
        logger.info("Cleaning up response system resources...")

        if not self._state.initialized:
            logger.info("Resource cleanup complete")
            return

        await self._health_monitor.stop()

        async with self._state.lock:
            if not self._state.initialized:
                logger.info("Resource cleanup complete")
                return
            self._state.initialized = False

            await self._stop_emergency_worker()

            await self._best_effort("restore_normal_access", self._controllers.access.restore_normal_access)
            await self._best_effort("cleanup_network_rules", self._controllers.network.cleanup_rules)
            await self._best_effort("stop_emergency_services", self._controllers.service.stop_emergency_services)

        self._state.reset()
        self._emergency_queue = None
        self._loop = None
        logger.info("Resource cleanup complete")

    async def _stop_emergency_worker(self):
        """Cancel the idle worker and drop queued emergency requests. Caller holds the lock."""
        if self._emergency_worker:
            self._emergency_worker.cancel()
            try:
                await self._emergency_worker
            except asyncio.CancelledError:
                pass
            self._emergency_worker = None

        queue = self._emergency_queue
        if queue is not None and not queue.empty():
            logger.warning(f"Dropping {queue.qsize()} pending emergency request(s)")
            while not queue.empty():
                queue.get_nowait()
                queue.task_done()

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def dispatch(self, request: Optional[ResponseRequest]) -> ExecutionReport:
        """
        Execute a response request.

        Dispatches are serialized: a second caller waits until the first
        one's report is published.

        Args:
            request: Request to execute

        Returns:
            The published execution report (overall_result == 0)

        Raises:
            InvalidRequestError: Request missing (or invalid, in strict mode)
            NotInitializedError: Executor not initialized, or cleaned up while
                waiting for the lock; nothing is changed
            StepFailureError: A step failed; carries the first failing step's code
            UnknownResponseTypeError: No handler for the request type
            DispatchTimeoutError: The sequence exceeded its deadline
        """
        if request is None:
            raise InvalidRequestError("Response request is missing")
        if not self._state.initialized:
            raise NotInitializedError()

        if self._config.validate_requests:
            errors = validation_errors(request)
            if errors:
                logger.warning(f"Rejected invalid request: {'; '.join(errors)}")
                raise InvalidRequestError("Invalid response request", reasons=errors)

        async with self._state.lock:
            # cleanup() may have run while this dispatch waited
            if not self._state.initialized:
                raise NotInitializedError()
            report, error = await self._execute_locked(request)
            self._state.publish(report)

        logger.info(f"=== Response execution complete, result: {report.overall_result} ===")
        await self._notify(report)

        if error is not None:
            raise error
        return report

    async def _execute_locked(self, request: ResponseRequest):
        """Run the handler for a request. Caller holds the lock."""
        builder = ReportBuilder(request)
        tracker = StepTracker()
        error = None

        logger.info("=== Real-time response execution ===")
        logger.info(f"Event: {request.trigger_event}")
        logger.info(f"Request: {request.describe()}")

        handler = self._handlers.get(request.type)
        if handler is None:
            message = f"Unknown response type {request.type!r}"
            logger.critical(message)
            builder.note_error(message)
            builder.finish(ResultCode.CRITICAL_FAILURE, "Unknown response type")
            report = builder.build(tracker, self._state.mode)
            return report, UnknownResponseTypeError(message, report, request.type)

        deadline = self._deadline_for(request)
        try:
            result = await asyncio.wait_for(
                handler.execute(request, self._controllers, tracker),
                timeout=deadline,
            )
        except asyncio.TimeoutError:
            message = f"Sequence exceeded {deadline}s deadline"
            logger.error(f"{handler.summary}: {message}")
            builder.note_error(message)
            builder.finish(ResultCode.TIMEOUT, f"{handler.summary} (timed out)")
            self._update_mode(request.type, succeeded=False)
            report = builder.build(tracker, self._state.mode)
            return report, DispatchTimeoutError(message, report, deadline)

        builder.finish(result, handler.summary)
        self._update_mode(request.type, succeeded=result == ResultCode.SUCCESS)
        report = builder.build(tracker, self._state.mode)

        if result != ResultCode.SUCCESS:
            error = StepFailureError(
                f"{request.type.name} completed with failures",
                int(result),
                report,
                step=tracker.first_failed_step,
            )
        return report, error

    def _deadline_for(self, request: ResponseRequest) -> Optional[float]:
        if request.timeout_seconds > 0:
            return float(request.timeout_seconds)
        if self._system_config.max_response_time > 0:
            return float(self._system_config.max_response_time)
        return None

    def _update_mode(self, response_type: ResponseType, succeeded: bool):
        if response_type == ResponseType.FULL_RECOVERY:
            if not succeeded:
                return
            if self._system_config.enable_auto_recovery:
                self._state.clear_emergency()
            else:
                self._state.mode = SystemMode.RECOVERY
                logger.info("System mode -> RECOVERY")
            return

        target = RESPONSE_MODES.get(response_type)
        if target is None:
            return
        if target == SystemMode.LOCKDOWN and not succeeded:
            target = SystemMode.EMERGENCY
        self._state.escalate(target)

    async def _notify(self, report: ExecutionReport):
        for callback in self._report_callbacks:
            try:
                await invoke(callback, report)
            except Exception as e:
                logger.error(f"Report callback failed: {e}")

    # =========================================================================
    # Emergency Trigger
    # =========================================================================

    def trigger_emergency(self, level: int) -> ResponseRequest:
        """
        Pull the panic trigger: schedule a maximal-severity lockdown.

        Returns as soon as the lockdown is queued, without waiting for the
        dispatch lock and without the readiness check. Safe to call from any
        thread. Failures of the lockdown itself are only visible through
        get_last_report(), correlated by the returned request's timestamp.

        Args:
            level: Emergency level, 1-10 (clamped)

        Returns:
            The lockdown request that was scheduled
        """
        if not MIN_EMERGENCY_LEVEL <= level <= MAX_EMERGENCY_LEVEL:
            clamped = max(MIN_EMERGENCY_LEVEL, min(MAX_EMERGENCY_LEVEL, level))
            logger.warning(f"Emergency level {level} out of range, using {clamped}")
            level = clamped

        request = ResponseRequest.emergency_lockdown(level)

        if not self._system_config.enable_emergency_override:
            logger.error(f"Emergency trigger level {level} refused: emergency override disabled")
            return request

        logger.critical(f"EMERGENCY SEQUENCE TRIGGERED, level {level}")
        self._state.enter_emergency(level)

        loop = self._loop
        if loop is None or not self._state.initialized:
            logger.critical("Response system not initialized, emergency lockdown not scheduled")
            return request

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._enqueue_emergency(request)
            return request

        try:
            loop.call_soon_threadsafe(self._enqueue_emergency, request)
        except RuntimeError as e:
            logger.critical(f"Event loop unavailable, emergency lockdown not scheduled: {e}")
        return request

    def _enqueue_emergency(self, request: ResponseRequest):
        queue = self._emergency_queue
        if queue is None:
            logger.critical("Emergency queue closed, lockdown dropped")
            return
        try:
            queue.put_nowait(request)
        except asyncio.QueueFull:
            logger.critical(
                f"Emergency queue full ({queue.maxsize} pending), lockdown dropped"
            )
            return
        logger.debug(f"Emergency lockdown queued ({queue.qsize()} pending)")

    async def wait_for_emergencies(self):
        """Wait until every queued emergency lockdown has been dispatched."""
        queue = self._emergency_queue
        if queue is not None:
            await queue.join()

    async def _run_emergency_worker(self):
        """Dispatch queued emergency requests one at a time."""
        queue = self._emergency_queue
        while True:
            request = await queue.get()
            try:
                await self.dispatch(request)
                logger.critical("Emergency lockdown completed successfully")
            except StepFailureError as e:
                logger.critical(f"Emergency lockdown completed with failures: {e}")
            except Exception as e:
                logger.critical(f"Emergency lockdown failed: {e}")
            finally:
                queue.task_done()

    # =========================================================================
    # Queries and Configuration
    # =========================================================================

    def get_last_report(self) -> ExecutionReport:
        """Most recently published report, or a default report if none."""
        return self._state.last_report

    def get_system_mode(self) -> SystemMode:
        """Current facility mode."""
        return self._state.mode

    async def is_ready(self) -> bool:
        """
        Point-in-time readiness: initialized, not in emergency mode, and
        the live hardware check passes.
        """
        if not self._state.initialized or self._state.emergency_mode:
            return False
        return await self._probe_hardware()

    def clear_emergency(self):
        """Operator reset of the emergency flags and facility mode."""
        self._state.clear_emergency()

    async def update_config(self, config: Union[SystemConfig, dict]):
        """
        Replace the system configuration.

        A dispatch already running keeps the deadline it started with.

        Args:
            config: New SystemConfig, or a mapping of its fields

        Raises:
            ConfigurationError: If the values are invalid
        """
        if not isinstance(config, SystemConfig):
            try:
                config = SystemConfig.model_validate(config)
            except ValidationError as e:
                raise ConfigurationError(f"System config validation failed: {e}") from e

        self._system_config = config
        self._health_monitor.set_interval(config.health_check_interval)
        if self._state.initialized and not self._health_monitor.is_running:
            await self._health_monitor.start()
        logger.info(
            f"System config updated: max_response_time={config.max_response_time}s "
            f"emergency_override={config.enable_emergency_override} "
            f"auto_recovery={config.enable_auto_recovery}"
        )

    def register_report_callback(self, callback: Callable[[ExecutionReport], None]):
        """Register callback invoked with each published report."""
        self._report_callbacks.append(callback)


# =============================================================================
# Factory Function
# =============================================================================

def create_executor(
    config: Optional[BastionConfig] = None,
    controllers: Optional[FacilityControllers] = None,
) -> ResponseExecutor:
    """
    Create a response executor.

    Args:
        config: Configuration (defaults if None)
        controllers: Controller bundle (built from config if None)

    Returns:
        Configured ResponseExecutor instance
    """
    config = config or BastionConfig()
    if controllers is None:
        controllers = create_controllers(config)
    return ResponseExecutor(controllers, config)
