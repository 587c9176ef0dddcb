"""
BASTION Application Entry Point

Command-line entry point for the BASTION response system. Handles
arguments, configuration loading and signal handling, and either runs a
single action or stays up as a daemon holding the panic trigger.

Usage:
    bastion                                 # Run as daemon with default config
    bastion --config /etc/bastion/config.yaml
    bastion --dry-run                       # Validate config without starting
    bastion --check-health                  # Probe subsystems and exit
    bastion --execute lockdown --zones all --severity 9
    bastion --panic 10                      # Immediate full lockdown

Daemon signals:
    SIGINT/SIGTERM  graceful shutdown (cleanup reverses emergency measures)
    SIGUSR1         pull the panic trigger (level 10)

Entry Points:
    - CLI: `bastion` command (via pyproject.toml)
    - Direct: `python -m bastion.main`
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from typing import Callable

from bastion import __version__
from bastion.config import BastionConfig, load_config
from bastion.exceptions import BastionError, ConfigurationError, DispatchError
from bastion.executor import ResponseExecutor, create_executor
from bastion.logging_config import get_logger, setup_logging
from bastion.types import ALL_ZONES, AuthLevel, ExecutionReport, ResponseRequest, ResponseType

__all__ = ["main", "async_main", "create_parser", "parse_zones"]

logger = get_logger("Main")

PANIC_SIGNAL_LEVEL = 10


# =============================================================================
# Argument Parser
# =============================================================================


def parse_zones(text: str) -> int:
    """Parse a zone argument: "all", a hex mask ("0x0000000F") or indices ("0,5,9").

    Raises:
        argparse.ArgumentTypeError: If the value cannot be parsed
    """
    text = text.strip().lower()
    if text == "all":
        return ALL_ZONES
    try:
        if text.startswith("0x"):
            mask = int(text, 16)
            if not 0 <= mask <= ALL_ZONES:
                raise ValueError(f"mask {text} exceeds 32 bits")
            return mask
        mask = 0
        for part in text.split(","):
            zone = int(part)
            if not 0 <= zone < 32:
                raise ValueError(f"zone {zone} out of range (0-31)")
            mask |= 1 << zone
        return mask
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid zones '{text}': {e}") from e


def _response_type(text: str) -> ResponseType:
    try:
        return ResponseType[text.strip().upper().replace("-", "_")]
    except KeyError:
        names = ", ".join(t.name.lower() for t in ResponseType)
        raise argparse.ArgumentTypeError(f"unknown response type '{text}' (choose from {names})") from None


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="bastion",
        description="BASTION Facility Emergency Response Orchestrator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Configuration
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        metavar="PATH",
        help="Path to configuration file (default: auto-discover)",
    )

    # Logging
    parser.add_argument(
        "-l",
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Set logging level (overrides config file)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        metavar="PATH",
        help="Path to log file (overrides config file)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )

    # Operation modes
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and exit; with --execute or --panic, "
             "log system commands instead of running them",
    )
    parser.add_argument(
        "--check-health",
        action="store_true",
        help="Initialize, probe subsystem readiness and exit",
    )
    parser.add_argument(
        "--simulator",
        action="store_true",
        help="Use simulated controllers for every subsystem",
    )

    # Actions
    action = parser.add_mutually_exclusive_group()
    action.add_argument(
        "--execute",
        type=_response_type,
        metavar="TYPE",
        help="Execute one response (lockdown, network_isolate, service_failover, "
             "evacuation, backup_activate, partial_contain, full_recovery)",
    )
    action.add_argument(
        "--panic",
        type=int,
        metavar="LEVEL",
        help="Pull the emergency trigger at LEVEL (1-10) and wait for the lockdown",
    )

    # Request parameters for --execute
    request = parser.add_argument_group("request parameters (with --execute)")
    request.add_argument("--severity", type=int, default=5, help="Severity 1-10 (default: 5)")
    request.add_argument(
        "--zones",
        type=parse_zones,
        default=ALL_ZONES,
        help='Target zones: "all", hex mask, or comma-separated indices (default: all)',
    )
    request.add_argument("--duration", type=int, default=0, help="Seconds the response stays active")
    request.add_argument(
        "--auth-level",
        type=int,
        default=int(AuthLevel.SECURITY),
        help="Authorization level 1-5 (default: 3)",
    )
    request.add_argument("--event", type=str, default="Operator request", help="Trigger event description")
    request.add_argument("--timeout", type=int, default=0, help="Dispatch deadline in seconds (0: configured)")

    return parser


# =============================================================================
# Signal Handlers
# =============================================================================


class GracefulShutdown:
    """Manages graceful shutdown and the panic signal.

    SIGINT and SIGTERM request a clean shutdown: the executor's cleanup
    restores access, removes isolation rules and stops emergency services.
    SIGUSR1 pulls the panic trigger.
    """

    def __init__(self) -> None:
        self._shutdown_requested = False
        self._shutdown_event: asyncio.Event | None = None
        self._installed: list[int] = []

    @property
    def shutdown_requested(self) -> bool:
        """Check if shutdown has been requested."""
        return self._shutdown_requested

    def install_handlers(
        self,
        loop: asyncio.AbstractEventLoop,
        on_panic: Callable[[], object] | None = None,
    ) -> None:
        """Install signal handlers on the running loop."""
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)
            self._installed.append(sig)
        if on_panic is not None:
            loop.add_signal_handler(signal.SIGUSR1, on_panic)
            self._installed.append(signal.SIGUSR1)
        logger.debug("Signal handlers installed")

    def restore_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remove the installed signal handlers."""
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()
        logger.debug("Signal handlers removed")

    def _handle_signal(self, signum: int) -> None:
        signal_name = signal.Signals(signum).name
        if self._shutdown_requested:
            logger.warning(f"Received {signal_name} again - forcing immediate exit")
            sys.exit(1)

        logger.info(f"Received {signal_name} - initiating graceful shutdown...")
        self._shutdown_requested = True
        self.get_shutdown_event().set()

    def get_shutdown_event(self) -> asyncio.Event:
        """Get or create async shutdown event.

        Returns:
            Event that is set when shutdown is requested
        """
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()
        return self._shutdown_event


# =============================================================================
# Startup Banner
# =============================================================================


def print_banner(config: BastionConfig) -> None:
    """Print startup banner with configuration summary."""
    system = config.system
    banner = f"""
╔══════════════════════════════════════════════════════════════════════╗
║  BASTION v{__version__:<59}║
║  Facility Emergency Response Orchestrator                            ║
╠══════════════════════════════════════════════════════════════════════╣
║  Controllers: {config.controllers.backend:<55}║
║  Max response time: {f'{system.max_response_time}s':<49}║
║  Emergency override: {'Enabled' if system.enable_emergency_override else 'Disabled':<48}║
║  Auto recovery: {'Enabled' if system.enable_auto_recovery else 'Disabled':<53}║
╚══════════════════════════════════════════════════════════════════════╝
"""
    print(banner)


def print_report(report: ExecutionReport) -> None:
    """Print an execution report as JSON."""
    print(json.dumps(report.to_dict(), indent=2))


# =============================================================================
# Actions
# =============================================================================


async def _check_health(executor: ResponseExecutor) -> int:
    monitor = executor.health_monitor
    await monitor.check_once()
    ready = await executor.is_ready()

    print("\nHealth Check Results:")
    print("=" * 50)
    print(f"  {'✓' if ready else '✗'} response system: {'ready' if ready else 'not ready'}")
    print(f"  hardware: {monitor.status.state.value}")
    if monitor.status.last_error:
        print(f"      {monitor.status.last_error}")
    print(f"  mode: {executor.get_system_mode().name}")
    print("=" * 50)
    return 0 if ready else 1


async def _execute(executor: ResponseExecutor, args: argparse.Namespace) -> int:
    request = ResponseRequest(
        type=args.execute,
        severity=args.severity,
        target_zones=args.zones,
        duration=args.duration,
        auth_level=args.auth_level,
        trigger_event=args.event,
        timeout_seconds=args.timeout,
    )
    try:
        report = await executor.dispatch(request)
    except DispatchError as e:
        logger.error(f"Response failed: {e}")
        if e.report is not None:
            print_report(e.report)
        return 1

    print_report(report)
    return 0


async def _panic(executor: ResponseExecutor, level: int) -> int:
    request = executor.trigger_emergency(level)
    await executor.wait_for_emergencies()

    report = executor.get_last_report()
    if report.response_id != request.timestamp:
        logger.error("Emergency lockdown was not executed")
        return 1
    print_report(report)
    return 0 if report.succeeded else 1


async def _run_daemon(executor: ResponseExecutor) -> int:
    loop = asyncio.get_running_loop()
    shutdown = GracefulShutdown()
    shutdown.install_handlers(loop, on_panic=lambda: executor.trigger_emergency(PANIC_SIGNAL_LEVEL))
    try:
        logger.info("Response system running. Send SIGUSR1 for emergency lockdown, Ctrl+C to stop.")
        await shutdown.get_shutdown_event().wait()
        logger.info("Shutdown signal received, cleaning up...")
    finally:
        shutdown.restore_handlers(loop)
    return 0


# =============================================================================
# Main Entry Points
# =============================================================================


async def async_main(args: argparse.Namespace, config: BastionConfig) -> int:
    """Async main function.

    Args:
        args: Parsed command-line arguments
        config: Validated configuration

    Returns:
        Exit code (0 for success)
    """
    executor = create_executor(config)

    try:
        await executor.init()
    except BastionError as e:
        logger.error(f"Response system initialization failed: {e}")
        return 1

    try:
        if args.check_health:
            return await _check_health(executor)
        if args.execute is not None:
            return await _execute(executor, args)
        if args.panic is not None:
            return await _panic(executor, args.panic)
        return await _run_daemon(executor)
    finally:
        await executor.cleanup()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the BASTION application.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(log_level=args.log_level or "INFO", log_file=args.log_file, json_format=args.json_logs)
    logger.info(f"BASTION v{__version__} starting...")

    try:
        logger.debug(f"Loading configuration from: {args.config or 'auto-discover'}")
        config = load_config(args.config)
        logger.info("Configuration loaded successfully")
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.log_level is None or args.log_file is None:
        setup_logging(
            log_level=args.log_level or config.log_level,
            log_file=args.log_file or config.log_file,
            json_format=args.json_logs,
        )

    controllers = config.controllers
    if args.simulator:
        controllers = controllers.model_copy(update={"backend": "simulator"})
        logger.info("Simulator mode enabled for all subsystems")
    acting = args.execute is not None or args.panic is not None
    if args.dry_run and acting:
        controllers = controllers.model_copy(update={"dry_run": True})
    config = config.model_copy(update={"controllers": controllers})

    print_banner(config)

    if args.dry_run and not acting:
        logger.info("Dry run mode - configuration valid, exiting")
        print("\n✓ Configuration is valid")
        return 0

    try:
        return asyncio.run(async_main(args, config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except BastionError as e:
        logger.error(f"BASTION error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1
    finally:
        logger.info("BASTION shutdown complete")


if __name__ == "__main__":
    sys.exit(main())
