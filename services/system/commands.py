"""
BASTION System Command Runner

Runs host tools (iptables, systemctl) as subprocesses with a timeout and
captures their result.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Sequence

logger = logging.getLogger("BASTION.Commands")


@dataclass
class CommandResult:
    """Result of one command invocation."""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class CommandRunner:
    """Executes commands with asyncio subprocesses."""

    def __init__(self, timeout: float = 10.0, dry_run: bool = False):
        """
        Args:
            timeout: Seconds before a command is killed
            dry_run: Log commands instead of running them
        """
        self.timeout = timeout
        self.dry_run = dry_run

    async def run(self, args: Sequence[str]) -> CommandResult:
        """
        Run a command.

        A missing executable or a timeout is reported as a failed result
        rather than raised.

        Args:
            args: Executable and arguments

        Returns:
            CommandResult
        """
        args = list(args)
        command = " ".join(args)

        if self.dry_run:
            logger.info(f"[dry-run] {command}")
            return CommandResult(args=args, returncode=0)

        logger.debug(f"Running: {command}")
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError:
            logger.error(f"Command not found: {args[0]}")
            return CommandResult(args=args, returncode=127, stderr=f"{args[0]} not found")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.error(f"Command timed out after {self.timeout}s: {command}")
            return CommandResult(args=args, returncode=-1, timed_out=True)
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
                logger.warning(f"Command cancelled, process killed: {command}")
            raise

        result = CommandResult(
            args=args,
            returncode=process.returncode,
            stdout=stdout.decode(errors="replace").strip(),
            stderr=stderr.decode(errors="replace").strip(),
        )
        if not result.ok:
            logger.warning(f"Command failed ({result.returncode}): {command}: {result.stderr}")
        return result
