"""
Blocking command execution for the host-side control tools.

Commands run through ``subprocess.run`` in a worker thread so the
orchestrator's event loop is never blocked; failures are returned as data,
never raised.
"""
import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass
from typing import List, Optional

import anyio


@dataclass
class CommandResult:
    """Result of a single control-surface command."""

    command: str
    exit_code: Optional[int]
    stdout: str = ""
    stderr: str = ""
    execution_time: float = 0.0
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and self.error_message is None

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        if self.stderr:
            return f"{self.stdout}\n{self.stderr}".strip()
        return self.stdout.strip()

    @property
    def failure_reason(self) -> str:
        if self.error_message:
            return self.error_message
        return self.stderr.strip() or f"exit code {self.exit_code}"


def have_command(name: str) -> bool:
    """Whether an executable is available on PATH."""
    return shutil.which(name) is not None


def _run(args: List[str], timeout: Optional[float]) -> CommandResult:
    command = shlex.join(args)
    start = time.monotonic()
    try:
        proc = subprocess.run(args, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, timeout=timeout)
        return CommandResult(
            command=command,
            exit_code=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
            execution_time=time.monotonic() - start,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(
            command=command,
            exit_code=None,
            execution_time=time.monotonic() - start,
            error_message=f"Command timed out after {timeout}s",
        )
    except OSError as e:
        return CommandResult(
            command=command,
            exit_code=None,
            execution_time=time.monotonic() - start,
            error_message=str(e),
        )


async def run_command(args: List[str], timeout: Optional[float] = None) -> CommandResult:
    """Run a command in a worker thread and capture its result."""
    return await anyio.to_thread.run_sync(_run, args, timeout)
