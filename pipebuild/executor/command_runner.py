"""
Command Runner
==============
The single process-spawning seam used by the toolchain invoker.

Every toolchain command goes through ``CommandRunner.run``. Production code
uses SubprocessCommandRunner (or DockerCommandRunner); tests substitute a
fake that records the issued commands, so builds can be exercised without a
real toolchain.

Contract for implementations:
    - Refuse to start when the budget is already done (BuildTimeoutError).
    - Terminate the process, not just stop waiting, when the budget ends
      while it runs, then raise BuildTimeoutError with the captured output.
    - Return a CommandResult for any process that ran to completion,
      whatever its exit status. Interpreting the status is the caller's job.
    - Raise ToolchainError when the command cannot be launched at all.
"""
import logging
import os
import shlex
import shutil
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence

from pipebuild.core.constants import BUDGET_POLL_INTERVAL
from pipebuild.core.exceptions import ToolchainError
from pipebuild.executor.budget import ExecutionBudget

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of one external command that ran to completion.

    Fields
    ------
    args : list[str]
        Full argv as launched (resolved executable first).
    returncode : int
        Process exit status.
    output : str
        Combined stdout + stderr.
    duration_seconds : float
        Wall clock time of the command.
    """
    args: list[str]
    returncode: int
    output: str = ""
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    def run(
        self,
        name: str,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
        budget: ExecutionBudget,
    ) -> CommandResult: ...


class SubprocessCommandRunner:
    """Runs toolchain commands as local child processes."""

    def __init__(self, poll_interval: float = BUDGET_POLL_INTERVAL) -> None:
        self._poll_interval = poll_interval

    def run(
        self,
        name: str,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
        budget: ExecutionBudget,
    ) -> CommandResult:
        executable = shutil.which(name)
        if executable is None:
            raise ToolchainError(
                f"executable file not found: {name}",
                command=[name, *args],
            )
        argv = [executable, *args]

        if budget.done():
            raise budget.error(argv)

        merged_env = dict(os.environ)
        if env:
            merged_env.update(env)

        logger.debug("RUN %s | cwd=%s", shlex.join(argv), cwd)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                cwd=str(cwd),
                env=merged_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                # Own process group so the whole tree can be killed on expiry
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            raise ToolchainError(
                f"failed to start {shlex.join(argv)}: {e}",
                command=argv,
            ) from e

        try:
            while True:
                try:
                    output, _ = proc.communicate(timeout=self._next_slice(budget))
                    break
                except subprocess.TimeoutExpired:
                    if budget.done():
                        output = self._terminate(proc)
                        logger.warning(
                            "Command terminated | reason=%s | cmd=%s | pid=%d",
                            budget.reason(), shlex.join(argv), proc.pid,
                        )
                        raise budget.error(argv, output)
        except BaseException:
            # KeyboardInterrupt and friends must not leave the toolchain running
            if proc.poll() is None:
                self._terminate(proc)
            raise

        return CommandResult(
            args=argv,
            returncode=proc.returncode,
            output=output or "",
            duration_seconds=round(time.monotonic() - start, 3),
        )

    def _next_slice(self, budget: ExecutionBudget) -> float:
        remaining = budget.remaining()
        if remaining is None:
            return self._poll_interval
        return min(self._poll_interval, remaining)

    @staticmethod
    def _terminate(proc: subprocess.Popen) -> str:
        """Kill the process group, reap the child and return whatever it printed."""
        try:
            if os.name == "posix":
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass
        output, _ = proc.communicate()
        return output or ""
