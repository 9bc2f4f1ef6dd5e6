"""
Execution Budget
================
Cancellation token plus optional deadline shared by every toolchain command
of one build attempt.

One budget per build bounds the *total* wall clock of the attempt, however
many commands the toolchain runs. Runners poll the budget while a command is
in flight and must terminate the process once it is done.

Thread safety:
    cancel() may be called from any thread (e.g. the scheduler) while the
    build worker is blocked in a runner.
"""
import threading
import time
from typing import Callable, Optional, Sequence

from pipebuild.core.exceptions import BuildTimeoutError


class ExecutionBudget:
    """
    Usage:
        budget = ExecutionBudget.with_timeout(600)
        ...
        if budget.done():
            raise budget.error(command)
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        # deadline is an absolute value on ``clock``; None means no deadline
        self._deadline = deadline
        self._clock = clock
        self._cancelled = threading.Event()

    @classmethod
    def with_timeout(
        cls,
        seconds: Optional[float],
        clock: Callable[[], float] = time.monotonic,
    ) -> "ExecutionBudget":
        """Budget expiring ``seconds`` from now. Zero gives an already-expired budget."""
        if seconds is None:
            return cls(clock=clock)
        return cls(deadline=clock() + max(0.0, seconds), clock=clock)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def reason(self) -> Optional[str]:
        """Why the budget is done; cancellation wins over expiry."""
        if self.cancelled:
            return BuildTimeoutError.CANCELLED
        if self.expired:
            return BuildTimeoutError.DEADLINE_EXCEEDED
        return None

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to ``seconds`` (never past the deadline), waking early on
        cancellation. Returns True when the budget is done.
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._cancelled.wait(seconds)
        return self.done()

    def error(self, command: Sequence[str] = (), output: str = "") -> BuildTimeoutError:
        """Build the timeout error describing why this budget ended."""
        reason = self.reason() or BuildTimeoutError.DEADLINE_EXCEEDED
        what = "build cancelled" if reason == BuildTimeoutError.CANCELLED else "deadline exceeded"
        message = what
        if command:
            message = f"{what} while running '{' '.join(command)}'"
        return BuildTimeoutError(message, reason=reason, command=command, output=output)
