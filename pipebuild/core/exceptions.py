"""
Build Errors
============
Exception taxonomy for the build executor.

Every stage fails fast and raises one of these to its caller. The executor
never retries; retry policy belongs to the scheduler.

    ConfigurationError  - process configuration is missing or invalid
    WorkspaceError      - workspace directory could not be prepared
    BuildTimeoutError   - execution budget expired or was cancelled
    ToolchainError      - a toolchain command failed on its own
    StageError          - the artifact could not be copied to the store
"""
from pathlib import Path
from typing import Optional, Sequence


class BuildError(Exception):
    """Base class for all build executor errors."""


class ConfigurationError(BuildError):
    """Raised when process-wide build configuration is missing or invalid."""


class WorkspaceError(BuildError):
    """Raised when the isolated build workspace cannot be created."""

    def __init__(self, message: str, *, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class BuildTimeoutError(BuildError):
    """
    Raised when the execution budget ends while a toolchain command is pending
    or running.

    ``reason`` is ``"deadline_exceeded"`` or ``"cancelled"`` so callers can
    tell "build took too long" apart from "build was aborted".
    """

    DEADLINE_EXCEEDED = "deadline_exceeded"
    CANCELLED = "cancelled"

    def __init__(
        self,
        message: str,
        *,
        reason: str = DEADLINE_EXCEEDED,
        command: Sequence[str] = (),
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.command = list(command)
        self.output = output


class ToolchainError(BuildError):
    """Raised when a toolchain command exits non-zero or cannot be launched."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        exit_code: Optional[int] = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.command = list(command)
        self.exit_code = exit_code
        self.output = output


class StageError(BuildError):
    """Raised when the built artifact cannot be staged into the artifact store."""

    def __init__(
        self,
        message: str,
        *,
        source: Optional[Path] = None,
        destination: Optional[Path] = None,
    ) -> None:
        super().__init__(message)
        self.source = source
        self.destination = destination
