"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    PIPEBUILD_HOME         - Root directory for workspaces and the artifact store
    BUILD_TIMEOUT_SECONDS  - Total budget for one build attempt (default: 3600)
    BUILD_RUNNER           - "subprocess" (default) or "docker"
    GO_BINARY              - Go executable name or path (default: go)
    DOCKER_IMAGE_GO        - Image used by the docker runner for Go builds
    TOOLCHAINS_FILE        - Optional YAML file overriding toolchain commands
    LOG_DIR                - Directory for the daily build log (default: logs)

Execution Timeout Philosophy:
    BUILD_TIMEOUT_SECONDS bounds the *total* wall clock of all toolchain
    commands of one build attempt, not each command separately. A scheduler
    with fixed build-slot lifetimes can rely on it regardless of how many
    steps a toolchain has.

The module-level constants are read once at import. Components never read
them directly: they receive a BuilderConfig built from them.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from pipebuild.core.constants import (
    DEFAULT_BUILD_TIMEOUT_SECONDS,
    PIPELINES_FOLDER,
    RUNNER_SUBPROCESS,
    SUPPORTED_RUNNERS,
    TMP_FOLDER,
)
from pipebuild.core.exceptions import ConfigurationError

load_dotenv()

PIPEBUILD_HOME = os.getenv("PIPEBUILD_HOME", "")
BUILD_TIMEOUT_SECONDS = float(os.getenv("BUILD_TIMEOUT_SECONDS", DEFAULT_BUILD_TIMEOUT_SECONDS))
BUILD_RUNNER = os.getenv("BUILD_RUNNER", RUNNER_SUBPROCESS)
GO_BINARY = os.getenv("GO_BINARY", "go")
DOCKER_IMAGE_GO = os.getenv("DOCKER_IMAGE_GO", "golang:1.22-bookworm")
TOOLCHAINS_FILE = os.getenv("TOOLCHAINS_FILE", "")
LOG_DIR = os.getenv("LOG_DIR", "logs")


@dataclass(frozen=True)
class BuilderConfig:
    """
    Process-wide build configuration, constructed once and passed explicitly
    into every stage.

    Fields
    ------
    home_path : Path
        Root of the build home. Workspaces live under ``<home>/tmp`` and
        staged artifacts under ``<home>/pipelines``.
    build_timeout_seconds : float
        Default execution budget for one ``execute_build`` call.
    runner : str
        Command runner backend, one of SUPPORTED_RUNNERS.
    go_binary : str
        Go executable used by the built-in Go toolchain.
    docker_image_go : str
        Image the docker runner uses for Go builds.
    toolchains_file : Path | None
        YAML file with toolchain overrides, if any.
    """
    home_path: Path
    build_timeout_seconds: float = DEFAULT_BUILD_TIMEOUT_SECONDS
    runner: str = RUNNER_SUBPROCESS
    go_binary: str = "go"
    docker_image_go: str = "golang:1.22-bookworm"
    toolchains_file: Optional[Path] = None

    def __post_init__(self) -> None:
        if not str(self.home_path).strip():
            raise ConfigurationError("home path is not configured (set PIPEBUILD_HOME)")
        object.__setattr__(self, "home_path", Path(self.home_path))
        if self.toolchains_file is not None:
            object.__setattr__(self, "toolchains_file", Path(self.toolchains_file))
        if self.build_timeout_seconds < 0:
            raise ConfigurationError(
                f"build timeout must not be negative, got {self.build_timeout_seconds}"
            )
        if self.runner not in SUPPORTED_RUNNERS:
            raise ConfigurationError(
                f"unknown runner '{self.runner}', expected one of {', '.join(SUPPORTED_RUNNERS)}"
            )

    @classmethod
    def from_env(cls, **overrides) -> "BuilderConfig":
        """Build a config from the environment, with keyword overrides taking precedence."""
        values = {
            "home_path": PIPEBUILD_HOME,
            "build_timeout_seconds": BUILD_TIMEOUT_SECONDS,
            "runner": BUILD_RUNNER,
            "go_binary": GO_BINARY,
            "docker_image_go": DOCKER_IMAGE_GO,
            "toolchains_file": TOOLCHAINS_FILE or None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def tmp_dir(self) -> Path:
        return self.home_path / TMP_FOLDER

    @property
    def artifact_dir(self) -> Path:
        return self.home_path / PIPELINES_FOLDER

    def toolchain_root(self, folder: str) -> Path:
        """Per-toolchain subtree under the tmp dir (e.g. the GOPATH for Go)."""
        return self.tmp_dir / folder
