"""
Docker Command Runner
=====================
CommandRunner that runs each toolchain command inside an ephemeral Docker
container instead of on the host.

DOCKER STRATEGY:
    - One container per command (ephemeral).
    - Workspace bind-mounted at the same path, so toolchain paths and the
      artifact location are identical inside and outside the container.
    - Shared mounts (the toolchain root, e.g. GOPATH) bind-mounted the same
      way, so what one step downloads is still there for the next.
    - Container killed when the execution budget ends.
    - Container always removed, success or failure.

Same contract as SubprocessCommandRunner: a finished command is returned as a
CommandResult whatever its exit status; an ended budget raises
BuildTimeoutError; infrastructure failures raise ToolchainError.
"""
import logging
import time
from pathlib import Path
from typing import Mapping, Optional, Sequence

import docker
from docker.errors import APIError, DockerException, ImageNotFound

from pipebuild.core.constants import BUDGET_POLL_INTERVAL
from pipebuild.core.exceptions import ToolchainError
from pipebuild.executor.budget import ExecutionBudget
from pipebuild.executor.command_runner import CommandResult

logger = logging.getLogger(__name__)

# Docker resource limits per build container
_MEMORY_LIMIT = "2g"
_CPU_COUNT = 2
_FINISHED_STATES = {"exited", "dead"}


class DockerCommandRunner:
    """Runs toolchain commands in a throwaway container of ``image``."""

    def __init__(
        self,
        image: str,
        client=None,
        poll_interval: float = BUDGET_POLL_INTERVAL,
        shared_mounts: Sequence[Path] = (),
    ) -> None:
        self._image = image
        self._shared_mounts = tuple(Path(p) for p in shared_mounts)
        self._client = client
        self._poll_interval = poll_interval

    @property
    def image(self) -> str:
        return self._image

    @property
    def shared_mounts(self) -> tuple:
        return self._shared_mounts

    def _volumes(self, workdir: str) -> dict:
        volumes = {str(p): {"bind": str(p), "mode": "rw"} for p in self._shared_mounts}
        volumes[workdir] = {"bind": workdir, "mode": "rw"}
        return volumes

    def run(
        self,
        name: str,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
        budget: ExecutionBudget,
    ) -> CommandResult:
        argv = [name, *args]
        if budget.done():
            raise budget.error(argv)

        container = None
        start = time.monotonic()
        workdir = str(cwd)
        try:
            client = self._client or docker.from_env()

            logger.info(
                "Starting container | image=%s | cmd=%s | workdir=%s",
                self._image, " ".join(argv), workdir,
            )
            container = client.containers.run(
                image=self._image,
                command=argv,
                volumes=self._volumes(workdir),
                environment=dict(env or {}),
                working_dir=workdir,
                mem_limit=_MEMORY_LIMIT,
                nano_cpus=_CPU_COUNT * 1_000_000_000,
                labels={"project": "pipebuild", "role": "toolchain"},
                detach=True,
            )

            while not self._finished(container):
                if budget.wait(self._poll_interval):
                    self._kill(container)
                    try:
                        output = self._logs(container)
                    except DockerException:
                        output = ""
                    raise budget.error(argv, output)

            wait_result = container.wait()
            exit_code = wait_result.get("StatusCode", -1)
            output = self._logs(container)

        except ImageNotFound as e:
            raise ToolchainError(
                f"Docker image '{self._image}' not found",
                command=argv,
            ) from e
        except DockerException as e:
            raise ToolchainError(
                f"Docker error while running '{' '.join(argv)}': {e}",
                command=argv,
            ) from e

        finally:
            # Always destroy the container
            if container is not None:
                try:
                    container.remove(force=True)
                    logger.debug("Container %s destroyed", container.short_id)
                except DockerException:
                    logger.warning("Failed to remove container %s", container.short_id, exc_info=True)

        return CommandResult(
            args=argv,
            returncode=exit_code,
            output=output,
            duration_seconds=round(time.monotonic() - start, 3),
        )

    @staticmethod
    def _finished(container) -> bool:
        container.reload()
        return container.status in _FINISHED_STATES

    @staticmethod
    def _kill(container) -> None:
        try:
            container.kill()
        except APIError:
            # Already stopped between the status check and the kill
            logger.debug("Container %s was not running at kill time", container.short_id)

    @staticmethod
    def _logs(container) -> str:
        log_bytes = container.logs(stdout=True, stderr=True)
        return log_bytes.decode("utf-8", errors="replace")
