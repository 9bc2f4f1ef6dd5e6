"""
Build Pipeline
==============
Per-pipeline-type builder bundling the three build stages:

    prepare_environment → (external fetch) → execute_build → copy_binary

The stages are also usable one by one, which is how a scheduler that owns the
fetch step drives them. ``run`` chains them for callers that just want a
built and staged artifact. Every stage fails fast; nothing is retried and a
failed build never publishes an artifact.
"""
import logging
from pathlib import Path
from typing import Callable, Optional, Union

from pipebuild.core.config import BuilderConfig
from pipebuild.core.constants import RUNNER_DOCKER
from pipebuild.core.exceptions import ConfigurationError, ToolchainError
from pipebuild.executor.artifact_stager import copy_binary
from pipebuild.executor.budget import ExecutionBudget
from pipebuild.executor.build_executor import BuildOutcome, execute_build
from pipebuild.executor.command_runner import CommandRunner, SubprocessCommandRunner
from pipebuild.executor.docker_runner import DockerCommandRunner
from pipebuild.executor.toolchains import ToolchainSpec, resolve_toolchain
from pipebuild.executor.workspace import prepare_environment
from pipebuild.models.build_request import BuildRequest, BuildStatus, PipelineType

logger = logging.getLogger(__name__)

FetchSource = Callable[[Path], None]


def create_runner(config: BuilderConfig, toolchain: ToolchainSpec) -> CommandRunner:
    """Pick the command runner backend named by ``config.runner``."""
    if config.runner == RUNNER_DOCKER:
        if not toolchain.docker_image:
            raise ConfigurationError(
                f"docker runner selected but toolchain '{toolchain.pipeline_type.value}' has no docker image"
            )
        return DockerCommandRunner(
            toolchain.docker_image,
            shared_mounts=[config.toolchain_root(toolchain.folder)],
        )
    return SubprocessCommandRunner()


class BuildPipeline:
    """
    Builder for one pipeline type.

    Usage:
        builder = new_build_pipeline(PipelineType.GOLANG, config)
        request = BuildRequest(pipeline_name="hello")
        builder.prepare_environment(request)
        fetch_into(request.working_copy)
        builder.execute_build(request)
        builder.copy_binary(request)
    """

    def __init__(
        self,
        toolchain: ToolchainSpec,
        config: BuilderConfig,
        runner: Optional[CommandRunner] = None,
    ) -> None:
        self.toolchain = toolchain
        self.config = config
        self.runner = runner or create_runner(config, toolchain)

    @property
    def pipeline_type(self) -> PipelineType:
        return self.toolchain.pipeline_type

    def _check_type(self, request: BuildRequest) -> None:
        if request.pipeline_type != self.pipeline_type:
            raise ToolchainError(
                f"pipeline '{request.pipeline_name}' is of type '{request.pipeline_type.value}', "
                f"this builder handles '{self.pipeline_type.value}'"
            )

    def prepare_environment(self, request: BuildRequest) -> Path:
        self._check_type(request)
        return prepare_environment(request, self.config, toolchain=self.toolchain)

    def execute_build(self, request: BuildRequest, budget: Optional[ExecutionBudget] = None) -> BuildOutcome:
        self._check_type(request)
        return execute_build(
            request, self.config, runner=self.runner, budget=budget, toolchain=self.toolchain,
        )

    def copy_binary(self, request: BuildRequest) -> Path:
        self._check_type(request)
        return copy_binary(request, self.config)

    def run(
        self,
        request: BuildRequest,
        fetch_source: Optional[FetchSource] = None,
        budget: Optional[ExecutionBudget] = None,
    ) -> Path:
        """
        Run every stage in order and return the staged artifact path.

        ``fetch_source`` is called with the new workspace to populate it with
        source; when None the caller is expected to have arranged that some
        other way. ``request.status`` and ``request.error`` track the result.
        """
        request.status = BuildStatus.RUNNING
        request.error = ""
        try:
            workspace = self.prepare_environment(request)
            if fetch_source is not None:
                fetch_source(workspace)
            self.execute_build(request, budget=budget)
            destination = self.copy_binary(request)
        except Exception as e:
            request.status = BuildStatus.FAILED
            request.error = str(e)
            logger.error(
                "Pipeline build failed | pipeline=%s | kind=%s | error=%s",
                request.pipeline_name, type(e).__name__, e,
            )
            raise

        request.status = BuildStatus.SUCCESS
        logger.info("Pipeline build succeeded | pipeline=%s | artifact=%s", request.pipeline_name, destination)
        return destination


def new_build_pipeline(
    pipeline_type: Union[PipelineType, str],
    config: BuilderConfig,
    runner: Optional[CommandRunner] = None,
) -> BuildPipeline:
    """Return the builder for ``pipeline_type``; unsupported types raise ToolchainError."""
    toolchain = resolve_toolchain(pipeline_type, config)
    return BuildPipeline(toolchain, config, runner=runner)
