"""
Build Executor
==============
Runs the toolchain's subcommands, in order, inside a prepared workspace.

BOUNDARY RULES:
    - Executor ONLY runs toolchain commands.
    - Executor NEVER creates workspaces - that is prepare_environment's job.
    - Executor NEVER publishes artifacts - that is copy_binary's job.
    - Executor NEVER retries. Retry policy belongs to the scheduler.

BUDGET:
    One ExecutionBudget is shared by every subcommand of a build, so the total
    wall clock of the attempt is bounded however many steps a toolchain has.
    A step is never launched once the budget is done, and a later step never
    starts after an earlier one failed or was aborted.

FAILURES:
    BuildTimeoutError - budget expired or was cancelled before/while a step ran
    ToolchainError    - a step exited non-zero on its own, or could not start

Command output is captured for diagnostics (request.output, logs) and never
parsed for control decisions.
"""
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pipebuild.core.config import BuilderConfig
from pipebuild.core.exceptions import BuildTimeoutError, ToolchainError, WorkspaceError
from pipebuild.executor.budget import ExecutionBudget
from pipebuild.executor.command_runner import CommandResult, CommandRunner, SubprocessCommandRunner
from pipebuild.executor.toolchains import ToolchainSpec, resolve_toolchain
from pipebuild.models.build_request import BuildRequest
from pipebuild.utils.naming import artifact_name

logger = logging.getLogger(__name__)


@dataclass
class BuildOutcome:
    """
    Result of a successful ``execute_build``.

    Fields
    ------
    artifact_path : Path
        The compiled binary inside the workspace.
    command_results : list[CommandResult]
        One entry per toolchain step, in execution order.
    execution_time_seconds : float
        Wall clock duration of all steps.
    """
    artifact_path: Path
    command_results: list[CommandResult] = field(default_factory=list)
    execution_time_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Failure Output Excerpt
# ---------------------------------------------------------------------------
_EXCERPT_TAIL_LINES = 40
_EXCERPT_MAX_DIAGNOSTICS = 20

# "./main.go:5:2: undefined: foo" style compiler diagnostics
_DIAGNOSTIC_RE = re.compile(r"^\S+\.go:\d+(?::\d+)?: ")


def excerpt_toolchain_output(output: str,
                             tail: int = _EXCERPT_TAIL_LINES,
                             max_diagnostics: int = _EXCERPT_MAX_DIAGNOSTICS) -> str:
    """
    Shorten a failed step's output for the error log.

    The last ``tail`` lines are kept, since the toolchain reports the failing
    package there. From the lines before them only compiler diagnostics
    (``file.go:line:col: message``) survive, up to ``max_diagnostics``, so a
    long dependency download does not bury the actual error.
    """
    lines = output.rstrip().splitlines()
    if len(lines) <= tail:
        return "\n".join(lines)

    earlier, last = lines[:-tail], lines[-tail:]
    diagnostics = [line for line in earlier if _DIAGNOSTIC_RE.match(line)][:max_diagnostics]
    omitted = len(earlier) - len(diagnostics)
    return "\n".join(
        diagnostics
        + [f"[... {omitted} earlier lines of toolchain output omitted ...]"]
        + last
    )


# ---------------------------------------------------------------------------
# Toolchain Execution
# ---------------------------------------------------------------------------
def execute_build(
    request: BuildRequest,
    config: BuilderConfig,
    runner: Optional[CommandRunner] = None,
    budget: Optional[ExecutionBudget] = None,
    toolchain: Optional[ToolchainSpec] = None,
) -> BuildOutcome:
    """
    Compile the pipeline in ``request.working_copy``.

    Lifecycle:
        1. Resolve the toolchain for the pipeline type
        2. Derive the budget (config.build_timeout_seconds) unless given
        3. For each step: check budget → run → fail fast on error
        4. Return the BuildOutcome

    Parameters
    ----------
    request : BuildRequest
        Must have a prepared ``working_copy`` containing fetched source.
        ``request.output`` is updated after every step.
    config : BuilderConfig
        Supplies the toolchain root and the default budget.
    runner : CommandRunner | None
        Process-spawning seam. Defaults to SubprocessCommandRunner.
    budget : ExecutionBudget | None
        Shared budget for all steps. Pass one to cancel from another thread
        or to impose an external deadline.
    toolchain : ToolchainSpec | None
        Resolved toolchain; looked up from the pipeline type if None.

    Returns
    -------
    BuildOutcome
        On success the named artifact exists in the workspace.
    """
    if request.working_copy is None:
        raise WorkspaceError(
            f"pipeline '{request.pipeline_name}' has no prepared workspace; "
            "call prepare_environment first"
        )
    workspace = request.working_copy

    if toolchain is None:
        toolchain = resolve_toolchain(request.pipeline_type, config)
    if runner is None:
        runner = SubprocessCommandRunner()
    if budget is None:
        budget = ExecutionBudget.with_timeout(config.build_timeout_seconds)

    output_name = artifact_name(request.pipeline_name, request.pipeline_type)
    env = toolchain.render_env(config.toolchain_root(toolchain.folder))
    outcome = BuildOutcome(artifact_path=workspace / output_name)
    start_time = time.monotonic()
    total = len(toolchain.steps)

    logger.info(
        "[BUILD] Starting | pipeline=%s | type=%s | steps=%d | remaining_budget=%s",
        request.pipeline_name, toolchain.pipeline_type.value, total,
        _format_remaining(budget),
    )

    for i, step in enumerate(toolchain.steps, 1):
        args = step.render(output_name)
        command = [toolchain.binary, *args]

        if budget.done():
            error = budget.error(command)
            logger.error("[BUILD] Step %d/%d not started: %s", i, total, error)
            raise error

        logger.info("[BUILD] Step %d/%d: %s | cmd=%s", i, total, step.label, " ".join(command))
        try:
            result = runner.run(toolchain.binary, args, cwd=workspace, env=env, budget=budget)
        except (BuildTimeoutError, ToolchainError) as e:
            request.output = e.output
            logger.error("[BUILD] Step %d/%d (%s) aborted: %s", i, total, step.label, e)
            raise

        request.output = result.output
        outcome.command_results.append(result)
        if result.output.strip():
            logger.debug("[BUILD] %s output:\n%s", step.label, result.output.rstrip())

        if not result.ok:
            # A process dying as the budget ends reports the budget, not its exit status
            if budget.done():
                error = budget.error(result.args, result.output)
                logger.error("[BUILD] Step %d/%d (%s) aborted: %s", i, total, step.label, error)
                raise error
            logger.error(
                "[BUILD] Step %d/%d (%s) FAILED | exit=%d\n%s",
                i, total, step.label, result.returncode, excerpt_toolchain_output(result.output),
            )
            raise ToolchainError(
                f"'{' '.join(result.args)}' exited with status {result.returncode}",
                command=result.args,
                exit_code=result.returncode,
                output=result.output,
            )

        logger.info("[BUILD] Step %d/%d: %s PASSED | time=%.2fs", i, total, step.label, result.duration_seconds)

    outcome.execution_time_seconds = round(time.monotonic() - start_time, 3)
    logger.info(
        "[BUILD] Complete | pipeline=%s | artifact=%s | time=%.2fs",
        request.pipeline_name, outcome.artifact_path, outcome.execution_time_seconds,
    )
    return outcome


def _format_remaining(budget: ExecutionBudget) -> str:
    remaining = budget.remaining()
    return "unbounded" if remaining is None else f"{remaining:.0f}s"
