"""
Unit Tests - Build Executor (Toolchain Invoker)
===============================================
All toolchain commands go through the RecordingRunner fake; no Go
toolchain is required to run these tests.
"""
import pytest

from conftest import RecordingRunner, write_artifact_on_compile
from pipebuild.core.exceptions import BuildTimeoutError, ToolchainError, WorkspaceError
from pipebuild.executor.budget import ExecutionBudget
from pipebuild.executor.build_executor import BuildOutcome, excerpt_toolchain_output, execute_build
from pipebuild.models.build_request import BuildRequest


@pytest.fixture
def request_in_workspace(tmp_path):
    workspace = tmp_path / "ws"
    workspace.mkdir()
    return BuildRequest(pipeline_name="main", working_copy=workspace)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# 1. Command sequence
# ---------------------------------------------------------------------------
class TestCommandSequence:

    def test_fetch_then_compile_exactly_once(self, config, runner, request_in_workspace):
        execute_build(request_in_workspace, config, runner=runner)
        assert runner.argv_calls == [
            ["go", "get", "-d", "./..."],
            ["go", "build", "-o", "main_golang"],
        ]

    def test_commands_run_in_workspace(self, config, runner, request_in_workspace):
        execute_build(request_in_workspace, config, runner=runner)
        assert all(c["cwd"] == request_in_workspace.working_copy for c in runner.calls)

    def test_gopath_points_at_toolchain_root(self, config, runner, request_in_workspace):
        execute_build(request_in_workspace, config, runner=runner)
        expected = str(config.home_path / "tmp" / "golang")
        assert all(c["env"] == {"GOPATH": expected} for c in runner.calls)

    def test_configured_go_binary_is_used(self, config, runner, request_in_workspace):
        cfg = type(config)(home_path=config.home_path, go_binary="/usr/local/bin/go")
        execute_build(request_in_workspace, cfg, runner=runner)
        assert {c["name"] for c in runner.calls} == {"/usr/local/bin/go"}

    def test_all_steps_share_one_budget(self, config, request_in_workspace):
        seen = []
        runner = RecordingRunner(on_run=lambda name, args, cwd, budget: seen.append(budget))
        budget = ExecutionBudget.with_timeout(30)
        execute_build(request_in_workspace, config, runner=runner, budget=budget)
        assert seen == [budget, budget]


# ---------------------------------------------------------------------------
# 2. Success
# ---------------------------------------------------------------------------
class TestSuccess:

    def test_outcome(self, config, request_in_workspace):
        runner = RecordingRunner(output="ok\n", on_run=write_artifact_on_compile(b"bin"))
        outcome = execute_build(request_in_workspace, config, runner=runner)

        assert isinstance(outcome, BuildOutcome)
        assert outcome.artifact_path == request_in_workspace.working_copy / "main_golang"
        assert outcome.artifact_path.read_bytes() == b"bin"
        assert len(outcome.command_results) == 2
        assert outcome.execution_time_seconds >= 0

    def test_output_recorded_on_request(self, config, request_in_workspace):
        runner = RecordingRunner(output="compiled fine")
        execute_build(request_in_workspace, config, runner=runner)
        assert request_in_workspace.output == "compiled fine"


# ---------------------------------------------------------------------------
# 3. Toolchain failures
# ---------------------------------------------------------------------------
class TestToolchainFailure:

    def test_failed_fetch_stops_build(self, config, request_in_workspace):
        runner = RecordingRunner(returncodes=[1], output="cannot find module")
        with pytest.raises(ToolchainError) as excinfo:
            execute_build(request_in_workspace, config, runner=runner)

        assert len(runner.calls) == 1
        err = excinfo.value
        assert err.exit_code == 1
        assert err.output == "cannot find module"
        assert err.command == ["go", "get", "-d", "./..."]
        assert request_in_workspace.output == "cannot find module"

    def test_failed_compile(self, config, request_in_workspace):
        runner = RecordingRunner(returncodes=[0, 2], output="main.go:3: syntax error")
        with pytest.raises(ToolchainError, match="exited with status 2"):
            execute_build(request_in_workspace, config, runner=runner)
        assert len(runner.calls) == 2

    def test_launch_failure_propagates(self, config, request_in_workspace):
        class Unlaunchable:
            def run(self, name, args, *, cwd, env=None, budget):
                raise ToolchainError(f"executable file not found: {name}", command=[name, *args])

        with pytest.raises(ToolchainError, match="executable file not found"):
            execute_build(request_in_workspace, config, runner=Unlaunchable())

    def test_toolchain_error_is_not_timeout(self, config, request_in_workspace):
        runner = RecordingRunner(returncodes=[1])
        with pytest.raises(ToolchainError) as excinfo:
            execute_build(request_in_workspace, config, runner=runner)
        assert not isinstance(excinfo.value, BuildTimeoutError)


# ---------------------------------------------------------------------------
# 4. Budget / cancellation
# ---------------------------------------------------------------------------
class TestBudget:

    def test_expired_budget_fails_with_deadline_exceeded(self, config, runner, request_in_workspace):
        with pytest.raises(BuildTimeoutError) as excinfo:
            execute_build(request_in_workspace, config, runner=runner, budget=ExecutionBudget.with_timeout(0))

        assert "deadline exceeded" in str(excinfo.value)
        assert excinfo.value.reason == BuildTimeoutError.DEADLINE_EXCEEDED
        assert runner.calls == []

    def test_zero_configured_timeout(self, config, runner, request_in_workspace):
        cfg = type(config)(home_path=config.home_path, build_timeout_seconds=0)
        with pytest.raises(BuildTimeoutError, match="deadline exceeded"):
            execute_build(request_in_workspace, cfg, runner=runner)
        assert runner.calls == []

    def test_deadline_during_first_step_skips_second(self, config, request_in_workspace):
        clock = FakeClock()
        budget = ExecutionBudget.with_timeout(5, clock=clock)

        def hang_past_deadline(name, args, cwd, b):
            clock.now += 10
            raise b.error([name, *args], output="downloading...")

        runner = RecordingRunner(on_run=hang_past_deadline)
        with pytest.raises(BuildTimeoutError) as excinfo:
            execute_build(request_in_workspace, config, runner=runner, budget=budget)

        assert len(runner.calls) == 1
        assert excinfo.value.output == "downloading..."
        assert request_in_workspace.output == "downloading..."

    def test_cancelled_budget_reports_cancellation(self, config, runner, request_in_workspace):
        budget = ExecutionBudget.with_timeout(30)
        budget.cancel()
        with pytest.raises(BuildTimeoutError) as excinfo:
            execute_build(request_in_workspace, config, runner=runner, budget=budget)
        assert excinfo.value.reason == BuildTimeoutError.CANCELLED

    def test_nonzero_exit_after_cancel_is_timeout_not_toolchain_error(self, config, request_in_workspace):
        """A process killed as the budget ends must be reported as the cancellation."""
        runner = RecordingRunner(
            returncodes=[-9],
            on_run=lambda name, args, cwd, budget: budget.cancel(),
        )
        with pytest.raises(BuildTimeoutError) as excinfo:
            execute_build(request_in_workspace, config, runner=runner)
        assert excinfo.value.reason == BuildTimeoutError.CANCELLED
        assert len(runner.calls) == 1

    def test_cancel_between_steps_stops_before_compile(self, config, request_in_workspace):
        def cancel_after_fetch(name, args, cwd, budget):
            if args[0] == "get":
                budget.cancel()

        runner = RecordingRunner(on_run=cancel_after_fetch)
        with pytest.raises(BuildTimeoutError, match="build cancelled"):
            execute_build(request_in_workspace, config, runner=runner)
        assert runner.argv_calls == [["go", "get", "-d", "./..."]]


# ---------------------------------------------------------------------------
# 5. Preconditions
# ---------------------------------------------------------------------------
class TestPreconditions:

    def test_unprepared_request_rejected(self, config, runner):
        with pytest.raises(WorkspaceError, match="prepare_environment"):
            execute_build(BuildRequest(pipeline_name="main"), config, runner=runner)
        assert runner.calls == []


# ---------------------------------------------------------------------------
# 6. Failure Output Excerpt
# ---------------------------------------------------------------------------
class TestToolchainOutputExcerpt:

    def test_short_output_kept_whole(self):
        output = "# example.com/hello\n./main.go:5:2: undefined: foo\n"
        assert excerpt_toolchain_output(output) == output.rstrip()

    def test_empty_output(self):
        assert excerpt_toolchain_output("") == ""

    def test_download_noise_dropped_before_tail(self):
        noise = [f"go: downloading example.com/dep{i} v1.0.{i}" for i in range(100)]
        tail = ["# example.com/hello", "./main.go:9:1: missing return"]
        excerpt = excerpt_toolchain_output("\n".join(noise + tail), tail=2)

        assert "go: downloading" not in excerpt
        assert "[... 100 earlier lines of toolchain output omitted ...]" in excerpt
        assert excerpt.endswith("./main.go:9:1: missing return")

    def test_early_compiler_diagnostics_survive(self):
        lines = ["./a.go:3:7: undefined: bar"] + [f"noise {i}" for i in range(50)] + ["FAIL"]
        excerpt = excerpt_toolchain_output("\n".join(lines), tail=1)
        assert excerpt.splitlines()[0] == "./a.go:3:7: undefined: bar"
        assert "50 earlier lines" in excerpt
        assert excerpt.splitlines()[-1] == "FAIL"

    def test_diagnostics_capped(self):
        lines = [f"./m.go:{i}:1: error {i}" for i in range(1, 31)] + ["exit status 2"]
        excerpt = excerpt_toolchain_output("\n".join(lines), tail=1, max_diagnostics=3)
        assert [l for l in excerpt.splitlines() if l.startswith("./m.go")] == [
            "./m.go:1:1: error 1", "./m.go:2:1: error 2", "./m.go:3:1: error 3",
        ]
        assert "27 earlier lines" in excerpt
