"""
Shared fixtures: a build config rooted in tmp_path and a recording fake
command runner, so builds run without a real Go toolchain.
"""
from pathlib import Path
from typing import Callable, Optional

import pytest

from pipebuild.core.config import BuilderConfig
from pipebuild.executor.command_runner import CommandResult


class RecordingRunner:
    """
    Fake CommandRunner that records every command it is asked to run.

    Parameters
    ----------
    returncodes : list[int]
        Exit status per call, consumed in order; 0 once exhausted.
    output : str
        Output returned for every command.
    on_run : callable | None
        Hook called as ``on_run(name, args, cwd, budget)`` before returning,
        e.g. to write the compiled artifact or to expire the budget.
    """

    def __init__(
        self,
        returncodes: Optional[list] = None,
        output: str = "",
        on_run: Optional[Callable] = None,
    ) -> None:
        self.returncodes = list(returncodes or [])
        self.output = output
        self.on_run = on_run
        self.calls: list[dict] = []

    @property
    def argv_calls(self) -> list[list[str]]:
        return [[c["name"], *c["args"]] for c in self.calls]

    def run(self, name, args, *, cwd, env=None, budget):
        self.calls.append({"name": name, "args": list(args), "cwd": Path(cwd), "env": dict(env or {})})
        if budget.done():
            raise budget.error([name, *args])
        if self.on_run is not None:
            self.on_run(name, list(args), Path(cwd), budget)
        code = self.returncodes.pop(0) if self.returncodes else 0
        return CommandResult(args=[name, *args], returncode=code, output=self.output)


def write_artifact_on_compile(content: bytes = b"\x7fELF fake binary"):
    """on_run hook that writes the ``-o`` target of a ``go build`` call."""
    def hook(name, args, cwd, budget):
        if args and args[0] == "build":
            (cwd / args[args.index("-o") + 1]).write_bytes(content)
    return hook


@pytest.fixture
def config(tmp_path):
    cfg = BuilderConfig(home_path=tmp_path / "home", build_timeout_seconds=30)
    cfg.artifact_dir.mkdir(parents=True)
    return cfg


@pytest.fixture
def runner():
    return RecordingRunner()
