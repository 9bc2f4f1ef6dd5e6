"""
pipebuild CLI
=============
One-shot local build of a compiled pipeline:

    python main.py build --name hello --source ./hello-src --home /var/lib/pipebuild

Copies the source tree into a fresh workspace (standing in for the
source-control fetch stage), compiles it under the configured budget and
stages the binary in ``<home>/pipelines``. Prints the staged artifact path.

Exit codes:
    0  artifact staged
    1  toolchain failure
    2  build timed out or was interrupted
    3  workspace or staging failure
    4  configuration error
"""
import argparse
import logging
import shutil
import sys
from pathlib import Path

from pipebuild.core.config import LOG_DIR, BuilderConfig
from pipebuild.core.constants import SUPPORTED_RUNNERS
from pipebuild.core.exceptions import (
    BuildTimeoutError,
    ConfigurationError,
    StageError,
    ToolchainError,
    WorkspaceError,
)
from pipebuild.executor.budget import ExecutionBudget
from pipebuild.executor.build_pipeline import new_build_pipeline
from pipebuild.executor.toolchains import get_supported_pipeline_types
from pipebuild.models.build_request import BuildRequest
from pipebuild.utils.logging_config import setup_logging

logger = logging.getLogger("main")

EXIT_OK = 0
EXIT_TOOLCHAIN = 1
EXIT_TIMEOUT = 2
EXIT_FILESYSTEM = 3
EXIT_CONFIG = 4


def _copy_source(source: Path):
    def fetch(workspace: Path) -> None:
        logger.info("Copying source | from=%s | to=%s", source, workspace)
        shutil.copytree(source, workspace, dirs_exist_ok=True, ignore=shutil.ignore_patterns(".git"))
    return fetch


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pipebuild")
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Build and stage a pipeline binary from a local source tree.")
    build.add_argument("--name", required=True, help="Pipeline name (first half of the artifact name).")
    build.add_argument(
        "--type",
        default="golang",
        choices=get_supported_pipeline_types(),
        help="Pipeline type / toolchain (default: golang).",
    )
    build.add_argument("--source", type=Path, required=True, help="Directory holding the pipeline source.")
    build.add_argument("--home", type=Path, default=None, help="Build home. Overrides PIPEBUILD_HOME.")
    build.add_argument("--timeout", type=float, default=None, help="Total build budget in seconds.")
    build.add_argument("--runner", choices=SUPPORTED_RUNNERS, default=None, help="Command runner backend.")
    build.add_argument("--toolchains-file", type=Path, default=None, help="YAML toolchain overrides.")
    build.add_argument("--log-dir", default=LOG_DIR, help="Directory for the daily log file ('' disables it).")
    build.add_argument("-v", "--verbose", action="store_true", help="Verbose logs, including toolchain output.")
    return parser


def _run_build(args: argparse.Namespace) -> int:
    source: Path = args.source
    if not source.is_dir():
        logger.error("Source dir not found: %s", source)
        return EXIT_CONFIG

    try:
        config = BuilderConfig.from_env(
            home_path=args.home,
            build_timeout_seconds=args.timeout,
            runner=args.runner,
            toolchains_file=args.toolchains_file,
        )
        builder = new_build_pipeline(args.type, config)
        request = BuildRequest(pipeline_name=args.name, pipeline_type=args.type)
    except (ConfigurationError, ToolchainError, ValueError) as e:
        logger.error("Invalid build configuration: %s", e)
        return EXIT_CONFIG

    try:
        config.artifact_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create artifact dir %s: %s", config.artifact_dir, e)
        return EXIT_FILESYSTEM

    budget = ExecutionBudget.with_timeout(config.build_timeout_seconds)
    try:
        artifact = builder.run(request, fetch_source=_copy_source(source.resolve()), budget=budget)
    except BuildTimeoutError:
        return EXIT_TIMEOUT
    except ToolchainError as e:
        if e.output:
            print(e.output, file=sys.stderr)
        return EXIT_TOOLCHAIN
    except (WorkspaceError, StageError, OSError):
        return EXIT_FILESYSTEM
    except ConfigurationError:
        return EXIT_CONFIG
    except KeyboardInterrupt:
        logger.warning("Build interrupted | pipeline=%s", request.pipeline_name)
        return EXIT_TIMEOUT

    print(artifact)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO, log_dir=args.log_dir)

    if args.command == "build":
        return _run_build(args)
    parser.error(f"unknown command {args.command}")
    return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())
