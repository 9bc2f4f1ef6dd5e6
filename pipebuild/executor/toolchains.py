"""
Toolchain Registry
==================
Maps a pipeline type to the ordered toolchain commands that build it.

Resolver never executes commands - it only returns argument sequences.
The toolchain invoker runs them through the command runner seam.

Built-in toolchains:
    golang  - ``go get -d ./...`` then ``go build -o <artifact name>``
              with GOPATH pointed at ``<home>/tmp/golang``

Overrides:
    A YAML file (TOOLCHAINS_FILE) may replace the binary, steps, environment
    or docker image of a built-in toolchain::

        golang:
          binary: /usr/local/go/bin/go
          steps:
            - label: fetch dependencies
              args: [mod, download]
            - label: compile
              args: [build, -trimpath, -o, "{output}"]
          env:
            CGO_ENABLED: "0"

    In args, ``{output}`` is replaced by the canonical artifact name. In env
    values, ``{toolchain_root}`` is replaced by the toolchain's tmp subtree.

Deterministic: same pipeline type + same config → same commands, always.
"""
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from pipebuild.core.config import BuilderConfig
from pipebuild.core.constants import OUTPUT_TOKEN, TOOLCHAIN_ROOT_TOKEN
from pipebuild.core.exceptions import ConfigurationError, ToolchainError
from pipebuild.models.build_request import PipelineType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolchainStep:
    """One toolchain subcommand, e.g. ("compile", ("build", "-o", "{output}"))."""
    label: str
    args: tuple[str, ...]

    def render(self, output_name: str) -> list[str]:
        return [a.replace(OUTPUT_TOKEN, output_name) for a in self.args]


@dataclass(frozen=True)
class ToolchainSpec:
    """
    Immutable description of how one pipeline type is built.

    Fields
    ------
    pipeline_type : PipelineType
        The pipeline type this toolchain builds.
    folder : str
        Name of the toolchain subtree under ``<home>/tmp``; workspaces are
        created in ``<home>/tmp/<folder>/src``.
    binary : str
        Toolchain executable (name on PATH or absolute path).
    steps : tuple[ToolchainStep, ...]
        Subcommands, run strictly in order.
    env : dict[str, str]
        Extra environment for every step.
    docker_image : str | None
        Image used when commands run through the docker runner.
    """
    pipeline_type: PipelineType
    folder: str
    binary: str
    steps: tuple[ToolchainStep, ...]
    env: dict[str, str] = field(default_factory=dict)
    docker_image: Optional[str] = None

    def render_env(self, toolchain_root: Path) -> dict[str, str]:
        return {k: v.replace(TOOLCHAIN_ROOT_TOKEN, str(toolchain_root)) for k, v in self.env.items()}


# ---------------------------------------------------------------------------
# Built-in toolchains: pipeline_type → ToolchainSpec
# ---------------------------------------------------------------------------
_TOOLCHAIN_MAP: dict[PipelineType, ToolchainSpec] = {
    PipelineType.GOLANG: ToolchainSpec(
        pipeline_type=PipelineType.GOLANG,
        folder="golang",
        binary="go",
        steps=(
            ToolchainStep("fetch dependencies", ("get", "-d", "./...")),
            ToolchainStep("compile", ("build", "-o", OUTPUT_TOKEN)),
        ),
        env={"GOPATH": TOOLCHAIN_ROOT_TOKEN},
    ),
}

_OVERRIDE_KEYS = {"binary", "steps", "env", "docker_image"}


def get_supported_pipeline_types() -> list[str]:
    """Return all pipeline types that have a toolchain."""
    return sorted(t.value for t in _TOOLCHAIN_MAP)


def resolve_toolchain(
    pipeline_type: Union[PipelineType, str],
    config: BuilderConfig,
) -> ToolchainSpec:
    """
    Look up the toolchain for a pipeline type, with configuration applied.

    Raises
    ------
    ToolchainError
        The pipeline type has no toolchain.
    ConfigurationError
        The toolchains override file is unreadable or malformed.
    """
    try:
        ptype = PipelineType(pipeline_type)
    except ValueError:
        raise ToolchainError(
            f"unsupported pipeline type '{pipeline_type}', "
            f"expected one of {', '.join(get_supported_pipeline_types())}"
        ) from None

    spec = _TOOLCHAIN_MAP.get(ptype)
    if spec is None:
        raise ToolchainError(f"no toolchain registered for pipeline type '{ptype.value}'")

    if ptype is PipelineType.GOLANG:
        spec = replace(spec, binary=config.go_binary, docker_image=config.docker_image_go)

    if config.toolchains_file is not None:
        overrides = load_toolchain_overrides(config.toolchains_file)
        if ptype.value in overrides:
            spec = _apply_override(spec, overrides[ptype.value])
            logger.debug("Toolchain override applied | type=%s | file=%s", ptype.value, config.toolchains_file)

    return spec


def load_toolchain_overrides(path: Path) -> dict[str, dict[str, Any]]:
    """
    Parse a toolchains YAML file into ``{pipeline_type: override}``.

    Each override is validated here so a bad file fails at resolution time,
    before any workspace or process is touched.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read toolchains file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in toolchains file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"toolchains file {path} must contain a mapping of pipeline types")

    overrides: dict[str, dict[str, Any]] = {}
    for type_name, raw in data.items():
        if not isinstance(raw, dict):
            raise ConfigurationError(f"toolchain '{type_name}' in {path} must be a mapping")
        unknown = set(raw) - _OVERRIDE_KEYS
        if unknown:
            raise ConfigurationError(
                f"toolchain '{type_name}' in {path} has unknown keys: {', '.join(sorted(unknown))}"
            )
        overrides[str(type_name)] = _parse_override(str(type_name), raw, path)
    return overrides


def _parse_override(type_name: str, raw: dict[str, Any], path: Path) -> dict[str, Any]:
    parsed: dict[str, Any] = {}

    if "binary" in raw:
        if not isinstance(raw["binary"], str) or not raw["binary"].strip():
            raise ConfigurationError(f"toolchain '{type_name}' in {path}: binary must be a non-empty string")
        parsed["binary"] = raw["binary"].strip()

    if "steps" in raw:
        steps = raw["steps"]
        if not isinstance(steps, list) or not steps:
            raise ConfigurationError(f"toolchain '{type_name}' in {path}: steps must be a non-empty list")
        parsed_steps = []
        for i, step in enumerate(steps, 1):
            if not isinstance(step, dict) or not isinstance(step.get("args"), list):
                raise ConfigurationError(
                    f"toolchain '{type_name}' in {path}: step {i} needs an 'args' list"
                )
            label = str(step.get("label") or f"step {i}")
            parsed_steps.append(ToolchainStep(label, tuple(str(a) for a in step["args"])))
        parsed["steps"] = tuple(parsed_steps)

    if "env" in raw:
        env = raw["env"]
        if not isinstance(env, dict):
            raise ConfigurationError(f"toolchain '{type_name}' in {path}: env must be a mapping")
        parsed["env"] = {str(k): str(v) for k, v in env.items()}

    if "docker_image" in raw:
        parsed["docker_image"] = str(raw["docker_image"])

    return parsed


def _apply_override(spec: ToolchainSpec, override: dict[str, Any]) -> ToolchainSpec:
    changes = dict(override)
    if "env" in changes:
        # Override env extends the built-in env rather than replacing it
        changes["env"] = {**spec.env, **changes["env"]}
    return replace(spec, **changes)
