"""
Build Request Model
===================
Pydantic model for one build attempt. This is the mutable context object
that travels through every build stage.

Fields:
    pipeline_name   - non-empty pipeline name, first half of the artifact name
    pipeline_type   - toolchain the pipeline is built with
    working_copy    - isolated workspace; set by prepare_environment
    output          - combined output of the last toolchain command that ran
    status          - build status, maintained by BuildPipeline.run
    error           - failure message, set by BuildPipeline.run

Stage postconditions:
    prepare_environment → working_copy points at a fresh, empty directory
    execute_build       → <working_copy>/<artifact name> exists, output is set
    copy_binary         → request unchanged

The request is never persisted. Only its side effects (workspace contents,
staged artifact) outlive the build.
"""
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, field_validator


class PipelineType(str, Enum):
    GOLANG = "golang"


class BuildStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class BuildRequest(BaseModel):
    pipeline_name: str
    pipeline_type: PipelineType = PipelineType.GOLANG
    working_copy: Optional[Path] = None
    output: str = ""
    status: BuildStatus = BuildStatus.PENDING
    error: str = ""

    @field_validator("pipeline_name")
    @classmethod
    def validate_pipeline_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("pipeline name must not be empty")
        if "/" in v or "\\" in v:
            raise ValueError("pipeline name must not contain path separators")
        return v
