"""
Artifact Naming
===============
Canonical artifact filename for a pipeline: ``<pipelineName>_<pipelineType>``.

The toolchain invoker names the compiler output with this function and the
artifact stager uses it for both ends of the copy, so the file the compiler
writes is exactly the file that gets staged.
"""
from enum import Enum
from typing import Union

from pipebuild.core.constants import ARTIFACT_NAME_SEPARATOR


def artifact_name(pipeline_name: str, pipeline_type: Union[str, Enum]) -> str:
    """
    Join a pipeline name and type tag into the canonical artifact name.

    Pure and total: ``artifact_name("main", "golang") == "main_golang"`` and
    empty inputs simply give ``"_"``.
    """
    type_tag = pipeline_type.value if isinstance(pipeline_type, Enum) else pipeline_type
    return f"{pipeline_name}{ARTIFACT_NAME_SEPARATOR}{type_tag}"
