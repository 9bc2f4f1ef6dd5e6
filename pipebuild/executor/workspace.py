"""
Workspace Preparer
==================
Creates a fresh, isolated workspace directory for one build attempt.

Layout:
    <home>/tmp/<toolchain folder>/src/<uuid4>

Each call generates a new UUID and refuses to reuse an existing directory,
so concurrent builds sharing one home never see each other's files.
Workspaces are not cleaned up here; that belongs to an external janitor.
"""
import logging
import uuid
from pathlib import Path
from typing import Optional

from pipebuild.core.config import BuilderConfig
from pipebuild.core.constants import SRC_FOLDER, WORKSPACE_MODE
from pipebuild.core.exceptions import WorkspaceError
from pipebuild.executor.toolchains import ToolchainSpec, resolve_toolchain
from pipebuild.models.build_request import BuildRequest

logger = logging.getLogger(__name__)


def workspace_root(config: BuilderConfig, toolchain: ToolchainSpec) -> Path:
    """Parent directory of every workspace for a toolchain."""
    return config.toolchain_root(toolchain.folder) / SRC_FOLDER


def prepare_environment(
    request: BuildRequest,
    config: BuilderConfig,
    toolchain: Optional[ToolchainSpec] = None,
) -> Path:
    """
    Allocate a new workspace and record it on ``request.working_copy``.

    Parameters
    ----------
    request : BuildRequest
        The build being prepared. Mutated on success only.
    config : BuilderConfig
        Supplies the home path.
    toolchain : ToolchainSpec | None
        Resolved toolchain; looked up from the request's pipeline type if None.

    Returns
    -------
    Path
        The created, empty workspace directory.

    Raises
    ------
    WorkspaceError
        The directory tree could not be created (home missing or unwritable,
        a path component is not a directory, ...). No retry is attempted.
    """
    if toolchain is None:
        toolchain = resolve_toolchain(request.pipeline_type, config)

    workspace = workspace_root(config, toolchain) / str(uuid.uuid4())
    try:
        workspace.mkdir(mode=WORKSPACE_MODE, parents=True, exist_ok=False)
    except OSError as e:
        logger.error(
            "Workspace creation failed | pipeline=%s | path=%s | error=%s",
            request.pipeline_name, workspace, e,
        )
        raise WorkspaceError(
            f"cannot create workspace {workspace}: {e.strerror or e}",
            path=workspace,
        ) from e

    request.working_copy = workspace
    logger.info("Workspace prepared | pipeline=%s | path=%s", request.pipeline_name, workspace)
    return workspace
