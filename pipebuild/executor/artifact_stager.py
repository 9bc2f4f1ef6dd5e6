"""
Artifact Stager
===============
Copies the compiled binary from the workspace into the artifact store.

    <working_copy>/<name>_<type>  →  <home>/pipelines/<name>_<type>

The bytes are streamed into a temp file inside the artifact directory and
renamed over the destination, so a concurrent reader sees either the previous
artifact or the complete new one, never a truncated file. The source is left
in place for later inspection of the workspace.
"""
import logging
import os
import shutil
import tempfile
from pathlib import Path

from pipebuild.core.config import BuilderConfig
from pipebuild.core.exceptions import StageError
from pipebuild.models.build_request import BuildRequest
from pipebuild.utils.naming import artifact_name

logger = logging.getLogger(__name__)


def copy_binary(request: BuildRequest, config: BuilderConfig) -> Path:
    """
    Publish the built artifact of ``request`` under its canonical name.

    Returns
    -------
    Path
        The staged artifact in the artifact directory.

    Raises
    ------
    StageError
        The source is missing or unreadable, or the destination cannot be
        written. Nothing is left behind in the artifact directory.
    """
    name = artifact_name(request.pipeline_name, request.pipeline_type)
    destination = config.artifact_dir / name
    if request.working_copy is None:
        raise StageError(
            f"pipeline '{request.pipeline_name}' has no workspace to stage from",
            destination=destination,
        )
    source = request.working_copy / name

    # Open the source first: a missing artifact must not touch the store
    try:
        src_file = open(source, "rb")
    except OSError as e:
        logger.error("Staging failed | source=%s | error=%s", source, e)
        raise StageError(
            f"cannot open source artifact {source}: {e.strerror or e}",
            source=source,
            destination=destination,
        ) from e

    with src_file:
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=config.artifact_dir)
        except OSError as e:
            logger.error("Staging failed | destination=%s | error=%s", destination, e)
            raise StageError(
                f"cannot create artifact {destination}: {e.strerror or e}",
                source=source,
                destination=destination,
            ) from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as dst_file:
                shutil.copyfileobj(src_file, dst_file)
                dst_file.flush()
                os.fsync(dst_file.fileno())
            shutil.copymode(source, tmp_path)
            os.replace(tmp_path, destination)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            logger.error("Staging failed | source=%s | destination=%s | error=%s", source, destination, e)
            raise StageError(
                f"cannot copy {source} to {destination}: {e.strerror or e}",
                source=source,
                destination=destination,
            ) from e
        except BaseException:
            # Interrupted mid-copy: never leave a partial temp file in the store
            tmp_path.unlink(missing_ok=True)
            raise

    logger.info("Artifact staged | pipeline=%s | path=%s", request.pipeline_name, destination)
    return destination
