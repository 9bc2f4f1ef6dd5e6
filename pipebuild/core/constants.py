"""
Constants
Filesystem layout names and defaults shared by every build stage.
"""
TMP_FOLDER = "tmp"
SRC_FOLDER = "src"
PIPELINES_FOLDER = "pipelines"

ARTIFACT_NAME_SEPARATOR = "_"

# Workspace directories are private to the build user
WORKSPACE_MODE = 0o700

DEFAULT_BUILD_TIMEOUT_SECONDS = 60 * 60

# How often a running command is checked against its execution budget
BUDGET_POLL_INTERVAL = 0.1

OUTPUT_TOKEN = "{output}"
TOOLCHAIN_ROOT_TOKEN = "{toolchain_root}"

RUNNER_SUBPROCESS = "subprocess"
RUNNER_DOCKER = "docker"
SUPPORTED_RUNNERS = (RUNNER_SUBPROCESS, RUNNER_DOCKER)
