"""Default configuration values for iisdeploy."""

import logging
import socket

logger = logging.getLogger(__name__)


# Runner release pinned by default; override with --runner-version
DEFAULT_RUNNER_VERSION = "2.321.0"
RUNNER_PLATFORM = "win-x64"
RUNNER_RELEASE_URL = (
    "https://github.com/actions/runner/releases/download/v{version}/{archive}"
)

DEFAULT_RUNNER_BASE = "C:\\actions-runner"
DEFAULT_BACKUP_PATH = "C:\\deploy-backups"
DEFAULT_ADMIN_GROUP = "Administrators"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_TOKEN_ENV = "GITHUB_TOKEN"
DEFAULT_CONFIG_FILE = "iisdeploy.yaml"

# Deploy pipeline defaults
DEFAULT_DOTNET_VERSION = "8.0.x"
DEFAULT_BACKUP_KEEP = 5
DEFAULT_BUILD_CONFIGURATION = "Release"

# Polling waits (seconds)
DEFAULT_TIMEOUTS: dict[str, float] = {
    "pool_stop": 30.0,
    "pool_poll_interval": 1.0,
    "service_settle": 3.0,
    "http": 30.0,
    "download": 300.0,
}


def default_runner_name() -> str:
    """Return the local hostname, used as the runner name when none is given."""
    name = socket.gethostname().split(".")[0]
    if not name:
        logger.warning("Could not determine hostname; using 'runner'")
        return "runner"
    return name


def default_runner_root(repo: str) -> str:
    """Return the runner install directory derived from the repository name."""
    return f"{DEFAULT_RUNNER_BASE}\\{repo}"
