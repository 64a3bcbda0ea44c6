"""iisdeploy - self-hosted GitHub Actions runner provisioning and IIS deploys.

Two pipelines:
- ``iisdeploy provision`` installs, registers and starts a runner service
  on a Windows server, idempotently
- ``iisdeploy deploy run`` backs up the live site, stops its app pool,
  mirrors the new build in, restarts and verifies it
"""

from iisdeploy.lib.errors import ConfigError, DeploymentError, IISDeployError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigError",
    "DeploymentError",
    "IISDeployError",
]
