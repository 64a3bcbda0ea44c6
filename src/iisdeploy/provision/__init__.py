"""Self-hosted runner provisioning.

Components:
    CredentialBroker: Personal credential -> short-lived registration token
    ResourceProvisioner: Directories, group membership and ACL grants
    ArtifactInstaller: Download, checksum and extract the runner release
    AgentRegistrar: Configure (or reconfigure) the runner registration
    ServiceLifecycleManager: Locate and start exactly this runner's service
    ProvisionPipeline: Runs the components in order
"""

from iisdeploy.provision.artifact import ArtifactInstaller
from iisdeploy.provision.credentials import CredentialBroker
from iisdeploy.provision.pipeline import ProvisionPipeline
from iisdeploy.provision.registrar import AgentRegistrar
from iisdeploy.provision.resources import ResourceProvisioner
from iisdeploy.provision.services import ServiceLifecycleManager

__all__ = [
    "AgentRegistrar",
    "ArtifactInstaller",
    "CredentialBroker",
    "ProvisionPipeline",
    "ResourceProvisioner",
    "ServiceLifecycleManager",
]
