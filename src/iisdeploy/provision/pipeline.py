"""Runner provisioning pipeline.

Steps run strictly in order because each depends on the side effect of the
one before it: resources before download, extraction before configuration,
configuration before the service can be started.
"""

from __future__ import annotations

import logging
from pathlib import Path

from iisdeploy.models.provision import (
    EnsureResult,
    GrantResult,
    InstallationState,
    MembershipResult,
    ProvisionContext,
    ProvisionReport,
)
from iisdeploy.platform.base import AppPoolManager
from iisdeploy.provision.artifact import (
    ArtifactInstaller,
    ExtractResult,
    runner_archive_name,
    runner_download_url,
)
from iisdeploy.provision.credentials import CredentialBroker
from iisdeploy.provision.registrar import AgentRegistrar
from iisdeploy.provision.resources import ResourceProvisioner
from iisdeploy.provision.services import ServiceLifecycleManager

logger = logging.getLogger(__name__)


class ProvisionPipeline:
    """Install, register and start one self-hosted runner on this machine.

    Example:
        >>> pipeline = ProvisionPipeline(
        ...     broker=broker,
        ...     provisioner=provisioner,
        ...     installer=ArtifactInstaller(),
        ...     registrar=registrar,
        ...     services=services,
        ... )
        >>> report = pipeline.run(ProvisionContext.from_config(config))
    """

    def __init__(
        self,
        *,
        broker: CredentialBroker,
        provisioner: ResourceProvisioner,
        installer: ArtifactInstaller,
        registrar: AgentRegistrar,
        services: ServiceLifecycleManager,
        pools: AppPoolManager | None = None,
    ) -> None:
        self.broker = broker
        self.provisioner = provisioner
        self.installer = installer
        self.registrar = registrar
        self.services = services
        self.pools = pools

    def run(self, context: ProvisionContext) -> ProvisionReport:
        """Run every provisioning step and return what changed.

        Raises:
            OperatorCancelled: The operator declined removing an existing
                configuration; nothing was changed
            DeploymentError: Any fatal step failure
        """
        self.preflight(context)
        self.prepare_resources(context)
        self.install_artifact(context)
        self.acquire_token(context)
        try:
            self.registrar.register(context, self.broker)
        finally:
            # Single use; do not keep it around once configuration ran
            context.token = None
        self.start_service(context)
        return context.report

    @staticmethod
    def plan(context: ProvisionContext) -> list[str]:
        """Describe the steps ``run`` would take, without side effects."""
        config = context.config
        version = config.runner_version
        targets = ProvisionPipeline._permission_targets(context)
        return [
            f"Verify GitHub credential and admin access to {context.repo.slug}",
            f"Ensure directories: {context.runner_root}, {config.backup_path}",
            f"Ensure '{config.service_account}' is in local group "
            f"'{config.admin_group}' (asks first)",
            "Grant full control to "
            f"'{config.service_account}' on: {', '.join(str(t) for t in targets)}",
            f"Download {runner_download_url(version)}",
            "Verify SHA-256 " + (config.runner_hash or "(skipped: no --runner-hash)"),
            f"Extract into {context.runner_root}",
            f"Register runner '{context.identity.runner_name}' with labels "
            f"{', '.join(context.identity.labels)}",
            f"Start service {context.service_query.service_name}",
        ]

    def preflight(self, context: ProvisionContext) -> None:
        """Check credentials, the app pool and any existing configuration.

        Nothing on the machine is changed before this step completes, so
        declining the removal prompt leaves the machine exactly as it was.
        """
        context.principal = self.broker.verify_identity()

        if self.pools is not None:
            state = self.pools.get_state(context.config.app_pool)
            logger.info(f"App pool '{context.config.app_pool}' is {state.value}")

        installation = self.registrar.detect(context.runner_root)
        context.installation = installation
        if installation.is_configured:
            self.registrar.confirm_removal(installation)
            context.removal_confirmed = True

    def prepare_resources(self, context: ProvisionContext) -> None:
        """Create directories, group membership and ACL grants idempotently."""
        config = context.config
        report = context.report
        account = config.service_account

        for directory in (context.runner_root, Path(config.backup_path)):
            result = self.provisioner.ensure_directory(directory)
            if result == EnsureResult.CREATED:
                report.changed(f"created directory {directory}")
            else:
                report.noop(f"directory {directory} already exists")

        outcome = self.provisioner.ensure_group_membership(account, config.admin_group)
        if outcome.result == MembershipResult.ADDED:
            report.changed(f"added '{account}' to '{config.admin_group}'")
        elif outcome.result == MembershipResult.ALREADY_MEMBER:
            report.noop(f"'{account}' already in '{config.admin_group}'")
        else:
            report.warn(
                f"group membership skipped ({outcome.reason}); the runner may be "
                "unable to stop or start the app pool"
            )

        for target in self._permission_targets(context):
            if not target.exists():
                self.provisioner.ensure_directory(target)
                report.changed(f"created directory {target}")
            grant = self.provisioner.grant_full_control(account, target)
            if grant == GrantResult.GRANTED:
                report.changed(f"granted '{account}' full control on {target}")
            else:
                report.noop(f"'{account}' already has full control on {target}")

    def install_artifact(self, context: ProvisionContext) -> None:
        """Download, verify and extract the runner release."""
        config = context.config
        archive = context.download_dir / runner_archive_name(config.runner_version)
        url = runner_download_url(config.runner_version)

        existed = archive.exists()
        self.installer.download(url, archive)
        if not existed:
            context.report.changed(f"downloaded {archive.name}")
        self.installer.verify_checksum(archive, config.runner_hash)

        result = self.installer.extract(archive, context.runner_root)
        if result == ExtractResult.ALREADY_EXTRACTED:
            context.report.noop(f"runner already extracted in {context.runner_root}")
        else:
            context.report.changed(f"{result.value} runner into {context.runner_root}")

        if context.installation and not context.installation.is_configured:
            context.installation.state = InstallationState.EXTRACTED

    def acquire_token(self, context: ProvisionContext) -> None:
        """Fetch a fresh registration token into the context."""
        context.token = self.broker.fetch_operation_token(context.repo)

    def start_service(self, context: ProvisionContext) -> None:
        """Start exactly this runner's service and confirm it is running."""
        handle = self.services.locate_service(context.service_query)
        was_running = handle.is_running
        context.service = self.services.ensure_running(handle)
        if context.installation is not None:
            context.installation.state = InstallationState.RUNNING
        if was_running:
            context.report.noop(f"service {handle.name} already running")
        else:
            context.report.changed(f"started service {handle.name}")

    @staticmethod
    def _permission_targets(context: ProvisionContext) -> list[Path]:
        config = context.config
        deploy_path = Path(config.deploy_path)
        # Before the first deploy the site directory may not exist yet; the
        # parent is granted instead so the deploy can create it.
        deploy_target = deploy_path if deploy_path.exists() else deploy_path.parent
        return [context.runner_root, Path(config.backup_path), deploy_target]
