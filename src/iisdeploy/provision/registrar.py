"""Configure (or reconfigure) the runner's registration with GitHub."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from iisdeploy.github.client import GitHubClient
from iisdeploy.lib.confirm import Confirm
from iisdeploy.lib.errors import ConfigurationError, GitHubAPIError, OperatorCancelled
from iisdeploy.lib.logging_config import redact
from iisdeploy.models.config import RepoRef
from iisdeploy.models.provision import (
    AgentInstallation,
    InstallationState,
    ProvisionContext,
    RegistrationToken,
    TokenScope,
)
from iisdeploy.platform.process import CommandRunner
from iisdeploy.provision.artifact import ENTRY_POINT
from iisdeploy.provision.credentials import CredentialBroker, translate_api_error

logger = logging.getLogger(__name__)

CONFIG_MARKER = ".runner"
SERVICE_MARKER = ".service"
WORK_FOLDER = "_work"


class AgentRegistrar:
    """Drive a runner installation to the configured, service-installed state.

    State machine: absent -> extracted -> (existing config found ->
    confirmed removed) -> configured -> service installed. An existing
    registration is never overwritten silently, and the ``--replace`` flag is
    never passed, so a genuine name clash fails loudly instead of
    deregistering an unrelated runner.
    """

    def __init__(
        self,
        client: GitHubClient,
        confirm: Confirm,
        runner: CommandRunner | None = None,
    ) -> None:
        self._client = client
        self._confirm = confirm
        self._runner = runner or CommandRunner()

    def detect(self, root: Path) -> AgentInstallation:
        """Inspect a runner directory and report its lifecycle state."""
        marker = root / CONFIG_MARKER
        if marker.exists():
            data = _read_marker(marker)
            service_file = root / SERVICE_MARKER
            service_name = None
            if service_file.exists():
                service_name = service_file.read_text(encoding="utf-8-sig").strip() or None
            return AgentInstallation(
                root_path=root,
                state=InstallationState.CONFIGURED,
                configured_name=data.get("agentName"),
                registered_url=data.get("gitHubUrl") or data.get("serverUrl"),
                service_name=service_name,
            )
        if (root / ENTRY_POINT).exists():
            return AgentInstallation(root_path=root, state=InstallationState.EXTRACTED)
        return AgentInstallation(root_path=root)

    def confirm_removal(self, installation: AgentInstallation) -> None:
        """Show the existing registration and ask before it is removed.

        Raises:
            OperatorCancelled: If the operator declines; nothing was changed
        """
        name = installation.configured_name or "<unknown>"
        url = installation.registered_url or "<unknown>"
        logger.warning(
            f"Existing runner configuration in {installation.root_path}: "
            f"name '{name}', registered to {url}"
        )
        prompt = (
            f"Runner '{name}' registered to {url} is already configured in "
            f"{installation.root_path}. Remove it and reconfigure?"
        )
        if not self._confirm(prompt):
            raise OperatorCancelled(
                step="remove_existing",
                message=(
                    f"Kept existing runner '{name}' ({url}); "
                    "nothing was changed."
                ),
            )

    def remove_existing(
        self, installation: AgentInstallation, token: RegistrationToken
    ) -> None:
        """Unregister and unconfigure an existing installation.

        Raises:
            ConfigurationError: If ``config.cmd remove`` exits non-zero
        """
        root = installation.root_path
        result = self._runner.run(
            _config_cmd(root) + ["remove", "--token", token.value],
            operation="remove_runner",
            cwd=root,
            secrets=[token.value],
        )
        if not result.ok:
            logger.error(redact(result.output, token.value))
            raise ConfigurationError(
                message=(
                    f"Removing runner '{installation.configured_name}' failed: "
                    f"{redact(result.output, token.value)}"
                ),
                exit_code=result.returncode,
                output=redact(result.output, token.value),
                operation="remove_runner",
            )
        installation.state = InstallationState.EXTRACTED
        installation.configured_name = None
        installation.registered_url = None
        logger.info(f"Removed existing runner configuration from {root}")

    def check_collisions(self, repo: RepoRef, runner_name: str) -> list[str]:
        """Warn about same-named runners already registered on the repository.

        Returns:
            Warning messages, one per colliding runner; empty when none
        """
        try:
            runners = self._client.list_runners(repo)
        except GitHubAPIError as exc:
            raise translate_api_error(
                exc, resource=f"runners of {repo.slug}", operation="check_collisions"
            ) from exc

        warnings: list[str] = []
        for existing in runners:
            if str(existing.get("name", "")).lower() != runner_name.lower():
                continue
            message = (
                f"A runner named '{existing.get('name')}' is already registered on "
                f"{repo.slug} (id {existing.get('id')}, "
                f"status {existing.get('status', 'unknown')}). Configuration will "
                "fail unless it is removed there first; it will not be replaced."
            )
            logger.warning(message)
            warnings.append(message)
        return warnings

    def configure(self, context: ProvisionContext) -> AgentInstallation:
        """Run ``config.cmd`` unattended, installing the Windows service.

        Raises:
            ConfigurationError: If the tool exits non-zero
        """
        if context.token is None:
            raise ConfigurationError(
                message="No registration token in context", exit_code=-1
            )
        config = context.config
        identity = context.identity
        root = context.runner_root
        token = context.token.value
        password = config.service_password

        args = _config_cmd(root) + [
            "--unattended",
            "--url",
            config.repo_url,
            "--token",
            token,
            "--name",
            identity.runner_name,
            "--labels",
            ",".join(identity.labels),
            "--work",
            WORK_FOLDER,
            "--runasservice",
            "--windowslogonaccount",
            identity.service_account,
        ]
        if password:
            args += ["--windowslogonpassword", password]

        result = self._runner.run(
            args, operation="configure_runner", cwd=root, secrets=[token, password]
        )
        output = redact(result.output, token, password)
        if output:
            logger.debug(output)
        if not result.ok:
            raise ConfigurationError(
                message=f"Configuring runner '{identity.runner_name}' failed:\n{output}",
                exit_code=result.returncode,
                output=output,
            )

        installation = AgentInstallation(
            root_path=root,
            state=InstallationState.SERVICE_INSTALLED,
            configured_name=identity.runner_name,
            registered_url=config.repo_url,
            service_name=context.service_query.service_name,
        )
        logger.info(
            f"Configured runner '{identity.runner_name}' for {context.repo.slug}"
        )
        return installation

    def register(
        self, context: ProvisionContext, broker: CredentialBroker
    ) -> AgentInstallation:
        """Run the full registration state machine for the context's runner.

        Args:
            context: Pipeline context holding the registration token
            broker: Used to mint a removal token when an existing
                configuration has to be unregistered first
        """
        installation = context.installation or self.detect(context.runner_root)

        if installation.is_configured:
            if not context.removal_confirmed:
                self.confirm_removal(installation)
                context.removal_confirmed = True
            remove_token = broker.fetch_operation_token(
                context.repo, scope=TokenScope.REMOVE
            )
            self.remove_existing(installation, remove_token)
            context.report.changed(
                f"removed previous runner configuration in {installation.root_path}"
            )

        for warning in self.check_collisions(context.repo, context.identity.runner_name):
            context.report.warn(warning)

        installation = self.configure(context)
        context.installation = installation
        context.report.changed(
            f"configured runner '{installation.configured_name}' as service "
            f"{installation.service_name}"
        )
        return installation


def _config_cmd(root: Path) -> list[str]:
    return ["cmd.exe", "/c", str(root / ENTRY_POINT)]


def _read_marker(marker: Path) -> dict[str, str]:
    try:
        data = json.loads(marker.read_text(encoding="utf-8-sig"))
    except (OSError, ValueError) as exc:
        logger.warning(f"Unreadable runner marker {marker}: {exc}")
        return {}
    return data if isinstance(data, dict) else {}
