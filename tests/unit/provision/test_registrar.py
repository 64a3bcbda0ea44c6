"""Tests for runner registration (AgentRegistrar)."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from iisdeploy.lib.errors import (
    ConfigurationError,
    GitHubAPIError,
    InsufficientScopeError,
    InvalidCredentialError,
    OperatorCancelled,
    ResourceNotFoundError,
)
from iisdeploy.models.config import ProvisionConfig
from iisdeploy.models.provision import (
    AgentInstallation,
    InstallationState,
    ProvisionContext,
    RegistrationToken,
    TokenScope,
)
from iisdeploy.platform.process import CommandResult
from iisdeploy.provision.registrar import AgentRegistrar


def _context(root: Path, **overrides: str) -> ProvisionContext:
    values = {
        "repo_url": "https://github.com/Org/Proj",
        "service_account": "NT AUTHORITY\\NETWORK SERVICE",
        "app_pool": "Shop",
        "deploy_path": str(root.parent / "site"),
        "runner_name": "Server01",
        "runner_root": str(root),
    }
    values.update(overrides)
    return ProvisionContext.from_config(ProvisionConfig(**values), hostname="Server01")


def _write_marker(root: Path, name: str = "OldRunner") -> None:
    root.mkdir(parents=True, exist_ok=True)
    (root / "config.cmd").write_text("@echo config")
    marker = {"agentName": name, "gitHubUrl": "https://github.com/Org/Proj"}
    # config.cmd writes the marker with a byte order mark
    (root / ".runner").write_text(json.dumps(marker), encoding="utf-8-sig")


@pytest.mark.unit
class TestDetect:
    """Tests for AgentRegistrar.detect()."""

    def test_absent(self, tmp_path: Path, fake_runner) -> None:
        registrar = AgentRegistrar(MagicMock(), lambda _: True, fake_runner)

        installation = registrar.detect(tmp_path / "Proj")

        assert installation.state == InstallationState.ABSENT
        assert not installation.is_configured

    def test_extracted(self, tmp_path: Path, fake_runner) -> None:
        (tmp_path / "config.cmd").write_text("@echo config")
        registrar = AgentRegistrar(MagicMock(), lambda _: True, fake_runner)

        assert registrar.detect(tmp_path).state == InstallationState.EXTRACTED

    def test_configured_reads_marker_with_bom(self, tmp_path: Path, fake_runner) -> None:
        _write_marker(tmp_path)
        registrar = AgentRegistrar(MagicMock(), lambda _: True, fake_runner)

        installation = registrar.detect(tmp_path)

        assert installation.is_configured
        assert installation.configured_name == "OldRunner"
        assert installation.registered_url == "https://github.com/Org/Proj"

    def test_unreadable_marker_still_counts_as_configured(
        self, tmp_path: Path, fake_runner
    ) -> None:
        (tmp_path / ".runner").write_text("{not json")
        registrar = AgentRegistrar(MagicMock(), lambda _: True, fake_runner)

        installation = registrar.detect(tmp_path)

        assert installation.is_configured
        assert installation.configured_name is None


@pytest.mark.unit
class TestConfirmRemoval:
    """Tests for AgentRegistrar.confirm_removal()."""

    def test_declined_raises_cancelled(self, tmp_path: Path, fake_runner) -> None:
        prompts: list[str] = []

        def decline(prompt: str) -> bool:
            prompts.append(prompt)
            return False

        _write_marker(tmp_path)
        registrar = AgentRegistrar(MagicMock(), decline, fake_runner)
        installation = registrar.detect(tmp_path)

        with pytest.raises(OperatorCancelled, match="nothing was changed"):
            registrar.confirm_removal(installation)

        assert "OldRunner" in prompts[0]
        assert "https://github.com/Org/Proj" in prompts[0]
        assert fake_runner.calls == []
        assert (tmp_path / ".runner").exists()

    def test_approved_returns(self, tmp_path: Path, fake_runner) -> None:
        _write_marker(tmp_path)
        registrar = AgentRegistrar(MagicMock(), lambda _: True, fake_runner)

        registrar.confirm_removal(registrar.detect(tmp_path))


@pytest.mark.unit
class TestRemoveExisting:
    """Tests for AgentRegistrar.remove_existing()."""

    def test_runs_remove_with_redacted_token(self, tmp_path: Path, fake_runner) -> None:
        installation = AgentInstallation(
            root_path=tmp_path,
            state=InstallationState.CONFIGURED,
            configured_name="OldRunner",
        )
        registrar = AgentRegistrar(MagicMock(), lambda _: True, fake_runner)

        registrar.remove_existing(installation, RegistrationToken(value="RMTOKEN"))

        call = fake_runner.calls[0]
        assert call["args"][-3:] == ["remove", "--token", "RMTOKEN"]
        assert call["secrets"] == ["RMTOKEN"]
        assert call["cwd"] == tmp_path
        assert installation.state == InstallationState.EXTRACTED
        assert installation.configured_name is None

    def test_failure_does_not_leak_token(self, tmp_path: Path, fake_runner) -> None:
        fake_runner.responses["cmd.exe"] = CommandResult(
            [], 1, stdout="bad token RMTOKEN"
        )
        installation = AgentInstallation(
            root_path=tmp_path, state=InstallationState.CONFIGURED
        )
        registrar = AgentRegistrar(MagicMock(), lambda _: True, fake_runner)

        with pytest.raises(ConfigurationError) as exc_info:
            registrar.remove_existing(installation, RegistrationToken(value="RMTOKEN"))

        assert "RMTOKEN" not in str(exc_info.value)
        assert exc_info.value.operation == "remove_runner"


@pytest.mark.unit
class TestCheckCollisions:
    """Tests for AgentRegistrar.check_collisions()."""

    def test_same_name_warns(self, tmp_path: Path, fake_runner) -> None:
        client = MagicMock()
        client.list_runners.return_value = [
            {"id": 7, "name": "server01", "status": "offline"},
            {"id": 8, "name": "Server02", "status": "online"},
        ]
        registrar = AgentRegistrar(client, lambda _: True, fake_runner)
        context = _context(tmp_path)

        warnings = registrar.check_collisions(context.repo, "Server01")

        assert len(warnings) == 1
        assert "id 7" in warnings[0]
        assert "will not be replaced" in warnings[0]

    def test_auth_failure_is_fatal(self, tmp_path: Path, fake_runner) -> None:
        client = MagicMock()
        client.list_runners.side_effect = GitHubAPIError("https://api/x", 401)
        registrar = AgentRegistrar(client, lambda _: True, fake_runner)

        with pytest.raises(InvalidCredentialError):
            registrar.check_collisions(_context(tmp_path).repo, "Server01")

    @pytest.mark.parametrize(
        "status, error_type",
        [(403, InsufficientScopeError), (404, ResourceNotFoundError)],
    )
    def test_failure_names_collision_step(
        self, tmp_path: Path, fake_runner, status: int, error_type: type
    ) -> None:
        client = MagicMock()
        client.list_runners.side_effect = GitHubAPIError("https://api/x", status)
        registrar = AgentRegistrar(client, lambda _: True, fake_runner)

        with pytest.raises(error_type) as exc_info:
            registrar.check_collisions(_context(tmp_path).repo, "Server01")

        assert exc_info.value.operation == "check_collisions"
        assert str(exc_info.value).startswith("check_collisions failed")


@pytest.mark.unit
class TestConfigure:
    """Tests for AgentRegistrar.configure()."""

    def test_unattended_arguments(self, tmp_path: Path, fake_runner) -> None:
        context = _context(
            tmp_path, runner_labels="web,prod", service_password="S3cret!"
        )
        context.token = RegistrationToken(value="REGTOKEN")
        registrar = AgentRegistrar(MagicMock(), lambda _: True, fake_runner)

        installation = registrar.configure(context)

        args = fake_runner.calls[0]["args"]
        assert args[:3] == ["cmd.exe", "/c", str(tmp_path / "config.cmd")]
        assert "--unattended" in args
        assert "--runasservice" in args
        assert "--replace" not in args
        assert args[args.index("--labels") + 1] == "web,prod"
        assert args[args.index("--name") + 1] == "Server01"
        assert args[args.index("--windowslogonpassword") + 1] == "S3cret!"
        assert fake_runner.calls[0]["secrets"] == ["REGTOKEN", "S3cret!"]
        assert installation.state == InstallationState.SERVICE_INSTALLED
        assert installation.service_name == "actions.runner.Org-Proj.Server01"

    def test_url_registered_without_git_suffix(
        self, tmp_path: Path, fake_runner
    ) -> None:
        context = _context(tmp_path, repo_url="https://github.com/Org/Proj.git/")
        context.token = RegistrationToken(value="REGTOKEN")
        registrar = AgentRegistrar(MagicMock(), lambda _: True, fake_runner)

        installation = registrar.configure(context)

        args = fake_runner.calls[0]["args"]
        assert args[args.index("--url") + 1] == "https://github.com/Org/Proj"
        assert installation.registered_url == "https://github.com/Org/Proj"
        assert installation.service_name == "actions.runner.Org-Proj.Server01"

    def test_omits_password_when_not_given(self, tmp_path: Path, fake_runner) -> None:
        context = _context(tmp_path)
        context.token = RegistrationToken(value="REGTOKEN")

        AgentRegistrar(MagicMock(), lambda _: True, fake_runner).configure(context)

        assert "--windowslogonpassword" not in fake_runner.calls[0]["args"]

    def test_failure_is_redacted(self, tmp_path: Path, fake_runner) -> None:
        fake_runner.responses["cmd.exe"] = CommandResult(
            [], 2, stderr="A runner exists with the same name (REGTOKEN)"
        )
        context = _context(tmp_path)
        context.token = RegistrationToken(value="REGTOKEN")
        registrar = AgentRegistrar(MagicMock(), lambda _: True, fake_runner)

        with pytest.raises(ConfigurationError) as exc_info:
            registrar.configure(context)

        assert exc_info.value.exit_code == 2
        assert "REGTOKEN" not in str(exc_info.value)
        assert "same name" in exc_info.value.output

    def test_requires_token(self, tmp_path: Path, fake_runner) -> None:
        registrar = AgentRegistrar(MagicMock(), lambda _: True, fake_runner)

        with pytest.raises(ConfigurationError, match="No registration token"):
            registrar.configure(_context(tmp_path))

        assert fake_runner.calls == []


@pytest.mark.unit
class TestRegister:
    """Tests for AgentRegistrar.register()."""

    def test_fresh_install(self, tmp_path: Path, fake_runner) -> None:
        client = MagicMock()
        client.list_runners.return_value = []
        broker = MagicMock()
        context = _context(tmp_path)
        context.token = RegistrationToken(value="REGTOKEN")

        AgentRegistrar(client, lambda _: True, fake_runner).register(context, broker)

        broker.fetch_operation_token.assert_not_called()
        assert len(fake_runner.calls) == 1
        assert context.installation.state == InstallationState.SERVICE_INSTALLED
        assert any("configured runner" in c for c in context.report.changes)

    def test_existing_config_removed_with_remove_token(
        self, tmp_path: Path, fake_runner
    ) -> None:
        _write_marker(tmp_path)
        client = MagicMock()
        client.list_runners.return_value = []
        broker = MagicMock()
        broker.fetch_operation_token.return_value = RegistrationToken(value="RMTOKEN")
        context = _context(tmp_path)
        context.token = RegistrationToken(value="REGTOKEN")
        registrar = AgentRegistrar(client, lambda _: True, fake_runner)
        context.installation = registrar.detect(tmp_path)
        context.removal_confirmed = True

        registrar.register(context, broker)

        broker.fetch_operation_token.assert_called_once_with(
            context.repo, scope=TokenScope.REMOVE
        )
        assert "remove" in fake_runner.calls[0]["args"]
        assert "--unattended" in fake_runner.calls[1]["args"]

    def test_collision_is_reported_as_warning(self, tmp_path: Path, fake_runner) -> None:
        client = MagicMock()
        client.list_runners.return_value = [{"id": 1, "name": "Server01"}]
        context = _context(tmp_path)
        context.token = RegistrationToken(value="REGTOKEN")

        AgentRegistrar(client, lambda _: True, fake_runner).register(context, MagicMock())

        assert len(context.report.warnings) == 1
