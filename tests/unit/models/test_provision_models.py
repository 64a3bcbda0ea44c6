"""Tests for provisioning models."""

from pathlib import Path

import pytest

from iisdeploy.models.config import ProvisionConfig
from iisdeploy.models.provision import (
    AgentInstallation,
    InstallationState,
    ProvisionContext,
    RegistrationToken,
    ServiceHandle,
    ServiceQuery,
)


@pytest.mark.unit
class TestServiceQuery:
    """Tests for the typed service lookup."""

    def test_service_name_format(self) -> None:
        query = ServiceQuery(owner="Org", repo="Proj", runner_name="Server01")

        assert query.service_name == "actions.runner.Org-Proj.Server01"

    def test_sibling_pattern_matches_all_runners(self) -> None:
        query = ServiceQuery(owner="Org", repo="Proj", runner_name="Server01")

        assert query.sibling_pattern == "actions.runner.*"


@pytest.mark.unit
class TestRegistrationToken:
    """Tests for token secrecy."""

    def test_value_not_in_repr_or_str(self) -> None:
        token = RegistrationToken(value="AABBCCDDEEFF")

        assert "AABBCCDDEEFF" not in repr(token)
        assert "AABBCCDDEEFF" not in str(token)


@pytest.mark.unit
class TestAgentInstallation:
    """Tests for installation state helpers."""

    def test_is_configured(self) -> None:
        root = Path("runner")

        assert not AgentInstallation(root).is_configured
        assert not AgentInstallation(root, InstallationState.EXTRACTED).is_configured
        assert AgentInstallation(root, InstallationState.CONFIGURED).is_configured
        assert AgentInstallation(root, InstallationState.RUNNING).is_configured


@pytest.mark.unit
class TestServiceHandle:
    """Tests for ServiceHandle.is_running."""

    def test_running_is_case_insensitive(self) -> None:
        assert ServiceHandle("svc", "Running").is_running
        assert ServiceHandle("svc", "running").is_running
        assert not ServiceHandle("svc", "Stopped").is_running


@pytest.mark.unit
class TestProvisionContext:
    """Tests for ProvisionContext.from_config()."""

    def test_resolves_identity_and_paths(self) -> None:
        config = ProvisionConfig(
            repo_url="https://github.com/Org/Proj",
            service_account="svc-runner",
            app_pool="Shop",
            deploy_path="site",
            runner_name="Server01",
            runner_labels="iis,prod",
            runner_root="runners/Proj",
        )

        context = ProvisionContext.from_config(config, hostname="SERVER01")

        assert context.identity.runner_name == "Server01"
        assert context.identity.labels == ("iis", "prod")
        assert context.runner_root == Path("runners/Proj")
        assert context.download_dir == Path("runners")
        assert context.token is None
        assert context.service_query.service_name == "actions.runner.Org-Proj.Server01"
