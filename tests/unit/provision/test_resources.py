"""Tests for idempotent resource provisioning."""

from pathlib import Path

import pytest

from iisdeploy.lib.errors import ProvisioningError
from iisdeploy.models.provision import EnsureResult, GrantResult, MembershipResult
from iisdeploy.provision.resources import ResourceProvisioner


@pytest.mark.unit
class TestEnsureDirectory:
    """Tests for ResourceProvisioner.ensure_directory()."""

    def test_creates_then_reports_noop(self, fake_host, tmp_path: Path) -> None:
        provisioner = ResourceProvisioner(fake_host, confirm=lambda _: True)
        target = tmp_path / "runner" / "Proj"

        assert provisioner.ensure_directory(target) == EnsureResult.CREATED
        assert provisioner.ensure_directory(target) == EnsureResult.ALREADY_EXISTS
        assert target.is_dir()

    def test_file_in_the_way(self, fake_host, tmp_path: Path) -> None:
        blocker = tmp_path / "runner"
        blocker.write_text("x")
        provisioner = ResourceProvisioner(fake_host, confirm=lambda _: True)

        with pytest.raises(ProvisioningError, match="not a directory"):
            provisioner.ensure_directory(blocker)


@pytest.mark.unit
class TestEnsureGroupMembership:
    """Tests for ResourceProvisioner.ensure_group_membership()."""

    def test_adds_after_confirmation_then_noop(self, fake_host) -> None:
        prompts: list[str] = []

        def confirm(prompt: str) -> bool:
            prompts.append(prompt)
            return True

        provisioner = ResourceProvisioner(fake_host, confirm)

        first = provisioner.ensure_group_membership("svc-runner", "Administrators")
        second = provisioner.ensure_group_membership("svc-runner", "Administrators")

        assert first.result == MembershipResult.ADDED
        assert second.result == MembershipResult.ALREADY_MEMBER
        assert len(prompts) == 1
        assert fake_host.added == [("svc-runner", "Administrators")]

    def test_declined_is_skipped_with_reason(self, fake_host) -> None:
        provisioner = ResourceProvisioner(fake_host, confirm=lambda _: False)

        outcome = provisioner.ensure_group_membership("svc-runner", "Administrators")

        assert outcome.result == MembershipResult.SKIPPED
        assert "declined" in (outcome.reason or "")
        assert fake_host.added == []


@pytest.mark.unit
class TestGrantFullControl:
    """Tests for ResourceProvisioner.grant_full_control()."""

    def test_grant_is_idempotent(self, fake_host) -> None:
        provisioner = ResourceProvisioner(fake_host, confirm=lambda _: True)
        path = Path("C:/deploy-backups")

        assert provisioner.grant_full_control("svc", path) == GrantResult.GRANTED
        assert provisioner.grant_full_control("svc", path) == GrantResult.ALREADY_GRANTED
        assert fake_host.granted == [("svc", path)]
