"""Unit tests for the 'iisdeploy deploy' command group.

Tests cover:
- run: dry run, source handling, build, history recording, failure exit codes
- backups and prune: archive listing and retention
- status: verification-only check
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner, Result

from iisdeploy.cli.commands.deploy import deploy
from iisdeploy.deploy.builder import PublishResult
from iisdeploy.deploy.state import (
    STATUS_FAILED,
    STATUS_SUCCEEDED,
    get_deployment_record,
    get_state_path,
)
from iisdeploy.deploy.verify import VerificationReporter
from iisdeploy.lib.errors import BuildError, VerificationFailedError
from iisdeploy.models.deployment import (
    BackupArchive,
    CheckResult,
    DeployReport,
    DeployTarget,
    PoolState,
    VerificationReport,
)


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> dict[str, Path]:
    """Working directory, live site, backup directory and a publish folder."""
    monkeypatch.chdir(tmp_path)
    publish = tmp_path / "publish"
    publish.mkdir()
    (publish / "Shop.Web.dll").write_bytes(b"MZ")
    return {
        "site": tmp_path / "site",
        "backups": tmp_path / "backups",
        "publish": publish,
    }


def _args(paths: dict[str, Path], *extra: str) -> list[str]:
    return [
        "run",
        "--project-path",
        "src/Shop.Web/Shop.Web.csproj",
        "--app-pool",
        "Shop",
        "--deploy-path",
        str(paths["site"]),
        "--backup-prefix",
        "shop",
        "--runner-label",
        "shop-prod",
        "--backup-dir",
        str(paths["backups"]),
        *extra,
    ]


def _passing_report(paths: dict[str, Path]) -> DeployReport:
    target = DeployTarget("Shop", paths["site"], "Shop.Web.dll")
    backup = BackupArchive.parse(paths["backups"] / "shop_20240501_143005.zip", "shop")
    return DeployReport(
        target=target,
        backup=backup,
        copy_exit_code=1,
        verification=VerificationReport(
            checks=[CheckResult("app_pool", True, "App pool 'Shop' is Started")]
        ),
        steps=["backup", "stop_pool", "copy_files", "start_pool", "verify"],
    )


@pytest.fixture
def mock_engine() -> Generator[MagicMock, None, None]:
    """Patch swap engine construction."""
    engine = MagicMock()
    engine.last_report = None
    with patch(
        "iisdeploy.cli.commands.deploy.build_swap_engine", return_value=engine
    ) as build:
        engine.build = build
        yield engine


@pytest.mark.unit
class TestRunCommand:
    """Tests for 'deploy run'."""

    def test_dry_run_with_source(
        self, runner: CliRunner, paths: dict[str, Path], mock_engine: MagicMock
    ) -> None:
        result = runner.invoke(
            deploy, _args(paths, "--source", str(paths["publish"]), "--dry-run")
        )

        assert result.exit_code == 0, result.output
        assert "dotnet publish" not in result.output
        assert "1. Back up" in result.output
        assert "6. Keep newest 5 'shop' backups" in result.output
        assert "Shop.Web.dll" in result.output
        mock_engine.build.assert_not_called()

    def test_skip_build_requires_source(
        self, runner: CliRunner, paths: dict[str, Path], mock_engine: MagicMock
    ) -> None:
        result = runner.invoke(deploy, _args(paths, "--skip-build"))

        assert result.exit_code == 2
        assert "--skip-build requires --source" in result.output

    def test_missing_required_values(
        self, runner: CliRunner, paths: dict[str, Path], mock_engine: MagicMock
    ) -> None:
        result = runner.invoke(deploy, ["run", "--app-pool", "Shop"])

        assert result.exit_code == 2
        assert "backup_prefix" in result.output

    def test_prebuilt_source_deploys_and_records(
        self, runner: CliRunner, paths: dict[str, Path], mock_engine: MagicMock
    ) -> None:
        mock_engine.run.return_value = _passing_report(paths)

        with patch("iisdeploy.cli.commands.deploy.DotnetBuilder") as builder_cls:
            result = runner.invoke(deploy, _args(paths, "--source", str(paths["publish"])))

        assert result.exit_code == 0, result.output
        builder_cls.assert_not_called()
        assert mock_engine.run.call_args.args[0] == paths["publish"]
        assert mock_engine.run.call_args.kwargs["keep"] == 5
        assert "Deployment succeeded" in result.output
        assert "shop_20240501_143005.zip" in result.output
        record = get_deployment_record(get_state_path(paths["backups"]), "Shop")
        assert record is not None
        assert record.status == STATUS_SUCCEEDED
        assert record.runner_label == "shop-prod"

    def test_build_then_swap(
        self, runner: CliRunner, paths: dict[str, Path], mock_engine: MagicMock
    ) -> None:
        mock_engine.run.return_value = _passing_report(paths)
        staged: list[Path] = []

        def publish(project, output_dir, configuration, sdk_version):
            staged.append(output_dir)
            (output_dir / "Shop.Web.dll").write_bytes(b"MZ")
            return PublishResult(project, output_dir, sdk_version)

        with patch("iisdeploy.cli.commands.deploy.DotnetBuilder") as builder_cls:
            builder = builder_cls.return_value
            builder.check_sdk.return_value = "8.0.404"
            builder.publish.side_effect = publish
            result = runner.invoke(deploy, _args(paths, "--dotnet-version", "8.0.x"))

        assert result.exit_code == 0, result.output
        builder.check_sdk.assert_called_once_with("8.0.x")
        assert builder.publish.call_args.args[0] == Path("src/Shop.Web/Shop.Web.csproj")
        assert mock_engine.run.call_args.args[0] == staged[0]
        assert not staged[0].exists()

    def test_build_failure_leaves_site_untouched(
        self, runner: CliRunner, paths: dict[str, Path], mock_engine: MagicMock
    ) -> None:
        with patch("iisdeploy.cli.commands.deploy.DotnetBuilder") as builder_cls:
            builder_cls.return_value.check_sdk.side_effect = BuildError(
                ".NET SDK 8.0.x is not installed (found: 6.0.428)"
            )
            result = runner.invoke(deploy, _args(paths))

        assert result.exit_code == 3
        assert "Error: build failed" in result.output
        mock_engine.build.assert_not_called()
        record = get_deployment_record(get_state_path(paths["backups"]), "Shop")
        assert record.status == STATUS_FAILED
        assert record.failed_step == "build"

    def test_verification_failure_names_backup(
        self, runner: CliRunner, paths: dict[str, Path], mock_engine: MagicMock
    ) -> None:
        backup = paths["backups"] / "shop_20240501_143005.zip"
        mock_engine.last_report = _passing_report(paths)
        mock_engine.run.side_effect = VerificationFailedError(
            [f"{paths['site'] / 'Shop.Web.dll'} is missing"], backup
        )

        result = runner.invoke(deploy, _args(paths, "--source", str(paths["publish"])))

        assert result.exit_code == 3
        assert "Error: verify failed" in result.output
        assert f"Restore manually from {backup}" in result.output
        record = get_deployment_record(get_state_path(paths["backups"]), "Shop")
        assert record.status == STATUS_FAILED
        assert record.failed_step == "verify"
        assert record.backup_path == str(backup)


@pytest.mark.unit
class TestBackupCommands:
    """Tests for 'deploy backups' and 'deploy prune'."""

    def _seed(self, backups: Path, count: int) -> None:
        backups.mkdir(parents=True, exist_ok=True)
        for day in range(1, count + 1):
            (backups / f"shop_202405{day:02d}_120000.zip").write_bytes(b"PK")

    def test_list(self, runner: CliRunner, paths: dict[str, Path]) -> None:
        self._seed(paths["backups"], 2)

        result = runner.invoke(
            deploy,
            ["backups", "--backup-dir", str(paths["backups"]), "--backup-prefix", "shop"],
        )

        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert lines[0].endswith("shop_20240502_120000.zip")
        assert lines[1].endswith("shop_20240501_120000.zip")

    def test_list_empty(self, runner: CliRunner, paths: dict[str, Path]) -> None:
        result = runner.invoke(
            deploy,
            ["backups", "--backup-dir", str(paths["backups"]), "--backup-prefix", "shop"],
        )

        assert result.exit_code == 0
        assert "No 'shop' backups" in result.output

    def test_prune(self, runner: CliRunner, paths: dict[str, Path]) -> None:
        self._seed(paths["backups"], 4)

        result = runner.invoke(
            deploy,
            [
                "prune",
                "--backup-dir",
                str(paths["backups"]),
                "--backup-prefix",
                "shop",
                "--keep",
                "2",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Deleted shop_20240501_120000.zip" in result.output
        assert "Removed 2 archive(s); kept newest 2" in result.output
        assert len(list(paths["backups"].iterdir())) == 2

    def test_prune_rejects_zero(self, runner: CliRunner, paths: dict[str, Path]) -> None:
        result = runner.invoke(
            deploy,
            [
                "prune",
                "--backup-dir",
                str(paths["backups"]),
                "--backup-prefix",
                "shop",
                "--keep",
                "0",
            ],
        )

        assert result.exit_code == 2


@pytest.mark.unit
class TestStatusCommand:
    """Tests for 'deploy status'."""

    def _invoke(self, runner: CliRunner, site: Path, fake_pools) -> Result:
        with patch(
            "iisdeploy.cli.commands.deploy.build_verifier",
            return_value=VerificationReporter(fake_pools),
        ):
            return runner.invoke(
                deploy,
                [
                    "status",
                    "--app-pool",
                    "Shop",
                    "--deploy-path",
                    str(site),
                    "--artifact",
                    "Shop.Web.dll",
                ],
            )

    def test_healthy(self, runner: CliRunner, paths: dict[str, Path], fake_pools) -> None:
        paths["site"].mkdir()
        (paths["site"] / "Shop.Web.dll").write_bytes(b"MZ")

        result = self._invoke(runner, paths["site"], fake_pools)

        assert result.exit_code == 0, result.output
        assert "Verification passed" in result.output

    def test_stopped_pool_fails(
        self, runner: CliRunner, paths: dict[str, Path], fake_pools
    ) -> None:
        paths["site"].mkdir()
        (paths["site"] / "Shop.Web.dll").write_bytes(b"MZ")
        fake_pools.pools["Shop"] = PoolState.STOPPED

        result = self._invoke(runner, paths["site"], fake_pools)

        assert result.exit_code == 3
        assert "FAIL  App pool 'Shop' is Stopped" in result.output
