"""CLI commands for deploying to IIS.

Implements the 'iisdeploy deploy' command group: the backup-and-swap
deploy itself plus backup maintenance and a verification-only status check.
"""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Any

import click

from iisdeploy.cli.errors import handle_pipeline_errors
from iisdeploy.config.defaults import DEFAULT_BACKUP_KEEP, DEFAULT_BACKUP_PATH
from iisdeploy.config.env_loader import load_dotenv_if_present
from iisdeploy.config.loader import ConfigLoader
from iisdeploy.deploy.backup import list_backups, prune_backups
from iisdeploy.deploy.builder import DotnetBuilder
from iisdeploy.deploy.copier import create_copier
from iisdeploy.deploy.state import (
    build_record,
    get_deployment_record,
    get_state_path,
    update_deployment_record,
)
from iisdeploy.deploy.swap import DeploymentSwapEngine
from iisdeploy.deploy.verify import VerificationReporter
from iisdeploy.lib.errors import ConfigError, DeploymentError, VerificationFailedError
from iisdeploy.lib.logging_config import get_logger, setup_logging
from iisdeploy.models.config import CopierKind, DeployConfig
from iisdeploy.models.deployment import DeployReport, DeployTarget
from iisdeploy.models.deployment_state import DeploymentRecord
from iisdeploy.platform import create_pool_manager

logger = get_logger(__name__)


def build_swap_engine(config: DeployConfig) -> DeploymentSwapEngine:
    """Wire the swap engine to IIS and the configured copy engine."""
    return DeploymentSwapEngine(
        create_pool_manager(),
        create_copier(config.copier, exclude=config.exclude),
        pool_stop_timeout=config.pool_stop_timeout,
    )


def build_verifier() -> VerificationReporter:
    """Create a verification reporter bound to IIS."""
    return VerificationReporter(create_pool_manager())


@click.group(name="deploy", invoke_without_command=True)
@click.pass_context
def deploy(ctx: click.Context) -> None:
    """Deploy a .NET application to IIS with backup and swap.

    Subcommands:

        run      Build, back up, swap and verify
        backups  List backup archives
        prune    Delete old backup archives
        status   Verify the live application

    Example:

        iisdeploy deploy run --config iisdeploy.yaml
    """
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@deploy.command()
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML configuration file (default: ./iisdeploy.yaml if present)",
)
@click.option("--project-path", default=None, help="Project file or directory")
@click.option("--app-pool", default=None, help="IIS app pool name")
@click.option("--deploy-path", default=None, help="Live site directory")
@click.option("--backup-prefix", default=None, help="Backup archive name prefix")
@click.option("--runner-label", default=None, help="Label of the deploying runner")
@click.option("--dotnet-version", default=None, help=".NET SDK version (e.g. 8.0.x)")
@click.option("--backup-keep", type=int, default=None, help="Backups to retain")
@click.option("--backup-dir", default=None, help="Backup archive directory")
@click.option(
    "--copier",
    type=click.Choice([kind.value for kind in CopierKind]),
    default=None,
    help="Copy engine (default: robocopy)",
)
@click.option(
    "--source",
    type=click.Path(file_okay=False),
    default=None,
    help="Already published output directory; skips the build",
)
@click.option(
    "--skip-build",
    is_flag=True,
    help="Do not run dotnet publish; requires --source",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be done without executing",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Also write a DEBUG log to this file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Suppress progress output")
def run(
    config_file: str | None,
    project_path: str | None,
    app_pool: str | None,
    deploy_path: str | None,
    backup_prefix: str | None,
    runner_label: str | None,
    dotnet_version: str | None,
    backup_keep: int | None,
    backup_dir: str | None,
    copier: str | None,
    source: str | None,
    skip_build: bool,
    dry_run: bool,
    log_file: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Build the project and swap it into the live site.

    Steps: build, back up the live directory, stop the app pool, mirror the
    new files in, start the pool, verify, prune old backups. Nothing is
    rolled back automatically; on failure the error names the backup.
    """
    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    with handle_pipeline_errors():
        load_dotenv_if_present()
        cli_values: dict[str, Any] = {
            "project_path": project_path,
            "app_pool": app_pool,
            "deploy_path": deploy_path,
            "backup_prefix": backup_prefix,
            "runner_label": runner_label,
            "dotnet_version": dotnet_version,
            "backup_keep": backup_keep,
            "backup_dir": backup_dir,
            "copier": copier,
        }
        config = ConfigLoader().load_deploy_config(cli_values, config_file=config_file)
        if skip_build and not source:
            raise ConfigError("source", "--skip-build requires --source")

        target = DeployTarget(
            app_pool_name=config.app_pool,
            deploy_path=Path(config.deploy_path),
            expected_artifact_name=config.expected_artifact_name,
        )
        backup_root = Path(config.backup_dir)

        if not quiet:
            _display_configuration(config, target)

        if dry_run:
            steps = [] if source else [f"dotnet publish {config.project_path}"]
            steps += [
                f"Back up {target.deploy_path} to {backup_root}",
                f"Stop app pool '{target.app_pool_name}'",
                f"Mirror new files into {target.deploy_path} ({config.copier.value})",
                f"Start app pool '{target.app_pool_name}'",
                f"Verify {target.artifact_path}",
                f"Keep newest {config.backup_keep} '{config.backup_prefix}' backups",
            ]
            click.secho("[DRY RUN] Would run:", fg="yellow")
            for index, step in enumerate(steps, start=1):
                click.echo(f"  {index}. {step}")
            click.secho("[DRY RUN] Nothing was changed", fg="yellow")
            return

        report = _run_deploy(config, target, backup_root, source, quiet)
        _display_report(report, quiet)


def _run_deploy(
    config: DeployConfig,
    target: DeployTarget,
    backup_root: Path,
    source: str | None,
    quiet: bool,
) -> DeployReport:
    """Build and swap, recording the outcome in the deployment history."""
    state_path = get_state_path(backup_root)
    engine: DeploymentSwapEngine | None = None
    staging: Path | None = None
    try:
        if source:
            publish_dir = Path(source)
        else:
            builder = DotnetBuilder()
            sdk = builder.check_sdk(config.dotnet_version)
            staging = Path(tempfile.mkdtemp(prefix="iisdeploy-publish-"))
            publish_dir = builder.publish(
                Path(config.project_path),
                staging,
                configuration=config.build_configuration,
                sdk_version=sdk,
            ).output_dir

        engine = build_swap_engine(config)
        report = engine.run(
            publish_dir,
            target,
            backup_root,
            config.backup_prefix,
            keep=config.backup_keep,
        )
    except DeploymentError as exc:
        partial = engine.last_report if engine else None
        record = build_record(
            partial, config.app_pool, target.deploy_path, config.runner_label, error=exc
        )
        _record(state_path, record)
        raise
    finally:
        if staging is not None:
            shutil.rmtree(staging, ignore_errors=True)

    _record(
        state_path,
        build_record(report, config.app_pool, target.deploy_path, config.runner_label),
    )
    if not quiet:
        for line in VerificationReporter.render(report.verification):
            click.echo(line)
    return report


def _record(state_path: Path, record: DeploymentRecord) -> None:
    try:
        update_deployment_record(state_path, record.app_pool, record)
    except DeploymentError as exc:
        # History is informational; the deploy outcome stands
        logger.warning(f"Could not update deployment history: {exc.message}")


@deploy.command()
@click.option(
    "--backup-dir",
    default=DEFAULT_BACKUP_PATH,
    show_default=True,
    help="Backup archive directory",
)
@click.option("--backup-prefix", required=True, help="Backup archive name prefix")
def backups(backup_dir: str, backup_prefix: str) -> None:
    """List backup archives, newest first."""
    archives = list_backups(Path(backup_dir), backup_prefix)
    if not archives:
        click.echo(f"No '{backup_prefix}' backups in {backup_dir}")
        return
    for archive in archives:
        size_kb = archive.path.stat().st_size / 1024
        click.echo(
            f"{archive.timestamp:%Y-%m-%d %H:%M:%S}  {size_kb:10.1f} KB  {archive.path.name}"
        )


@deploy.command()
@click.option(
    "--backup-dir",
    default=DEFAULT_BACKUP_PATH,
    show_default=True,
    help="Backup archive directory",
)
@click.option("--backup-prefix", required=True, help="Backup archive name prefix")
@click.option(
    "--keep",
    type=click.IntRange(min=1),
    default=DEFAULT_BACKUP_KEEP,
    show_default=True,
    help="Newest archives to retain",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
def prune(backup_dir: str, backup_prefix: str, keep: int, verbose: bool) -> None:
    """Delete all but the newest backup archives."""
    setup_logging(verbose=verbose)

    with handle_pipeline_errors():
        removed = prune_backups(Path(backup_dir), backup_prefix, keep)
        for archive in removed:
            click.echo(f"Deleted {archive.path.name}")
        click.echo(f"Removed {len(removed)} archive(s); kept newest {keep}")


@deploy.command()
@click.option("--app-pool", required=True, help="IIS app pool name")
@click.option("--deploy-path", required=True, help="Live site directory")
@click.option("--artifact", required=True, help="Primary output file (e.g. Shop.dll)")
@click.option(
    "--backup-dir",
    default=None,
    help="Backup directory holding the deployment history",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Suppress progress output")
def status(
    app_pool: str,
    deploy_path: str,
    artifact: str,
    backup_dir: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Verify the live application without changing anything."""
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_pipeline_errors():
        target = DeployTarget(
            app_pool_name=app_pool,
            deploy_path=Path(deploy_path),
            expected_artifact_name=artifact,
        )
        report = build_verifier().verify(target)

        if backup_dir:
            record = get_deployment_record(get_state_path(Path(backup_dir)), app_pool)
            if record is not None and not quiet:
                click.secho("Last deployment", bold=True)
                click.echo(f"  Status:    {record.status}")
                if record.failed_step:
                    click.echo(f"  Failed at: {record.failed_step}")
                if record.backup_path:
                    click.echo(f"  Backup:    {record.backup_path}")
                if record.updated_at:
                    click.echo(f"  Updated:   {record.updated_at.isoformat()}")
                click.echo()

        if not quiet:
            for line in VerificationReporter.render(report):
                click.echo(line)
        if not report.passed:
            raise VerificationFailedError(report.failures)


def _display_configuration(config: DeployConfig, target: DeployTarget) -> None:
    click.echo()
    click.secho("Deploy Configuration:", bold=True)
    click.echo(f"  Project:   {config.project_path}")
    click.echo(f"  App pool:  {target.app_pool_name}")
    click.echo(f"  Target:    {target.deploy_path}")
    click.echo(f"  Artifact:  {target.expected_artifact_name}")
    click.echo(f"  Backups:   {config.backup_dir} ({config.backup_prefix}, keep {config.backup_keep})")
    click.echo(f"  Runner:    {config.runner_label}")
    click.echo()


def _display_report(report: DeployReport, quiet: bool) -> None:
    if quiet:
        return
    click.echo()
    if report.backup:
        click.echo(f"  Backup:    {report.backup.path}")
    else:
        click.echo("  Backup:    none (first deploy)")
    click.echo(f"  Copy exit: {report.copy_exit_code}")
    if report.pruned:
        click.echo(f"  Pruned:    {', '.join(a.path.name for a in report.pruned)}")
    click.secho("Deployment succeeded", fg="green", bold=True)
