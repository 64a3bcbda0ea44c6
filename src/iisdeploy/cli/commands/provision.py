"""CLI command for provisioning a self-hosted runner.

Implements 'iisdeploy provision': install, register and start one runner
service on this server. Safe to re-run; every step checks before it acts.
"""

from __future__ import annotations

from typing import Any

import click

from iisdeploy.cli.errors import handle_pipeline_errors
from iisdeploy.config.defaults import default_runner_name
from iisdeploy.config.env_loader import load_dotenv_if_present
from iisdeploy.config.loader import ConfigLoader, resolve_token
from iisdeploy.github.client import GitHubClient
from iisdeploy.lib.confirm import Confirm, select_confirm
from iisdeploy.lib.logging_config import get_logger, setup_logging
from iisdeploy.models.config import ProvisionConfig
from iisdeploy.models.provision import ProvisionContext, ProvisionReport
from iisdeploy.platform import create_host, create_pool_manager, create_service_control
from iisdeploy.provision import (
    AgentRegistrar,
    ArtifactInstaller,
    CredentialBroker,
    ProvisionPipeline,
    ResourceProvisioner,
    ServiceLifecycleManager,
)

logger = get_logger(__name__)


def build_provision_pipeline(
    config: ProvisionConfig, client: GitHubClient, confirm: Confirm
) -> ProvisionPipeline:
    """Wire the provisioning components to the real host."""
    return ProvisionPipeline(
        broker=CredentialBroker(client),
        provisioner=ResourceProvisioner(create_host(), confirm),
        installer=ArtifactInstaller(),
        registrar=AgentRegistrar(client, confirm),
        services=ServiceLifecycleManager(
            create_service_control(), settle_seconds=config.service_settle_seconds
        ),
        pools=create_pool_manager(),
    )


@click.command()
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML configuration file (default: ./iisdeploy.yaml if present)",
)
@click.option("--repo-url", default=None, help="Repository URL the runner serves")
@click.option(
    "--service-account", default=None, help="Windows account the service runs as"
)
@click.option("--app-pool", default=None, help="IIS app pool the runner deploys to")
@click.option("--deploy-path", default=None, help="Live site directory")
@click.option("--runner-name", default=None, help="Runner name (default: hostname)")
@click.option(
    "--runner-labels", default=None, help="Comma-separated labels (default: name)"
)
@click.option("--runner-version", default=None, help="Runner release to install")
@click.option(
    "--runner-hash", default=None, help="Expected SHA-256 of the runner archive"
)
@click.option("--runner-root", default=None, help="Runner install directory")
@click.option("--backup-path", default=None, help="Deploy backup directory")
@click.option(
    "--service-password",
    default=None,
    help="Service account password (prefer IISDEPLOY_SERVICE_PASSWORD)",
)
@click.option(
    "--token-env",
    default=None,
    help="Environment variable holding the GitHub token (default: GITHUB_TOKEN)",
)
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Approve all prompts")
@click.option(
    "--interactive",
    is_flag=True,
    help="Prompt for missing values and for confirmations",
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
def provision(
    config_file: str | None,
    repo_url: str | None,
    service_account: str | None,
    app_pool: str | None,
    deploy_path: str | None,
    runner_name: str | None,
    runner_labels: str | None,
    runner_version: str | None,
    runner_hash: str | None,
    runner_root: str | None,
    backup_path: str | None,
    service_password: str | None,
    token_env: str | None,
    assume_yes: bool,
    interactive: bool,
    dry_run: bool,
    log_file: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Install, register and start a self-hosted runner service.

    Re-running is safe: existing directories, memberships, permissions and
    downloads are detected and left alone. An existing runner configuration
    is only removed after confirmation.

    Example:

        iisdeploy provision --repo-url https://github.com/org/shop \\
            --service-account "NT AUTHORITY\\NETWORK SERVICE" \\
            --app-pool Shop --deploy-path C:\\inetpub\\shop --yes
    """
    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    with handle_pipeline_errors():
        load_dotenv_if_present()
        cli_values: dict[str, Any] = {
            "repo_url": repo_url,
            "service_account": service_account,
            "app_pool": app_pool,
            "deploy_path": deploy_path,
            "runner_name": runner_name,
            "runner_labels": runner_labels,
            "runner_version": runner_version,
            "runner_hash": runner_hash,
            "runner_root": runner_root,
            "backup_path": backup_path,
            "service_password": service_password,
            "token_env": token_env,
        }
        config = ConfigLoader().load_provision_config(
            cli_values, config_file=config_file, interactive=interactive
        )
        context = ProvisionContext.from_config(config, hostname=default_runner_name())

        if not quiet:
            _display_configuration(context)

        if dry_run:
            click.secho("[DRY RUN] Would run:", fg="yellow")
            for index, step in enumerate(ProvisionPipeline.plan(context), start=1):
                click.echo(f"  {index}. {step}")
            click.secho("[DRY RUN] Nothing was changed", fg="yellow")
            return

        token = resolve_token(config.token_env, interactive=interactive)
        client = GitHubClient(token, config.github_api_url)
        pipeline = build_provision_pipeline(
            config, client, select_confirm(assume_yes, interactive)
        )
        report = pipeline.run(context)

        _display_report(report, context, quiet)


def _display_configuration(context: ProvisionContext) -> None:
    config = context.config
    click.echo()
    click.secho("Provisioning:", bold=True)
    click.echo(f"  Repository:  {context.repo.slug}")
    click.echo(f"  Runner:      {context.identity.runner_name}")
    click.echo(f"  Labels:      {', '.join(context.identity.labels)}")
    click.echo(f"  Version:     {config.runner_version}")
    click.echo(f"  Directory:   {context.runner_root}")
    click.echo(f"  Account:     {config.service_account}")
    click.echo(f"  App pool:    {config.app_pool}")
    click.echo()


def _display_report(
    report: ProvisionReport, context: ProvisionContext, quiet: bool
) -> None:
    for warning in report.warnings:
        click.secho(f"Warning: {warning}", fg="yellow", err=True)
    if quiet:
        return

    for change in report.changes:
        click.secho(f"  + {change}", fg="green")
    for item in report.unchanged:
        click.echo(f"  = {item}")
    click.echo()
    service = context.service.name if context.service else "?"
    if report.changes:
        click.secho(f"Runner provisioned; service {service} is running", fg="green")
    else:
        click.secho(f"Nothing to do; service {service} is running", fg="green")
