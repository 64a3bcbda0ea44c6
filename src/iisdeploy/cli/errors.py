"""Shared error handling for CLI commands."""

from __future__ import annotations

import sys
from collections.abc import Generator
from contextlib import contextmanager

import click

from iisdeploy.lib.errors import (
    ConfigError,
    DeploymentError,
    IISDeployError,
    OperatorCancelled,
)
from iisdeploy.lib.logging_config import get_logger

logger = get_logger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_PIPELINE_ERROR = 3


@contextmanager
def handle_pipeline_errors() -> Generator[None, None, None]:
    """Map pipeline exceptions to operator output and exit codes.

    Exit codes:
        0: Operator declined a confirmation; nothing was changed
        2: Configuration error
        3: Pipeline step failure or unexpected error
    """
    try:
        yield
    except OperatorCancelled as e:
        logger.info(f"Cancelled at {e.step}: {e.message}")
        click.secho(f"Cancelled: {e.message}", fg="yellow", err=True)
        sys.exit(0)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)
    except DeploymentError as e:
        logger.error(f"{e.operation} failed: {e.message}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        if e.remediation:
            click.echo(f"  Remediation: {e.remediation}", err=True)
        sys.exit(EXIT_PIPELINE_ERROR)
    except IISDeployError as e:
        logger.error(f"Invalid input: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(EXIT_CONFIG_ERROR)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(EXIT_PIPELINE_ERROR)
