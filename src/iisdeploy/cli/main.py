"""Entry point of the ``iisdeploy`` command."""

import click

from iisdeploy import __version__
from iisdeploy.cli.commands.deploy import deploy
from iisdeploy.cli.commands.provision import provision


@click.group()
def main() -> None:
    """Provision a self-hosted GitHub Actions runner and deploy to IIS.

    Example:

        iisdeploy provision --repo-url https://github.com/org/shop ...

        iisdeploy deploy run --project-path src/Shop.Web ...
    """


@main.command()
def version() -> None:
    """Print the iisdeploy version."""
    click.echo(f"iisdeploy {__version__}")


main.add_command(provision)
main.add_command(deploy)


if __name__ == "__main__":
    main()
