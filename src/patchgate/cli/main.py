"""Main entry point for the patchgate CLI.

Commands:
    patchgate run: Run a task once (invoked by the OS scheduler)
    patchgate status: Show a task's last run and tracked updates
    patchgate validate: Validate a task file
    patchgate templates: List built-in task templates

Example:
    $ patchgate --help
    $ patchgate run security-rollout --config tasks.yaml --data-dir /var/lib/patchgate
    $ patchgate --log-format console status security-rollout --data-dir /var/lib/patchgate
"""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

import click

from patchgate.cli.run import run_command
from patchgate.cli.status import status_command
from patchgate.cli.templates import templates_command
from patchgate.cli.validate import validate_command
from patchgate.telemetry.logging import LOG_LEVELS, configure_logging


def _get_version() -> str:
    """Get the patchgate package version."""
    try:
        return get_version("patchgate")
    except PackageNotFoundError:
        from patchgate import __version__

        return __version__


@click.group(
    name="patchgate",
    help="patchgate - staged (canary) approval of patch-management updates.",
    epilog="Use 'patchgate <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="patchgate",
    message="%(prog)s %(version)s",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Minimum log level (logs go to stderr).",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"], case_sensitive=False),
    default="json",
    show_default=True,
    help="Log line format.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str, log_format: str) -> None:
    """Root command group for the patchgate CLI."""
    ctx.ensure_object(dict)
    configure_logging(log_level=log_level, json_output=log_format.lower() == "json")


cli.add_command(run_command)
cli.add_command(status_command)
cli.add_command(validate_command)
cli.add_command(templates_command)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the patchgate CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        cli(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
