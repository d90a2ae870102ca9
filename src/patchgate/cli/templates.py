"""patchgate templates: list built-in task templates."""

from __future__ import annotations

import json

import click

from patchgate.templates import list_templates


@click.command(name="templates", help="List built-in task templates.")
@click.option(
    "--output",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    show_default=True,
    help="Output format.",
)
def templates_command(output: str) -> None:
    """List built-in templates and their policy defaults."""
    templates = list_templates()

    if output == "json":
        click.echo(json.dumps([t.model_dump(mode="json") for t in templates], indent=2))
        return

    for template in templates:
        marker = " (recommended)" if template.recommended else ""
        click.echo(f"{template.id}{marker}")
        click.echo(f"  {template.name}")
        if template.description:
            click.echo(f"  {template.description}")
        for key, value in template.policy_defaults.items():
            click.echo(f"    {key}: {value}")


__all__ = ["templates_command"]
