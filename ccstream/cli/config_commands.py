"""Configuration CLI commands.

Adds commands:
- config show
"""

from __future__ import annotations

import json

import click
import toml

from ccstream.config.config import ConfigManager
from ccstream.utils.exceptions import ConfigurationError


@click.group()
def config():
    """Inspect the effective configuration."""


@config.command("show")
@click.option(
    "--format",
    "format_",
    type=click.Choice(["toml", "json"]),
    default="toml",
)
@click.option(
    "--section",
    type=str,
    default=None,
    help="Show a single section (e.g. server)",
)
@click.pass_context
def show_config(ctx, format_: str, section: str | None):
    """Show the configuration after file and environment overrides."""
    manager = (ctx.obj or {}).get("config_manager")
    if manager is None:
        try:
            manager = ConfigManager((ctx.obj or {}).get("config"), configure_logging=False)
        except ConfigurationError as e:
            raise click.ClickException(str(e)) from e

    data = manager.config.model_dump(mode="json", exclude_none=True)
    if section:
        if section not in data:
            msg = f"Section not found: {section}"
            raise click.ClickException(msg)
        data = {section: data[section]}

    if format_ == "json":
        click.echo(json.dumps(data, indent=2))
    else:
        click.echo(toml.dumps(data))
