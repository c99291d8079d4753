"""
Config CLI commands.

Show and change the updata configuration file.
"""

import click
import yaml

from update_metadata.config import CONFIG_KEYS, ConfigError
from updata.common import get_config


# ============================================================================
# Config Command Group
# ============================================================================


@click.group()
@click.pass_context
def config(ctx: click.Context) -> None:
    """
    Manage updata configuration.

    Settings are stored in updata-config.yaml in the platform config
    directory, or in the file named by UPDATA_CONFIG_PATH.
    """
    ctx.ensure_object(dict)


@config.command("show")
@click.pass_context
def show(ctx: click.Context) -> None:
    """Show the effective configuration."""
    updata_config = get_config(ctx)

    click.echo(click.style("Config file: ", fg="cyan") + str(updata_config.config_path))
    click.echo(f"  log_level: {updata_config.log_level}")
    click.echo(f"  show_traceback: {updata_config.show_traceback}")
    click.echo(f"  json_indent: {updata_config.json_indent}")
    click.echo(f"  lock_timeout_seconds: {updata_config.lock_timeout_seconds}")

    try:
        updata_config.validate()
    except ConfigError as e:
        click.echo(click.style("Warning: ", fg="yellow") + str(e), err=True)


SETTABLE_KEYS = CONFIG_KEYS


@config.command("set")
@click.argument("key", type=click.Choice(SETTABLE_KEYS))
@click.argument("value")
@click.pass_context
def set_value(ctx: click.Context, key: str, value: str) -> None:
    """
    Set a configuration value and save it.

    VALUE is read as YAML, so 'true', '4' and '2.5' get their natural types.
    Only KEY is checked, so an invalid file can be fixed one key at a time.

    Example:

        updata config set json_indent 4
    """
    updata_config = get_config(ctx)
    previous = getattr(updata_config, key)

    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        parsed = value
    if key == "log_level" and isinstance(parsed, str):
        parsed = parsed.upper()

    setattr(updata_config, key, parsed)
    try:
        updata_config.validate([key])
    except ConfigError as e:
        setattr(updata_config, key, previous)
        click.echo(click.style("Error: ", fg="red", bold=True) + str(e), err=True)
        ctx.exit(1)

    updata_config.save()
    click.echo(click.style("Config updated: ", fg="green") + f"{key} = {parsed}")
