"""
updata CLI entry point.

Main command group for the updata manifest tool.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from update_metadata import __version__
from update_metadata.config import ConfigError, UpdataConfig, VALID_LOG_LEVELS

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOGGER_NAMES = ("update_metadata", "updata")


# ============================================================================
# Logging
# ============================================================================


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Setup logging for the CLI.

    Attaches one stderr handler to the updata loggers. Calling it again
    replaces the handler rather than adding a second one.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger
    """
    reset_logging()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    handler._updata_handler = True

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(logging.getLevelNamesMapping().get(str(level).upper(), logging.INFO))
        logger.addHandler(handler)
        logger.propagate = False
    return logging.getLogger("updata")


def reset_logging() -> None:
    """Remove handlers installed by setup_logging and restore propagation."""
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            if getattr(handler, "_updata_handler", False):
                logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True


# ============================================================================
# Command Group
# ============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="updata")
@click.option(
    "--log-level",
    type=click.Choice(sorted(VALID_LOG_LEVELS), case_sensitive=False),
    default=None,
    help="Logging level (overrides config and UPDATA_LOG_LEVEL)",
)
@click.option(
    "--traceback/--no-traceback",
    "show_traceback",
    default=None,
    help="Print a traceback with error messages",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to the updata config file",
)
@click.pass_context
def cli(
    ctx: click.Context,
    log_level: Optional[str],
    show_traceback: Optional[bool],
    config_path: Optional[Path],
) -> None:
    """
    updata - Maintain update manifests for wave-based rollouts.

    Each command reads a manifest JSON file, applies one change and writes
    it back. Changes that would break the manifest are rejected and leave
    the file untouched.

    Use 'updata COMMAND --help' for more information on a command.
    """
    ctx.ensure_object(dict)

    try:
        config = UpdataConfig(config_path)
        # The config commands must still run to repair an invalid file
        if ctx.invoked_subcommand != "config":
            config.validate()
    except ConfigError as e:
        click.echo(click.style("Error: ", fg="red", bold=True) + f"Invalid configuration: {e}", err=True)
        ctx.exit(1)

    ctx.obj["config"] = config
    ctx.obj["traceback"] = config.show_traceback if show_traceback is None else show_traceback

    setup_logging(log_level or config.log_level)
    ctx.call_on_close(reset_logging)


# Import and register subcommands
from updata.updates import add_update, init, remove_update  # noqa: E402
from updata.waves import add_wave, remove_wave  # noqa: E402
from updata.versions import add_version_mapping, set_max_version, set_migrations  # noqa: E402
from updata.validate import validate  # noqa: E402
from updata.config import config  # noqa: E402

cli.add_command(init)
cli.add_command(add_update)
cli.add_command(remove_update)
cli.add_command(add_wave)
cli.add_command(remove_wave)
cli.add_command(add_version_mapping)
cli.add_command(set_max_version)
cli.add_command(set_migrations)
cli.add_command(validate)
cli.add_command(config)


def main() -> None:
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
