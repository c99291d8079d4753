"""
Shared helpers for manifest commands.

Provides error reporting (message on stderr, exit status 1) and the
lock/load/save sequence every editing command goes through.
"""

import functools
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, NoReturn

import click

from update_metadata.config import UpdataConfig
from update_metadata.errors import UpdataError
from update_metadata.manifest import Manifest
from update_metadata.storage import load_file, load_or_default, manifest_lock, write_file


def get_config(ctx: click.Context) -> UpdataConfig:
    """Config loaded by the command group, or a fresh one when run standalone."""
    obj = ctx.find_object(dict)
    if obj and "config" in obj:
        return obj["config"]
    return UpdataConfig()


def show_traceback(ctx: click.Context) -> bool:
    obj = ctx.find_object(dict)
    if obj and "traceback" in obj:
        return obj["traceback"]
    return get_config(ctx).show_traceback


def report_error(ctx: click.Context, error: Exception) -> NoReturn:
    """Print an error to stderr and exit with status 1."""
    click.echo(click.style("Error: ", fg="red", bold=True) + str(error), err=True)
    if show_traceback(ctx):
        click.echo("".join(traceback.format_exception(error)).rstrip(), err=True)
    ctx.exit(1)


def handles_errors(f: Callable) -> Callable:
    """Turn UpdataError raised by a command into an error message and exit status 1."""

    @functools.wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return f(*args, **kwargs)
        except UpdataError as e:
            report_error(click.get_current_context(), e)

    return wrapper


@contextmanager
def edit_manifest(ctx: click.Context, path: Path, create: bool = False) -> Iterator[Manifest]:
    """
    Lock, load, yield and save a manifest.

    The manifest is written only if the block finishes without raising.

    Args:
        ctx: Click context (for configuration)
        path: Manifest file
        create: Start from an empty manifest if the file does not exist
    """
    config = get_config(ctx)
    with manifest_lock(path, timeout=config.lock_timeout_seconds):
        manifest = load_or_default(path) if create else load_file(path)
        yield manifest
        write_file(path, manifest, indent=config.json_indent)
