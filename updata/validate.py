"""
Validate CLI command.
"""

from pathlib import Path

import click

from update_metadata.storage import load_file
from updata.common import handles_errors


@click.command("validate")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
@handles_errors
def validate(file: Path) -> None:
    """
    Check that FILE is a well-formed, consistent manifest.

    Exits with status 1 and lists the problems if it is not.
    """
    manifest = load_file(file)

    click.echo(
        click.style("Valid manifest: ", fg="green")
        + f"{file} ({len(manifest)} updates, "
        f"{len(manifest.datastore_versions)} datastore mappings, "
        f"{len(manifest.migrations)} migrations)"
    )
