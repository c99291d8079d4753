"""
Wave CLI commands.

Add or remove rollout waves on an update.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import click

from update_metadata.waves import MAX_BOUND
from update_metadata.versions import SemVer
from updata.common import edit_manifest, handles_errors
from updata.params import SEMVER, TIMESTAMP

logger = logging.getLogger(__name__)

MANIFEST_PATH = click.Path(dir_okay=False, path_type=Path)


@click.command("add-wave")
@click.argument("file", type=MANIFEST_PATH)
@click.option("-l", "--variant", required=True, help="Variant (flavor) of the update")
@click.option("-v", "--version", "version", type=SEMVER, required=True, help="Version of the update")
@click.option("-a", "--arch", required=True, help="Architecture of the update")
@click.option(
    "-b", "--bound-id", "bound", type=int, required=True,
    help=f"Wave bound in [0, {MAX_BOUND}); hosts with a seed below it may update",
)
@click.option(
    "-s", "--start-time", type=TIMESTAMP, default=None,
    help="When the wave opens, e.g. 2020-02-05T18:00:00Z",
)
@click.pass_context
@handles_errors
def add_wave(
    ctx: click.Context,
    file: Path,
    variant: str,
    version: SemVer,
    arch: str,
    bound: int,
    start_time: Optional[datetime],
) -> None:
    """
    Add a wave to an update in FILE.

    A wave already at the bound is moved to the new start time. Waves with
    higher bounds may not start earlier than waves with lower bounds.

    Example:

        updata add-wave manifest.json -l aws-k8s -a x86_64 -v 1.2.0 \\
            -b 512 -s 2020-02-05T18:00:00Z
    """
    with edit_manifest(ctx, file) as manifest:
        matched = manifest.add_wave(variant, arch, version, bound, start_time)

    if matched > 1:
        logger.warning(
            "%d updates match %s-%s-%s; the wave was added to all of them",
            matched, variant, arch, version,
        )
    click.echo(
        click.style("Added wave: ", fg="green")
        + f"{bound} at {start_time.isoformat()} on {variant}-{arch}-{version}"
    )


@click.command("remove-wave")
@click.argument("file", type=MANIFEST_PATH)
@click.option("-l", "--variant", required=True, help="Variant (flavor) of the update")
@click.option("-v", "--version", "version", type=SEMVER, required=True, help="Version of the update")
@click.option("-a", "--arch", required=True, help="Architecture of the update")
@click.option("-b", "--bound-id", "bound", type=int, required=True, help="Bound of the wave to remove")
@click.pass_context
@handles_errors
def remove_wave(
    ctx: click.Context,
    file: Path,
    variant: str,
    version: SemVer,
    arch: str,
    bound: int,
) -> None:
    """
    Remove the wave at a bound from an update in FILE.

    Removing a wave that does not exist is not an error.
    """
    with edit_manifest(ctx, file) as manifest:
        removed = manifest.remove_wave(variant, arch, version, bound)

    if removed:
        click.echo(click.style("Removed wave: ", fg="green") + f"{bound} from {variant}-{arch}-{version}")
    else:
        click.echo(click.style("Nothing removed: ", fg="yellow") + f"no wave {bound} on {variant}-{arch}-{version}")
