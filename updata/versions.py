"""
Version CLI commands.

Datastore mappings, version ceilings and migrations.
"""

from pathlib import Path
from typing import Optional

import click

from update_metadata.release import load_release
from update_metadata.versions import DataStoreVersion, SemVer
from updata.common import edit_manifest, handles_errors
from updata.params import DATA_VERSION, SEMVER

MANIFEST_PATH = click.Path(dir_okay=False, path_type=Path)


@click.command("add-version-mapping")
@click.argument("file", type=MANIFEST_PATH)
@click.option("-i", "--image-version", type=SEMVER, required=True, help="Image version")
@click.option("-d", "--data-version", type=DATA_VERSION, required=True, help="Datastore version")
@click.pass_context
@handles_errors
def add_version_mapping(
    ctx: click.Context,
    file: Path,
    image_version: SemVer,
    data_version: DataStoreVersion,
) -> None:
    """
    Map an image version to a datastore version in FILE.

    An existing mapping is replaced, and updates at that image version take
    the new datastore version.
    """
    with edit_manifest(ctx, file) as manifest:
        previous = manifest.add_version_mapping(image_version, data_version)

    message = f"{image_version} -> {data_version}"
    if previous is not None and previous != data_version:
        message += f" (was {previous})"
    click.echo(click.style("Mapped version: ", fg="green") + message)


@click.command("set-max-version")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("-m", "--max-version", type=SEMVER, required=True, help="New version ceiling")
@click.option("-l", "--variant", default=None, help="Only updates of this variant")
@click.option("-a", "--arch", default=None, help="Only updates of this architecture")
@click.pass_context
@handles_errors
def set_max_version(
    ctx: click.Context,
    file: Path,
    max_version: SemVer,
    variant: Optional[str],
    arch: Optional[str],
) -> None:
    """
    Raise the max version of updates in FILE.

    Ceilings never go down: a group whose ceiling is already higher keeps it.

    Example:

        updata set-max-version manifest.json -m 1.3.0 -l aws-k8s
    """
    with edit_manifest(ctx, file) as manifest:
        touched = manifest.update_max_version(max_version, variant=variant, arch=arch)

    click.echo(
        click.style("Max version: ", fg="green")
        + f"{max_version} requested for {touched} update(s)"
    )


@click.command("set-migrations")
@click.option(
    "-f", "--from", "release_path", required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Release description (Release.toml) to read migrations from",
)
@click.option(
    "-t", "--to", "file", required=True, type=MANIFEST_PATH,
    help="Manifest file to update",
)
@click.pass_context
@handles_errors
def set_migrations(ctx: click.Context, release_path: Path, file: Path) -> None:
    """
    Replace the migrations in a manifest with those of a release.

    Example:

        updata set-migrations -f Release.toml -t manifest.json
    """
    release = load_release(release_path)
    steps = release.migration_steps()

    with edit_manifest(ctx, file) as manifest:
        manifest.set_migrations(steps)

    click.echo(click.style("Set migrations: ", fg="green") + f"{len(steps)} step(s) from {release_path}")
