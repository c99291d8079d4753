"""
Update CLI commands.

Create manifests and add or remove update records.
"""

from pathlib import Path
from typing import Optional

import click

from update_metadata.catalog import Images
from update_metadata.manifest import Manifest
from update_metadata.storage import manifest_lock, write_file
from update_metadata.versions import DataStoreVersion, SemVer
from updata.common import edit_manifest, get_config, handles_errors
from updata.params import DATA_VERSION, SEMVER

MANIFEST_PATH = click.Path(dir_okay=False, path_type=Path)


# ============================================================================
# Init Command
# ============================================================================


@click.command("init")
@click.argument("file", type=MANIFEST_PATH)
@click.pass_context
@handles_errors
def init(ctx: click.Context, file: Path) -> None:
    """
    Write an empty manifest to FILE.

    An existing file is replaced.

    Example:

        updata init manifest.json
    """
    config = get_config(ctx)
    with manifest_lock(file, timeout=config.lock_timeout_seconds):
        write_file(file, Manifest.empty(), indent=config.json_indent)

    click.echo(click.style("Created empty manifest: ", fg="green") + str(file))


# ============================================================================
# Update Records
# ============================================================================


@click.command("add-update")
@click.argument("file", type=MANIFEST_PATH)
@click.option("-f", "--variant", required=True, help="Variant (flavor) of the image")
@click.option("-v", "--version", "version", type=SEMVER, required=True, help="Image version")
@click.option("-a", "--arch", required=True, help="Architecture of the image")
@click.option("-d", "--data-version", type=DATA_VERSION, required=True, help="Datastore version of the image")
@click.option("-m", "--max-version", type=SEMVER, default=None, help="Version ceiling for this variant/arch")
@click.option("-r", "--root", required=True, help="Root image file name")
@click.option("-b", "--boot", required=True, help="Boot image file name")
@click.option("-h", "--hash", "hash_", required=True, help="Verity hash image file name")
@click.pass_context
@handles_errors
def add_update(
    ctx: click.Context,
    file: Path,
    variant: str,
    version: SemVer,
    arch: str,
    data_version: DataStoreVersion,
    max_version: Optional[SemVer],
    root: str,
    boot: str,
    hash_: str,
) -> None:
    """
    Add an update record to FILE.

    Creates FILE if it does not exist. The variant/arch version ceiling
    is raised to cover the new version.

    Example:

        updata add-update manifest.json -f aws-k8s -a x86_64 -v 1.2.0 -d 1.1 \\
            -r root.img -b boot.img -h verity.img
    """
    images = Images(root=root, boot=boot, hash=hash_)
    with edit_manifest(ctx, file, create=True) as manifest:
        update = manifest.add_update(
            version=version,
            max_version=max_version,
            datastore_version=data_version,
            arch=arch,
            variant=variant,
            images=images,
        )

    click.echo(
        click.style("Added update: ", fg="green")
        + f"{update.label} (max version {update.max_version})"
    )


@click.command("remove-update")
@click.argument("file", type=MANIFEST_PATH)
@click.option("-l", "--variant", required=True, help="Variant (flavor) of the update")
@click.option("-v", "--version", "version", type=SEMVER, required=True, help="Version of the update")
@click.option("-a", "--arch", required=True, help="Architecture of the update")
@click.option(
    "-c", "--cleanup", is_flag=True, default=False,
    help="Also drop the datastore mapping when no other update uses the version",
)
@click.pass_context
@handles_errors
def remove_update(
    ctx: click.Context,
    file: Path,
    variant: str,
    version: SemVer,
    arch: str,
    cleanup: bool,
) -> None:
    """
    Remove the update matching variant, arch and version from FILE.

    Removing an update that does not exist is not an error.

    Example:

        updata remove-update manifest.json -l aws-k8s -a x86_64 -v 1.2.0 --cleanup
    """
    with edit_manifest(ctx, file) as manifest:
        removed = manifest.remove_update(variant, arch, version, cleanup=cleanup)
        current_max = manifest.max_version_of_first()

    if removed:
        click.echo(click.style("Removed update: ", fg="green") + f"{variant}-{arch}-{version}")
    else:
        click.echo(click.style("Nothing removed: ", fg="yellow") + f"no update {variant}-{arch}-{version}")

    if current_max is None:
        click.echo("No remaining updates")
    else:
        click.echo(f"Current maximum version: {current_max}")
