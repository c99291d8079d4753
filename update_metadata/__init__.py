"""
Update metadata - wave rollout manifest engine.

This package holds the in-memory model of an update manifest and the
operations that keep it consistent: the update catalog, the group-wide
version ceiling, the per-update wave schedule, the image-version to
datastore-version map and the migration list.

Key modules:
- versions: SemVer and DataStoreVersion value types
- waves: Wave schedule with monotonic start times
- ceiling: Version ceiling index per (variant, arch) group
- catalog: Ordered update catalog
- datastore: Datastore version map and migration set
- manifest: Manifest aggregate (single mutation surface)
- schema / storage: JSON document models and file persistence
- release: Release description (migration list) reader
- config: Tool configuration
"""

import os
import re
import subprocess
from importlib import metadata
from typing import Optional


def _run_git_command(args: list[str]) -> Optional[str]:
    """Run a Git command and return its output."""
    try:
        result = subprocess.run(
            ['git'] + args,
            capture_output=True,
            text=True,
            check=True,
            timeout=5
        )
        return result.stdout.strip()
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return None


def _get_version_from_git() -> Optional[str]:
    """
    Get version from Git tags.

    Version Format:
    - Tagged releases: "1.2.3"
    - Development builds: "1.2.3-dev.5+a1b2c3d"
    """
    describe = _run_git_command(['describe', '--tags', '--long'])
    if not describe:
        return None

    # "v1.2.3-0-ga1b2c3d" or "v1.2.3-5-ga1b2c3d"
    match = re.match(r'^v?(.+?)-(\d+)-g([a-f0-9]+)$', describe)
    if not match:
        return None

    tag, commits_since, commit_hash = match.groups()
    if int(commits_since) == 0:
        return tag
    return f"{tag}-dev.{commits_since}+{commit_hash}"


def _get_version() -> str:
    """
    Get version with priority: UPDATA_VERSION env var > installed metadata > Git tags > fallback.
    """
    env_version = os.environ.get('UPDATA_VERSION')
    if env_version:
        return env_version

    try:
        return metadata.version('updata')
    except metadata.PackageNotFoundError:
        pass

    git_version = _get_version_from_git()
    if git_version:
        return git_version

    return '0.0.0-dev+unknown'


__version__ = _get_version()
