"""
Pytest configuration and fixtures for updata tests.

This module provides shared fixtures for testing manifest operations,
including sample images, timestamps, populated manifests and temporary
manifest and configuration files.
"""

import shutil
from datetime import datetime, timezone
from pathlib import Path

import pytest
from click.testing import CliRunner

from update_metadata.catalog import Images
from update_metadata.manifest import Manifest

DATA_DIR = Path(__file__).parent / "data"


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path) -> None:
    """
    Isolate tests from the user's updata configuration.

    Removes updata-related environment variables and points the config
    file at a path inside the test's temporary directory.
    """
    for var in ("UPDATA_LOG_LEVEL", "UPDATA_TRACEBACK", "UPDATA_VERSION"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("UPDATA_CONFIG_PATH", str(tmp_path / "config" / "updata-config.yaml"))


@pytest.fixture
def config_path(tmp_path) -> Path:
    """Path of the isolated config file (not created)."""
    return tmp_path / "config" / "updata-config.yaml"


# ============================================================================
# Domain Fixtures
# ============================================================================


@pytest.fixture
def images() -> Images:
    """Artifact names for a sample image."""
    return Images(root="root.img", boot="boot.img", hash="verity.img")


@pytest.fixture
def start_time() -> datetime:
    """Reference wave start time (2020-02-05 18:00 UTC)."""
    return datetime(2020, 2, 5, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def manifest(images) -> Manifest:
    """
    Create a manifest with three updates.

    Returns:
        Manifest with aws-k8s/x86_64 1.2.0 and 1.2.4 and aws-dev/x86_64 1.2.3
    """
    m = Manifest()
    m.add_update("1.2.0", None, "1.0", "x86_64", "aws-k8s", images)
    m.add_update("1.2.3", None, "1.1", "x86_64", "aws-dev", images)
    m.add_update("1.2.4", None, "1.1", "x86_64", "aws-k8s", images)
    return m


# ============================================================================
# File Fixtures
# ============================================================================


@pytest.fixture
def data_dir() -> Path:
    """Directory holding static test documents."""
    return DATA_DIR


@pytest.fixture
def manifest_path(tmp_path) -> Path:
    """Path for a manifest file that does not exist yet."""
    return tmp_path / "manifest.json"


@pytest.fixture
def example_manifest_file(tmp_path) -> Path:
    """
    Copy the example manifest into the temporary directory.

    Returns:
        Path to a writable copy of tests/data/example.json
    """
    target = tmp_path / "example.json"
    shutil.copy(DATA_DIR / "example.json", target)
    return target


@pytest.fixture
def release_file() -> Path:
    """Path to the sample release description."""
    return DATA_DIR / "release.toml"


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI runner."""
    return CliRunner()
