"""
Release description reader.

A release description (usually Release.toml) names the release version,
its datastore version and the migrations between datastore versions:

    version = "1.1.0"
    datastore_version = "1.1"

    [migrations]
    "(1.0,1.1)" = ["migrate_v1.1_foo", "migrate_v1.1_bar"]

Each "(FROM,TO)" key holds an ordered list of migration names. The reader
flattens the table into MigrationSteps in document order.
"""

import logging
import re
import tomllib
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from update_metadata.datastore import MigrationStep
from update_metadata.errors import ReleaseError
from update_metadata.schema import DataStoreVersionField, SemVerField
from update_metadata.versions import DataStoreVersion

logger = logging.getLogger(__name__)

MIGRATION_KEY_PATTERN = re.compile(r"^\(\s*(?P<from>[^,\s]+)\s*,\s*(?P<to>[^,\s)]+)\s*\)$")


def parse_migration_key(key: str) -> Tuple[DataStoreVersion, DataStoreVersion]:
    """Parse a "(FROM,TO)" migration key into two datastore versions."""
    match = MIGRATION_KEY_PATTERN.match(key)
    if not match:
        raise ValueError(f"Migration key must look like '(1.0,1.1)', got {key!r}")
    return (
        DataStoreVersion.parse(match.group("from")),
        DataStoreVersion.parse(match.group("to")),
    )


class Release(BaseModel):
    """Parsed release description."""

    model_config = ConfigDict(extra="ignore")

    version: Optional[SemVerField] = Field(None, description="Release image version")
    datastore_version: Optional[DataStoreVersionField] = Field(
        None, description="Datastore version of the release"
    )
    migrations: Dict[str, List[str]] = Field(
        default_factory=dict, description="'(FROM,TO)' to ordered migration names"
    )

    @field_validator("migrations")
    @classmethod
    def keys_must_be_version_pairs(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        for key in v:
            parse_migration_key(key)
        return v

    def migration_steps(self) -> List[MigrationStep]:
        """Migrations as ordered (from, to, name) steps."""
        steps = []
        for key, names in self.migrations.items():
            from_version, to_version = parse_migration_key(key)
            steps.extend(MigrationStep(from_version, to_version, name) for name in names)
        return steps


def load_release(path: Union[str, Path]) -> Release:
    """
    Load a TOML release description.

    Raises:
        ReleaseError: If the file cannot be read or is not a valid release description
    """
    path = Path(path)
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ReleaseError(path, "file does not exist") from e
    except OSError as e:
        raise ReleaseError(path, str(e)) from e
    except tomllib.TOMLDecodeError as e:
        raise ReleaseError(path, f"invalid TOML: {e}") from e

    try:
        release = Release.model_validate(data)
    except ValidationError as e:
        raise ReleaseError(path, f"invalid release description: {e}") from e

    logger.debug(
        "Loaded release %s with %d migration edges", path, len(release.migrations)
    )
    return release
