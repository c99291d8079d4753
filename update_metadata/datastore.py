"""
Datastore version map and migration set.

The map records which datastore version each image version needs. It is
keyed by image version only, so every variant/arch at a given version
shares one entry.

The migration set is the ordered list of (from, to, name) steps copied
from a release description. It is replaced wholesale and never merged;
planning a path through it is the client's job.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from update_metadata.versions import DataStoreVersion, SemVer

logger = logging.getLogger(__name__)


class DatastoreVersionMap:
    """Mapping of image version to required datastore version."""

    def __init__(self, entries: Optional[Dict[SemVer, DataStoreVersion]] = None):
        self._entries: Dict[SemVer, DataStoreVersion] = dict(entries or {})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, version: object) -> bool:
        return version in self._entries

    def __iter__(self) -> Iterator[SemVer]:
        return iter(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DatastoreVersionMap):
            return NotImplemented
        return self._entries == other._entries

    def get(self, version: SemVer) -> Optional[DataStoreVersion]:
        return self._entries.get(version)

    def items(self) -> List[Tuple[SemVer, DataStoreVersion]]:
        """Entries sorted by image version."""
        return sorted(self._entries.items())

    def set(self, version: SemVer, datastore_version: DataStoreVersion) -> Optional[DataStoreVersion]:
        """
        Insert or overwrite the entry for version.

        Returns:
            The previous datastore version, or None if there was no entry
        """
        previous = self._entries.get(version)
        self._entries[version] = datastore_version
        if previous is not None and previous != datastore_version:
            logger.warning(
                "New mapping (%s, %s) replaced old mapping (%s, %s)",
                version, datastore_version, version, previous,
            )
        return previous

    def remove(self, version: SemVer) -> bool:
        """Remove the entry for version; returns True if one existed."""
        return self._entries.pop(version, None) is not None

    def copy(self) -> "DatastoreVersionMap":
        return DatastoreVersionMap(self._entries)


@dataclass(frozen=True)
class MigrationStep:
    """One named migration from one datastore version to another."""

    from_version: DataStoreVersion
    to_version: DataStoreVersion
    name: str


class MigrationSet:
    """Ordered migration steps, replaced as a whole."""

    def __init__(self, steps: Optional[Iterable[MigrationStep]] = None):
        self._steps: Tuple[MigrationStep, ...] = tuple(steps or ())

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[MigrationStep]:
        return iter(self._steps)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MigrationSet):
            return NotImplemented
        return self._steps == other._steps

    def __repr__(self) -> str:
        return f"MigrationSet({list(self._steps)!r})"

    @property
    def steps(self) -> Tuple[MigrationStep, ...]:
        return self._steps

    def replace(self, steps: Iterable[MigrationStep]) -> None:
        """Discard every existing step and take ``steps`` in order."""
        self._steps = tuple(steps)
