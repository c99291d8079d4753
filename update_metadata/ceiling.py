"""
Version ceiling index.

Each (variant, arch) group shares one maximum allowed version. The index
maps a group to its ceiling and only ever raises it: once a version has
been declared eligible for a group it is never withdrawn, even if the
updates that raised it are later removed.
"""

import logging
from typing import Dict, Iterable, Iterator, Optional, Tuple

from update_metadata.versions import SemVer

logger = logging.getLogger(__name__)

Group = Tuple[str, str]


class VersionCeilings:
    """Monotonic mapping of (variant, arch) to the group's max_version."""

    def __init__(self) -> None:
        self._ceilings: Dict[Group, SemVer] = {}

    @classmethod
    def rebuild(cls, updates: Iterable) -> "VersionCeilings":
        """Build the index from update records (ceiling = highest max_version per group)."""
        index = cls()
        for update in updates:
            index.raise_to(update.group, update.max_version)
        return index

    def __contains__(self, group: object) -> bool:
        return group in self._ceilings

    def __iter__(self) -> Iterator[Group]:
        return iter(self._ceilings)

    def __len__(self) -> int:
        return len(self._ceilings)

    def get(self, group: Group) -> Optional[SemVer]:
        """Current ceiling for group, or None if the group was never seen."""
        return self._ceilings.get(group)

    def raise_to(self, group: Group, ceiling: SemVer) -> SemVer:
        """
        Raise the group's ceiling to at least ``ceiling``.

        Lower values are ignored. Returns the effective ceiling.
        """
        current = self._ceilings.get(group)
        if current is None or ceiling > current:
            self._ceilings[group] = ceiling
            return ceiling
        if ceiling < current:
            logger.debug(
                "Ignoring max version %s for %s-%s; ceiling is already %s",
                ceiling, group[0], group[1], current,
            )
        return current

    def discard(self, group: Group) -> None:
        """Forget a group once it has no updates left."""
        self._ceilings.pop(group, None)

    def copy(self) -> "VersionCeilings":
        clone = VersionCeilings()
        clone._ceilings = dict(self._ceilings)
        return clone

    def matching(
        self,
        variant: Optional[str] = None,
        arch: Optional[str] = None,
    ) -> Iterator[Group]:
        """Groups matching the optional variant / arch filters."""
        for group in self._ceilings:
            if variant is not None and group[0] != variant:
                continue
            if arch is not None and group[1] != arch:
                continue
            yield group
