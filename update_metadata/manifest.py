"""
Manifest aggregate.

The Manifest owns the update catalog, the version ceiling index, the
datastore version map and the migration set, and is the only way to change
any of them. Every operation runs against a draft copy that replaces the
live state only when the whole operation succeeded, so a raised error
always leaves the manifest as it was.

Invariants that hold after every successful call:
- updates are in descending version order, unique by (variant, arch, version)
- every update has version <= max_version
- all updates of a (variant, arch) group share one max_version, which never decreases
- waves of an update never start earlier as the bound grows
- every update's datastore_version equals the map entry for its version
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from update_metadata.catalog import Images, Update, UpdateCatalog
from update_metadata.ceiling import Group, VersionCeilings
from update_metadata.datastore import DatastoreVersionMap, MigrationSet, MigrationStep
from update_metadata.errors import (
    InvalidBoundError,
    ManifestValidationError,
    MissingStartTimeError,
    UpdateNotFoundError,
    WaveOrderingViolationError,
)
from update_metadata.versions import DataStoreVersion, SemVer, max_version as highest

logger = logging.getLogger(__name__)

VersionLike = Union[SemVer, str]
DataVersionLike = Union[DataStoreVersion, str]


class Manifest:
    """
    Update manifest: catalog, ceilings, datastore map and migrations.

    A new Manifest is empty. Loaded manifests are built from their parts
    and should be checked with validate().
    """

    def __init__(
        self,
        updates: Optional[Iterable[Update]] = None,
        datastore_versions: Optional[Dict[SemVer, DataStoreVersion]] = None,
        migrations: Optional[Iterable[MigrationStep]] = None,
    ):
        self._catalog = UpdateCatalog(list(updates or []))
        self._datastore_versions = DatastoreVersionMap(datastore_versions)
        self._migrations = MigrationSet(migrations)
        self._ceilings = VersionCeilings.rebuild(self._catalog)

    @classmethod
    def empty(cls) -> "Manifest":
        return cls()

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    @property
    def updates(self) -> Tuple[Update, ...]:
        """Update records, highest version first."""
        return self._catalog.updates

    @property
    def datastore_versions(self) -> DatastoreVersionMap:
        return self._datastore_versions

    @property
    def migrations(self) -> MigrationSet:
        return self._migrations

    def __iter__(self) -> Iterator[Update]:
        return iter(self._catalog)

    def __len__(self) -> int:
        return len(self._catalog)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Manifest):
            return NotImplemented
        return (
            list(self._catalog) == list(other._catalog)
            and self._datastore_versions == other._datastore_versions
            and self._migrations == other._migrations
        )

    def __repr__(self) -> str:
        return (
            f"Manifest(updates={len(self._catalog)}, "
            f"datastore_versions={len(self._datastore_versions)}, "
            f"migrations={len(self._migrations)})"
        )

    def max_version_of_first(self) -> Optional[SemVer]:
        """Version of the first (highest) update, or None when there are none."""
        return self._catalog.max_version_of_first()

    def find_updates(self, variant: str, arch: str, version: VersionLike) -> List[Update]:
        return self._catalog.find(variant, arch, SemVer.coerce(version))

    def ceiling(self, variant: str, arch: str) -> Optional[SemVer]:
        """Current max_version of the (variant, arch) group, or None."""
        return self._ceilings.get((variant, arch))

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def copy(self) -> "Manifest":
        clone = Manifest.__new__(Manifest)
        clone._catalog = self._catalog.copy()
        clone._datastore_versions = self._datastore_versions.copy()
        clone._migrations = MigrationSet(self._migrations)
        clone._ceilings = self._ceilings.copy()
        return clone

    @contextmanager
    def _transaction(self) -> Iterator["Manifest"]:
        """Yield a draft copy; its state replaces ours only if the block succeeds."""
        draft = self.copy()
        yield draft
        self._catalog = draft._catalog
        self._datastore_versions = draft._datastore_versions
        self._migrations = draft._migrations
        self._ceilings = draft._ceilings

    def _apply_ceiling(self, group: Group, ceiling: SemVer) -> int:
        effective = self._ceilings.raise_to(group, ceiling)
        members = self._catalog.in_group(*group)
        for update in members:
            update.max_version = effective
        return len(members)

    def _set_mapping(self, version: SemVer, datastore_version: DataStoreVersion) -> Optional[DataStoreVersion]:
        previous = self._datastore_versions.set(version, datastore_version)
        for update in self._catalog.with_version(version):
            update.datastore_version = datastore_version
        return previous

    # -------------------------------------------------------------------------
    # Update catalog
    # -------------------------------------------------------------------------

    def add_update(
        self,
        version: VersionLike,
        max_version: Optional[VersionLike],
        datastore_version: DataVersionLike,
        arch: str,
        variant: str,
        images: Images,
    ) -> Update:
        """
        Add an update record.

        The (variant, arch) ceiling is raised to the highest of its current
        value, max_version and the new version, and applied to every update
        of the group. The datastore mapping for version is set, replacing
        (with a warning) any different existing entry.

        Returns:
            The new update record

        Raises:
            DuplicateUpdateError: If (variant, arch, version) already exists
        """
        version = SemVer.coerce(version)
        requested = SemVer.coerce(max_version) if max_version is not None else None
        datastore_version = DataStoreVersion.coerce(datastore_version)
        group = (variant, arch)

        if requested is not None and requested < version:
            logger.warning(
                "Max version %s is below update version %s; using %s for %s-%s",
                requested, version, version, variant, arch,
            )

        with self._transaction() as draft:
            ceiling = highest(draft._ceilings.get(group), requested, version)
            update = Update(
                variant=variant,
                arch=arch,
                version=version,
                max_version=ceiling,
                datastore_version=datastore_version,
                images=images,
            )
            draft._catalog.insert(update)
            draft._apply_ceiling(group, ceiling)
            draft._set_mapping(version, datastore_version)

        logger.info("Added update %s (max version %s)", update.label, update.max_version)
        return update

    def remove_update(
        self,
        variant: str,
        arch: str,
        version: VersionLike,
        cleanup: bool = False,
    ) -> int:
        """
        Remove every update matching (variant, arch, version).

        No match is not an error. With ``cleanup``, the datastore mapping for
        version is dropped when no remaining update of any variant/arch
        uses that version. Migrations and the ceilings of remaining updates
        are left alone.

        Returns:
            Number of records removed
        """
        version = SemVer.coerce(version)

        with self._transaction() as draft:
            removed = draft._catalog.remove(variant, arch, version)
            if not draft._catalog.in_group(variant, arch):
                draft._ceilings.discard((variant, arch))

            if cleanup:
                remaining = draft._catalog.with_version(version)
                if remaining:
                    logger.warning(
                        "Cleanup skipped; %d %s updates remain", len(remaining), version
                    )
                elif draft._datastore_versions.remove(version):
                    logger.info("Removed datastore mapping for %s", version)

        if not removed:
            logger.info("No update %s-%s-%s to remove", variant, arch, version)
        return len(removed)

    # -------------------------------------------------------------------------
    # Version ceiling
    # -------------------------------------------------------------------------

    def update_max_version(
        self,
        max_version: VersionLike,
        variant: Optional[str] = None,
        arch: Optional[str] = None,
    ) -> int:
        """
        Raise the ceiling of every matching (variant, arch) group.

        Unset filters match all groups. A value below a group's current
        ceiling has no effect on that group, and groups without updates are
        skipped.

        Returns:
            Number of update records in the matching groups
        """
        max_version = SemVer.coerce(max_version)

        with self._transaction() as draft:
            groups = list(draft._ceilings.matching(variant, arch))
            for group in groups:
                current = draft._ceilings.get(group)
                if max_version < current:
                    logger.warning(
                        "Max version %s is below current ceiling %s for %s-%s; keeping %s",
                        max_version, current, group[0], group[1], current,
                    )
            touched = sum(draft._apply_ceiling(group, max_version) for group in groups)

        if not groups:
            logger.info(
                "No updates match variant=%s arch=%s; max version unchanged",
                variant or "*", arch or "*",
            )
        return touched

    # -------------------------------------------------------------------------
    # Waves
    # -------------------------------------------------------------------------

    def add_wave(
        self,
        variant: str,
        arch: str,
        version: VersionLike,
        bound: int,
        start_time: Optional[datetime],
    ) -> int:
        """
        Add (or move) a wave on every update matching (variant, arch, version).

        The wave is checked against each matching update before any of them
        changes.

        Returns:
            Number of matching updates (more than one is unexpected but reported)

        Raises:
            MissingStartTimeError: If start_time is None
            UpdateNotFoundError: If no update matches
            InvalidBoundError: If bound is outside [0, 2048)
            WaveOrderingViolationError: If the wave breaks start time ordering
        """
        version = SemVer.coerce(version)
        if start_time is None:
            raise MissingStartTimeError(variant, arch, version, bound)

        with self._transaction() as draft:
            matching = draft._catalog.find(variant, arch, version)
            if not matching:
                raise UpdateNotFoundError(variant, arch, version)

            for update in matching:
                try:
                    update.waves.add(bound, start_time)
                except InvalidBoundError as e:
                    raise InvalidBoundError(
                        e.bound, e.max_bound, variant, arch, version
                    ) from None
                except WaveOrderingViolationError as e:
                    raise WaveOrderingViolationError(
                        e.bound, e.start_time, e.neighbour_bound, e.neighbour_start,
                        variant, arch, version,
                    ) from None

        logger.info(
            "Added wave %d at %s to %s-%s-%s",
            bound, start_time.isoformat(), variant, arch, version,
        )
        return len(matching)

    def remove_wave(self, variant: str, arch: str, version: VersionLike, bound: int) -> int:
        """
        Remove the wave at bound from every update matching (variant, arch, version).

        Missing updates or waves are not an error.

        Returns:
            Number of waves removed
        """
        version = SemVer.coerce(version)

        with self._transaction() as draft:
            removed = sum(
                1 for update in draft._catalog.find(variant, arch, version)
                if update.waves.remove(bound)
            )

        if not removed:
            logger.info("No wave %d on %s-%s-%s to remove", bound, variant, arch, version)
        return removed

    # -------------------------------------------------------------------------
    # Datastore mapping and migrations
    # -------------------------------------------------------------------------

    def add_version_mapping(
        self,
        version: VersionLike,
        datastore_version: DataVersionLike,
    ) -> Optional[DataStoreVersion]:
        """
        Map an image version to a datastore version.

        Updates at that version take the new datastore version as well.

        Returns:
            The datastore version that was replaced, or None
        """
        version = SemVer.coerce(version)
        datastore_version = DataStoreVersion.coerce(datastore_version)

        with self._transaction() as draft:
            previous = draft._set_mapping(version, datastore_version)
        return previous

    def set_migrations(self, steps: Iterable[MigrationStep]) -> None:
        """Replace the whole migration list with ``steps``, in order."""
        steps = list(steps)
        with self._transaction() as draft:
            draft._migrations.replace(steps)
        logger.info("Set %d migration steps", len(steps))

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def problems(self) -> List[str]:
        """Describe every broken invariant (empty when the manifest is consistent)."""
        problems = self._catalog.order_problems()

        group_ceilings: Dict[Group, SemVer] = {}
        for update in self._catalog:
            if update.version > update.max_version:
                problems.append(
                    f"update {update.label} is above its max version {update.max_version}"
                )

            shared = group_ceilings.setdefault(update.group, update.max_version)
            if shared != update.max_version:
                problems.append(
                    f"update {update.label} has max version {update.max_version} "
                    f"but {update.variant}-{update.arch} uses {shared}"
                )

            for problem in update.waves.ordering_problems():
                problems.append(f"update {update.label}: {problem}")

            mapped = self._datastore_versions.get(update.version)
            if mapped is None:
                problems.append(f"no datastore mapping for version {update.version}")
            elif mapped != update.datastore_version:
                problems.append(
                    f"update {update.label} needs datastore {update.datastore_version} "
                    f"but {update.version} maps to {mapped}"
                )
        return problems

    def validate(self) -> None:
        """
        Check every invariant.

        Raises:
            ManifestValidationError: Listing each problem found
        """
        problems = self.problems()
        if problems:
            raise ManifestValidationError(problems)
