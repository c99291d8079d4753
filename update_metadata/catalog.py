"""
Update catalog.

Holds the update records of a manifest in descending version order, so the
first record is always the highest known version. The order is maintained
by the catalog's own insert routine; callers never append directly.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from update_metadata.errors import DuplicateUpdateError
from update_metadata.versions import DataStoreVersion, SemVer
from update_metadata.waves import WaveSchedule


@dataclass(frozen=True)
class Images:
    """Target names of the artifacts that make up one image."""

    root: str
    boot: str
    hash: str


@dataclass
class Update:
    """
    One deployable (variant, arch, version) image.

    Attributes:
        variant: Image variant, e.g. 'aws-k8s-1.15'
        arch: Architecture the image is built for
        version: Image version
        max_version: Group-wide ceiling, shared by every update of (variant, arch)
        datastore_version: Datastore version the image needs (copy of the map entry)
        images: Root/boot/hash targets
        waves: Rollout schedule for this update
    """

    variant: str
    arch: str
    version: SemVer
    max_version: SemVer
    datastore_version: DataStoreVersion
    images: Images
    waves: WaveSchedule = field(default_factory=WaveSchedule)

    @property
    def key(self) -> Tuple[str, str, SemVer]:
        return (self.variant, self.arch, self.version)

    @property
    def group(self) -> Tuple[str, str]:
        return (self.variant, self.arch)

    @property
    def label(self) -> str:
        return f"{self.variant}-{self.arch}-{self.version}"

    def matches(self, variant: str, arch: str, version: SemVer) -> bool:
        return self.key == (variant, arch, version)

    def copy(self) -> "Update":
        return Update(
            variant=self.variant,
            arch=self.arch,
            version=self.version,
            max_version=self.max_version,
            datastore_version=self.datastore_version,
            images=self.images,
            waves=self.waves.copy(),
        )


class UpdateCatalog:
    """Update records ordered by descending version."""

    def __init__(self, updates: Optional[List[Update]] = None):
        # Loaded records keep their document order; Manifest.validate checks it
        self._updates: List[Update] = list(updates or [])

    def __len__(self) -> int:
        return len(self._updates)

    def __iter__(self) -> Iterator[Update]:
        return iter(self._updates)

    def __bool__(self) -> bool:
        return bool(self._updates)

    @property
    def updates(self) -> Tuple[Update, ...]:
        """Read-only ordered view of the records."""
        return tuple(self._updates)

    def first(self) -> Optional[Update]:
        """Highest-version record, or None when the catalog is empty."""
        return self._updates[0] if self._updates else None

    def max_version_of_first(self) -> Optional[SemVer]:
        """Version at the head of the catalog (the current maximum)."""
        head = self.first()
        return head.version if head else None

    def find(self, variant: str, arch: str, version: SemVer) -> List[Update]:
        """Every record matching (variant, arch, version)."""
        return [u for u in self._updates if u.matches(variant, arch, version)]

    def contains(self, variant: str, arch: str, version: SemVer) -> bool:
        return any(u.matches(variant, arch, version) for u in self._updates)

    def in_group(self, variant: str, arch: str) -> List[Update]:
        return [u for u in self._updates if u.group == (variant, arch)]

    def with_version(self, version: SemVer) -> List[Update]:
        """Records of any variant/arch at exactly this version."""
        return [u for u in self._updates if u.version == version]

    def insert(self, update: Update) -> int:
        """
        Insert a record at its place in descending version order.

        Records with an equal version keep insertion order; the new one goes
        after them.

        Returns:
            Index the record was inserted at

        Raises:
            DuplicateUpdateError: If (variant, arch, version) is already present
        """
        if self.contains(update.variant, update.arch, update.version):
            raise DuplicateUpdateError(update.variant, update.arch, update.version)

        index = len(self._updates)
        for position, existing in enumerate(self._updates):
            if existing.version < update.version:
                index = position
                break
        self._updates.insert(index, update)
        return index

    def remove(self, variant: str, arch: str, version: SemVer) -> List[Update]:
        """
        Remove every record matching (variant, arch, version).

        Returns:
            The removed records (empty when nothing matched)
        """
        removed = [u for u in self._updates if u.matches(variant, arch, version)]
        if removed:
            self._updates = [
                u for u in self._updates if not u.matches(variant, arch, version)
            ]
        return removed

    def copy(self) -> "UpdateCatalog":
        clone = UpdateCatalog()
        clone._updates = [u.copy() for u in self._updates]
        return clone

    def order_problems(self) -> List[str]:
        """Describe ordering or uniqueness problems (empty when consistent)."""
        problems = []
        seen = set()
        for previous, current in zip(self._updates, self._updates[1:]):
            if previous.version < current.version:
                problems.append(
                    f"update {current.label} is listed after lower version {previous.version}"
                )
        for update in self._updates:
            if update.key in seen:
                problems.append(f"update {update.label} appears more than once")
            seen.add(update.key)
        return problems
