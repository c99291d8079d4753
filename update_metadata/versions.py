"""
Version value types.

SemVer identifies image versions and version ceilings; DataStoreVersion
identifies the storage schema an image needs. Both are immutable, hashable
and totally ordered so they can key maps and drive every ordering rule in
the manifest.

SemVer wraps ``semver.Version`` for Semantic Versioning 2.0.0 parsing and
precedence. The original text is kept, so pre-release and build identifiers
round-trip unchanged.
"""

import re
from functools import total_ordering
from typing import Any, Optional, Tuple, Union

import semver

from update_metadata.errors import InvalidVersionError


DATASTORE_PATTERN = re.compile(r"^v?(?P<major>\d+)\.(?P<minor>\d+)$")


def _split(identifiers: Optional[str]) -> Tuple[str, ...]:
    return tuple(identifiers.split(".")) if identifiers else ()


@total_ordering
class SemVer:
    """
    Semantic version: MAJOR.MINOR.PATCH[-PRERELEASE][+BUILD].

    Build metadata is kept in the text but ignored for equality, hashing
    and ordering.
    """

    __slots__ = ("_version",)

    def __init__(
        self,
        major: int,
        minor: int,
        patch: int,
        prerelease: Tuple[str, ...] = (),
        build: Tuple[str, ...] = (),
    ):
        try:
            self._version = semver.Version(
                major,
                minor,
                patch,
                ".".join(prerelease) or None,
                ".".join(build) or None,
            )
        except (TypeError, ValueError) as e:
            raise InvalidVersionError("version", f"{major}.{minor}.{patch}") from e

    @classmethod
    def parse(cls, text: str) -> "SemVer":
        """Parse a version string, raising InvalidVersionError if malformed."""
        if not isinstance(text, str):
            raise InvalidVersionError("version", text)
        try:
            parsed = semver.Version.parse(text.strip())
        except ValueError as e:
            raise InvalidVersionError("version", text) from e
        version = cls.__new__(cls)
        version._version = parsed
        return version

    @classmethod
    def coerce(cls, value: Union["SemVer", str]) -> "SemVer":
        """Return value as a SemVer, parsing strings."""
        if isinstance(value, cls):
            return value
        return cls.parse(value)

    @property
    def major(self) -> int:
        return self._version.major

    @property
    def minor(self) -> int:
        return self._version.minor

    @property
    def patch(self) -> int:
        return self._version.patch

    @property
    def prerelease(self) -> Tuple[str, ...]:
        return _split(self._version.prerelease)

    @property
    def build(self) -> Tuple[str, ...]:
        return _split(self._version.build)

    @property
    def is_prerelease(self) -> bool:
        return self._version.prerelease is not None

    def __str__(self) -> str:
        return str(self._version)

    def __repr__(self) -> str:
        return f"SemVer('{self}')"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._version.compare(other._version) == 0

    def __lt__(self, other: Any) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._version.compare(other._version) < 0

    def __hash__(self) -> int:
        return hash(self._version.to_tuple()[:4])


@total_ordering
class DataStoreVersion:
    """Datastore schema version: MAJOR.MINOR, with an optional leading 'v' on input."""

    __slots__ = ("major", "minor")

    def __init__(self, major: int, minor: int):
        if major < 0 or minor < 0:
            raise InvalidVersionError("datastore version", f"{major}.{minor}")
        self.major = major
        self.minor = minor

    @classmethod
    def parse(cls, text: str) -> "DataStoreVersion":
        if not isinstance(text, str):
            raise InvalidVersionError("datastore version", text)
        match = DATASTORE_PATTERN.match(text.strip())
        if not match:
            raise InvalidVersionError("datastore version", text)
        return cls(int(match.group("major")), int(match.group("minor")))

    @classmethod
    def coerce(cls, value: Union["DataStoreVersion", str]) -> "DataStoreVersion":
        if isinstance(value, cls):
            return value
        return cls.parse(value)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"

    def __repr__(self) -> str:
        return f"DataStoreVersion('{self}')"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, DataStoreVersion):
            return NotImplemented
        return (self.major, self.minor) == (other.major, other.minor)

    def __lt__(self, other: Any) -> bool:
        if not isinstance(other, DataStoreVersion):
            return NotImplemented
        return (self.major, self.minor) < (other.major, other.minor)

    def __hash__(self) -> int:
        return hash((self.major, self.minor))


def max_version(*versions: Optional[SemVer]) -> Optional[SemVer]:
    """Return the greatest of the given versions, ignoring None."""
    present = [v for v in versions if v is not None]
    if not present:
        return None
    return max(present)
