"""
Exceptions raised by manifest operations.

Every error carries the identifying fields (variant, arch, version, bound)
needed to diagnose the failure without inspecting the manifest. None of
them are retried; the caller decides what to do.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Union


class UpdataError(Exception):
    """Base exception for manifest errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidVersionError(ValueError):
    """Raised when a version string cannot be parsed."""

    def __init__(self, kind: str, value: Any):
        self.kind = kind
        self.value = value
        super().__init__(f"Invalid {kind}: {value!r}")


def _describe(variant: Optional[str], arch: Optional[str], version: Any) -> str:
    if variant is None and arch is None and version is None:
        return ""
    return f" for update {variant}-{arch}-{version}"


class DuplicateUpdateError(UpdataError):
    """Raised when adding an update whose (variant, arch, version) already exists."""

    def __init__(self, variant: str, arch: str, version: Any):
        self.variant = variant
        self.arch = arch
        self.version = version
        super().__init__(
            f"Update {variant}-{arch}-{version} already exists in the manifest"
        )


class UpdateNotFoundError(UpdataError):
    """Raised when a mutation targets an update that does not exist."""

    def __init__(self, variant: str, arch: str, version: Any):
        self.variant = variant
        self.arch = arch
        self.version = version
        super().__init__(f"No update {variant}-{arch}-{version} in the manifest")


class InvalidBoundError(UpdataError):
    """Raised when a wave bound falls outside [0, MAX_BOUND)."""

    def __init__(
        self,
        bound: int,
        max_bound: int,
        variant: Optional[str] = None,
        arch: Optional[str] = None,
        version: Any = None,
    ):
        self.bound = bound
        self.max_bound = max_bound
        self.variant = variant
        self.arch = arch
        self.version = version
        super().__init__(
            f"Wave bound {bound} is outside [0, {max_bound})"
            + _describe(variant, arch, version)
        )


class WaveOrderingViolationError(UpdataError):
    """
    Raised when a wave would start before a smaller bound or after a larger one.

    Attributes:
        bound: Bound of the rejected wave
        start_time: Start time of the rejected wave
        neighbour_bound: Bound of the existing wave it conflicts with
        neighbour_start: Start time of that existing wave
    """

    def __init__(
        self,
        bound: int,
        start_time: datetime,
        neighbour_bound: int,
        neighbour_start: datetime,
        variant: Optional[str] = None,
        arch: Optional[str] = None,
        version: Any = None,
    ):
        self.bound = bound
        self.start_time = start_time
        self.neighbour_bound = neighbour_bound
        self.neighbour_start = neighbour_start
        self.variant = variant
        self.arch = arch
        self.version = version

        if neighbour_bound < bound:
            relation = "before the earlier wave"
        else:
            relation = "after the later wave"
        super().__init__(
            f"Wave {bound} at {start_time.isoformat()} would start {relation} "
            f"{neighbour_bound} at {neighbour_start.isoformat()}"
            + _describe(variant, arch, version)
        )


class MissingStartTimeError(UpdataError):
    """Raised when a wave is added without a start time."""

    def __init__(self, variant: str, arch: str, version: Any, bound: int):
        self.variant = variant
        self.arch = arch
        self.version = version
        self.bound = bound
        super().__init__(
            f"Wave {bound} needs a start time"
            + _describe(variant, arch, version)
        )


class ManifestValidationError(UpdataError):
    """Raised when a manifest breaks one or more of its invariants."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__(
            "Manifest is inconsistent: " + "; ".join(self.problems)
        )


class LoadError(UpdataError):
    """Raised when a document cannot be read or decoded."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Failed to load {path}: {reason}")


class ReleaseError(LoadError):
    """Raised when a release description cannot be read or parsed."""
    pass


class SaveError(UpdataError):
    """Raised when a manifest cannot be written."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Failed to write {path}: {reason}")


class LockTimeoutError(UpdataError):
    """Raised when another process holds the manifest lock for too long."""

    def __init__(
        self,
        path: Union[str, Path],
        timeout: float,
        owner_pid: Optional[int] = None,
        owner_alive: bool = True,
    ):
        self.path = Path(path)
        self.timeout = timeout
        self.owner_pid = owner_pid
        self.owner_alive = owner_alive
        message = f"Timed out after {timeout:g}s waiting for lock {path}"
        if not owner_alive:
            message += (
                f"; it was left by process {owner_pid}, which is no longer running. "
                f"Remove {path} and retry"
            )
        else:
            holder = f" held by process {owner_pid}" if owner_pid is not None else ""
            message += (
                f"; another update{holder} may be in progress. "
                f"If no other updata command is running, remove {path} and retry"
            )
        super().__init__(message)
