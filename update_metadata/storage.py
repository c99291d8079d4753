"""
Manifest file persistence.

Loads and writes the JSON manifest document. Loading decodes the document
and checks every manifest invariant; writing goes through a temporary file
in the same directory so a failed write never leaves a truncated manifest.

Callers that load, change and write a manifest should hold
``manifest_lock`` for the whole sequence.
"""

import contextlib
import json
import logging
import os
import stat
import tempfile
import time
from pathlib import Path
from typing import Iterator, Optional, Union

from pydantic import ValidationError

from update_metadata.errors import LoadError, LockTimeoutError, SaveError, UpdataError
from update_metadata.manifest import Manifest
from update_metadata.schema import ManifestDocument

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_INDENT = 2
DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0
LOCK_POLL_INTERVAL_SECONDS = 0.05


def loads(text: str, path: PathLike = "<string>") -> Manifest:
    """
    Decode a manifest document and validate it.

    Raises:
        LoadError: If the text is not valid JSON, does not match the document
            schema, or describes an inconsistent manifest
    """
    try:
        document = ManifestDocument.model_validate_json(text)
    except ValidationError as e:
        if any(err.get("type") == "json_invalid" for err in e.errors()):
            raise LoadError(path, f"invalid JSON: {e}") from e
        raise LoadError(path, f"invalid manifest document: {e}") from e

    manifest = document.to_manifest()
    try:
        manifest.validate()
    except UpdataError as e:
        raise LoadError(path, e.message) from e
    return manifest


def dumps(manifest: Manifest, indent: int = DEFAULT_INDENT) -> str:
    """Encode a manifest as JSON text (with a trailing newline)."""
    return ManifestDocument.from_manifest(manifest).to_json(indent=indent) + "\n"


def load_file(path: PathLike) -> Manifest:
    """
    Load a manifest file.

    Raises:
        LoadError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise LoadError(path, "file does not exist") from e
    except (OSError, UnicodeDecodeError) as e:
        raise LoadError(path, str(e)) from e

    manifest = loads(text, path)
    logger.debug("Loaded %s with %d updates", path, len(manifest))
    return manifest


def load_or_default(path: PathLike) -> Manifest:
    """
    Load a manifest file, or start an empty manifest if it does not exist.

    Only a missing file falls back to an empty manifest; any other failure
    is raised.
    """
    path = Path(path)
    if not path.exists():
        logger.info("%s does not exist; starting from an empty manifest", path)
        return Manifest()
    return load_file(path)


def write_file(path: PathLike, manifest: Manifest, indent: int = DEFAULT_INDENT) -> None:
    """
    Write a manifest file atomically.

    Raises:
        SaveError: If the file cannot be written
    """
    path = Path(path)
    text = dumps(manifest, indent=indent)

    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, _target_mode(path))
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
        raise SaveError(path, str(e)) from e

    logger.debug("Wrote %s with %d updates", path, len(manifest))


def _target_mode(path: Path) -> int:
    """Permission bits for a rewritten file: the current file's, or the umask default."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def lock_path_for(path: PathLike) -> Path:
    path = Path(path)
    return path.with_name(path.name + ".lock")


def _lock_owner(lock_path: Path) -> Optional[int]:
    """Pid recorded in a lock file, or None if it cannot be read."""
    try:
        data = json.loads(lock_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    pid = data.get("pid") if isinstance(data, dict) else None
    if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
        return None
    return pid


def _process_alive(pid: int) -> bool:
    # Signal 0 checks for the process without signalling it on POSIX
    if os.name != "posix":
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


@contextlib.contextmanager
def manifest_lock(
    path: PathLike,
    timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
) -> Iterator[Path]:
    """
    Hold an exclusive lock file next to the manifest.

    The lock is a ``<manifest>.lock`` file created with O_EXCL that records
    the holder's pid; it is polled until ``timeout`` seconds have passed.
    On timeout the error names the holder and says whether it is still
    running, so a lock left by a killed process can be removed by hand.

    Raises:
        LockTimeoutError: If the lock could not be taken in time
    """
    lock_path = lock_path_for(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    deadline = time.monotonic() + timeout

    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_RDWR)
            break
        except FileExistsError:
            if time.monotonic() >= deadline:
                owner = _lock_owner(lock_path)
                raise LockTimeoutError(
                    lock_path,
                    timeout,
                    owner_pid=owner,
                    owner_alive=owner is None or _process_alive(owner),
                )
            time.sleep(LOCK_POLL_INTERVAL_SECONDS)

    try:
        os.write(fd, json.dumps({"pid": os.getpid()}).encode("utf-8"))
        yield lock_path
    finally:
        os.close(fd)
        with contextlib.suppress(FileNotFoundError):
            lock_path.unlink()
