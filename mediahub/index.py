"""
Module: index
Purpose: Load, lock and atomically persist the library index.
"""

from __future__ import annotations

import contextlib
import json
import os
from dataclasses import dataclass
from types import ModuleType
from typing import Iterable, Iterator, List

from .exceptions import (
    IndexInvalidError,
    IndexLockedError,
    IndexNotFoundError,
    IndexWriteError,
    LibraryNotFoundError,
    MediaHubError,
    SelectionError,
)
from .library import METADATA_DIR, index_file, index_lock_file
from .models.baseline import INDEX_VERSION, BaselineIndex, IndexEntry
from .models.snapshot import Snapshot
from .scanner import scan_library_files
from .utils import ensure_directory, log_error, log_info, log_warning, remove_quietly, temp_sibling, utc_now

try:
    import fcntl as _fcntl
except ImportError:  # pragma: no cover
    fcntl: ModuleType | None = None
else:
    fcntl = _fcntl


@dataclass
class IndexLock:
    """Exclusive single-writer lock guarding index mutations."""

    path: str
    _fd: int | None = None

    def acquire(self) -> None:
        ensure_directory(os.path.dirname(self.path))
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        self._fd = fd
        if fcntl is None:
            return
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            os.close(fd)
            self._fd = None
            raise IndexLockedError(
                f"Index is locked by another MediaHub process: {self.path}"
            ) from exc

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            if fcntl is not None:
                with contextlib.suppress(OSError):
                    fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None


@contextlib.contextmanager
def index_lock(root: str) -> Iterator[IndexLock]:
    lock = IndexLock(index_lock_file(root))
    lock.acquire()
    try:
        yield lock
    finally:
        lock.release()


def to_relative(root: str, path: str) -> str:
    """Library-relative path with forward slashes."""
    relative = os.path.relpath(os.path.abspath(path), os.path.abspath(root))
    return relative.replace(os.sep, "/")


def to_absolute(root: str, relative: str) -> str:
    return os.path.join(os.path.abspath(root), *relative.split("/"))


def load_index(root: str) -> BaselineIndex:
    """
    Read and validate the persisted index.

    Args:
        root: Library root.

    Returns:
        The parsed BaselineIndex.

    Raises:
        LibraryNotFoundError: If the library root is missing.
        IndexNotFoundError: If the index file is missing.
        IndexInvalidError: If the file is not a supported index document.
        SelectionError: If the file cannot be read.
    """
    normalized = os.path.abspath(root)
    if not os.path.isdir(normalized):
        raise LibraryNotFoundError(f"Library not found: {normalized}")
    path = index_file(normalized)
    if not os.path.exists(path):
        raise IndexNotFoundError(f"Index not found at {path}")
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except ValueError as exc:
        log_error(f"Index at {path} is not valid JSON: {exc}")
        raise IndexInvalidError(f"Index is invalid: {exc}") from exc
    except OSError as exc:
        log_error(f"Failed to load index {path}: {exc}")
        raise SelectionError(f"Index load failed: {exc}") from exc
    if not isinstance(data, dict) or data.get("version") != INDEX_VERSION:
        version = data.get("version") if isinstance(data, dict) else None
        raise IndexInvalidError(f"Unsupported index version: {version!r}")
    try:
        return BaselineIndex.from_dict(data)
    except (KeyError, TypeError, ValueError) as exc:
        log_error(f"Index at {path} has malformed entries: {exc}")
        raise IndexInvalidError(f"Index is invalid: {exc}") from exc


def snapshot_of(index: BaselineIndex) -> Snapshot:
    with_hash = index.hashed_count
    return Snapshot(
        total_entries=index.entry_count,
        entries_with_hash=with_hash,
        entries_missing_hash=index.entry_count - with_hash,
    )


def read_snapshot(root: str) -> Snapshot:
    return snapshot_of(load_index(root))


def write_index(root: str, index: BaselineIndex) -> str:
    """
    Persist the index in a single durable step.

    The document is written to a temp file in the registry directory,
    flushed, size-checked and then swapped in with os.replace, so readers
    observe either the old or the new index. Callers mutating an existing
    index hold `index_lock` around load and write.

    Returns:
        Absolute path of the index file.

    Raises:
        IndexWriteError: If any step fails; the committed index is left untouched.
    """
    path = index_file(root)
    index.last_updated = utc_now()
    data = json.dumps(index.to_dict(), indent=2).encode("utf-8")
    temp_path = temp_sibling(path)
    try:
        ensure_directory(os.path.dirname(path))
        with open(temp_path, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        written = os.path.getsize(temp_path)
        if written != len(data):
            raise OSError(f"size mismatch ({written} of {len(data)} bytes)")
        os.replace(temp_path, path)
    except (OSError, MediaHubError) as exc:
        remove_quietly(temp_path)
        log_error(f"Index write failed for {path}: {exc}")
        raise IndexWriteError(
            f"Index write failed: {exc}. The previous index was left unchanged."
        ) from exc
    return path


def add_entries(root: str, entries: Iterable[IndexEntry], *, replace_existing: bool = False) -> int:
    """
    Add entries for paths the index does not yet know.

    With `replace_existing`, an entry already recorded at the same path is
    swapped for the new one. Import uses this for its destinations: a file
    copied to a path whose indexed file had gone missing must not inherit
    the old size, mtime and hash.

    Returns:
        Number of entries added or replaced; zero means no write happened.
    """
    with index_lock(root):
        index = load_index(root)
        positions = {entry.path: position for position, entry in enumerate(index.entries)}
        changed = 0
        for entry in entries:
            position = positions.get(entry.path)
            if position is None:
                positions[entry.path] = len(index.entries)
                index.entries.append(entry)
                changed += 1
                continue
            if not replace_existing:
                continue
            log_warning(f"Replacing stale index entry for {entry.path}")
            index.entries[position] = entry
            changed += 1
        if changed:
            write_index(root, index)
    return changed


def entry_for_file(root: str, path: str) -> IndexEntry:
    stat = os.stat(path)
    return IndexEntry(path=to_relative(root, path), size=stat.st_size, mtime=stat.st_mtime)


def rebuild_index(root: str) -> BaselineIndex:
    """
    Rescan library files into the index.

    Hashes are preserved for entries whose path, size and mtime are unchanged.

    Returns:
        The written index.
    """
    with index_lock(root):
        try:
            existing: BaselineIndex | None = load_index(root)
        except IndexNotFoundError:
            existing = None
        previous = {entry.path: entry for entry in existing.entries} if existing else {}
        entries: List[IndexEntry] = []
        for path in scan_library_files(root, METADATA_DIR):
            try:
                entry = entry_for_file(root, path)
            except OSError as exc:
                log_error(f"Failed to stat {path} during index rebuild: {exc}")
                continue
            old = previous.get(entry.path)
            if old and old.hash and old.size == entry.size and old.mtime == entry.mtime:
                entry.hash = old.hash
            entries.append(entry)
        rebuilt = BaselineIndex(entries=entries)
        if existing is not None:
            rebuilt.created = existing.created
        write_index(root, rebuilt)
    log_info(f"Index rebuilt for {root}: {rebuilt.entry_count} entries")
    return rebuilt
