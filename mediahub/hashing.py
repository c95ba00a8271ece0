"""Content hashing helpers for index coverage and duplicate detection."""

from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
import hashlib
import os
from typing import List, Optional, Sequence, Tuple

from .exceptions import HashingError
from .utils import executor_mode, log_error, log_warning, worker_count

CHUNK_SIZE = 65536


def compute_sha256(path: str) -> str:
    """
    Compute SHA256 of a file's content.

    Args:
        path: Path to the file.

    Returns:
        Hexadecimal SHA256 digest.

    Raises:
        HashingError: If hashing fails.
    """
    try:
        normalized = os.path.abspath(path)
        sha = hashlib.sha256()
        with open(normalized, "rb") as handle:
            for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
                sha.update(chunk)
        return sha.hexdigest()
    except Exception as exc:
        log_error(f"Failed to compute SHA256 for {path}: {exc}")
        raise HashingError(f"Failed to compute SHA256 for {path}") from exc


def _hash_file(path: str) -> Optional[str]:
    """
    Hash a single file, returning None on failure.
    Designed to be used with a process pool.
    """
    try:
        return compute_sha256(path)
    except HashingError:
        return None


def compute_hashes(paths: Sequence[str]) -> List[Tuple[str, Optional[str]]]:
    """
    Hash files in parallel with a bounded pool.

    Args:
        paths: Files to hash.

    Returns:
        (path, digest or None) pairs in the same order as `paths`.
    """
    if not paths:
        return []
    workers = min(worker_count(), len(paths))
    mode = executor_mode()
    results: List[Optional[str]]
    if mode == "process":
        try:
            with ProcessPoolExecutor(max_workers=workers) as executor:
                results = list(executor.map(_hash_file, paths))
        except (NotImplementedError, PermissionError, OSError, RuntimeError) as exc:
            log_warning(f"ProcessPool unavailable, falling back to ThreadPool for hashing: {exc}")
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results = list(executor.map(_hash_file, paths))
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(_hash_file, paths))
    return list(zip(paths, results))
