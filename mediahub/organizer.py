"""
Module: organizer
Purpose: Destination mapping and collision handling for imports.
"""

import os
import re
from datetime import datetime
from typing import AbstractSet, NamedTuple, Optional

from .exceptions import CollisionError
from .utils import log_info, log_warning, path_violation_message

UNSAFE_FILENAME_PATTERN = re.compile(r"[/\\\x00-\x1f\x7f]")
MAX_RENAME_ATTEMPTS = 1000
COLLISION_SKIP_REASON = "File already exists at destination"


class CollisionDecision(NamedTuple):
    action: str  # "copy" or "skip"
    path: str
    reason: Optional[str] = None


def sanitize_filename(name: str) -> str:
    """Replace path separators and control characters; never return an empty name."""
    cleaned = UNSAFE_FILENAME_PATTERN.sub("_", name).strip()
    if cleaned in ("", ".", ".."):
        return "unnamed"
    return cleaned


def relative_destination(file_name: str, captured: datetime) -> str:
    """YYYY/MM/<sanitized file name>, with forward slashes."""
    return f"{captured.year:04d}/{captured.month:02d}/{sanitize_filename(file_name)}"


def determine_target_path(file_name: str, captured: datetime, library_root: str) -> str:
    """
    Compute the absolute import destination for a file.

    Args:
        file_name: Original file name.
        captured: Capture timestamp deciding the YEAR/MONTH folder.
        library_root: Library root directory.

    Returns:
        Absolute target path inside the library.

    Raises:
        CollisionError: If the target would escape the library.
    """
    root = os.path.abspath(library_root)
    target = os.path.join(root, *relative_destination(file_name, captured).split("/"))
    violation = path_violation_message(target, root, label="Destination file")
    if violation:
        log_warning(f"Destination safety violation: {violation}")
        raise CollisionError(violation)
    return target


def _occupied(path: str, claimed: AbstractSet[str]) -> bool:
    return os.path.lexists(path) or path in claimed


def _renamed_path(path: str, claimed: AbstractSet[str]) -> str:
    directory, name = os.path.split(path)
    base, ext = os.path.splitext(name)
    for attempt in range(1, MAX_RENAME_ATTEMPTS + 1):
        candidate = os.path.join(directory, f"{base} ({attempt}){ext}")
        if not _occupied(candidate, claimed):
            return candidate
    raise CollisionError(
        f"Unable to find an available name for {name} after {MAX_RENAME_ATTEMPTS} attempts"
    )


def resolve_collision(
    path: str,
    policy: str,
    claimed: AbstractSet[str] = frozenset(),
) -> CollisionDecision:
    """
    Apply a collision policy to a planned destination.

    Args:
        path: Planned absolute destination.
        policy: "skip", "rename" or "error".
        claimed: Destinations already taken earlier in the same batch.

    Returns:
        CollisionDecision telling the caller to copy (possibly to a renamed path) or skip.

    Raises:
        CollisionError: If the destination is a directory, or the policy is "error"
            and the destination is occupied, or renaming is exhausted.
    """
    if os.path.isdir(path):
        raise CollisionError(f"Destination is a directory: {path}")
    if not _occupied(path, claimed):
        return CollisionDecision("copy", path)
    if policy == "skip":
        return CollisionDecision("skip", path, COLLISION_SKIP_REASON)
    if policy == "rename":
        renamed = _renamed_path(path, claimed)
        log_info(
            f"Filename collision detected for '{os.path.basename(path)}'. "
            f"Storing incoming file as '{os.path.basename(renamed)}'."
        )
        return CollisionDecision("copy", renamed)
    if policy == "error":
        raise CollisionError(f"File already exists at destination: {path}")
    raise CollisionError(f"Unknown collision policy: {policy}")
