"""
Module: scanner
Purpose: Read-only enumeration of media files in sources and libraries.
"""

import os
from datetime import datetime, timezone
from typing import List

from .exceptions import ScanError
from .models.detection import CandidateMediaItem
from .models.library import MEDIA_TYPES_BOTH
from .utils import TEMP_MARKER, log_error, log_warning

IMAGE_FORMATS = {
    "jpg",
    "jpeg",
    "png",
    "heic",
    "heif",
    "tiff",
    "tif",
    "gif",
    "webp",
    "cr2",
    "nef",
    "arw",
    "dng",
    "raf",
    "orf",
    "rw2",
}
VIDEO_FORMATS = {"mov", "mp4", "m4v", "avi", "mkv", "mpg", "mpeg"}
SUPPORTED_FORMATS = IMAGE_FORMATS | VIDEO_FORMATS
MEDIA_TYPE_FILTERS = {
    "images": {"image"},
    "videos": {"video"},
    MEDIA_TYPES_BOTH: {"image", "video"},
}


def file_extension(path: str) -> str:
    _, ext = os.path.splitext(path)
    return ext.lstrip(".").lower()


def media_type(path: str) -> str | None:
    """Return "image", "video" or None for unsupported files."""
    ext = file_extension(path)
    if ext in IMAGE_FORMATS:
        return "image"
    if ext in VIDEO_FORMATS:
        return "video"
    return None


def _walk_media(root: str, *, skip_dirs: set[str]) -> List[str]:
    results: List[str] = []
    for current, dirs, files in os.walk(root, topdown=True, followlinks=False):
        safe_dirs: List[str] = []
        for dirname in dirs:
            dir_path = os.path.join(current, dirname)
            if current == root and dirname in skip_dirs:
                continue
            if os.path.islink(dir_path):
                log_warning(f"Skipping symlinked directory during scan: {dir_path}")
                continue
            safe_dirs.append(dirname)
        dirs[:] = safe_dirs
        for name in files:
            if TEMP_MARKER in name:
                continue
            file_path = os.path.join(current, name)
            if os.path.islink(file_path):
                log_warning(f"Skipping symlinked file during scan: {file_path}")
                continue
            if file_extension(name) not in SUPPORTED_FORMATS:
                continue
            results.append(file_path)
    results.sort()
    return results


def scan_source(path: str, media_types: str = MEDIA_TYPES_BOTH) -> List[CandidateMediaItem]:
    """
    Recursively scan a source folder for media files.
    Never modifies the source.

    Args:
        path: Source folder.
        media_types: "images", "videos" or "both"; files of other kinds are left out.

    Returns:
        Candidate items sorted by absolute path.

    Raises:
        ScanError: If the folder is missing or not a directory, or the filter is unknown.
    """
    wanted = MEDIA_TYPE_FILTERS.get(media_types)
    if wanted is None:
        raise ScanError(f"Unknown media types filter: {media_types}")
    root = os.path.abspath(path)
    if not os.path.exists(root):
        log_error(f"Source path does not exist: {root}")
        raise ScanError(f"Source path does not exist: {root}")
    if not os.path.isdir(root):
        log_error(f"Source path is not a directory: {root}")
        raise ScanError(f"Source path is not a directory: {root}")

    items: List[CandidateMediaItem] = []
    for file_path in _walk_media(root, skip_dirs=set()):
        if media_type(file_path) not in wanted:
            continue
        try:
            stat = os.stat(file_path)
        except OSError as exc:
            log_error(f"Failed to read file info for {file_path}: {exc}")
            continue
        items.append(
            CandidateMediaItem(
                path=file_path,
                size=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                file_name=os.path.basename(file_path),
            )
        )
    return items


def scan_library_files(root: str, metadata_dirname: str) -> List[str]:
    """
    List media files stored in a library, excluding its metadata directory.
    """
    normalized = os.path.abspath(root)
    if not os.path.isdir(normalized):
        raise ScanError(f"Library path is not a directory: {normalized}")
    return _walk_media(normalized, skip_dirs={metadata_dirname})
