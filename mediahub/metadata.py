"""
Module: metadata
Purpose: Capture timestamp extraction for import destinations.
"""

import os
from datetime import datetime

from PIL import ExifTags, Image

from .exceptions import MetadataError
from .scanner import media_type
from .utils import ensure_heif_registered, log_error, log_warning

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"
MIN_VALID_YEAR = 1900
MAX_VALID_YEAR = 2100


def _valid_capture_year(value: datetime) -> bool:
    return MIN_VALID_YEAR <= value.year <= MAX_VALID_YEAR


def extract_exif_datetime(path: str) -> datetime | None:
    """
    Read DateTimeOriginal from an image's EXIF block.

    Args:
        path: Image file path.

    Returns:
        Naive capture datetime, or None if absent, unreadable or out of range.
    """
    if media_type(path) != "image":
        return None
    try:
        ensure_heif_registered()
        with Image.open(os.path.abspath(path)) as image:
            exif = image.getexif()
            exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
    except Exception as exc:
        log_warning(f"Unreadable EXIF for {path}: {exc}")
        return None

    raw_value = exif_ifd.get(ExifTags.Base.DateTimeOriginal)
    if not raw_value:
        return None
    try:
        captured = datetime.strptime(str(raw_value).strip(), EXIF_DATETIME_FORMAT)
    except ValueError:
        log_warning(f"Ignoring malformed DateTimeOriginal '{raw_value}' in {path}")
        return None
    if not _valid_capture_year(captured):
        log_warning(f"Ignoring out-of-range DateTimeOriginal '{raw_value}' in {path}")
        return None
    return captured


def safe_modified_timestamp(path: str) -> datetime:
    """
    Fallback timestamp.

    Args:
        path: File path to inspect.

    Returns:
        Datetime derived from filesystem metadata.

    Raises:
        MetadataError: If timestamp cannot be read.
    """
    try:
        normalized = os.path.abspath(path)
        modified = os.path.getmtime(normalized)
        return datetime.fromtimestamp(modified)
    except OSError as exc:
        log_error(f"Failed to read modified timestamp for {path}: {exc}")
        raise MetadataError(f"Failed to read modified timestamp for {path}") from exc


def extract_timestamp(path: str) -> datetime:
    """
    Capture time for destination mapping: EXIF DateTimeOriginal when valid,
    file modification time otherwise.

    Raises:
        MetadataError: If neither source yields a timestamp.
    """
    captured = extract_exif_datetime(path)
    if captured is not None:
        return captured
    return safe_modified_timestamp(path)
