"""
Module: library
Purpose: Library identity, on-disk layout and attached source management.
"""

import os
import uuid
from typing import List, Optional

from .exceptions import LibraryError, LibraryNotFoundError, MediaHubError, SourceError
from .models.library import SOURCE_MEDIA_TYPES, LibraryMetadata, Source
from .reporting import read_json, write_json_atomic
from .utils import ensure_directory, log_error, log_info, utc_now

METADATA_DIR = ".mediahub"
LIBRARY_FILE = "library.json"
REGISTRY_DIR = "registry"
INDEX_FILE = "index.json"
INDEX_LOCK_FILE = "index.lock"
SOURCES_DIR = "sources"
ASSOCIATIONS_FILE = "associations.json"
ASSOCIATIONS_VERSION = "1.0"


def metadata_dir(root: str) -> str:
    return os.path.join(os.path.abspath(root), METADATA_DIR)


def library_file(root: str) -> str:
    return os.path.join(metadata_dir(root), LIBRARY_FILE)


def index_file(root: str) -> str:
    return os.path.join(metadata_dir(root), REGISTRY_DIR, INDEX_FILE)


def index_lock_file(root: str) -> str:
    return os.path.join(metadata_dir(root), REGISTRY_DIR, INDEX_LOCK_FILE)


def associations_file(root: str) -> str:
    return os.path.join(metadata_dir(root), SOURCES_DIR, ASSOCIATIONS_FILE)


def source_dir(root: str, source_id: str) -> str:
    return os.path.join(metadata_dir(root), SOURCES_DIR, source_id)


def is_library(root: str) -> bool:
    return os.path.isfile(library_file(root))


def create_library(path: str) -> LibraryMetadata:
    """
    Initialize a new library at `path` with metadata, an empty index
    and an empty source registry.

    Args:
        path: Library root directory; created if missing.

    Returns:
        The persisted LibraryMetadata.

    Raises:
        LibraryError: If the directory already holds a library or cannot be initialized.
    """
    from . import index  # Local import to break circular dependency

    root = os.path.abspath(path)
    if is_library(root):
        raise LibraryError(f"A library already exists at {root}")
    if os.path.exists(root) and not os.path.isdir(root):
        raise LibraryError(f"Library path is not a directory: {root}")
    metadata = LibraryMetadata(
        library_id=str(uuid.uuid4()),
        created_at=utc_now(),
        root_path=root,
    )
    try:
        ensure_directory(os.path.join(metadata_dir(root), REGISTRY_DIR))
        write_json_atomic(metadata.to_dict(), library_file(root))
        index.write_index(root, index.BaselineIndex())
        _save_sources(root, metadata.library_id, [])
    except MediaHubError as exc:
        raise LibraryError(f"Failed to create library at {root}: {exc}") from exc
    log_info(f"Library created at {root} (id={metadata.library_id})")
    return metadata


def open_library(path: str) -> LibraryMetadata:
    """
    Load library metadata.

    Raises:
        LibraryNotFoundError: If the path is not an initialized library.
        LibraryError: If the metadata file is unreadable or malformed.
    """
    root = os.path.abspath(path)
    if not os.path.isdir(root):
        raise LibraryNotFoundError(f"Library not found: {root}")
    if not is_library(root):
        raise LibraryNotFoundError(
            f"No library metadata at {root}. Run 'mediahub library create {root}' first."
        )
    try:
        return LibraryMetadata.from_dict(read_json(library_file(root)))
    except (OSError, ValueError, KeyError, TypeError) as exc:
        log_error(f"Invalid library metadata at {library_file(root)}: {exc}")
        raise LibraryError(f"Invalid library metadata: {exc}") from exc


def list_sources(root: str) -> List[Source]:
    """Return attached sources in attachment order."""
    path = associations_file(root)
    if not os.path.exists(path):
        return []
    try:
        data = read_json(path)
        return [Source.from_dict(item) for item in data.get("sources", [])]
    except (OSError, ValueError, KeyError, TypeError) as exc:
        log_error(f"Invalid source associations at {path}: {exc}")
        raise SourceError(f"Invalid source associations: {exc}") from exc


def _save_sources(root: str, library_id: str, sources: List[Source]) -> None:
    payload = {
        "version": ASSOCIATIONS_VERSION,
        "library_id": library_id,
        "sources": [source.to_dict() for source in sources],
    }
    write_json_atomic(payload, associations_file(root))


def attach_source(root: str, path: str, media_types: Optional[str] = None) -> Source:
    """
    Attach a folder as a source of new media.

    Args:
        root: Library root.
        path: Folder to attach.
        media_types: Optional filter ("images", "videos" or "both"); None scans both.

    Returns:
        The new Source.

    Raises:
        SourceError: If the folder is invalid, overlaps the library metadata, is already
            attached, or the media types value is unknown.
    """
    metadata = open_library(root)
    if media_types is not None:
        media_types = media_types.strip().lower()
        if media_types not in SOURCE_MEDIA_TYPES:
            raise SourceError(
                f"Invalid media types value: '{media_types}'. Valid values: {', '.join(SOURCE_MEDIA_TYPES)}"
            )
    source_path = os.path.realpath(os.path.abspath(path))
    if not os.path.isdir(source_path):
        raise SourceError(f"Source path is not a directory: {source_path}")
    if not os.access(source_path, os.R_OK):
        raise SourceError(f"Source path is not readable: {source_path}")
    meta_real = os.path.realpath(metadata_dir(root))
    if os.path.commonpath([source_path, meta_real]) == meta_real:
        raise SourceError("Source path cannot be inside the library metadata directory.")
    sources = list_sources(root)
    for existing in sources:
        if os.path.realpath(existing.path) == source_path:
            raise SourceError(
                f"Source already attached: {source_path} (id={existing.source_id})"
            )
    source = Source(
        source_id=str(uuid.uuid4()),
        path=source_path,
        attached_at=utc_now(),
        media_types=media_types,
    )
    sources.append(source)
    _save_sources(root, metadata.library_id, sources)
    log_info(f"Source attached: {source_path} (id={source.source_id})")
    return source


def get_source(root: str, source_id: str) -> Source:
    for source in list_sources(root):
        if source.source_id == source_id:
            return source
    raise SourceError(f"Source not found: {source_id}")


def record_detection(root: str, source_id: str, detected_at) -> Source:
    """Persist the last detection time for a source."""
    metadata = open_library(root)
    sources = list_sources(root)
    updated: Source | None = None
    for position, source in enumerate(sources):
        if source.source_id == source_id:
            updated = source.with_detection(detected_at)
            sources[position] = updated
    if updated is None:
        raise SourceError(f"Source not found: {source_id}")
    _save_sources(root, metadata.library_id, sources)
    return updated

