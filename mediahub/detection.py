"""
Module: detection
Purpose: Compare a source scan with library state and persist the result.
"""

import glob
import os
from typing import Dict, List, Optional

from .exceptions import DetectionError, MediaHubError, ScanError
from .hashing import compute_hashes
from .index import load_index, snapshot_of, to_relative
from .library import get_source, open_library, record_detection, source_dir
from .models.detection import (
    DUPLICATE_BY_CONTENT,
    DUPLICATE_BY_PATH,
    EXCLUSION_ALREADY_KNOWN,
    STATUS_KNOWN,
    STATUS_NEW,
    Candidate,
    CandidateMediaItem,
    DetectionResult,
    DetectionSummary,
)
from .reporting import read_json, write_json_atomic
from .scanner import scan_source
from .tracking import known_paths
from .utils import format_timestamp, log_info, log_warning, utc_now

DETECTIONS_DIR = "detections"
LATEST_FILE = "latest.json"


def detections_dir(root: str, source_id: str) -> str:
    return os.path.join(source_dir(root, source_id), DETECTIONS_DIR)


def _known(item: CandidateMediaItem, **details) -> Candidate:
    return Candidate(
        item=item,
        status=STATUS_KNOWN,
        exclusion_reason=EXCLUSION_ALREADY_KNOWN,
        **details,
    )


def _library_relative(root: str, path: str) -> Optional[str]:
    library_real = os.path.realpath(root)
    resolved = os.path.realpath(path)
    if os.path.commonpath([resolved, library_real]) != library_real:
        return None
    return to_relative(library_real, resolved)


def run_detection(root: str, source_id: str) -> DetectionResult:
    """
    Scan a source and classify every media file as new or known.

    An item is known when it was imported from this source before, when it
    already lives at an indexed library path, or when its content hash equals
    a hashed index entry. Content comparison only runs when the index has
    hash coverage. The result is persisted and becomes the source's latest
    detection.

    Args:
        root: Library root.
        source_id: Attached source identifier.

    Returns:
        The persisted DetectionResult.

    Raises:
        SourceError: If the source is not attached.
        SelectionError: If the library index cannot be read.
        DetectionError: If the scan fails or the result is inconsistent.
    """
    metadata = open_library(root)
    source = get_source(root, source_id)
    try:
        items = scan_source(source.path, source.effective_media_types)
    except ScanError as exc:
        raise DetectionError(f"Source scan failed: {exc}") from exc
    index = load_index(root)
    try:
        imported = known_paths(root, source_id)
    except MediaHubError as exc:
        raise DetectionError(f"Known items unavailable: {exc}") from exc

    indexed_paths = {entry.path for entry in index.entries}
    library_by_hash: Dict[str, str] = {}
    for entry in index.sorted_entries():
        if entry.hash:
            library_by_hash.setdefault(entry.hash, entry.path)

    decided: Dict[str, Candidate] = {}
    pending: List[CandidateMediaItem] = []
    for item in items:
        if os.path.realpath(item.path) in imported:
            decided[item.path] = _known(item, duplicate_reason=DUPLICATE_BY_PATH)
            continue
        relative = _library_relative(root, item.path)
        if relative is not None and relative in indexed_paths:
            decided[item.path] = _known(
                item,
                duplicate_reason=DUPLICATE_BY_PATH,
                duplicate_of_library_path=relative,
            )
            continue
        pending.append(item)

    if library_by_hash and pending:
        digests = dict(compute_hashes([item.path for item in pending]))
        for item in pending:
            digest = digests.get(item.path)
            if digest is None:
                log_warning(f"Content comparison skipped for unreadable file {item.path}")
            elif digest in library_by_hash:
                decided[item.path] = _known(
                    item,
                    duplicate_reason=DUPLICATE_BY_CONTENT,
                    duplicate_of_hash=digest,
                    duplicate_of_library_path=library_by_hash[digest],
                )

    candidates = [
        decided.get(item.path) or Candidate(item=item, status=STATUS_NEW) for item in items
    ]
    new_count = sum(1 for candidate in candidates if candidate.status == STATUS_NEW)
    result = DetectionResult(
        source_id=source_id,
        library_id=metadata.library_id,
        detected_at=utc_now(),
        summary=DetectionSummary(
            total_scanned=len(candidates),
            new_items=new_count,
            known_items=len(candidates) - new_count,
        ),
        candidates=candidates,
        hash_coverage=snapshot_of(index).hash_coverage,
    )
    if not result.is_consistent():
        raise DetectionError("Detection summary does not match its candidates")
    persist_detection_result(root, result)
    record_detection(root, source_id, result.detected_at)
    log_info(
        f"Detection for source {source_id}: {result.summary.total_scanned} scanned, "
        f"{result.summary.new_items} new, {result.summary.known_items} known"
    )
    return result


def persist_detection_result(root: str, result: DetectionResult) -> str:
    """
    Write a timestamped detection file and refresh the source's latest pointer.

    Returns:
        Path of the timestamped file.
    """
    directory = detections_dir(root, result.source_id)
    stamp = format_timestamp(result.detected_at).replace(":", "-")
    path = os.path.join(directory, f"{stamp}.json")
    payload = result.to_dict()
    try:
        write_json_atomic(payload, path)
        write_json_atomic(payload, os.path.join(directory, LATEST_FILE))
    except MediaHubError as exc:
        raise DetectionError(f"Failed to persist detection result: {exc}") from exc
    return path


def _load(path: str) -> Optional[DetectionResult]:
    try:
        return DetectionResult.from_dict(read_json(path))
    except (OSError, ValueError, KeyError, TypeError) as exc:
        log_warning(f"Ignoring unreadable detection result {path}: {exc}")
        return None


def retrieve_latest_detection_result(root: str, source_id: str) -> Optional[DetectionResult]:
    """
    Return the most recent detection for a source, or None when none exists.
    """
    directory = detections_dir(root, source_id)
    latest_path = os.path.join(directory, LATEST_FILE)
    if os.path.exists(latest_path):
        latest = _load(latest_path)
        if latest is not None:
            return latest
    results = [
        result
        for result in (
            _load(path)
            for path in glob.glob(os.path.join(directory, "*.json"))
            if os.path.basename(path) != LATEST_FILE
        )
        if result is not None
    ]
    if not results:
        return None
    return max(results, key=lambda result: result.detected_at)
