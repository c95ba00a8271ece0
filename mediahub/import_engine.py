"""
Module: import_engine
Purpose: Execute imports with collision policies and apply their bookkeeping.
"""

import os
from datetime import datetime
from typing import Iterable, List, Set

from .exceptions import (
    CollisionError,
    CopyError,
    ImportExecutionError,
    MediaHubError,
    MetadataError,
)
from .index import add_entries, entry_for_file, to_absolute, to_relative
from .library import open_library, source_dir
from .metadata import extract_timestamp
from .models.detection import CandidateMediaItem, DetectionResult
from .models.importresult import (
    STATUS_FAILED,
    STATUS_IMPORTED,
    STATUS_SKIPPED,
    ImportedItem,
    ImportOptions,
    ImportReport,
    ImportResult,
    ImportSummary,
)
from .organizer import determine_target_path, resolve_collision
from .reporting import write_json_atomic
from .tracking import record_imports
from .utils import atomic_copy, format_timestamp, log_error, log_info, log_warning, utc_now

IMPORTS_DIR = "imports"
SOURCE_MISSING_REASON = "Source file no longer exists"


def imports_dir(root: str, source_id: str) -> str:
    return os.path.join(source_dir(root, source_id), IMPORTS_DIR)


def _validate_selection(detection: DetectionResult, selected: Iterable[CandidateMediaItem]) -> List[CandidateMediaItem]:
    allowed = {candidate.item.path for candidate in detection.new_candidates}
    items = sorted(selected, key=lambda item: item.path)
    unknown = [item.path for item in items if item.path not in allowed]
    if unknown:
        raise ImportExecutionError(
            f"{len(unknown)} selected item(s) are not new items of the detection result "
            f"(first: {unknown[0]})"
        )
    return items


def _import_one(
    root: str,
    item: CandidateMediaItem,
    options: ImportOptions,
    claimed: Set[str],
    perform_copy: bool = True,
) -> ImportedItem:
    if not os.path.isfile(item.path):
        return ImportedItem(source_path=item.path, status=STATUS_FAILED, reason=SOURCE_MISSING_REASON)
    try:
        captured = extract_timestamp(item.path)
    except MetadataError as exc:
        return ImportedItem(
            source_path=item.path,
            status=STATUS_FAILED,
            reason=f"Timestamp extraction failed: {exc}",
        )
    try:
        planned = determine_target_path(item.file_name, captured, root)
        decision = resolve_collision(planned, options.collision_policy, claimed)
    except CollisionError as exc:
        return ImportedItem(source_path=item.path, status=STATUS_FAILED, reason=f"Collision error: {exc}")
    relative = to_relative(root, decision.path)
    if decision.action == "skip":
        return ImportedItem(
            source_path=item.path,
            status=STATUS_SKIPPED,
            destination_path=relative,
            reason=decision.reason,
        )
    claimed.add(decision.path)
    if not perform_copy:
        return ImportedItem(source_path=item.path, status=STATUS_IMPORTED, destination_path=relative)
    try:
        atomic_copy(item.path, decision.path)
    except CopyError as exc:
        return ImportedItem(source_path=item.path, status=STATUS_FAILED, reason=str(exc))
    return ImportedItem(source_path=item.path, status=STATUS_IMPORTED, destination_path=relative)


def execute_import(
    root: str,
    detection: DetectionResult,
    selected: Iterable[CandidateMediaItem],
    options: ImportOptions | None = None,
    *,
    imported_at: datetime | None = None,
) -> ImportResult:
    """
    Copy selected new items into the library.

    Items are processed in source path order. Each item is revalidated
    (the source file must still exist), mapped to YYYY/MM/<name>, checked for
    collisions against the library and earlier items of this batch, and
    copied atomically. Per-item failures are recorded in the result and never
    abort the batch; already copied files are never touched again.

    Args:
        root: Library root.
        detection: Detection result the selection came from.
        selected: Items to import; each must be a new candidate of `detection`.
        options: Import options, including the collision policy.
        imported_at: Timestamp recorded on the result.

    Returns:
        ImportResult with per-item status and summary counts.

    Raises:
        LibraryNotFoundError: If the library is not initialized.
        ImportExecutionError: If the selection does not belong to the detection.
    """
    options = options or ImportOptions()
    metadata = open_library(root)
    items = _validate_selection(detection, selected)
    claimed: Set[str] = set()
    results: List[ImportedItem] = []
    for item in items:
        outcome = _import_one(root, item, options, claimed)
        if outcome.status == STATUS_FAILED:
            log_error(f"Import failed for {item.path}: {outcome.reason}")
        elif outcome.status == STATUS_SKIPPED:
            log_warning(f"Import skipped for {item.path}: {outcome.reason}")
        results.append(outcome)
    summary = ImportSummary.from_items(results)
    log_info(
        f"Import from source {detection.source_id}: {summary.imported} imported, "
        f"{summary.skipped} skipped, {summary.failed} failed of {summary.total}"
    )
    return ImportResult(
        source_id=detection.source_id,
        library_id=metadata.library_id,
        imported_at=imported_at or utc_now(),
        options=options,
        summary=summary,
        items=results,
    )


def preview_import(
    root: str,
    detection: DetectionResult,
    selected: Iterable[CandidateMediaItem],
    options: ImportOptions | None = None,
) -> List[ImportedItem]:
    """
    Predict per-item outcomes of execute_import without touching the filesystem.
    """
    options = options or ImportOptions()
    open_library(root)
    claimed: Set[str] = set()
    return [
        _import_one(root, item, options, claimed, perform_copy=False)
        for item in _validate_selection(detection, selected)
    ]


def persist_import_result(root: str, result: ImportResult) -> str:
    stamp = format_timestamp(result.imported_at).replace(":", "-")
    path = os.path.join(imports_dir(root, result.source_id), f"{stamp}.json")
    return write_json_atomic(result.to_dict(), path)


def apply_import(root: str, result: ImportResult) -> ImportReport:
    """
    Persist the import result and update known-items tracking and the index.

    Copied files are never removed. Each bookkeeping step is attempted even
    when an earlier one failed; failures are collected on the report so the
    caller can surface a degraded success.

    Args:
        root: Library root.
        result: Result returned by execute_import.

    Returns:
        ImportReport describing what was recorded.
    """
    report = ImportReport(result=result)
    try:
        report.result_path = persist_import_result(root, result)
    except MediaHubError as exc:
        report.errors.append(f"Import result not saved: {exc}")

    try:
        record_imports(root, result.source_id, result.items, result.imported_at)
        report.tracking_updated = True
    except MediaHubError as exc:
        report.errors.append(f"Known-items tracking not updated: {exc}")

    entries = []
    for item in result.items:
        if item.status != STATUS_IMPORTED or not item.destination_path:
            continue
        try:
            entries.append(entry_for_file(root, to_absolute(root, item.destination_path)))
        except OSError as exc:
            report.errors.append(f"Index entry not created for {item.destination_path}: {exc}")
    if entries:
        try:
            report.index_entries_added = add_entries(root, entries, replace_existing=True)
        except MediaHubError as exc:
            report.errors.append(f"Index not updated: {exc}")

    for message in report.errors:
        log_warning(f"Import bookkeeping degraded (files are safe, tracking is stale): {message}")
    return report
