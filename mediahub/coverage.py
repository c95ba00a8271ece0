"""
Module: coverage
Purpose: Hash coverage maintenance: select, compute, apply and reconcile.
"""

import os
from typing import List, Optional

from .hashing import compute_hashes
from .index import index_lock, load_index, snapshot_of, to_absolute, write_index
from .models.snapshot import ApplyResult, CandidateSet, MutationOutcome, Snapshot
from .utils import log_info, log_warning


def select_candidates(root: str, limit: Optional[int] = None) -> CandidateSet:
    """
    Select index entries that still need a content hash.

    Read-only: files are only checked for existence. Entries whose file is
    gone are counted in `missing_files_count` instead of being selected.
    Candidates are ordered by index path and the limit, when positive, is
    applied after ordering, so repeated calls on an unchanged index return
    the same set.

    Args:
        root: Library root.
        limit: Optional cap on the number of candidates.

    Returns:
        CandidateSet with the pre-mutation snapshot attached.

    Raises:
        SelectionError: If the index cannot be read.
    """
    index = load_index(root)
    eligible: List[str] = []
    missing_files = 0
    for entry in index.sorted_entries():
        if entry.hash:
            continue
        if os.path.exists(to_absolute(root, entry.path)):
            eligible.append(entry.path)
        else:
            missing_files += 1
    selected = eligible[:limit] if limit is not None and limit > 0 else eligible
    return CandidateSet(
        candidates=tuple(selected),
        missing_files_count=missing_files,
        snapshot=snapshot_of(index),
        limit=limit if limit is not None and limit > 0 else None,
        total_eligible=len(eligible),
    )


def compute_missing_hashes(
    root: str,
    limit: Optional[int] = None,
    candidates: Optional[CandidateSet] = None,
) -> MutationOutcome:
    """
    Hash every candidate; per-item failures are counted, never raised.

    Args:
        root: Library root.
        limit: Cap used when `candidates` is not supplied.
        candidates: A previously selected CandidateSet.

    Returns:
        MutationOutcome mapping index paths to digests.

    Raises:
        SelectionError: If selection is needed and the index cannot be read.
    """
    selection = candidates if candidates is not None else select_candidates(root, limit)
    absolute = [to_absolute(root, path) for path in selection.candidates]
    outcome = MutationOutcome()
    for relative, (_, digest) in zip(selection.candidates, compute_hashes(absolute)):
        if digest is None:
            outcome.failure_count += 1
            log_warning(f"Hash computation failed for {relative}")
            continue
        outcome.computed_values[relative] = digest
    log_info(
        f"Computed {outcome.computed_count} hash(es) with {outcome.failure_count} failure(s) in {root}"
    )
    return outcome


def apply_computed_hashes_and_write_index(root: str, outcome: MutationOutcome) -> ApplyResult:
    """
    Merge computed hashes into the index in one atomic write.

    The index is reloaded under the single-writer lock; only entries still
    lacking a hash are updated. When nothing changes no write happens.

    Args:
        root: Library root.
        outcome: Result of compute_missing_hashes.

    Returns:
        ApplyResult with the snapshot taken just before the write.

    Raises:
        SelectionError: If the index cannot be reloaded.
        IndexWriteError: If the durable write fails; the prior index is intact.
    """
    if not outcome.computed_values:
        before = snapshot_of(load_index(root))
        return ApplyResult(entries_updated=0, index_updated=False, before=before)

    with index_lock(root):
        index = load_index(root)
        before = snapshot_of(index)
        updated = 0
        for entry in index.entries:
            if entry.hash:
                continue
            digest = outcome.computed_values.get(entry.path)
            if digest:
                entry.hash = digest
                updated += 1
        if updated == 0:
            return ApplyResult(entries_updated=0, index_updated=False, before=before)
        write_index(root, index)
    log_info(f"Index updated with {updated} hash(es) in {root}")
    return ApplyResult(entries_updated=updated, index_updated=True, before=before)


def reconcile(before: Snapshot, applied: ApplyResult) -> Snapshot:
    """Derive post-apply statistics without re-reading the index."""
    with_hash = before.entries_with_hash + applied.entries_updated
    return Snapshot(
        total_entries=before.total_entries,
        entries_with_hash=with_hash,
        entries_missing_hash=before.total_entries - with_hash,
    )
