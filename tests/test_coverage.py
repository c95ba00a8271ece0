import os

import pytest

from conftest import index_bytes, sha256_of, temp_leftovers
from mediahub import coverage, index
from mediahub.exceptions import IndexNotFoundError, IndexWriteError, LibraryNotFoundError
from mediahub.models.snapshot import MutationOutcome


def test_select_candidates_orders_and_limits(make_library):
    root = make_library(total=30, hashed=10)
    selection = coverage.select_candidates(str(root), limit=5)
    assert selection.candidate_count == 5
    assert selection.total_eligible == 20
    assert list(selection.candidates) == sorted(selection.candidates)
    assert selection.candidates[0] == "2020/01/img010.jpg"
    assert selection.snapshot.entries_missing_hash == 20


def test_select_candidates_is_stable_on_unchanged_index(make_library):
    root = make_library(total=12, hashed=2)
    first = coverage.select_candidates(str(root), limit=4)
    second = coverage.select_candidates(str(root), limit=4)
    assert first == second


def test_select_candidates_counts_missing_files(make_library):
    root = make_library(total=5, hashed=0)
    os.remove(root / "2020" / "01" / "img001.jpg")
    selection = coverage.select_candidates(str(root))
    assert selection.missing_files_count == 1
    assert "2020/01/img001.jpg" not in selection.candidates
    assert selection.candidate_count == 4


def test_zero_limit_means_unlimited(make_library):
    root = make_library(total=6, hashed=0)
    selection = coverage.select_candidates(str(root), limit=0)
    assert selection.candidate_count == 6
    assert selection.limit is None


def test_select_candidates_missing_library(tmp_path):
    with pytest.raises(LibraryNotFoundError):
        coverage.select_candidates(str(tmp_path / "nowhere"))


def test_select_candidates_missing_index(tmp_path):
    (tmp_path / "bare").mkdir()
    with pytest.raises(IndexNotFoundError):
        coverage.select_candidates(str(tmp_path / "bare"))


def test_partial_run_with_one_failure(make_library):
    root = make_library(total=100, hashed=80)
    # An unreadable candidate: the indexed path is now a directory.
    broken = root / "2020" / "01" / "img080.jpg"
    broken.unlink()
    broken.mkdir()

    selection = coverage.select_candidates(str(root), limit=10)
    assert selection.candidate_count == 10
    outcome = coverage.compute_missing_hashes(str(root), candidates=selection)
    assert outcome.computed_count == 9
    assert outcome.failure_count == 1

    applied = coverage.apply_computed_hashes_and_write_index(str(root), outcome)
    assert applied.entries_updated == 9
    assert applied.index_updated is True
    after = coverage.reconcile(applied.before, applied)
    assert after.entries_with_hash == 89
    assert after.hash_coverage == pytest.approx(0.89)
    assert index.read_snapshot(str(root)) == after


def test_computed_hashes_match_file_content(make_library):
    root = make_library(total=3, hashed=0)
    outcome = coverage.compute_missing_hashes(str(root))
    assert outcome.computed_values["2020/01/img002.jpg"] == sha256_of(b"content-2")


def test_rerun_is_idempotent(make_library):
    root = make_library(total=8, hashed=3)
    outcome = coverage.compute_missing_hashes(str(root))
    coverage.apply_computed_hashes_and_write_index(str(root), outcome)
    settled = index_bytes(root)

    selection = coverage.select_candidates(str(root))
    assert selection.candidate_count == 0
    again = coverage.compute_missing_hashes(str(root), candidates=selection)
    applied = coverage.apply_computed_hashes_and_write_index(str(root), again)
    assert applied.index_updated is False
    assert index_bytes(root) == settled


def test_existing_hashes_are_never_overwritten(make_library):
    root = make_library(total=4, hashed=2)
    before = {entry.path: entry.hash for entry in index.load_index(str(root)).entries}
    forged = MutationOutcome(computed_values={"2020/01/img000.jpg": "0" * 64, "2020/01/img003.jpg": "f" * 64})
    applied = coverage.apply_computed_hashes_and_write_index(str(root), forged)
    assert applied.entries_updated == 1
    after = {entry.path: entry.hash for entry in index.load_index(str(root)).entries}
    assert after["2020/01/img000.jpg"] == before["2020/01/img000.jpg"]
    assert after["2020/01/img003.jpg"] == "f" * 64


def test_empty_outcome_leaves_index_byte_identical(make_library):
    root = make_library(total=4, hashed=1)
    original = index_bytes(root)
    applied = coverage.apply_computed_hashes_and_write_index(str(root), MutationOutcome())
    assert applied.entries_updated == 0
    assert applied.index_updated is False
    assert applied.before.entries_with_hash == 1
    assert index_bytes(root) == original


def test_failed_replace_keeps_prior_index(make_library, monkeypatch):
    root = make_library(total=6, hashed=2)
    original = index_bytes(root)
    outcome = coverage.compute_missing_hashes(str(root))

    def refuse(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(index.os, "replace", refuse)
    with pytest.raises(IndexWriteError):
        coverage.apply_computed_hashes_and_write_index(str(root), outcome)
    assert index_bytes(root) == original
    assert temp_leftovers(root) == []


def test_conservation_across_runs(make_library):
    root = make_library(total=25, hashed=5)
    for _ in range(3):
        selection = coverage.select_candidates(str(root), limit=7)
        outcome = coverage.compute_missing_hashes(str(root), candidates=selection)
        applied = coverage.apply_computed_hashes_and_write_index(str(root), outcome)
        after = coverage.reconcile(applied.before, applied)
        assert after.total_entries == 25
        assert after.entries_with_hash + after.entries_missing_hash == after.total_entries
    assert index.read_snapshot(str(root)).entries_with_hash == 25
