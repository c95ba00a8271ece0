"""
Module: duplicates
Purpose: Read-only grouping of indexed library files by content hash.
"""

import csv
from collections import defaultdict
from typing import Dict, List, TextIO

from .index import load_index
from .models.baseline import BaselineIndex, IndexEntry
from .models.duplicates import DuplicateFile, DuplicateGroup, DuplicateReport
from .utils import log_info

CSV_FIELDS = ["hash", "path", "size", "mtime", "group_file_count", "group_total_size"]


def group_duplicates(index: BaselineIndex) -> DuplicateReport:
    """
    Group index entries that share a SHA-256.

    Entries without a hash are counted but never grouped, so the report is
    only as complete as the index's hash coverage. Groups are ordered by
    hash and files within a group by path.
    """
    by_hash: Dict[str, List[IndexEntry]] = defaultdict(list)
    unhashed = 0
    for entry in index.entries:
        if entry.hash:
            by_hash[entry.hash].append(entry)
        else:
            unhashed += 1
    groups = [
        DuplicateGroup(
            hash=digest,
            files=[
                DuplicateFile(path=entry.path, size=entry.size, mtime=entry.mtime)
                for entry in sorted(entries, key=lambda item: item.path)
            ],
        )
        for digest, entries in sorted(by_hash.items())
        if len(entries) > 1
    ]
    return DuplicateReport(groups=groups, entries_without_hash=unhashed)


def analyze_duplicates(root: str) -> DuplicateReport:
    """
    Load the library index and report duplicate groups.

    Raises:
        SelectionError: If the index is missing or unreadable.
    """
    report = group_duplicates(load_index(root))
    log_info(
        f"Duplicate analysis for {root}: {report.duplicate_groups} groups, "
        f"{report.total_duplicate_files} files"
    )
    return report


def write_duplicates_csv(report: DuplicateReport, handle: TextIO) -> None:
    """One CSV row per duplicate file."""
    writer = csv.DictWriter(handle, fieldnames=CSV_FIELDS, lineterminator="\n")
    writer.writeheader()
    for group in report.groups:
        for item in group.files:
            writer.writerow(
                {
                    "hash": group.hash,
                    "path": item.path,
                    "size": item.size,
                    "mtime": item.mtime,
                    "group_file_count": group.file_count,
                    "group_total_size": group.total_size,
                }
            )
