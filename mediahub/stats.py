"""
Module: stats
Purpose: Library statistics derived from the index.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict

from .index import load_index, snapshot_of
from .models.baseline import BaselineIndex
from .models.snapshot import Snapshot
from .scanner import media_type

YEAR_PATTERN = re.compile(r"^\d{4}$")
UNKNOWN_YEAR = "unknown"


@dataclass
class LibraryStatistics:
    snapshot: Snapshot
    total_size: int = 0
    by_year: Dict[str, int] = field(default_factory=dict)
    by_media_type: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_entries": self.snapshot.total_entries,
            "entries_with_hash": self.snapshot.entries_with_hash,
            "entries_missing_hash": self.snapshot.entries_missing_hash,
            "hash_coverage": self.snapshot.hash_coverage,
            "total_size": self.total_size,
            "by_year": dict(sorted(self.by_year.items())),
            "by_media_type": dict(sorted(self.by_media_type.items())),
        }


def _year_bucket(path: str) -> str:
    first = path.split("/", 1)[0]
    return first if YEAR_PATTERN.match(first) else UNKNOWN_YEAR


def compute_statistics(index: BaselineIndex) -> LibraryStatistics:
    years: Counter = Counter()
    kinds: Counter = Counter({"images": 0, "videos": 0})
    total_size = 0
    for entry in index.entries:
        years[_year_bucket(entry.path)] += 1
        kind = media_type(entry.path)
        if kind == "image":
            kinds["images"] += 1
        elif kind == "video":
            kinds["videos"] += 1
        total_size += entry.size
    return LibraryStatistics(
        snapshot=snapshot_of(index),
        total_size=total_size,
        by_year=dict(years),
        by_media_type=dict(kinds),
    )


def library_statistics(root: str) -> LibraryStatistics:
    """Load the index and summarize it by year and media type."""
    return compute_statistics(load_index(root))
