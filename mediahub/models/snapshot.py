"""
Module: snapshot
Purpose: Transient records passed between the stages of hash coverage maintenance.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class Snapshot:
    """
    Read-only view of index hash statistics.
    """

    total_entries: int
    entries_with_hash: int
    entries_missing_hash: int

    @property
    def hash_coverage(self) -> float:
        if self.total_entries == 0:
            return 0.0
        return self.entries_with_hash / self.total_entries

    def to_dict(self) -> dict:
        return {
            "total_entries": self.total_entries,
            "entries_with_hash": self.entries_with_hash,
            "entries_missing_hash": self.entries_missing_hash,
            "hash_coverage": self.hash_coverage,
        }


@dataclass(frozen=True)
class CandidateSet:
    """
    Ordered work items (library-relative index paths) lacking a hash.
    Produced fresh on every selection and never persisted.
    """

    candidates: Tuple[str, ...]
    missing_files_count: int
    snapshot: Snapshot
    limit: Optional[int] = None
    total_eligible: int = 0

    @property
    def candidate_count(self) -> int:
        return len(self.candidates)

    def to_dict(self) -> dict:
        return {
            "candidate_count": self.candidate_count,
            "missing_files_count": self.missing_files_count,
            "total_eligible": self.total_eligible,
            "limit": self.limit,
            "candidates": list(self.candidates),
            "statistics": self.snapshot.to_dict(),
        }


@dataclass
class MutationOutcome:
    computed_values: Dict[str, str] = field(default_factory=dict)
    failure_count: int = 0

    @property
    def computed_count(self) -> int:
        return len(self.computed_values)


@dataclass(frozen=True)
class ApplyResult:
    entries_updated: int
    index_updated: bool
    before: Snapshot
