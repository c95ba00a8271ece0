"""
Module: duplicates
Purpose: Dataclasses for content-hash duplicate groups in the library index.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class DuplicateFile:
    path: str
    size: int
    mtime: float

    def to_dict(self) -> dict:
        return {"path": self.path, "size": self.size, "mtime": self.mtime}


@dataclass(frozen=True)
class DuplicateGroup:
    """
    Indexed files sharing one SHA-256. Files are kept in path order.
    """

    hash: str
    files: List[DuplicateFile]

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def total_size(self) -> int:
        return sum(item.size for item in self.files)

    @property
    def redundant_size(self) -> int:
        # Bytes freed by keeping only the first file of the group.
        return self.total_size - (self.files[0].size if self.files else 0)

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "file_count": self.file_count,
            "total_size": self.total_size,
            "files": [item.to_dict() for item in self.files],
        }


@dataclass
class DuplicateReport:
    groups: List[DuplicateGroup] = field(default_factory=list)
    entries_without_hash: int = 0

    @property
    def duplicate_groups(self) -> int:
        return len(self.groups)

    @property
    def total_duplicate_files(self) -> int:
        return sum(group.file_count for group in self.groups)

    @property
    def total_duplicate_size(self) -> int:
        return sum(group.total_size for group in self.groups)

    @property
    def potential_savings(self) -> int:
        return sum(group.redundant_size for group in self.groups)

    def summary(self) -> dict:
        return {
            "duplicate_groups": self.duplicate_groups,
            "total_duplicate_files": self.total_duplicate_files,
            "total_duplicate_size": self.total_duplicate_size,
            "potential_savings": self.potential_savings,
            "entries_without_hash": self.entries_without_hash,
        }

    def to_dict(self) -> dict:
        return {"summary": self.summary(), "groups": [group.to_dict() for group in self.groups]}
