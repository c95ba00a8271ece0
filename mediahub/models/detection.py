"""
Module: detection
Purpose: Dataclasses describing a detection run against an attached source.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..utils import format_timestamp, parse_timestamp

DETECTION_VERSION = "1.0"
STATUS_NEW = "new"
STATUS_KNOWN = "known"
EXCLUSION_ALREADY_KNOWN = "already_known"
DUPLICATE_BY_PATH = "path"
DUPLICATE_BY_CONTENT = "content_hash"


@dataclass(frozen=True)
class CandidateMediaItem:
    """A media file found while scanning a source."""

    path: str
    size: int
    modified_at: datetime
    file_name: str

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "size": self.size,
            "modified_at": format_timestamp(self.modified_at),
            "file_name": self.file_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CandidateMediaItem":
        return cls(
            path=data["path"],
            size=int(data["size"]),
            modified_at=parse_timestamp(data["modified_at"]),
            file_name=data["file_name"],
        )


@dataclass(frozen=True)
class Candidate:
    item: CandidateMediaItem
    status: str
    duplicate_reason: Optional[str] = None
    duplicate_of_hash: Optional[str] = None
    duplicate_of_library_path: Optional[str] = None
    exclusion_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "item": self.item.to_dict(),
            "status": self.status,
            "duplicate_reason": self.duplicate_reason,
            "duplicate_of_hash": self.duplicate_of_hash,
            "duplicate_of_library_path": self.duplicate_of_library_path,
            "exclusion_reason": self.exclusion_reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Candidate":
        return cls(
            item=CandidateMediaItem.from_dict(data["item"]),
            status=data["status"],
            duplicate_reason=data.get("duplicate_reason"),
            duplicate_of_hash=data.get("duplicate_of_hash"),
            duplicate_of_library_path=data.get("duplicate_of_library_path"),
            exclusion_reason=data.get("exclusion_reason"),
        )


@dataclass(frozen=True)
class DetectionSummary:
    total_scanned: int
    new_items: int
    known_items: int


@dataclass(frozen=True)
class DetectionResult:
    """
    Outcome of comparing a source scan with library state.
    Immutable once written; a later run supersedes it.
    """

    source_id: str
    library_id: str
    detected_at: datetime
    summary: DetectionSummary
    candidates: List[Candidate] = field(default_factory=list)
    hash_coverage: Optional[float] = None
    version: str = DETECTION_VERSION

    @property
    def new_candidates(self) -> List[Candidate]:
        return [candidate for candidate in self.candidates if candidate.status == STATUS_NEW]

    def is_consistent(self) -> bool:
        """Summary counts agree with the candidate list."""
        new = sum(1 for candidate in self.candidates if candidate.status == STATUS_NEW)
        known = sum(1 for candidate in self.candidates if candidate.status == STATUS_KNOWN)
        return (
            self.summary.total_scanned == len(self.candidates)
            and self.summary.new_items == new
            and self.summary.known_items == known
        )

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "source_id": self.source_id,
            "library_id": self.library_id,
            "detected_at": format_timestamp(self.detected_at),
            "summary": {
                "total_scanned": self.summary.total_scanned,
                "new_items": self.summary.new_items,
                "known_items": self.summary.known_items,
            },
            "hash_coverage": self.hash_coverage,
            "candidates": [candidate.to_dict() for candidate in self.candidates],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DetectionResult":
        summary = data["summary"]
        return cls(
            source_id=data["source_id"],
            library_id=data["library_id"],
            detected_at=parse_timestamp(data["detected_at"]),
            summary=DetectionSummary(
                total_scanned=int(summary["total_scanned"]),
                new_items=int(summary["new_items"]),
                known_items=int(summary["known_items"]),
            ),
            candidates=[Candidate.from_dict(item) for item in data.get("candidates", [])],
            hash_coverage=data.get("hash_coverage"),
            version=data.get("version", DETECTION_VERSION),
        )
