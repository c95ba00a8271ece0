"""
Module: importresult
Purpose: Dataclasses describing an import run and its bookkeeping.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..utils import format_timestamp, parse_timestamp

IMPORT_VERSION = "1.0"
STATUS_IMPORTED = "imported"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"
COLLISION_POLICIES = ("skip", "rename", "error")


@dataclass(frozen=True)
class ImportOptions:
    collision_policy: str = "skip"

    def __post_init__(self):
        if self.collision_policy not in COLLISION_POLICIES:
            raise ValueError(
                f"Unknown collision policy '{self.collision_policy}'. "
                f"Expected one of: {', '.join(COLLISION_POLICIES)}."
            )


@dataclass(frozen=True)
class ImportedItem:
    source_path: str
    status: str
    destination_path: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "source_path": self.source_path,
            "destination_path": self.destination_path,
            "status": self.status,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ImportedItem":
        return cls(
            source_path=data["source_path"],
            status=data["status"],
            destination_path=data.get("destination_path"),
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class ImportSummary:
    total: int
    imported: int
    skipped: int
    failed: int

    @classmethod
    def from_items(cls, items: List[ImportedItem]) -> "ImportSummary":
        return cls(
            total=len(items),
            imported=sum(1 for item in items if item.status == STATUS_IMPORTED),
            skipped=sum(1 for item in items if item.status == STATUS_SKIPPED),
            failed=sum(1 for item in items if item.status == STATUS_FAILED),
        )


@dataclass(frozen=True)
class ImportResult:
    """
    Per-invocation record of what an import did. Immutable; persisted for audit.
    """

    source_id: str
    library_id: str
    imported_at: datetime
    options: ImportOptions
    summary: ImportSummary
    items: List[ImportedItem] = field(default_factory=list)
    version: str = IMPORT_VERSION

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "source_id": self.source_id,
            "library_id": self.library_id,
            "imported_at": format_timestamp(self.imported_at),
            "options": {"collision_policy": self.options.collision_policy},
            "summary": {
                "total": self.summary.total,
                "imported": self.summary.imported,
                "skipped": self.summary.skipped,
                "failed": self.summary.failed,
            },
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ImportResult":
        summary = data["summary"]
        return cls(
            source_id=data["source_id"],
            library_id=data["library_id"],
            imported_at=parse_timestamp(data["imported_at"]),
            options=ImportOptions(**data.get("options", {})),
            summary=ImportSummary(
                total=int(summary["total"]),
                imported=int(summary["imported"]),
                skipped=int(summary["skipped"]),
                failed=int(summary["failed"]),
            ),
            items=[ImportedItem.from_dict(item) for item in data.get("items", [])],
            version=data.get("version", IMPORT_VERSION),
        )


@dataclass
class ImportReport:
    """
    Outcome of the apply stage of an import. Copied files are never rolled back;
    bookkeeping failures are collected in `errors`.
    """

    result: ImportResult
    result_path: Optional[str] = None
    tracking_updated: bool = False
    index_entries_added: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.errors)
