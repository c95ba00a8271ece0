"""
Module: baseline
Purpose: Dataclasses for the persisted library index.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..utils import format_timestamp, parse_timestamp, utc_now

INDEX_VERSION = "1.0"


@dataclass
class IndexEntry:
    """
    One media file in the library, keyed by its library-relative path.
    Paths always use forward slashes.
    """

    path: str
    size: int
    mtime: float
    hash: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {"path": self.path, "size": self.size, "mtime": self.mtime}
        if self.hash is not None:
            payload["hash"] = self.hash
        return payload

    @classmethod
    def from_dict(cls, data: dict) -> "IndexEntry":
        return cls(
            path=str(data["path"]),
            size=int(data["size"]),
            mtime=float(data["mtime"]),
            hash=data.get("hash"),
        )


@dataclass
class BaselineIndex:
    entries: List[IndexEntry] = field(default_factory=list)
    version: str = INDEX_VERSION
    created: datetime = field(default_factory=utc_now)
    last_updated: datetime = field(default_factory=utc_now)

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    @property
    def hashed_count(self) -> int:
        return sum(1 for entry in self.entries if entry.hash)

    def sorted_entries(self) -> List[IndexEntry]:
        return sorted(self.entries, key=lambda entry: entry.path)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "created": format_timestamp(self.created),
            "last_updated": format_timestamp(self.last_updated),
            "entry_count": self.entry_count,
            "entries": [entry.to_dict() for entry in self.sorted_entries()],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BaselineIndex":
        return cls(
            entries=[IndexEntry.from_dict(item) for item in data.get("entries", [])],
            version=str(data["version"]),
            created=parse_timestamp(data["created"]),
            last_updated=parse_timestamp(data["last_updated"]),
        )
