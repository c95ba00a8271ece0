"""
Module: library
Purpose: Dataclasses for library identity and attached sources.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from ..utils import format_timestamp, parse_timestamp

METADATA_VERSION = "1.0"
LIBRARY_VERSION = "1.0"
SOURCE_TYPE_FOLDER = "folder"
MEDIA_TYPES_BOTH = "both"
SOURCE_MEDIA_TYPES = ("images", "videos", MEDIA_TYPES_BOTH)


@dataclass(frozen=True)
class LibraryMetadata:
    library_id: str
    created_at: datetime
    root_path: str
    version: str = METADATA_VERSION
    library_version: str = LIBRARY_VERSION

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "library_id": self.library_id,
            "created_at": format_timestamp(self.created_at),
            "library_version": self.library_version,
            "root_path": self.root_path,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LibraryMetadata":
        return cls(
            library_id=data["library_id"],
            created_at=parse_timestamp(data["created_at"]),
            root_path=data["root_path"],
            version=data.get("version", METADATA_VERSION),
            library_version=data.get("library_version", LIBRARY_VERSION),
        )


@dataclass(frozen=True)
class Source:
    """A folder attached to a library and scanned for new media."""

    source_id: str
    path: str
    attached_at: datetime
    type: str = SOURCE_TYPE_FOLDER
    last_detected_at: Optional[datetime] = None
    media_types: Optional[str] = None

    @property
    def effective_media_types(self) -> str:
        """Media kinds scanned for this source; sources without a filter take both."""
        return self.media_types or MEDIA_TYPES_BOTH

    def with_detection(self, detected_at: datetime) -> "Source":
        return replace(self, last_detected_at=detected_at)

    def to_dict(self) -> dict:
        return {
            "source_id": self.source_id,
            "type": self.type,
            "path": self.path,
            "attached_at": format_timestamp(self.attached_at),
            "last_detected_at": (
                format_timestamp(self.last_detected_at) if self.last_detected_at else None
            ),
            "media_types": self.media_types,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Source":
        last = data.get("last_detected_at")
        return cls(
            source_id=data["source_id"],
            path=data["path"],
            attached_at=parse_timestamp(data["attached_at"]),
            type=data.get("type", SOURCE_TYPE_FOLDER),
            last_detected_at=parse_timestamp(last) if last else None,
            media_types=data.get("media_types"),
        )
