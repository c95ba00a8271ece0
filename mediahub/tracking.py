"""
Module: tracking
Purpose: Append-only record of source items already imported into the library.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Set

from .exceptions import MediaHubError, TrackingUpdateError
from .library import source_dir
from .models.importresult import STATUS_IMPORTED, ImportedItem
from .reporting import read_json, write_json_atomic
from .utils import format_timestamp, log_error, log_info, parse_timestamp

KNOWN_ITEMS_FILE = "known-items.json"
KNOWN_ITEMS_VERSION = "1.0"


@dataclass(frozen=True)
class KnownItem:
    path: str
    imported_at: datetime
    destination_path: str

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "imported_at": format_timestamp(self.imported_at),
            "destination_path": self.destination_path,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "KnownItem":
        return cls(
            path=data["path"],
            imported_at=parse_timestamp(data["imported_at"]),
            destination_path=data["destination_path"],
        )


def known_items_file(root: str, source_id: str) -> str:
    return os.path.join(source_dir(root, source_id), KNOWN_ITEMS_FILE)


def _normalize(path: str) -> str:
    return os.path.realpath(os.path.abspath(path))


def load_known_items(root: str, source_id: str) -> List[KnownItem]:
    """
    Load known items for a source; a missing file means nothing imported yet.

    Raises:
        TrackingUpdateError: If the file exists but cannot be parsed.
    """
    path = known_items_file(root, source_id)
    if not os.path.exists(path):
        return []
    try:
        data = read_json(path)
        return [KnownItem.from_dict(item) for item in data.get("items", [])]
    except (OSError, ValueError, KeyError, TypeError) as exc:
        log_error(f"Known-items file {path} is unreadable: {exc}")
        raise TrackingUpdateError(f"Known-items file is unreadable: {exc}") from exc


def known_paths(root: str, source_id: str) -> Set[str]:
    return {_normalize(item.path) for item in load_known_items(root, source_id)}


def record_imports(
    root: str,
    source_id: str,
    items: Iterable[ImportedItem],
    imported_at: datetime,
) -> int:
    """
    Append imported items to the source's known-items file.

    Entries are deduplicated by resolved source path; existing entries are
    never rewritten.

    Returns:
        Number of new entries.

    Raises:
        TrackingUpdateError: If the file cannot be read or written.
    """
    existing = load_known_items(root, source_id)
    seen = {_normalize(item.path) for item in existing}
    additions: List[KnownItem] = []
    for item in items:
        if item.status != STATUS_IMPORTED or not item.destination_path:
            continue
        normalized = _normalize(item.source_path)
        if normalized in seen:
            continue
        seen.add(normalized)
        additions.append(
            KnownItem(
                path=normalized,
                imported_at=imported_at,
                destination_path=item.destination_path,
            )
        )
    if not additions:
        return 0
    payload = {
        "version": KNOWN_ITEMS_VERSION,
        "source_id": source_id,
        "items": [item.to_dict() for item in existing + additions],
    }
    try:
        write_json_atomic(payload, known_items_file(root, source_id))
    except MediaHubError as exc:
        raise TrackingUpdateError(f"Known-items update failed: {exc}") from exc
    log_info(f"Recorded {len(additions)} known item(s) for source {source_id}")
    return len(additions)
