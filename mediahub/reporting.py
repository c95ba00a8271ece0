"""
Module: reporting
Purpose: Logging and JSON artifact utilities.
"""

import json
import os
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from typing import Any, List

from .exceptions import MediaHubError
from .utils import log_error, remove_quietly, temp_sibling


ARTIFACTS_DIR = "artifacts"
LOG_FILE_NAME = os.path.join(ARTIFACTS_DIR, "mediahub.log")


def ensure_log_initialized() -> str:
    """Ensure the MediaHub log file exists and return its absolute path."""
    path = os.path.abspath(LOG_FILE_NAME)
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    with open(path, "a", encoding="utf-8"):
        pass
    return path


def write_log(entries: List[str], outfile: str = LOG_FILE_NAME):
    """
    Append entries to logfile.
    """
    directory = os.path.dirname(os.path.abspath(outfile)) or "."
    os.makedirs(directory, exist_ok=True)
    timestamp = datetime.now(timezone.utc).isoformat()
    with open(outfile, "a", encoding="utf-8") as handle:
        for entry in entries:
            normalized = entry if entry.startswith("[") else f"[INFO] {entry}"
            handle.write(f"[{timestamp}] {normalized}\n")


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, o: Any) -> Any:
        if is_dataclass(o):
            return asdict(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, sort_keys=True, cls=EnhancedJSONEncoder)


def read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def write_json_atomic(payload: Any, outfile: str) -> str:
    """
    Write JSON so readers see either the previous document or the new one.

    Args:
        payload: JSON-serializable data (dataclasses allowed).
        outfile: Destination path.

    Returns:
        Absolute path written.

    Raises:
        MediaHubError: If the document cannot be written.
    """
    target = os.path.abspath(outfile)
    temp_path = temp_sibling(target)
    data = dumps(payload).encode("utf-8")
    try:
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(temp_path, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    except OSError as exc:
        remove_quietly(temp_path)
        log_error(f"Failed to write {target}: {exc}")
        raise MediaHubError(f"Failed to write {target}: {exc}") from exc
    return target
