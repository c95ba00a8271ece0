import json
import os
from datetime import datetime, timezone

import pytest

from mediahub import reporting, utils
from mediahub.exceptions import MediaHubError
from mediahub.models.snapshot import Snapshot


def test_log_file_name_constant():
    assert reporting.LOG_FILE_NAME == "artifacts/mediahub.log"


def test_log_helpers_append_levels():
    utils.log_info("hello")
    utils.log_warning("careful")
    utils.log_error("broken")
    with open(reporting.LOG_FILE_NAME, encoding="utf-8") as handle:
        lines = handle.read().splitlines()
    assert lines[-3].endswith("[INFO] hello")
    assert lines[-2].endswith("[WARNING] careful")
    assert lines[-1].endswith("[ERROR] broken")


def test_dumps_handles_dataclasses_and_datetimes():
    payload = {
        "snapshot": Snapshot(total_entries=2, entries_with_hash=1, entries_missing_hash=1),
        "at": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    }
    data = json.loads(reporting.dumps(payload))
    assert data["snapshot"]["entries_with_hash"] == 1
    assert data["at"] == "2024-01-02T03:04:05+00:00"


def test_write_json_atomic_replaces_document(tmp_path):
    target = tmp_path / "nested" / "doc.json"
    reporting.write_json_atomic({"a": 1}, str(target))
    reporting.write_json_atomic({"a": 2}, str(target))
    assert reporting.read_json(str(target)) == {"a": 2}
    assert os.listdir(target.parent) == ["doc.json"]


def test_write_json_atomic_failure_keeps_previous(tmp_path, monkeypatch):
    target = tmp_path / "out" / "doc.json"
    reporting.write_json_atomic({"a": 1}, str(target))

    def refuse(src, dst):
        raise OSError("read-only")

    monkeypatch.setattr(reporting.os, "replace", refuse)
    with pytest.raises(MediaHubError):
        reporting.write_json_atomic({"a": 2}, str(target))
    assert reporting.read_json(str(target)) == {"a": 1}
    assert os.listdir(target.parent) == ["doc.json"]
