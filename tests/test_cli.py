import json
import sys

import pytest

from conftest import index_bytes, write_media
from mediahub import cli, index


@pytest.fixture(autouse=True)
def fresh_run_log(monkeypatch):
    monkeypatch.setattr(cli, "_RUN_LOG_PATH", None)


def _run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["mediahub", "--plain", *args])
    cli.main()


def _json(capsys):
    return json.loads(capsys.readouterr().out)


def test_library_create_and_status(tmp_path, capsys, monkeypatch):
    root = tmp_path / "lib"
    _run(monkeypatch, "library", "create", str(root), "--json")
    created = _json(capsys)
    assert created["root_path"] == str(root)

    _run(monkeypatch, "--library", str(root), "library", "status", "--json")
    status = _json(capsys)
    assert status["library"]["library_id"] == created["library_id"]
    assert status["statistics"]["total_entries"] == 0
    assert status["sources"] == 0


def test_library_from_environment(make_library, capsys, monkeypatch):
    root = make_library(total=3, hashed=1)
    monkeypatch.setenv("MEDIAHUB_LIBRARY", str(root))
    _run(monkeypatch, "library", "status")
    out = capsys.readouterr().out
    assert "Hash coverage" in out
    assert "33.33%" in out


def test_missing_library_fails(tmp_path, capsys, monkeypatch):
    with pytest.raises(SystemExit) as excinfo:
        _run(monkeypatch, "--library", str(tmp_path / "absent"), "index", "hash", "--dry-run")
    assert excinfo.value.code == 1
    assert "Library not found" in capsys.readouterr().out


def test_index_hash_dry_run_json(make_library, capsys, monkeypatch):
    root = make_library(total=10, hashed=4)
    original = index_bytes(root)
    _run(monkeypatch, "--library", str(root), "index", "hash", "--dry-run", "--limit", "3", "--json")
    payload = _json(capsys)
    assert payload["dry_run"] is True
    assert payload["candidate_count"] == 3
    assert payload["limit"] == 3
    assert payload["candidates"] == ["2020/01/img004.jpg", "2020/01/img005.jpg", "2020/01/img006.jpg"]
    assert payload["statistics"]["entries_missing_hash"] == 6
    assert index_bytes(root) == original


def test_index_hash_blocked_without_yes(make_library, capsys, monkeypatch):
    root = make_library(total=4, hashed=0)
    original = index_bytes(root)
    monkeypatch.setattr(cli, "is_interactive", lambda: False)
    with pytest.raises(SystemExit) as excinfo:
        _run(monkeypatch, "--library", str(root), "index", "hash")
    assert excinfo.value.code == 2
    out = capsys.readouterr().out
    assert "STOP/BLOCKED" in out
    assert "Non-interactive mode requires" in out
    assert index_bytes(root) == original


def test_index_hash_json_never_prompts(make_library, capsys, monkeypatch):
    root = make_library(total=4, hashed=0)
    monkeypatch.setattr(cli, "is_interactive", lambda: True)

    def no_prompt(*args, **kwargs):
        raise AssertionError("JSON output must not prompt")

    monkeypatch.setattr("builtins.input", no_prompt)
    with pytest.raises(SystemExit) as excinfo:
        _run(monkeypatch, "--library", str(root), "index", "hash", "--json")
    assert excinfo.value.code == 2
    assert _json(capsys)["status"] == "blocked"


def test_index_hash_interactive_cancel(make_library, capsys, monkeypatch):
    root = make_library(total=4, hashed=0)
    original = index_bytes(root)
    monkeypatch.setattr(cli, "is_interactive", lambda: True)
    monkeypatch.setattr("builtins.input", lambda *args, **kwargs: "no")
    _run(monkeypatch, "--library", str(root), "index", "hash")
    out = capsys.readouterr().out
    assert "Files to process: 4" in out
    assert "Operation cancelled." in out
    assert index_bytes(root) == original


def test_index_hash_with_yes(make_library, capsys, monkeypatch):
    root = make_library(total=5, hashed=1)
    _run(monkeypatch, "--library", str(root), "--workers", "2", "index", "hash", "--yes", "--json")
    payload = _json(capsys)
    assert payload["status"] == "applied"
    assert payload["hashes_computed"] == 4
    assert payload["after"]["entries_with_hash"] == 5
    assert index.read_snapshot(str(root)).entries_missing_hash == 0


def test_index_hash_nothing_to_do(make_library, capsys, monkeypatch):
    root = make_library(total=2, hashed=2)
    _run(monkeypatch, "--library", str(root), "index", "hash")
    assert "Nothing to do" in capsys.readouterr().out


def test_detect_and_import_flow(library_with_source, capsys, monkeypatch):
    root, folder, source = library_with_source
    write_media(folder, "a.jpg", b"alpha")
    write_media(folder, "b.jpg", b"bravo")
    base = ["--library", str(root)]

    _run(monkeypatch, *base, "detect", source.source_id, "--json")
    detected = _json(capsys)
    assert detected["summary"]["new_items"] == 2

    _run(monkeypatch, *base, "import", source.source_id, "--all", "--dry-run")
    out = capsys.readouterr().out
    assert "WOULD IMPORT" in out
    assert not (root / "2021").exists()

    _run(monkeypatch, *base, "import", source.source_id, "--all", "--yes")
    out = capsys.readouterr().out
    assert "Import complete" in out
    assert (root / "2021" / "03" / "a.jpg").read_bytes() == b"alpha"
    assert index.read_snapshot(str(root)).total_entries == 2

    _run(monkeypatch, *base, "detect", source.source_id)
    capsys.readouterr()
    _run(monkeypatch, *base, "import", source.source_id, "--all", "--yes")
    assert "No new items to import." in capsys.readouterr().out


def test_import_without_detection_fails(library_with_source, capsys, monkeypatch):
    root, _, source = library_with_source
    with pytest.raises(SystemExit) as excinfo:
        _run(monkeypatch, "--library", str(root), "import", source.source_id, "--all", "--yes")
    assert excinfo.value.code == 1
    assert "No detection result found" in capsys.readouterr().out


def test_import_requires_all_flag(library_with_source, capsys, monkeypatch):
    root, _, source = library_with_source
    with pytest.raises(SystemExit) as excinfo:
        _run(monkeypatch, "--library", str(root), "import", source.source_id, "--yes")
    assert excinfo.value.code == 1
    assert "--all" in capsys.readouterr().out


def test_source_attach_and_list(tmp_path, capsys, monkeypatch):
    root = tmp_path / "lib"
    folder = tmp_path / "sd-card"
    folder.mkdir()
    _run(monkeypatch, "library", "create", str(root))
    capsys.readouterr()
    _run(monkeypatch, "--library", str(root), "source", "attach", str(folder), "--json")
    attached = _json(capsys)
    _run(monkeypatch, "--library", str(root), "source", "list", "--json")
    listed = _json(capsys)
    assert [item["source_id"] for item in listed] == [attached["source_id"]]


def test_index_rebuild_with_yes(make_library, capsys, monkeypatch):
    root = make_library(total=3, hashed=3)
    write_media(root, "2024/01/new.jpg", b"new")
    _run(monkeypatch, "--library", str(root), "index", "rebuild", "--yes", "--json")
    payload = _json(capsys)
    assert payload["statistics"]["total_entries"] == 4
    assert payload["statistics"]["entries_with_hash"] == 3


def test_invalid_limit_is_rejected(make_library, monkeypatch):
    root = make_library(total=1)
    with pytest.raises(SystemExit) as excinfo:
        _run(monkeypatch, "--library", str(root), "index", "hash", "--limit", "0")
    assert excinfo.value.code == 2


def test_duplicates_report_json_and_text(make_library, capsys, monkeypatch):
    root = make_library(total=2, hashed=2)
    copy = write_media(root, "2020/01/img000-copy.jpg", b"content-0")
    index.add_entries(str(root), [index.entry_for_file(str(root), str(copy))])
    _run(monkeypatch, "--library", str(root), "index", "hash", "--yes")
    capsys.readouterr()

    _run(monkeypatch, "--library", str(root), "duplicates", "--json")
    payload = _json(capsys)
    assert payload["summary"]["duplicate_groups"] == 1
    assert payload["summary"]["total_duplicate_files"] == 2
    assert payload["summary"]["potential_savings"] == len(b"content-0")
    assert [item["path"] for item in payload["groups"][0]["files"]] == [
        "2020/01/img000-copy.jpg",
        "2020/01/img000.jpg",
    ]

    _run(monkeypatch, "--library", str(root), "duplicates")
    out = capsys.readouterr().out
    assert "Duplicate groups" in out
    assert "2020/01/img000-copy.jpg" in out


def test_source_attach_media_types_flag(tmp_path, capsys, monkeypatch):
    root = tmp_path / "lib"
    folder = tmp_path / "dashcam"
    folder.mkdir()
    _run(monkeypatch, "library", "create", str(root))
    capsys.readouterr()
    _run(monkeypatch, "--library", str(root), "source", "attach", str(folder), "--media-types", "videos", "--json")
    assert _json(capsys)["media_types"] == "videos"
