import os

import pytest

from mediahub import utils
from mediahub.exceptions import CopyError, LibraryNotFoundError


def test_osc8_link_format():
    link = utils.osc8_link("/tmp/file", "Label")
    assert link.startswith("\033]8;;file:///tmp/file\aLabel\033]8;;\a")
    # default label falls back to path
    default_link = utils.osc8_link("/tmp/other")
    assert "/tmp/other" in default_link
    assert "Label" not in default_link


def test_atomic_copy_creates_destination(tmp_path):
    src_file = tmp_path / "source.jpg"
    src_file.write_bytes(b"pixels")
    dst_file = tmp_path / "2021" / "03" / "source.jpg"

    result = utils.atomic_copy(str(src_file), str(dst_file))

    assert result == str(dst_file)
    assert dst_file.read_bytes() == b"pixels"
    assert src_file.exists()
    assert os.listdir(dst_file.parent) == ["source.jpg"]


def test_atomic_copy_never_overwrites(tmp_path, monkeypatch):
    src_file = tmp_path / "source.jpg"
    src_file.write_bytes(b"new")
    dst_file = tmp_path / "dest.jpg"
    original_getsize = utils.os.path.getsize

    def racing_getsize(path):
        # Another writer claims the destination mid-copy.
        if utils.TEMP_MARKER in path and not dst_file.exists():
            dst_file.write_bytes(b"winner")
        return original_getsize(path)

    monkeypatch.setattr(utils.os.path, "getsize", racing_getsize)
    with pytest.raises(CopyError):
        utils.atomic_copy(str(src_file), str(dst_file))
    assert dst_file.read_bytes() == b"winner"
    assert [name for name in os.listdir(tmp_path) if utils.TEMP_MARKER in name] == []


def test_atomic_copy_missing_source(tmp_path):
    with pytest.raises(CopyError) as excinfo:
        utils.atomic_copy(str(tmp_path / "missing.jpg"), str(tmp_path / "out.jpg"))
    assert str(excinfo.value).startswith("File copy failed")
    assert not (tmp_path / "out.jpg").exists()


def test_resolve_library_path_precedence(tmp_path, monkeypatch):
    monkeypatch.setenv(utils.LIBRARY_ENV, str(tmp_path / "from-env"))
    assert utils.resolve_library_path(str(tmp_path / "from-cli")) == (str(tmp_path / "from-cli"), "cli")
    assert utils.resolve_library_path(None) == (str(tmp_path / "from-env"), "env")
    monkeypatch.delenv(utils.LIBRARY_ENV)
    with pytest.raises(LibraryNotFoundError):
        utils.resolve_library_path(None)


def test_configure_workers_precedence(monkeypatch):
    monkeypatch.setenv(utils.WORKERS_ENV, "6")
    assert utils.configure_workers(2) == (2, "cli")
    assert utils.configure_workers(None) == (6, "env")
    monkeypatch.setenv(utils.WORKERS_ENV, "999")
    assert utils.configure_workers(None) == (utils.DEFAULT_WORKERS, "default")
    monkeypatch.delenv(utils.WORKERS_ENV)
    assert utils.configure_workers(None) == (utils.DEFAULT_WORKERS, "default")
    assert utils.worker_count() == utils.DEFAULT_WORKERS


def test_configure_workers_rejects_out_of_range_cli_value():
    with pytest.raises(ValueError):
        utils.configure_workers(utils.MAX_WORKERS + 1)


def test_configure_executor_mode(monkeypatch):
    assert utils.configure_executor_mode("thread") == ("thread", "cli")
    monkeypatch.setenv(utils.EXECUTOR_ENV, "thread")
    assert utils.configure_executor_mode(None) == ("thread", "env")
    monkeypatch.setenv(utils.EXECUTOR_ENV, "bogus")
    assert utils.configure_executor_mode(None) == ("thread", "auto")
    monkeypatch.delenv(utils.EXECUTOR_ENV)
    assert utils.configure_executor_mode(None) == ("thread", "auto")


def test_process_mode_falls_back_when_unsupported(monkeypatch):
    monkeypatch.setattr(utils, "_supports_process_pool", lambda: False)
    assert utils.configure_executor_mode("process") == ("thread", "cli")


def test_human_readable_size():
    assert utils.human_readable_size(512) == "512 B"
    assert utils.human_readable_size(2048) == "2.00 KB"
    assert utils.human_readable_size(3 * 1024**3) == "3.00 GB"


def test_path_violation_message(tmp_path):
    assert utils.path_violation_message(str(tmp_path / "a" / "b.jpg"), str(tmp_path), label="Target") is None
    message = utils.path_violation_message(str(tmp_path.parent / "x.jpg"), str(tmp_path), label="Target")
    assert "escapes library" in message
