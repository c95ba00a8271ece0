import hashlib
import os
from datetime import datetime

import pytest

from mediahub import index, library, utils
from mediahub.models.baseline import BaselineIndex, IndexEntry


@pytest.fixture(autouse=True)
def isolated_workdir(tmp_path, monkeypatch):
    """Keep artifacts/mediahub.log inside the test's temp dir and reset pool settings."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    for name in (utils.LIBRARY_ENV, utils.EXECUTOR_ENV, utils.WORKERS_ENV, "MEDIAHUB_PLAIN", "NO_COLOR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(utils, "_EXECUTOR_MODE", "thread")
    monkeypatch.setattr(utils, "_WORKERS", utils.DEFAULT_WORKERS)
    yield workdir


def sha256_of(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def build_library(root, total: int, hashed: int, *, prefix: str = "2020/01/img"):
    """
    Create a library whose index holds `total` entries backed by real files;
    the first `hashed` entries (in path order) already carry their digest.
    """
    library.create_library(str(root))
    entries = []
    for number in range(total):
        relative = f"{prefix}{number:03d}.jpg"
        path = root.joinpath(*relative.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        data = f"content-{number}".encode()
        path.write_bytes(data)
        entries.append(
            IndexEntry(
                path=relative,
                size=len(data),
                mtime=os.path.getmtime(path),
                hash=sha256_of(data) if number < hashed else None,
            )
        )
    index.write_index(str(root), BaselineIndex(entries=entries))
    return root


def index_bytes(root) -> bytes:
    with open(library.index_file(str(root)), "rb") as handle:
        return handle.read()


def temp_leftovers(root):
    found = []
    for current, _, files in os.walk(str(root)):
        found.extend(os.path.join(current, name) for name in files if utils.TEMP_MARKER in name)
    return found


@pytest.fixture
def make_library(tmp_path):
    def _make(total: int = 0, hashed: int = 0, name: str = "library"):
        return build_library(tmp_path / name, total, hashed)

    return _make


CAPTURE_TIME = datetime(2021, 3, 15, 12, 0, 0)


def write_media(folder, name: str, data: bytes = b"media", when: datetime = CAPTURE_TIME):
    """Write a fake media file whose mtime maps it to the YYYY/MM of `when`."""
    path = folder.joinpath(*name.split("/"))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    stamp = when.timestamp()
    os.utime(path, (stamp, stamp))
    return path


@pytest.fixture
def library_with_source(tmp_path):
    """An empty library plus an attached, still empty source folder."""
    root = tmp_path / "library"
    library.create_library(str(root))
    folder = tmp_path / "camera"
    folder.mkdir()
    source = library.attach_source(str(root), str(folder))
    return root, folder, source
