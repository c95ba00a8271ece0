import os

import pytest

from mediahub import scanner
from mediahub.exceptions import ScanError


def test_scan_source_filters_supported(tmp_path):
    root = tmp_path / "photos"
    (root / "nested").mkdir(parents=True)
    (root / "a.jpg").write_bytes(b"123")
    (root / "nested" / "b.MOV").write_bytes(b"45")
    (root / "note.txt").write_text("ignore")

    items = scanner.scan_source(str(root))
    assert [item.file_name for item in items] == ["a.jpg", "b.MOV"]
    assert items[0].size == 3
    assert items[0].modified_at.tzinfo is not None


def test_scan_source_skips_symlinks_and_temp_files(tmp_path):
    root = tmp_path / "photos"
    root.mkdir()
    real = root / "real.jpg"
    real.write_bytes(b"x")
    os.symlink(real, root / "link.jpg")
    (root / f".real.jpg{scanner.TEMP_MARKER}abc").write_bytes(b"partial")

    items = scanner.scan_source(str(root))
    assert [item.file_name for item in items] == ["real.jpg"]


def test_scan_source_invalid_path(tmp_path):
    with pytest.raises(ScanError):
        scanner.scan_source(str(tmp_path / "missing"))
    f = tmp_path / "file.jpg"
    f.write_bytes(b"x")
    with pytest.raises(ScanError):
        scanner.scan_source(str(f))


def test_scan_library_files_excludes_metadata(tmp_path):
    (tmp_path / ".mediahub").mkdir()
    (tmp_path / ".mediahub" / "thumb.jpg").write_bytes(b"x")
    (tmp_path / "2020").mkdir()
    (tmp_path / "2020" / "a.jpg").write_bytes(b"x")
    found = scanner.scan_library_files(str(tmp_path), ".mediahub")
    assert found == [str(tmp_path / "2020" / "a.jpg")]


@pytest.mark.parametrize(
    "name, kind",
    [("a.JPG", "image"), ("b.heic", "image"), ("c.mp4", "video"), ("d.txt", None)],
)
def test_media_type(name, kind):
    assert scanner.media_type(name) == kind


@pytest.mark.parametrize(
    "media_types, expected",
    [("images", ["a.jpg"]), ("videos", ["b.mov"]), ("both", ["a.jpg", "b.mov"])],
)
def test_scan_source_media_type_filter(tmp_path, media_types, expected):
    (tmp_path / "a.jpg").write_bytes(b"1")
    (tmp_path / "b.mov").write_bytes(b"2")
    items = scanner.scan_source(str(tmp_path), media_types)
    assert [item.file_name for item in items] == expected


def test_scan_source_rejects_unknown_filter(tmp_path):
    with pytest.raises(ScanError):
        scanner.scan_source(str(tmp_path), "audio")
