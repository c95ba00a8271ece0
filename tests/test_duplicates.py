import io

import pytest

from conftest import sha256_of
from mediahub import duplicates, index, library
from mediahub.exceptions import SelectionError
from mediahub.models.baseline import BaselineIndex, IndexEntry


def _entry(path, data, hashed=True):
    return IndexEntry(path=path, size=len(data), mtime=1.0, hash=sha256_of(data) if hashed else None)


def test_groups_entries_sharing_a_hash():
    built = BaselineIndex(
        entries=[
            _entry("2021/02/copy.jpg", b"same-bytes"),
            _entry("2020/01/original.jpg", b"same-bytes"),
            _entry("2020/01/unique.jpg", b"unique"),
            _entry("2022/05/clip.mov", b"video"),
            _entry("2023/01/clip.mov", b"video"),
            _entry("2023/01/third.mov", b"video"),
            _entry("2024/01/pending.jpg", b"same-bytes", hashed=False),
        ]
    )
    report = duplicates.group_duplicates(built)

    assert report.duplicate_groups == 2
    assert [group.hash for group in report.groups] == sorted([sha256_of(b"same-bytes"), sha256_of(b"video")])
    by_hash = {group.hash: group for group in report.groups}
    photos = by_hash[sha256_of(b"same-bytes")]
    assert [item.path for item in photos.files] == ["2020/01/original.jpg", "2021/02/copy.jpg"]
    assert photos.total_size == 20
    assert by_hash[sha256_of(b"video")].file_count == 3
    assert report.total_duplicate_files == 5
    assert report.total_duplicate_size == 20 + 15
    assert report.potential_savings == 10 + 10
    assert report.entries_without_hash == 1


def test_no_duplicates_in_fully_unique_library(make_library):
    root = make_library(total=4, hashed=4)
    report = duplicates.analyze_duplicates(str(root))
    assert report.groups == []
    assert report.summary()["potential_savings"] == 0


def test_analysis_does_not_touch_the_index(make_library):
    root = make_library(total=3, hashed=3)
    before = index.load_index(str(root)).to_dict()
    duplicates.analyze_duplicates(str(root))
    assert index.load_index(str(root)).to_dict() == before


def test_missing_index_is_a_selection_error(tmp_path):
    root = tmp_path / "lib"
    library.create_library(str(root))
    (root / ".mediahub" / "registry" / "index.json").unlink()
    with pytest.raises(SelectionError):
        duplicates.analyze_duplicates(str(root))


def test_csv_has_one_row_per_duplicate_file():
    built = BaselineIndex(entries=[_entry("a.jpg", b"x"), _entry("b.jpg", b"x"), _entry("c.jpg", b"y")])
    handle = io.StringIO()
    duplicates.write_duplicates_csv(duplicates.group_duplicates(built), handle)
    lines = handle.getvalue().splitlines()
    assert lines[0] == ",".join(duplicates.CSV_FIELDS)
    assert len(lines) == 3
    assert lines[1].startswith(f"{sha256_of(b'x')},a.jpg,1,")
