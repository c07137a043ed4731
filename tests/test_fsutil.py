import os

import pytest

from chatlog.fsutil import (
    byte_count_si,
    default_work_dir,
    find_files_with_patterns,
    get_dir_size,
    prepare_dir,
)


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "a.db").write_bytes(b"1")
    (tmp_path / "b.txt").write_bytes(b"2")
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "c.db").write_bytes(b"3")
    return tmp_path


def test_find_files_non_recursive(tree):
    found = find_files_with_patterns(str(tree), r"\.db$", False)
    assert found == [os.path.join(str(tree), "a.db")]


def test_find_files_recursive(tree):
    found = find_files_with_patterns(str(tree), r"\.db$", True)
    assert sorted(found) == sorted(
        [os.path.join(str(tree), "a.db"), os.path.join(str(tree), "sub", "c.db")]
    )


def test_find_files_bad_pattern(tree):
    with pytest.raises(ValueError):
        find_files_with_patterns(str(tree), "(", True)


def test_find_files_not_a_directory(tree):
    with pytest.raises(NotADirectoryError):
        find_files_with_patterns(str(tree / "a.db"), ".*", True)


def test_find_files_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        find_files_with_patterns(str(tmp_path / "missing"), ".*", True)


def test_default_work_dir_linux(monkeypatch, tmp_path):
    monkeypatch.setattr("sys.platform", "linux")
    monkeypatch.setenv("HOME", str(tmp_path))
    assert default_work_dir("alice") == os.path.join(str(tmp_path), "chatlog", "alice")
    assert default_work_dir("") == os.path.join(str(tmp_path), "chatlog")


def test_default_work_dir_darwin(monkeypatch, tmp_path):
    monkeypatch.setattr("sys.platform", "darwin")
    monkeypatch.setenv("HOME", str(tmp_path))
    assert default_work_dir("") == os.path.join(str(tmp_path), "Documents", "chatlog")


@pytest.mark.parametrize(
    "size, expected", [(999, "999 B"), (1000, "1.0 kB"), (1_500_000, "1.5 MB")]
)
def test_byte_count_si(size, expected):
    assert byte_count_si(size) == expected


def test_byte_count_si_unit_grows_with_size():
    assert byte_count_si(10**18).endswith("EB")
    assert byte_count_si(10**9).endswith("GB")


def test_get_dir_size_of_single_file(tmp_path):
    target = tmp_path / "data.bin"
    target.write_bytes(b"x" * 500)
    assert get_dir_size(str(target)) == byte_count_si(500)


def test_get_dir_size_missing(tmp_path):
    assert get_dir_size(str(tmp_path / "nope")) == byte_count_si(0)


def test_prepare_dir_creates_nested(tmp_path):
    target = tmp_path / "x" / "y" / "z"
    prepare_dir(str(target))
    assert target.is_dir()
    prepare_dir(str(target))
    assert target.is_dir()


def test_prepare_dir_rejects_file(tmp_path):
    target = tmp_path / "file"
    target.write_text("data")
    with pytest.raises(NotADirectoryError):
        prepare_dir(str(target))