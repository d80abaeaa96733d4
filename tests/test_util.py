import errno

import pytest

from aptstash.vfs.base import MODE_COMPRESS
from aptstash.vfs.mem import memory
from aptstash.vfs.util import (
    SkipDir,
    clone,
    compress,
    is_exist,
    is_not_exist,
    mkdir_all,
    read_file,
    remove_all,
    walk,
    write_file,
)


@pytest.fixture
def tree():
    fs = memory()
    mkdir_all(fs, "a", 0o755)
    mkdir_all(fs, "b", 0o755)
    write_file(fs, "a/1", b"one", 0o644)
    write_file(fs, "a/2", b"two", 0o644)
    write_file(fs, "b/1", b"three", 0o644)
    return fs


def _collector(visited, skip=None, fail=None):
    def fn(fs, path, info, err):
        if err is not None:
            raise err
        visited.append(path)
        if path == skip:
            raise SkipDir()
        if path == fail:
            raise ValueError(path)

    return fn


def test_walk_visits_in_alphabetical_order(tree):
    visited = []
    walk(tree, "/", _collector(visited))
    assert visited == ["/", "/a", "/a/1", "/a/2", "/b", "/b/1"]


def test_walk_skip_dir_on_directory(tree):
    visited = []
    walk(tree, "/", _collector(visited, skip="/a"))
    assert visited == ["/", "/a", "/b", "/b/1"]


def test_walk_skip_dir_on_file_skips_siblings(tree):
    visited = []
    walk(tree, "/", _collector(visited, skip="/a/1"))
    assert visited == ["/", "/a", "/a/1", "/b", "/b/1"]


def test_walk_stops_on_other_error(tree):
    visited = []
    with pytest.raises(ValueError):
        walk(tree, "/", _collector(visited, fail="/a/1"))
    assert visited == ["/", "/a", "/a/1"]


def test_walk_missing_root_passes_error():
    fs = memory()
    seen = []

    def fn(fs, path, info, err):
        seen.append((path, info, err))

    walk(fs, "missing", fn)
    assert len(seen) == 1
    path, info, err = seen[0]
    assert path == "missing"
    assert info is None
    assert is_not_exist(err)


def test_mkdir_all_idempotent():
    fs = memory()
    mkdir_all(fs, "x/y/z", 0o755)
    mkdir_all(fs, "x/y/z", 0o755)
    assert fs.stat("x/y/z").is_dir()
    assert [i.name() for i in fs.read_dir("x/y")] == ["z"]


def test_mkdir_all_over_file_fails():
    fs = memory()
    write_file(fs, "f", b"data", 0o644)
    with pytest.raises(NotADirectoryError):
        mkdir_all(fs, "f/g", 0o755)


def test_remove_all_removes_tree(tree):
    remove_all(tree, "a")
    with pytest.raises(FileNotFoundError):
        tree.stat("a")
    assert [i.name() for i in tree.read_dir("/")] == ["b"]


def test_remove_all_missing_is_silent():
    fs = memory()
    remove_all(fs, "nothing")
    assert fs.read_dir("/") == []


def test_write_then_read_round_trip():
    fs = memory()
    write_file(fs, "file", b"payload", 0o644)
    assert read_file(fs, "file") == b"payload"


def test_write_file_truncates():
    fs = memory()
    write_file(fs, "file", b"a long payload", 0o644)
    write_file(fs, "file", b"short", 0o644)
    assert read_file(fs, "file") == b"short"


def test_clone_copies_files_and_dirs(tree):
    dst = memory()
    clone(dst, tree)
    assert [i.name() for i in dst.read_dir("/")] == ["a", "b"]
    assert read_file(dst, "a/1") == b"one"
    assert read_file(dst, "a/2") == b"two"
    assert read_file(dst, "b/1") == b"three"
    again = memory()
    clone(again, dst)
    assert read_file(again, "b/1") == b"three"


def test_is_exist_and_is_not_exist():
    assert is_exist(FileExistsError())
    assert is_exist(OSError(errno.EEXIST, "exists"))
    assert not is_exist(FileNotFoundError())
    assert not is_exist(ValueError("nope"))
    assert is_not_exist(FileNotFoundError())
    assert is_not_exist(OSError(errno.ENOENT, "missing"))
    assert not is_not_exist(FileExistsError())


def test_compress_keeps_content_and_shrinks():
    fs = memory()
    big = b"x" * 4096
    write_file(fs, "big", big, 0o644)
    compress(fs)
    info = fs.stat("big")
    assert info.mode() & MODE_COMPRESS
    assert info.size() < len(big)
    assert read_file(fs, "big") == big


def test_compress_leaves_incompressible_plain():
    fs = memory()
    write_file(fs, "small", b"ab", 0o644)
    compress(fs)
    info = fs.stat("small")
    assert not info.mode() & MODE_COMPRESS
    assert info.size() == 2
    assert read_file(fs, "small") == b"ab"