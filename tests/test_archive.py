import bz2
import gzip
import io
import tarfile
import zipfile

import pytest

from aptstash.vfs.archive import (
    open_archive,
    tar_bzip2_fs,
    tar_fs,
    tar_gzip_fs,
    write_tar,
    write_tar_gzip,
    write_zip,
    zip_fs,
)
from aptstash.vfs.base import File
from aptstash.vfs.mem import from_map, memory
from aptstash.vfs.util import clone, compress, read_file, walk, write_file


def _tar_bytes():
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as archive:
        for dirname in ("a", "a/b", "a/b/c"):
            entry = tarfile.TarInfo(dirname)
            entry.type = tarfile.DIRTYPE
            entry.mode = 0o755
            archive.addfile(entry)
        for name, data, mode in (("a/b/c/d", b"go", 0o600), ("empty", b"", 0o644)):
            entry = tarfile.TarInfo(name)
            entry.size = len(data)
            entry.mode = mode
            entry.mtime = 1_000_000_000
            archive.addfile(entry, io.BytesIO(data))
    return buf.getvalue()


def _zip_bytes():
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        directory = zipfile.ZipInfo("a/")
        directory.external_attr = (0o40755 << 16) | 0x10
        archive.writestr(directory, b"")
        archive.writestr("a/b/c/d", "go")
        archive.writestr("empty", "")
    return buf.getvalue()


@pytest.fixture
def archives(tmp_path):
    tar_data = _tar_bytes()
    paths = {
        "fs.zip": _zip_bytes(),
        "fs.tar": tar_data,
        "fs.tar.gz": gzip.compress(tar_data),
        "fs.tar.bz2": bz2.compress(tar_data),
    }
    for name, data in paths.items():
        (tmp_path / name).write_bytes(data)
    return tmp_path


def _check_opened(fs):
    assert read_file(fs, "a/b/c/d") == b"go"
    assert read_file(fs, "empty") == b""


@pytest.mark.parametrize("name", ["fs.zip", "fs.tar", "fs.tar.gz", "fs.tar.bz2"])
def test_open_archive(archives, name):
    fs = open_archive(archives / name)
    _check_opened(fs)


def test_open_archive_upper_case_extension(archives, tmp_path):
    target = tmp_path / "FS.TAR.GZ"
    target.write_bytes((archives / "fs.tar.gz").read_bytes())
    _check_opened(open_archive(target))


def test_open_archive_unknown_extension(tmp_path):
    target = tmp_path / "fs.rar"
    target.write_bytes(b"data")
    with pytest.raises(ValueError, match=r"can't open a VFS from a \.rar file"):
        open_archive(target)


def test_open_archive_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        open_archive(tmp_path / "missing.zip")


def test_zip_directories_are_created_not_files():
    fs = zip_fs(io.BytesIO(_zip_bytes()), 0)
    names = [info.name() for info in fs.read_dir("/")]
    assert names == ["a", "empty"]
    assert fs.stat("a").is_dir()
    assert fs.stat("a/b/c").is_dir()
    assert not fs.stat("a/b/c/d").is_dir()


def test_zip_from_unseekable_reader():
    class Unseekable(io.RawIOBase):
        def __init__(self, data):
            self._inner = io.BytesIO(data)

        def readable(self):
            return True

        def seekable(self):
            return False

        def readinto(self, buffer):
            chunk = self._inner.read(len(buffer))
            buffer[: len(chunk)] = chunk
            return len(chunk)

    data = _zip_bytes()
    fs = zip_fs(Unseekable(data), len(data))
    _check_opened(fs)


def test_zip_bad_data():
    with pytest.raises(zipfile.BadZipFile):
        zip_fs(io.BytesIO(b"not a zip archive at all"), 0)


def test_tar_keeps_modes_and_times():
    fs = tar_fs(io.BytesIO(_tar_bytes()))
    info = fs.stat("a/b/c/d")
    assert info.mode() & 0o777 == 0o600
    assert info.size() == 2
    assert int(info.mod_time().timestamp()) == 1_000_000_000


def test_tar_gzip_and_bzip2_readers():
    tar_data = _tar_bytes()
    _check_opened(tar_gzip_fs(io.BytesIO(gzip.compress(tar_data))))
    _check_opened(tar_bzip2_fs(io.BytesIO(bz2.compress(tar_data))))


def test_tar_gzip_bad_data():
    with pytest.raises(gzip.BadGzipFile):
        tar_gzip_fs(io.BytesIO(b"plain text, not gzip"))


@pytest.mark.parametrize(
    "writer, reader",
    [
        (write_zip, lambda r: zip_fs(r, 0)),
        (write_tar, tar_fs),
        (write_tar_gzip, tar_gzip_fs),
    ],
    ids=["zip", "tar", "tar.gz"],
)
def test_write_round_trip(archives, writer, reader):
    fs = open_archive(archives / "fs.zip")
    buf = io.BytesIO()
    writer(buf, fs)
    buf.seek(0)
    new_fs = reader(buf)
    _check_opened(new_fs)


def test_write_zip_entry_names(archives):
    fs = open_archive(archives / "fs.tar")
    buf = io.BytesIO()
    write_zip(buf, fs)
    with zipfile.ZipFile(io.BytesIO(buf.getvalue())) as archive:
        assert sorted(archive.namelist()) == ["a/b/c/d", "empty"]
        assert archive.read("a/b/c/d") == b"go"


def test_write_tar_gzip_is_gzip(archives):
    fs = open_archive(archives / "fs.tar")
    buf = io.BytesIO()
    write_tar_gzip(buf, fs)
    assert buf.getvalue()[:2] == b"\x1f\x8b"
    with tarfile.open(fileobj=io.BytesIO(gzip.decompress(buf.getvalue()))) as archive:
        assert sorted(archive.getnames()) == ["a/b/c/d", "empty"]


def test_write_empty_fs_round_trip():
    buf = io.BytesIO()
    write_tar(buf, memory())
    buf.seek(0)
    restored = tar_fs(buf)
    assert restored.read_dir("/") == []


def test_clone(archives):
    fs = open_archive(archives / "fs.zip")
    infos1 = fs.read_dir("/")
    mem1 = memory()
    clone(mem1, fs)
    infos2 = mem1.read_dir("/")
    assert len(infos2) == len(infos1)
    mem2 = memory()
    clone(mem2, mem1)
    infos3 = mem2.read_dir("/")
    assert len(infos3) == len(infos2)
    assert [i.name() for i in infos3] == ["a", "empty"]
    assert read_file(mem2, "a/b/c/d") == b"go"


def test_walk_counts_after_loading_map_archive():
    fs = from_map({"x/1": File(data=b"1"), "x/2": File(data=b"22"), "y": File()})
    buf = io.BytesIO()
    write_tar(buf, fs)
    buf.seek(0)
    restored = tar_fs(buf)
    visited = []

    def record(_fs, path, info, err):
        if err is not None:
            raise err
        visited.append((path, info.is_dir()))

    walk(restored, "/", record)
    assert visited == [
        ("/", True),
        ("/x", True),
        ("/x/1", False),
        ("/x/2", False),
        ("/y", False),
    ]
    assert read_file(restored, "x/2") == b"22"
    assert [info.name() for info in restored.read_dir("x")] == ["1", "2"]