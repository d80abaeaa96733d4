"""In-memory file systems loaded from archives, and archives written from file systems.

Supported formats are zip, tar, tar.gz and tar.bz2.
"""

from __future__ import annotations

import bz2
import gzip
import io
import os
import shutil
import stat
import tarfile
import zipfile
from datetime import datetime, timezone
from typing import BinaryIO, Callable, Optional

from aptstash.vfs.base import MODE_PERM, VFS, ZERO_TIME, File, FileInfo
from aptstash.vfs.mem import MemoryFileSystem, from_map
from aptstash.vfs.util import walk

__all__ = [
    "zip_fs",
    "tar_fs",
    "tar_gzip_fs",
    "tar_bzip2_fs",
    "open_archive",
    "write_zip",
    "write_tar",
    "write_tar_gzip",
]

_MODE_BITS = 0o177777
_ZIP_MIN_TIME = (1980, 1, 1, 0, 0, 0)
_ZIP_MAX_YEAR = 2107


def _is_seekable(reader: BinaryIO) -> bool:
    seekable = getattr(reader, "seekable", None)
    try:
        return bool(seekable()) if seekable is not None else False
    except (OSError, ValueError):
        return False


def _zip_mode(info: zipfile.ZipInfo) -> int:
    unix_mode = (info.external_attr >> 16) & _MODE_BITS
    if stat.S_IFMT(unix_mode) in (0, stat.S_IFREG):
        return stat.S_IMODE(unix_mode)
    return unix_mode


def _zip_time(info: zipfile.ZipInfo) -> datetime:
    try:
        return datetime(*info.date_time, tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return ZERO_TIME


def zip_fs(reader: BinaryIO, size: int) -> MemoryFileSystem:
    """Return an in-memory file system holding the files of a zip archive.

    The whole archive is read into memory first when ``reader`` cannot
    seek or ``size`` is not positive.
    """
    if size <= 0 or not _is_seekable(reader):
        reader = io.BytesIO(reader.read())
    files: dict[str, File] = {}
    with zipfile.ZipFile(reader) as archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            with archive.open(info) as member:
                data = member.read()
            files[info.filename] = File(
                data=data, mode=_zip_mode(info), mod_time=_zip_time(info)
            )
    return from_map(files)


def _tar_mode(member: tarfile.TarInfo) -> int:
    perm = member.mode & 0o7777
    if member.issym():
        return stat.S_IFLNK | perm
    if member.ischr():
        return stat.S_IFCHR | perm
    if member.isblk():
        return stat.S_IFBLK | perm
    if member.isfifo():
        return stat.S_IFIFO | perm
    return perm


def tar_fs(reader: BinaryIO) -> MemoryFileSystem:
    """Return an in-memory file system holding the files of a tar archive."""
    files: dict[str, File] = {}
    with tarfile.open(fileobj=reader, mode="r|") as archive:
        for member in archive:
            if member.isdir():
                continue
            data = b""
            if member.isfile():
                extracted = archive.extractfile(member)
                if extracted is not None:
                    data = extracted.read()
            files[member.name] = File(
                data=data,
                mode=_tar_mode(member),
                mod_time=datetime.fromtimestamp(member.mtime, tz=timezone.utc),
            )
    return from_map(files)


def tar_gzip_fs(reader: BinaryIO) -> MemoryFileSystem:
    """Return an in-memory file system holding the files of a tar.gz archive."""
    with gzip.GzipFile(fileobj=reader, mode="rb") as unpacked:
        return tar_fs(unpacked)


def tar_bzip2_fs(reader: BinaryIO) -> MemoryFileSystem:
    """Return an in-memory file system holding the files of a tar.bz2 archive."""
    with bz2.BZ2File(reader, mode="rb") as unpacked:
        return tar_fs(unpacked)


def _ext(path: str) -> str:
    base = os.path.basename(path)
    dot = base.rfind(".")
    return base[dot:] if dot >= 0 else ""


def open_archive(filename: str | os.PathLike) -> MemoryFileSystem:
    """Return an in-memory file system with the contents of an archive file.

    The file name must end in .zip, .tar, .tar.gz or .tar.bz2.
    """
    filename = os.fspath(filename)
    with open(os.path.normpath(filename), "rb") as f:
        ext = _ext(filename).lower()
        without_ext = filename[: len(filename) - len(ext)]
        if _ext(without_ext).lower() == ".tar":
            ext = ".tar" + ext
        if ext == ".zip":
            return zip_fs(f, os.fstat(f.fileno()).st_size)
        if ext == ".tar":
            return tar_fs(f)
        if ext == ".tar.gz":
            return tar_gzip_fs(f)
        if ext == ".tar.bz2":
            return tar_bzip2_fs(f)
    raise ValueError(f"can't open a VFS from a {ext} file")


_Copier = Callable[[str, FileInfo, BinaryIO], None]


def _copy_files(fs: VFS, copier: _Copier) -> None:
    def visit(
        vfs: VFS, path: str, info: Optional[FileInfo], err: Optional[BaseException]
    ) -> None:
        if err is not None:
            raise err
        if info.is_dir():
            return
        f = fs.open(path)
        try:
            copier(path[1:], info, f)
        finally:
            f.close()

    walk(fs, "/", visit)


def _zip_date_time(moment: datetime) -> tuple[int, int, int, int, int, int]:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    if moment.year < _ZIP_MIN_TIME[0]:
        return _ZIP_MIN_TIME
    if moment.year > _ZIP_MAX_YEAR:
        return (_ZIP_MAX_YEAR, 12, 31, 23, 59, 58)
    return (moment.year, moment.month, moment.day, moment.hour, moment.minute, moment.second)


def write_zip(writer: BinaryIO, fs: VFS) -> None:
    """Write every file of ``fs`` to ``writer`` as a zip archive."""
    with zipfile.ZipFile(writer, mode="w") as archive:

        def add(name: str, info: FileInfo, f: BinaryIO) -> None:
            entry = zipfile.ZipInfo(name, date_time=_zip_date_time(info.mod_time()))
            mode = info.mode() & _MODE_BITS
            if stat.S_IFMT(mode) == 0:
                mode |= stat.S_IFREG
            entry.external_attr = mode << 16
            entry.compress_type = zipfile.ZIP_DEFLATED
            with archive.open(entry, mode="w") as dst:
                shutil.copyfileobj(f, dst)

        _copy_files(fs, add)


def write_tar(writer: BinaryIO, fs: VFS) -> None:
    """Write every file of ``fs`` to ``writer`` as a tar archive."""
    with tarfile.open(fileobj=writer, mode="w|") as archive:

        def add(name: str, info: FileInfo, f: BinaryIO) -> None:
            data = f.read()
            entry = tarfile.TarInfo(name)
            entry.size = len(data)
            entry.mode = info.mode() & MODE_PERM
            entry.mtime = max(0, int(info.mod_time().timestamp()))
            archive.addfile(entry, io.BytesIO(data))

        _copy_files(fs, add)


def write_tar_gzip(writer: BinaryIO, fs: VFS) -> None:
    """Write every file of ``fs`` to ``writer`` as a tar.gz archive."""
    with gzip.GzipFile(fileobj=writer, mode="wb", compresslevel=9) as packed:
        write_tar(packed, fs)