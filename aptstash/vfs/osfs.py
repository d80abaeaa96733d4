"""A virtual file system backed by a directory of the operating system."""

from __future__ import annotations

import os
import posixpath
import shutil
import stat
import tempfile
from datetime import datetime, timezone
from typing import BinaryIO

from aptstash.vfs.base import VFS

__all__ = ["OSFileSystem", "os_fs", "tmp_fs"]

_PERM_BITS = 0o7777


class _OSFileInfo:
    """File information taken from an operating-system stat result."""

    __slots__ = ("_name", "_result")

    def __init__(self, name: str, result: os.stat_result) -> None:
        self._name = name
        self._result = result

    def name(self) -> str:
        return self._name

    def size(self) -> int:
        return self._result.st_size

    def mode(self) -> int:
        return self._result.st_mode

    def mod_time(self) -> datetime:
        return datetime.fromtimestamp(self._result.st_mtime, tz=timezone.utc)

    def is_dir(self) -> bool:
        return stat.S_ISDIR(self._result.st_mode)

    def __repr__(self) -> str:
        return f"_OSFileInfo({self._name!r}, size={self.size()})"


def _file_mode(flag: int) -> str:
    append = bool(flag & os.O_APPEND)
    if flag & os.O_RDWR:
        return "a+b" if append else "r+b"
    if flag & os.O_WRONLY:
        return "ab" if append else "wb"
    return "rb"


class OSFileSystem(VFS):
    """A file system rooted at an absolute directory of the host."""

    def __init__(self, root: str, temporary: bool = False) -> None:
        self._root = root
        self._temporary = temporary

    def _path(self, name: str) -> str:
        cleaned = posixpath.normpath("/" + name).lstrip("/")
        if not cleaned:
            return self._root
        return os.path.normpath(os.path.join(self._root, *cleaned.split("/")))

    def root(self) -> str:
        """The absolute, native root directory of this file system."""
        return self._root

    def is_temporary(self) -> bool:
        """Whether closing this file system deletes its files."""
        return self._temporary

    def open(self, path: str) -> BinaryIO:
        return open(self._path(path), "rb")

    def open_file(self, path: str, flag: int, perm: int) -> BinaryIO:
        fd = os.open(self._path(path), flag, perm & _PERM_BITS)
        try:
            return os.fdopen(fd, _file_mode(flag))
        except BaseException:
            os.close(fd)
            raise

    def lstat(self, path: str) -> _OSFileInfo:
        native = self._path(path)
        return _OSFileInfo(os.path.basename(native), os.lstat(native))

    def stat(self, path: str) -> _OSFileInfo:
        native = self._path(path)
        return _OSFileInfo(os.path.basename(native), os.stat(native))

    def read_dir(self, path: str) -> list[_OSFileInfo]:
        with os.scandir(self._path(path)) as entries:
            infos = [
                _OSFileInfo(entry.name, entry.stat(follow_symlinks=False))
                for entry in entries
            ]
        infos.sort(key=lambda info: info.name())
        return infos

    def mkdir(self, path: str, perm: int) -> None:
        os.mkdir(self._path(path), perm & _PERM_BITS)

    def remove(self, path: str) -> None:
        native = self._path(path)
        if stat.S_ISDIR(os.lstat(native).st_mode):
            os.rmdir(native)
        else:
            os.remove(native)

    def close(self) -> None:
        """Delete every file if the file system is temporary; otherwise do nothing."""
        if self._temporary:
            shutil.rmtree(self._root)

    def __enter__(self) -> "OSFileSystem":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __str__(self) -> str:
        return f"fileSystem: {self._root}"


def os_fs(root: str | os.PathLike) -> OSFileSystem:
    """Return a file system anchored at the absolute form of ``root``."""
    return OSFileSystem(os.path.abspath(root))


def tmp_fs(prefix: str) -> OSFileSystem:
    """Return a file system in a new temporary directory, removed on close."""
    directory = tempfile.mkdtemp(prefix=prefix)
    return OSFileSystem(os.path.abspath(directory), temporary=True)