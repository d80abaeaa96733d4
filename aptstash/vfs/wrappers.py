"""File systems that wrap another one: chroot, path rewriting and read-only."""

from __future__ import annotations

import os
import posixpath
from typing import Callable, Optional

from aptstash.vfs.base import VFS, ReadOnlyFileSystemError

__all__ = [
    "ChrootFileSystem",
    "RewriterFileSystem",
    "ReadOnlyFileSystem",
    "chroot",
    "rewriter",
    "read_only",
]


def _clean_abs(path: str) -> str:
    cleaned = posixpath.normpath("/" + path)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


class ChrootFileSystem(VFS):
    """A file system seeing only one directory of another, as its root."""

    def __init__(self, root: str, fs: VFS) -> None:
        self._root = root if root.endswith("/") else root + "/"
        self._fs = fs

    @property
    def vfs(self) -> VFS:
        """The wrapped file system."""
        return self._fs

    def _path(self, path: str) -> str:
        return self._root + path

    def open(self, path: str):
        return self._fs.open(self._path(path))

    def open_file(self, path: str, flag: int, perm: int):
        return self._fs.open_file(self._path(path), flag, perm)

    def lstat(self, path: str):
        return self._fs.lstat(self._path(path))

    def stat(self, path: str):
        return self._fs.stat(self._path(path))

    def read_dir(self, path: str) -> list:
        return self._fs.read_dir(self._path(path))

    def mkdir(self, path: str, perm: int) -> None:
        self._fs.mkdir(self._path(path), perm)

    def remove(self, path: str) -> None:
        self._fs.remove(self._path(path))

    def __str__(self) -> str:
        return f"Chroot {self._root} {self._fs}"


class RewriterFileSystem(VFS):
    """A file system passing every path through a rewrite function."""

    def __init__(self, fs: VFS, rewrite: Callable[[str], str]) -> None:
        self._fs = fs
        self._rewrite = rewrite

    @property
    def vfs(self) -> VFS:
        """The wrapped file system."""
        return self._fs

    def open(self, path: str):
        return self._fs.open(self._rewrite(path))

    def open_file(self, path: str, flag: int, perm: int):
        return self._fs.open_file(self._rewrite(path), flag, perm)

    def lstat(self, path: str):
        return self._fs.lstat(self._rewrite(path))

    def stat(self, path: str):
        return self._fs.stat(self._rewrite(path))

    def read_dir(self, path: str) -> list:
        return self._fs.read_dir(self._rewrite(path))

    def mkdir(self, path: str, perm: int) -> None:
        self._fs.mkdir(self._rewrite(path), perm)

    def remove(self, path: str) -> None:
        self._fs.remove(self._rewrite(path))

    def __str__(self) -> str:
        return f"Rewriter {self._fs}"


class ReadOnlyFileSystem(VFS):
    """A view of another file system that refuses every write."""

    def __init__(self, fs: VFS) -> None:
        self._fs = fs

    @property
    def vfs(self) -> VFS:
        """The wrapped file system."""
        return self._fs

    def open(self, path: str):
        return self._fs.open(path)

    def open_file(self, path: str, flag: int, perm: int):
        if flag & (os.O_CREAT | os.O_WRONLY | os.O_RDWR):
            raise ReadOnlyFileSystemError()
        return self._fs.open_file(path, flag, perm)

    def lstat(self, path: str):
        return self._fs.lstat(path)

    def stat(self, path: str):
        return self._fs.stat(path)

    def read_dir(self, path: str) -> list:
        return self._fs.read_dir(path)

    def mkdir(self, path: str, perm: int) -> None:
        raise ReadOnlyFileSystemError()

    def remove(self, path: str) -> None:
        raise ReadOnlyFileSystemError()

    def __str__(self) -> str:
        return f"RO {self._fs}"


def chroot(root: str, fs: VFS) -> ChrootFileSystem:
    """Return a view of ``fs`` with the existing directory ``root`` as ``/``."""
    root = _clean_abs(root)
    info = fs.stat(root)
    if not info.is_dir():
        raise NotADirectoryError(f"{root} is not a directory")
    return ChrootFileSystem(root, fs)


def rewriter(fs: VFS, rewrite: Optional[Callable[[str], str]]) -> VFS:
    """Return ``fs`` with paths rewritten by ``rewrite``; ``fs`` itself if None."""
    if rewrite is None:
        return fs
    return RewriterFileSystem(fs, rewrite)


def read_only(fs: VFS) -> ReadOnlyFileSystem:
    """Return a read-only view of ``fs``."""
    return ReadOnlyFileSystem(fs)