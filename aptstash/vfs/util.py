"""Helpers that work with any virtual file system."""

from __future__ import annotations

import errno
import posixpath
import stat
from typing import Callable, Optional

from aptstash.vfs.base import MODE_COMPRESS, MODE_PERM, VFS, FileInfo

__all__ = [
    "SkipDir",
    "WalkFunc",
    "walk",
    "mkdir_all",
    "remove_all",
    "read_file",
    "write_file",
    "clone",
    "is_exist",
    "is_not_exist",
    "compress",
]


class SkipDir(Exception):
    """Raised by a walk function to skip the directory it was called on.

    Raised for a file, it skips the remaining entries of the directory
    holding that file.
    """

    def __init__(self, message: str = "skip this directory") -> None:
        super().__init__(message)


WalkFunc = Callable[[VFS, str, Optional[FileInfo], Optional[BaseException]], None]


def _join(parent: str, name: str) -> str:
    return posixpath.normpath(posixpath.join(parent, name))


def _walk(fs: VFS, path: str, info: FileInfo, fn: WalkFunc) -> None:
    try:
        fn(fs, path, info, None)
    except SkipDir:
        if info.is_dir():
            return
        raise
    if not info.is_dir():
        return
    try:
        infos = fs.read_dir(path)
    except OSError as exc:
        fn(fs, path, info, exc)
        return
    for child in infos:
        name = _join(path, child.name())
        try:
            child_info = fs.lstat(name)
        except OSError as exc:
            try:
                fn(fs, name, None, exc)
            except SkipDir:
                pass
            continue
        try:
            _walk(fs, name, child_info, fn)
        except SkipDir:
            if not child_info.is_dir():
                raise


def walk(fs: VFS, root: str, fn: WalkFunc) -> None:
    """Call ``fn(fs, path, info, err)`` for ``root`` and everything below it.

    Entries of each directory are visited in alphabetical order. When an
    entry cannot be examined, ``fn`` is called with the error as ``err``;
    whatever ``fn`` raises stops the walk, except :class:`SkipDir`.
    """
    try:
        info = fs.lstat(root)
    except OSError as exc:
        fn(fs, root, None, exc)
        return
    _walk(fs, root, info, fn)


def _make_dir(fs: VFS, path: str, perm: int) -> None:
    try:
        info = fs.lstat(path)
    except OSError:
        fs.mkdir(path, perm)
        return
    if not info.is_dir():
        raise NotADirectoryError(f"{path} exists and is not a directory")


def mkdir_all(fs: VFS, path: str, perm: int) -> None:
    """Create ``path`` and any missing parents, all with ``perm``.

    Directories that already exist are left alone.
    """
    current = "/"
    _make_dir(fs, current, perm)
    for part in path.split("/"):
        current += part
        _make_dir(fs, current, perm)
        current += "/"


def remove_all(fs: VFS, path: str) -> None:
    """Remove ``path`` and, for a directory, everything inside it first."""
    try:
        info = fs.lstat(path)
    except FileNotFoundError:
        return
    if info.is_dir():
        for child in fs.read_dir(path):
            remove_all(fs, _join(path, child.name()))
    fs.remove(path)


def read_file(fs: VFS, path: str) -> bytes:
    """Return the whole content of the file at ``path``."""
    f = fs.open(path)
    try:
        return f.read()
    finally:
        f.close()


def write_file(fs: VFS, path: str, data: bytes, perm: int) -> None:
    """Write ``data`` to ``path``, creating the file or truncating it first."""
    import os

    f = fs.open_file(path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, perm)
    try:
        f.write(data)
    except BaseException:
        try:
            f.close()
        except Exception:
            pass
        raise
    f.close()


def clone(dst: VFS, src: VFS) -> None:
    """Copy every file and directory of ``src`` into ``dst``.

    Directories without permission bits get 0755, files 0644.
    """

    def copy(fs: VFS, path: str, info: Optional[FileInfo], err: Optional[BaseException]) -> None:
        if err is not None:
            raise err
        mode = info.mode()
        if info.is_dir():
            perm = mode & MODE_PERM or 0o755
            try:
                dst.mkdir(path, mode | perm)
            except OSError as exc:
                if not is_exist(exc):
                    raise
            return
        perm = mode & MODE_PERM or 0o644
        write_file(dst, path, read_file(fs, path), mode | perm)

    walk(src, "/", copy)


def is_exist(err: BaseException) -> bool:
    """Whether ``err`` says that a file or directory already exists."""
    if isinstance(err, FileExistsError):
        return True
    return isinstance(err, OSError) and err.errno in (errno.EEXIST, errno.ENOTEMPTY)


def is_not_exist(err: BaseException) -> bool:
    """Whether ``err`` says that a file or directory does not exist."""
    if isinstance(err, FileNotFoundError):
        return True
    return isinstance(err, OSError) and err.errno == errno.ENOENT


def compress(fs: VFS) -> None:
    """Mark every file of ``fs`` for transparent compression where supported."""

    def mark(fs: VFS, path: str, info: Optional[FileInfo], err: Optional[BaseException]) -> None:
        if err is not None:
            raise err
        mode = info.mode()
        if stat.S_ISDIR(mode) or mode & MODE_COMPRESS:
            return
        f = fs.open(path)
        try:
            set_compressed = getattr(f, "set_compressed", None)
            if set_compressed is not None:
                set_compressed(True)
        finally:
            f.close()

    walk(fs, "/", mark)