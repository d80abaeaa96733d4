"""A file system made of other file systems mounted at points of one tree."""

from __future__ import annotations

import errno
import os
import posixpath
from dataclasses import dataclass
from typing import Optional

from aptstash.vfs.base import VFS

__all__ = ["Mounter"]

_SEPARATOR = "/"


def _has_subdir(root: str, directory: str) -> Optional[str]:
    root = posixpath.normpath(root)
    if not root.endswith(_SEPARATOR):
        root += _SEPARATOR
    directory = posixpath.normpath(directory)
    if not directory.startswith(root):
        return None
    return directory[len(root):]


@dataclass
class _MountPoint:
    point: str
    fs: VFS

    def __str__(self) -> str:
        return f"{self.fs} at {self.point}"


class Mounter(VFS):
    """Mounts file systems at points of a tree, much like a UNIX system.

    The first file system must be mounted at ``/``. Paths are absolute.
    """

    def __init__(self) -> None:
        self._points: list[_MountPoint] = []

    def _fs(self, path: str) -> tuple[VFS, str]:
        for mount in reversed(self._points):
            rel = _has_subdir(mount.point, path)
            if rel is not None:
                return mount.fs, rel
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)

    def mount(self, fs: VFS, point: str) -> None:
        """Mount ``fs`` at ``point``, which must be ``/`` or an existing directory."""
        point = posixpath.normpath(point) if point else "."
        if point in (".", ""):
            point = "/"
        if point == "/":
            if self._points:
                raise OSError(f"{self._points[0]} is already mounted at /")
            self._points.append(_MountPoint(point, fs))
            return
        info = self.stat(point)
        if not info.is_dir():
            raise NotADirectoryError(f"{point} is not a directory")
        self._points.append(_MountPoint(point, fs))

    def umount(self, point: str) -> None:
        """Unmount the file system at ``point``; nothing may be mounted below it."""
        point = posixpath.normpath(point)
        for index, mount in enumerate(self._points):
            if mount.point != point:
                continue
            for other in self._points[index:]:
                if _has_subdir(mount.point, other.point) is not None:
                    raise OSError(
                        f"can't umount {point} because {other} is mounted below it"
                    )
            del self._points[index]
            return
        raise OSError(f"no filesystem mounted at {point}")

    def open(self, path: str):
        fs, rel = self._fs(path)
        return fs.open(rel)

    def open_file(self, path: str, flag: int, perm: int):
        fs, rel = self._fs(path)
        return fs.open_file(rel, flag, perm)

    def lstat(self, path: str):
        fs, rel = self._fs(path)
        return fs.lstat(rel)

    def stat(self, path: str):
        fs, rel = self._fs(path)
        return fs.stat(rel)

    def read_dir(self, path: str) -> list:
        fs, rel = self._fs(path)
        return fs.read_dir(rel)

    def mkdir(self, path: str, perm: int) -> None:
        fs, rel = self._fs(path)
        fs.mkdir(rel, perm)

    def remove(self, path: str) -> None:
        fs, rel = self._fs(path)
        fs.remove(rel)

    def __str__(self) -> str:
        return "Mounter: " + ", ".join(str(mount) for mount in self._points)