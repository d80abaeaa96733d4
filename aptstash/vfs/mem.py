"""An in-memory virtual file system."""

from __future__ import annotations

import errno
import os
import posixpath
import stat
import threading
from datetime import datetime, timezone
from typing import Mapping, Optional

from aptstash.vfs.base import (
    MODE_DIR,
    VFS,
    Dir,
    Entry,
    EntryInfo,
    File,
    FileHandle,
    new_rfile,
    new_wfile,
)
from aptstash.vfs.util import mkdir_all

__all__ = ["MemoryFileSystem", "memory", "from_map"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clean_path(path: str) -> str:
    return posixpath.normpath("/" + path).strip("/")


def _info_path(path: str) -> str:
    return posixpath.normpath(path) if path else "."


def _not_found(path: str) -> FileNotFoundError:
    return FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)


class MemoryFileSystem(VFS):
    """A file system kept entirely in memory."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._root = Dir(mode=MODE_DIR | 0o755, mod_time=_now())

    def _entry(self, path: str) -> tuple[Entry, Optional[Dir], int]:
        cleaned = _clean_path(path)
        if cleaned in ("", "."):
            return self._root, None, 0
        parts = cleaned.split("/")
        current = self._root
        for index, name in enumerate(parts):
            with current.lock:
                try:
                    entry, pos = current.find(name)
                except FileNotFoundError:
                    raise _not_found(path) from None
            if index == len(parts) - 1:
                return entry, current, pos
            if not isinstance(entry, Dir):
                break
            current = entry
        raise _not_found(path)

    def _dir_entry(self, path: str) -> Dir:
        entry, _, _ = self._entry(path)
        if not isinstance(entry, Dir):
            raise NotADirectoryError(f"{path} it's not a directory")
        return entry

    def open(self, path: str) -> FileHandle:
        with self._lock:
            entry, _, _ = self._entry(path)
        if not isinstance(entry, File):
            raise IsADirectoryError(f"{path} is not a file")
        return new_rfile(entry)

    def open_file(self, path: str, flag: int, perm: int) -> FileHandle:
        if stat.S_IFMT(perm) not in (0, stat.S_IFREG):
            raise ValueError(f"{type(self).__name__} does not support special files")
        cleaned = _clean_path(path)
        parent, base = posixpath.split(cleaned)
        if not base:
            raise OSError("can't create file with empty name")
        with self._lock:
            d = self._dir_entry(parent)
        with d.lock:
            try:
                found: Optional[Entry] = d.find(base)[0]
            except FileNotFoundError:
                found = None
            if found is None and not flag & os.O_CREAT:
                raise _not_found(path)
            if not flag & os.O_WRONLY and not flag & os.O_RDWR:
                if found is None:
                    raise _not_found(path)
                if not isinstance(found, File):
                    raise IsADirectoryError(f"{cleaned} is not a file")
                return new_wfile(found, True, False)
            if found is not None:
                if not isinstance(found, File):
                    raise IsADirectoryError(f"{cleaned} is not a file")
                if flag & os.O_EXCL:
                    raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), path)
                if flag & os.O_TRUNC:
                    with found.lock:
                        found.mod_time = _now()
                        found.data = b""
                target = found
            else:
                target = File(mod_time=_now())
                d.add(base, target)
        return new_wfile(target, bool(flag & os.O_RDWR), True)

    def lstat(self, path: str) -> EntryInfo:
        return self.stat(path)

    def stat(self, path: str) -> EntryInfo:
        with self._lock:
            entry, _, _ = self._entry(path)
        return EntryInfo(path=_info_path(path), entry=entry)

    def read_dir(self, path: str) -> list[EntryInfo]:
        with self._lock:
            entry, _, _ = self._entry(path)
            if not isinstance(entry, Dir):
                raise NotADirectoryError(f"{path} is not a directory")
            with entry.lock:
                return [
                    EntryInfo(path=_info_path(posixpath.join(path, name)), entry=child)
                    for name, child in zip(entry.entry_names, entry.entries)
                ]

    def mkdir(self, path: str, perm: int) -> None:
        cleaned = _clean_path(path)
        parent, base = posixpath.split(cleaned)
        if not base:
            if parent in ("", "/"):
                raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), path)
            raise OSError("can't create directory with empty name")
        with self._lock:
            d = self._dir_entry(parent)
        with d.lock:
            if base in d.entry_names:
                raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), path)
            d.add(base, Dir(mode=MODE_DIR | perm, mod_time=_now()))

    def remove(self, path: str) -> None:
        with self._lock:
            entry, parent, _ = self._entry(path)
            if isinstance(entry, Dir) and entry.entries:
                raise OSError(errno.ENOTEMPTY, f"directory {path} not empty", path)
            if parent is None:
                raise OSError(errno.EBUSY, "cannot remove the root directory", path)
            with parent.lock:
                try:
                    _, pos = parent.find(posixpath.basename(_clean_path(path)))
                except FileNotFoundError:
                    raise _not_found(path) from None
                del parent.entry_names[pos]
                del parent.entries[pos]


def memory() -> MemoryFileSystem:
    """Return an empty in-memory file system."""
    return MemoryFileSystem()


def from_map(files: Optional[Mapping[str, File]]) -> MemoryFileSystem:
    """Return an in-memory file system holding ``files``, keyed by path.

    Directories are created as needed. Files without a mode get 0644. A
    path that would be both a file and a directory raises an error.
    """
    fs = MemoryFileSystem()
    prev_dir: Optional[Dir] = None
    prev_path = ""
    for key in sorted(files or {}):
        f = files[key]
        if f.mode == 0:
            f.mode = 0o644
        cut = key.rfind("/") + 1
        file_dir, base = key[:cut], key[cut:]
        if prev_dir is not None and file_dir == prev_path:
            d = prev_dir
        else:
            mkdir_all(fs, file_dir, 0o755)
            d = fs._dir_entry(file_dir)
            prev_dir, prev_path = d, file_dir
        d.add(base, f)
    return fs