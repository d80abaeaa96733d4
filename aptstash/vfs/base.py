"""Core types of the virtual file systems.

Every file system uses slash-separated paths with ``/`` as the root. There
is no current directory: ``/a/b/c`` and ``a/b/c`` name the same element.
File systems are safe to use from several threads at once.

Modes follow the :mod:`stat` layout (``stat.S_IFDIR`` marks a directory,
the low nine bits are permissions), with :data:`MODE_COMPRESS` as an extra
flag for in-memory files kept zlib-compressed. Flags for ``open_file`` are
the ones in :mod:`os` (``os.O_CREAT``, ``os.O_WRONLY`` and so on).
"""

from __future__ import annotations

import abc
import bisect
import enum
import logging
import os
import posixpath
import stat
import threading
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, Union

MODE_COMPRESS = 1 << 16
MODE_DIR = stat.S_IFDIR
MODE_PERM = 0o777

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_log = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ReadOnlyFileError(OSError):
    """Raised when writing to a file opened for reading only."""

    def __init__(self, message: str = "can't write to read only file") -> None:
        super().__init__(message)


class WriteOnlyFileError(OSError):
    """Raised when reading from a file opened for writing only."""

    def __init__(self, message: str = "can't read from write only file") -> None:
        super().__init__(message)


class FileClosedError(ValueError):
    """Raised when using a file handle that has been closed."""

    def __init__(self, message: str = "file is closed") -> None:
        super().__init__(message)


class ReadOnlyFileSystemError(OSError):
    """Raised by read-only file systems for any operation that would write."""

    def __init__(self, message: str = "read-only filesystem") -> None:
        super().__init__(message)


class EntryType(enum.IntEnum):
    """Kind of an in-memory entry."""

    FILE = 1
    DIR = 2


@dataclass(eq=False)
class File:
    """An in-memory file."""

    data: bytes = b""
    mode: int = 0
    mod_time: datetime = ZERO_TIME
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def entry_type(self) -> EntryType:
        return EntryType.FILE

    def size(self) -> int:
        """Length of the stored data (compressed, if the file is)."""
        with self.lock:
            return len(self.data)

    def modification_time(self) -> datetime:
        with self.lock:
            return self.mod_time


@dataclass(eq=False)
class Dir:
    """An in-memory directory whose entries are kept sorted by name."""

    mode: int = 0
    mod_time: datetime = ZERO_TIME
    entry_names: list[str] = field(default_factory=list)
    entries: list["Entry"] = field(default_factory=list)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def entry_type(self) -> EntryType:
        return EntryType.DIR

    def size(self) -> int:
        return 0

    def modification_time(self) -> datetime:
        with self.lock:
            return self.mod_time

    def add(self, name: str, entry: "Entry") -> None:
        """Insert ``entry`` under ``name``; raise FileExistsError if taken."""
        pos = bisect.bisect_left(self.entry_names, name)
        if pos < len(self.entry_names) and self.entry_names[pos] == name:
            raise FileExistsError(f"{name} already exists")
        self.entry_names.insert(pos, name)
        self.entries.insert(pos, entry)

    def find(self, name: str) -> tuple["Entry", int]:
        """Return the entry named ``name`` and its index."""
        pos = bisect.bisect_left(self.entry_names, name)
        if pos < len(self.entry_names) and self.entry_names[pos] == name:
            return self.entries[pos], pos
        raise FileNotFoundError(f"{name} does not exist")


Entry = Union[File, Dir]


class FileInfo(Protocol):
    """Description of a file system element."""

    def name(self) -> str: ...

    def size(self) -> int: ...

    def mode(self) -> int: ...

    def mod_time(self) -> datetime: ...

    def is_dir(self) -> bool: ...


@dataclass(frozen=True)
class EntryInfo:
    """File information for an in-memory entry found at ``path``."""

    path: str
    entry: Entry

    def name(self) -> str:
        return posixpath.basename(self.path)

    def size(self) -> int:
        return self.entry.size()

    def mode(self) -> int:
        return self.entry.mode

    def mod_time(self) -> datetime:
        return self.entry.modification_time()

    def is_dir(self) -> bool:
        return self.entry.entry_type() == EntryType.DIR


def _file_data(f: File) -> bytearray:
    if not f.data or not f.mode & MODE_COMPRESS:
        return bytearray(f.data)
    return bytearray(zlib.decompress(f.data))


class FileHandle:
    """An open handle on an in-memory :class:`File`.

    Changes are kept in the handle and stored back into the file on close,
    compressed when the file is marked with :data:`MODE_COMPRESS`.
    """

    def __init__(
        self, f: File, readable: bool, writable: bool, finalize: bool = False
    ) -> None:
        self._file = f
        self._data = _file_data(f)
        self._offset = 0
        self._readable = readable
        self._writable = writable
        self._closed = False
        self._finalize = finalize

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (all remaining if negative); b"" at end."""
        if not self._readable:
            raise WriteOnlyFileError()
        with self._file.lock:
            if self._closed:
                raise FileClosedError()
            end = len(self._data) if size < 0 else self._offset + size
            chunk = bytes(self._data[self._offset:end])
            self._offset += len(chunk)
            return chunk

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        """Move the position, clamped to the data, and return it."""
        with self._file.lock:
            if self._closed:
                raise FileClosedError()
            if whence == os.SEEK_SET:
                position = offset
            elif whence == os.SEEK_CUR:
                position = self._offset + offset
            elif whence == os.SEEK_END:
                position = len(self._data) + offset
            else:
                raise ValueError(f"seek: invalid whence {whence}")
            self._offset = min(max(position, 0), len(self._data))
            return self._offset

    def tell(self) -> int:
        return self._offset

    def write(self, data: bytes) -> int:
        """Write ``data`` at the current position, growing the file as needed."""
        if not self._writable:
            raise ReadOnlyFileError()
        with self._file.lock:
            if self._closed:
                raise FileClosedError()
            count = len(data)
            self._data[self._offset:self._offset + count] = data
            self._offset += count
            self._file.mod_time = _now()
            return count

    def close(self) -> None:
        """Store the content back into the file; later closes do nothing."""
        if self._closed:
            return
        f = self._file
        with f.lock:
            if self._closed:
                return
            content = bytes(self._data)
            if f.mode & MODE_COMPRESS:
                packed = zlib.compress(content)
                if len(packed) < len(content):
                    f.data = packed
                else:
                    f.mode &= ~MODE_COMPRESS
                    f.data = content
            else:
                f.data = content
            self._closed = True

    def is_compressed(self) -> bool:
        return bool(self._file.mode & MODE_COMPRESS)

    def set_compressed(self, compressed: bool) -> None:
        with self._file.lock:
            if compressed:
                self._file.mode |= MODE_COMPRESS
            else:
                self._file.mode &= ~MODE_COMPRESS

    def __enter__(self) -> "FileHandle":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_finalize", False) and not getattr(self, "_closed", True):
            try:
                self.close()
            except Exception as exc:  # a finalizer must not raise
                _log.error("closing file: %s", exc)


def new_rfile(f: File) -> FileHandle:
    """Open ``f`` for reading."""
    return FileHandle(f, readable=True, writable=False)


def new_wfile(f: File, read: bool, write: bool) -> FileHandle:
    """Open ``f`` with the given access; it is closed when collected."""
    return FileHandle(f, readable=read, writable=write, finalize=True)


class VFS(abc.ABC):
    """A virtual file system."""

    @abc.abstractmethod
    def open(self, path: str):
        """Return a readable handle on the file at ``path``."""

    @abc.abstractmethod
    def open_file(self, path: str, flag: int, perm: int):
        """Return a handle on ``path`` opened with the :mod:`os` flags given."""

    @abc.abstractmethod
    def lstat(self, path: str) -> FileInfo:
        """Information on ``path``, not following links."""

    @abc.abstractmethod
    def stat(self, path: str) -> FileInfo:
        """Information on ``path``, following links."""

    @abc.abstractmethod
    def read_dir(self, path: str) -> list:
        """Entries of the directory at ``path``, sorted by name."""

    @abc.abstractmethod
    def mkdir(self, path: str, perm: int) -> None:
        """Create a directory; its parent must exist and it must not."""

    @abc.abstractmethod
    def remove(self, path: str) -> None:
        """Remove a file or an empty directory."""

    def __str__(self) -> str:
        return type(self).__name__