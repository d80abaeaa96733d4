"""A synchronous buffered pipe backed by a file, readable by many readers at once.

A :class:`Stream` is written to by one producer while any number of
:class:`Reader` objects read it concurrently, each seeing the complete
content from the beginning. Readers block at the end of the written data
until more arrives or the stream is closed.
"""

from __future__ import annotations

import os
import threading
from typing import Iterator, Optional, Protocol


class NotFoundInMemError(FileNotFoundError):
    """Raised when the in-memory file system has no file of the given name."""


class RemovingError(RuntimeError):
    """Raised when a reader is requested from a stream that is being removed."""


class File(Protocol):
    """A backing data source for a stream.

    ``read`` must keep returning new data on later calls after more writes,
    and concurrent reading and writing must be supported.
    """

    name: str

    def read(self, size: int = -1) -> bytes: ...

    def read_at(self, size: int, offset: int) -> bytes: ...

    def write(self, data: bytes) -> int: ...

    def close(self) -> None: ...


class FileSystem(Protocol):
    """Creates, opens and removes backing files."""

    def create(self, name: str) -> File: ...

    def open(self, name: str) -> File: ...

    def remove(self, name: str) -> None: ...


class _OSFile:
    """An operating-system file with positional reads."""

    def __init__(self, name: str, mode: str) -> None:
        self.name = name
        self._f = open(name, mode, buffering=0)
        self._lock = threading.Lock()

    def read(self, size: int = -1) -> bytes:
        return self._f.read(size) or b""

    def _pread(self, size: int, offset: int) -> bytes:
        if hasattr(os, "pread"):
            return os.pread(self._f.fileno(), size, offset)
        with self._lock:
            position = self._f.tell()
            try:
                self._f.seek(offset)
                return self._f.read(size) or b""
            finally:
                self._f.seek(position)

    def read_at(self, size: int, offset: int) -> bytes:
        parts = bytearray()
        while len(parts) < size:
            chunk = self._pread(size - len(parts), offset + len(parts))
            if not chunk:
                break
            parts += chunk
        return bytes(parts)

    def write(self, data: bytes) -> int:
        view = memoryview(bytes(data))
        written = 0
        while written < len(view):
            written += self._f.write(view[written:])
        return written

    def close(self) -> None:
        self._f.close()


class StdFileSystem:
    """File system backed by the operating system."""

    def create(self, name: str) -> File:
        return _OSFile(os.path.normpath(name), "w+b")

    def open(self, name: str) -> File:
        return _OSFile(os.path.normpath(name), "rb")

    def remove(self, name: str) -> None:
        os.remove(name)


class _MemData:
    """Shared, growing content of one in-memory file."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._buf = bytearray()
        self._lock = threading.Lock()

    def append(self, data: bytes) -> int:
        with self._lock:
            self._buf += data
        return len(data)

    def slice(self, start: int, stop: Optional[int]) -> bytes:
        with self._lock:
            return bytes(self._buf[start:stop])


class _MemHandle:
    """A handle on an in-memory file with its own read position."""

    def __init__(self, data: _MemData) -> None:
        self._data = data
        self._pos = 0
        self._closed = False

    @property
    def name(self) -> str:
        return self._data.name

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_readable(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed file")

    def read(self, size: int = -1) -> bytes:
        self._check_readable()
        stop = None if size < 0 else self._pos + size
        chunk = self._data.slice(self._pos, stop)
        self._pos += len(chunk)
        return chunk

    def read_at(self, size: int, offset: int) -> bytes:
        self._check_readable()
        if offset < 0:
            raise ValueError("negative offset")
        return self._data.slice(offset, offset + size)

    def write(self, data: bytes) -> int:
        return self._data.append(data)

    def close(self) -> None:
        self._closed = True
        self._pos = 0


class MemFileSystem:
    """An in-memory file system."""

    def __init__(self) -> None:
        self._files: dict[str, _MemData] = {}
        self._lock = threading.Lock()

    def create(self, name: str) -> File:
        data = _MemData(name)
        with self._lock:
            self._files[name] = data
        return _MemHandle(data)

    def open(self, name: str) -> File:
        with self._lock:
            data = self._files.get(name)
        if data is None:
            raise NotFoundInMemError("not found")
        return _MemHandle(data)

    def remove(self, name: str) -> None:
        with self._lock:
            self._files.pop(name, None)


class _RefCount:
    """Counts open users of a stream and lets a caller wait for zero."""

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    def inc(self) -> None:
        with self._cond:
            self._count += 1

    def dec(self) -> None:
        with self._cond:
            if self._count <= 0:
                raise RuntimeError("negative reference count")
            self._count -= 1
            if self._count == 0:
                self._cond.notify_all()

    def wait(self) -> None:
        with self._cond:
            self._cond.wait_for(lambda: self._count == 0)


class Stream:
    """Concurrently written and read file."""

    def __init__(self, name: str, fs: Optional[FileSystem] = None) -> None:
        self._fs: FileSystem = fs if fs is not None else StdFileSystem()
        self._file = self._fs.create(name)
        self._cond = threading.Condition()
        self._open = True
        self._removing = threading.Event()
        self._refs = _RefCount()
        self._refs.inc()

    @property
    def name(self) -> str:
        """Name of the underlying file in its file system."""
        return self._file.name

    def write(self, data: bytes) -> int:
        """Append data to the stream and wake any waiting readers."""
        with self._cond:
            try:
                return self._file.write(data)
            finally:
                self._cond.notify_all()

    def close(self) -> None:
        """Close the stream; readers then see end of data once they reach it."""
        with self._cond:
            if not self._open:
                return
            self._open = False
            self._cond.notify_all()
            try:
                self._file.close()
            finally:
                self._refs.dec()

    def remove(self) -> None:
        """Wait until the stream and all its readers are closed, then delete the file."""
        self._removing.set()
        self._refs.wait()
        self._fs.remove(self.name)

    def next_reader(self) -> "Reader":
        """Return a new reader that sees the whole stream from the start."""
        self._refs.inc()
        if self._removing.is_set():
            self._refs.dec()
            raise RemovingError("cannot open a new reader while removing file")
        try:
            file = self._fs.open(self.name)
        except BaseException:
            self._refs.dec()
            raise
        return Reader(self, file)

    def __enter__(self) -> "Stream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class Reader:
    """A reader on a stream, safe to use alongside the writer and other readers."""

    def __init__(self, stream: Stream, file: File) -> None:
        self._stream = stream
        self._file = file
        self._closed = False

    @property
    def name(self) -> str:
        """Name of the underlying file in its file system."""
        return self._file.name

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (all available if negative).

        At the end of an open stream this blocks until more data is written
        or the stream is closed; an empty result means end of stream.
        """
        stream = self._stream
        with stream._cond:
            while True:
                chunk = self._file.read(size)
                if not stream._open or chunk or size == 0:
                    return chunk
                stream._cond.wait()

    def read_at(self, size: int, offset: int) -> bytes:
        """Read ``size`` bytes at ``offset`` without moving the read position.

        Blocks until the whole range is written, unless the stream is closed,
        in which case whatever is there is returned at once.
        """
        if size < 0 or offset < 0:
            raise ValueError("size and offset must not be negative")
        stream = self._stream
        parts = bytearray()
        with stream._cond:
            while True:
                parts += self._file.read_at(size - len(parts), offset + len(parts))
                if not stream._open or len(parts) >= size:
                    return bytes(parts)
                stream._cond.wait()

    def close(self) -> None:
        """Close the reader; the stream cannot be removed until this is done."""
        if self._closed:
            return
        self._closed = True
        try:
            self._file.close()
        finally:
            self._stream._refs.dec()

    def __iter__(self) -> Iterator[bytes]:
        while chunk := self.read():
            yield chunk

    def __enter__(self) -> "Reader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def new_stream(name: str, fs: Optional[FileSystem] = None) -> Stream:
    """Create a stream named ``name`` in ``fs``, the operating system by default."""
    return Stream(name, fs)