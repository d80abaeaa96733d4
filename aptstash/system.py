"""Disk, directory size and process runtime information."""

from __future__ import annotations

import gc
import os
import shutil
import stat
import sys
import threading
import tracemalloc

_BYTES_IN_KB = 1024


def disk_available() -> int:
    """Bytes available to unprivileged users on the current directory's file system."""
    return shutil.disk_usage(os.getcwd()).free


def dir_size(path: str | os.PathLike) -> int:
    """Total size of all non-directory entries under ``path``, links not followed."""
    info = os.lstat(path)
    if not stat.S_ISDIR(info.st_mode):
        return info.st_size
    with os.scandir(path) as entries:
        return sum(dir_size(entry.path) for entry in entries)


def byte_count_decimal(count: int) -> str:
    """Format a byte count with decimal (SI) units, e.g. ``1.5 kB``."""
    unit = 1000
    if count < unit:
        return f"{count} B"
    div, exp = unit, 0
    n = count // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{count / div:.1f} {'kMGTPE'[exp]}B"


def _peak_resident_bytes() -> int:
    try:
        import resource
    except ImportError:
        return 0
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    return usage if sys.platform == "darwin" else usage * _BYTES_IN_KB


def _allocated_bytes() -> int:
    if tracemalloc.is_tracing():
        return tracemalloc.get_traced_memory()[0]
    try:
        with open("/proc/self/statm") as statm:
            resident_pages = int(statm.read().split()[1])
        return resident_pages * os.sysconf("SC_PAGE_SIZE")
    except (OSError, ValueError, IndexError, AttributeError):
        return _peak_resident_bytes()


def _to_mb(count: int) -> int:
    return count // _BYTES_IN_KB // _BYTES_IN_KB


def memory_usage_and_threads() -> tuple[int, str]:
    """Bytes currently allocated and the number of live threads, as text."""
    return _allocated_bytes(), str(threading.active_count())


def stats(log_print: bool) -> str:
    """Runtime information as lines of text, printed too when ``log_print``."""
    allocated = _allocated_bytes()
    collections = sum(generation["collections"] for generation in gc.get_stats())
    lines = [
        "Runtime Information:",
        f" MEM Alloc =        {_to_mb(allocated):>10} MB",
        f" MEM HeapAlloc =    {_to_mb(allocated):>10} MB",
        f" MEM Sys =          {_to_mb(_peak_resident_bytes()):>10} MB",
        f" MEM NumGC =        {collections:>10}",
        f" RUN NumCPU =       {os.cpu_count() or 0:>10}",
        f" RUN NumGoroutine = {threading.active_count():>10}",
    ]
    if log_print:
        for line in lines:
            print(line)
    return "\n".join(lines)


def manual_gc() -> None:
    """Run a full garbage collection and print the runtime information."""
    gc.collect()
    stats(True)