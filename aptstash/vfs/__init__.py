"""Virtual file systems: in-memory, on-disk, wrappers, mounts and archives."""

__all__ = ["archive", "base", "mem", "mounter", "osfs", "util", "wrappers"]