"""Multi-reader streams, virtual file systems and system helpers for package caches."""

__version__ = "0.1.0"