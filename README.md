# aptstash

Building blocks for a caching package proxy:

- **Streams** (`aptstash.stream`): one writer and any number of concurrent
  readers share a buffered file. Each reader sees the whole stream from the
  start and blocks at its end until more data arrives or the stream closes.
- **Virtual file systems** (`aptstash.vfs`): in-memory, on-disk and temporary
  file systems with slash-separated paths, chroot, path-rewriting, read-only
  and mount-point wrappers, and loading from and saving to zip, tar, tar.gz
  and tar.bz2 archives.
- **System helpers** (`aptstash.system`): free disk space, directory size,
  human-readable byte counts and runtime statistics.

The package has no dependencies outside the standard library.

## Installation

```
pip install .
```

## Streams

```python
from aptstash.stream import MemFileSystem, Stream

stream = Stream("package.deb", MemFileSystem())
reader = stream.next_reader()

stream.write(b"hello\n")
stream.close()

print(reader.read(100))   # b"hello\n"
reader.close()
stream.remove()           # waits until the stream and every reader are closed
```

- `new_stream(name, fs)` creates a stream too; without `fs` it uses
  `StdFileSystem`, which backs the stream with a real file on disk.
- `Reader.read(size)` blocks at the end of an open stream; an empty result
  means the stream is closed and fully read. `Reader.read_at(size, offset)`
  reads a range without moving the read position, waiting until the range is
  written unless the stream is closed.
- Readers can be iterated chunk by chunk, and both `Stream` and `Reader` are
  context managers that close on exit.
- After `remove()` has been called, `next_reader()` raises `RemovingError`.
  `MemFileSystem.open` raises `NotFoundInMemError` for an unknown name.

## Virtual file systems

Paths are slash separated with `/` as the root; `a/b` and `/a/b` name the same
element. Flags for `open_file` are those of the `os` module (`os.O_CREAT`,
`os.O_WRONLY`, `os.O_RDWR`, `os.O_TRUNC`, `os.O_EXCL`).

```python
from aptstash.vfs.mem import memory
from aptstash.vfs.util import mkdir_all, read_file, write_file, walk

fs = memory()
mkdir_all(fs, "dists/stable", 0o755)
write_file(fs, "dists/stable/Release", b"Origin: Example\n", 0o644)
print(read_file(fs, "dists/stable/Release"))

walk(fs, "/", lambda fs, path, info, err: print(path))
```

A walk function may raise `aptstash.vfs.util.SkipDir` to skip the directory
it was called on.

File systems:

- `aptstash.vfs.mem.memory()` returns an empty `MemoryFileSystem`;
  `from_map(files)` builds one from a mapping of paths to
  `aptstash.vfs.base.File` entries, creating directories as needed.
- `aptstash.vfs.osfs.os_fs(root)` anchors an `OSFileSystem` at a host
  directory; `tmp_fs(prefix)` makes one in a new temporary directory, which
  `close()` (or leaving a `with` block) deletes.

Wrappers:

- `aptstash.vfs.wrappers.chroot(root, fs)` makes an existing directory the
  new root.
- `rewriter(fs, rewrite)` passes every path through `rewrite`.
- `read_only(fs)` raises `ReadOnlyFileSystemError` for any writing operation.
- `aptstash.vfs.mounter.Mounter` joins several file systems into one tree;
  the first mount must be at `/`, later ones at existing directories, and
  `umount` refuses a point with other mounts below it.

Helpers in `aptstash.vfs.util`: `clone(dst, src)`, `remove_all(fs, path)`,
`is_exist(err)`, `is_not_exist(err)` and `compress(fs)`, which marks the files
of a memory file system for transparent zlib compression.

### Archives

```python
from aptstash.vfs.archive import open_archive, write_tar_gzip

fs = open_archive("bundle.zip")        # .zip, .tar, .tar.gz or .tar.bz2
with open("bundle.tar.gz", "wb") as out:
    write_tar_gzip(out, fs)
```

`zip_fs(reader, size)`, `tar_fs(reader)`, `tar_gzip_fs(reader)` and
`tar_bzip2_fs(reader)` load from open binary files; `write_zip`, `write_tar`
and `write_tar_gzip` write every file of a file system to a binary file.

## System helpers

```python
from aptstash.system import byte_count_decimal, dir_size, disk_available

print(byte_count_decimal(dir_size("/var/cache/apt")))   # e.g. "1.5 MB"
print(byte_count_decimal(disk_available()))
```

`stats(log_print)` returns runtime information (memory, garbage collections,
CPU and thread counts) as text and prints it when asked;
`memory_usage_and_threads()` returns the allocated bytes and the thread count;
`manual_gc()` runs a full collection and prints the statistics.

## What this package does not do

It is a library only. It has no proxy server, no HTTP handling, no
command-line program and no cache policy: those would be built on top of the
streams and file systems above.

## Tests

```
pip install .[test]
pytest
```