"""Creation of gzip-compressed tar archives from a directory tree."""

from __future__ import annotations

import gzip
import os
import tarfile
import time
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from wings.filesystem.path import GitIgnore

_MIB = 1024 * 1024


class _ThrottledWriter:
    """Token bucket around a writable file: ``rate`` bytes per second, ``rate`` burst."""

    def __init__(self, raw, rate: int) -> None:
        self._raw = raw
        self._rate = float(rate)
        self._tokens = float(rate)
        self._last = time.monotonic()

    def write(self, data) -> int:
        now = time.monotonic()
        self._tokens = min(self._rate, self._tokens + (now - self._last) * self._rate)
        self._last = now
        self._tokens -= len(data)
        if self._tokens < 0:
            time.sleep(-self._tokens / self._rate)
        return self._raw.write(data)

    def flush(self) -> None:
        self._raw.flush()


def _walk_files(directory: str) -> Iterator[str]:
    """Yield every non-directory entry below ``directory`` without following symlinks."""
    with os.scandir(directory) as iterator:
        entries = list(iterator)
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            yield from _walk_files(entry.path)
        else:
            yield entry.path


@dataclass
class Archive:
    """A tar.gz archive of the files below ``base_path``.

    ``files`` lists absolute paths (or path prefixes) to include and takes priority
    over ``ignore``, a gitignore formatted string of paths to leave out. When
    neither is given every file is archived. ``write_limit`` caps the output rate
    in MiB per second; 0 means unlimited.
    """

    base_path: str
    ignore: str = ""
    files: List[str] = field(default_factory=list)
    write_limit: float = 0

    def create(self, dst: str) -> None:
        """Write the archive to ``dst``, replacing any existing file."""
        matcher: Optional[GitIgnore] = None
        if not self.files and self.ignore:
            matcher = GitIgnore(self.ignore.split("\n"))

        fd = os.open(dst, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_BINARY", 0), 0o600)
        with os.fdopen(fd, "wb") as handle:
            limit = int(self.write_limit * _MIB)
            sink = _ThrottledWriter(handle, limit) if limit > 0 else handle
            with gzip.GzipFile(filename="", fileobj=sink, mode="wb", compresslevel=1) as compressed:
                with tarfile.open(fileobj=compressed, mode="w") as tar:
                    for path in _walk_files(self.base_path):
                        relative = self._relative(path)
                        if self._included(path, relative, matcher):
                            self._add(tar, path, relative)

    def _relative(self, path: str) -> str:
        prefix = self.base_path + os.sep
        if path.startswith(prefix):
            path = path[len(prefix):]
        return path.replace(os.sep, "/")

    def _included(self, path: str, relative: str, matcher: Optional[GitIgnore]) -> bool:
        if self.files:
            return any(path == f or path.startswith(f) for f in self.files)
        if matcher is not None:
            return not matcher.matches_path(relative)
        return True

    @staticmethod
    def _add(tar: tarfile.TarFile, path: str, relative: str) -> None:
        # gettarinfo uses lstat, so symlinks are stored as links and never followed
        # to files that may live outside the archived directory.
        try:
            info = tar.gettarinfo(path, arcname=relative)
        except FileNotFoundError:
            return
        if info is None:
            raise ValueError(f"failed to get tar header for '{relative}'")

        if not info.isreg() or info.size < 1:
            tar.addfile(info)
            return

        try:
            source = open(path, "rb")
        except FileNotFoundError:
            return
        with source:
            tar.addfile(info, source)