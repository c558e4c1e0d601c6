"""Compressing server files into archives and extracting archives into a server."""

from __future__ import annotations

import io
import os
import posixpath
import tarfile
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Callable, Optional

from wings.filesystem.archive import Archive
from wings.filesystem.errors import (
    ErrorCode,
    FilesystemError,
    is_unknown_archive_format_error,
    new_filesystem_error,
    wrap_error,
)
from wings.filesystem.stat import Stat, stat_path

_TAR_MODES = (
    ((".tar.gz", ".tgz"), "r:gz"),
    ((".tar.bz2", ".tbz2"), "r:bz2"),
    ((".tar.xz", ".txz"), "r:xz"),
    ((".tar",), "r:"),
)


class _UnknownArchiveFormat(ValueError):
    pass


@dataclass(frozen=True)
class _ArchiveFile:
    name: str
    size: int
    is_dir: bool
    header: object = None
    opener: Optional[Callable[[], BinaryIO]] = field(default=None, repr=False, compare=False)

    def open(self) -> BinaryIO:
        return self.opener() if self.opener is not None else io.BytesIO(b"")


def _join(*parts: str) -> str:
    joined = "/".join(part for part in parts if part)
    if not joined:
        return ""
    result = posixpath.normpath(joined)
    if result.startswith("//"):
        result = "/" + result.lstrip("/")
    return result


def _rfc3339_now() -> str:
    text = datetime.now().astimezone().isoformat(timespec="seconds")
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _walk_archive(source: str, callback: Callable[[_ArchiveFile], None]) -> None:
    lower = os.path.basename(source).lower()
    if lower.endswith(".zip"):
        with zipfile.ZipFile(source) as archive:
            for info in archive.infolist():
                callback(
                    _ArchiveFile(
                        name=posixpath.basename(info.filename.rstrip("/")),
                        size=info.file_size,
                        is_dir=info.is_dir(),
                        header=info,
                        opener=lambda info=info: archive.open(info),
                    )
                )
        return

    for suffixes, mode in _TAR_MODES:
        if lower.endswith(suffixes):
            with tarfile.open(source, mode) as archive:
                for info in archive:
                    callback(
                        _ArchiveFile(
                            name=posixpath.basename(info.name.rstrip("/")),
                            size=info.size,
                            is_dir=info.isdir(),
                            header=info,
                            opener=lambda info=info: archive.extractfile(info) or io.BytesIO(b""),
                        )
                    )
            return

    raise _UnknownArchiveFormat(f"format unrecognized by filename: {source}")


def _walk(source: str, callback: Callable[[_ArchiveFile], None]) -> None:
    try:
        _walk_archive(source, callback)
    except (OSError, ValueError, tarfile.TarError, zipfile.BadZipFile) as err:
        if is_unknown_archive_format_error(err):
            raise new_filesystem_error(ErrorCode.UNKNOWN_ARCHIVE, err) from err
        raise


def compress_files(fs, directory: str, paths) -> Stat:
    """Archive ``paths`` (relative to ``directory``) into ``archive-<time>.tar.gz`` there.

    The archive counts towards the disk usage; it is removed again if it does not fit.
    """
    root = fs.safe_path(directory)
    cleaned = fs.parallel_safe_path([_join(root, p) for p in paths])

    destination = posixpath.join(root, f"archive-{_rfc3339_now().replace(':', '')}.tar.gz")
    Archive(base_path=root, files=cleaned).create(destination)

    try:
        info = stat_path(destination)
        fs.has_space_for(info.size)
    except BaseException:
        try:
            os.remove(destination)
        except OSError:
            pass
        raise

    fs.add_disk(info.size)
    return info


def space_available_for_decompression(fs, directory: str, file: str) -> None:
    """Raise a disk space FilesystemError if extracting the archive would exceed the limit."""
    limit = fs.max_disk()
    if limit <= 0:
        return

    source = fs.safe_path(_join(directory, file))
    try:
        used = fs.disk_usage(False)
    except (OSError, FilesystemError):
        used = fs.cached_usage()

    total = 0

    def check(member: _ArchiveFile) -> None:
        nonlocal total
        total += member.size
        if total + used > limit:
            raise new_filesystem_error(ErrorCode.DISK_SPACE)

    _walk(source, check)


def decompress_file(fs, directory: str, file: str) -> None:
    """Extract the archive ``file`` found in ``directory`` into that directory.

    Entries that resolve outside the server root or are on the denylist are skipped.
    """
    source = fs.safe_path(_join(directory, file))
    os.stat(source)

    def extract(member: _ArchiveFile) -> None:
        if member.is_dir:
            return
        target = _join(directory, extract_name_from_archive(member))
        try:
            fs.is_ignored(target)
        except (OSError, FilesystemError):
            return
        with member.open() as reader:
            try:
                fs.writefile(target, reader)
            except (OSError, ValueError, FilesystemError) as err:
                wrapped = wrap_error(err, source)
                if wrapped is err:
                    raise
                raise wrapped from err

    _walk(source, extract)


def extract_name_from_archive(member) -> str:
    """Return the full in-archive path of an entry, falling back to its plain name."""
    header = getattr(member, "header", member)
    if isinstance(header, tarfile.TarInfo):
        return header.name
    if isinstance(header, zipfile.ZipInfo):
        return header.filename
    return member.name