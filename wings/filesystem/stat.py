"""File information with content-sniffed MIME types."""

from __future__ import annotations

import codecs
import json
import os
import stat as _stat
from datetime import datetime, timezone

_READ_LIMIT = 3072
_DIRECTORY_MIME = "inode/directory"
_BINARY_MIME = "application/octet-stream"
_TEXT_MIME = "text/plain; charset=utf-8"

_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"%PDF-", "application/pdf"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b", "application/gzip"),
    (b"BZh", "application/x-bzip2"),
    (b"\xfd7zXZ\x00", "application/x-xz"),
    (b"7z\xbc\xaf\x27\x1c", "application/x-7z-compressed"),
    (b"Rar!\x1a\x07", "application/x-rar-compressed"),
    (b"\x7fELF", "application/x-elf"),
)


def _sniff(data: bytes, complete: bool) -> str:
    for magic, mime in _SIGNATURES:
        if data.startswith(magic):
            return mime
    if data[257:262] == b"ustar":
        return "application/x-tar"
    if b"\x00" in data:
        return _BINARY_MIME
    try:
        text = codecs.getincrementaldecoder("utf-8")().decode(data, final=complete)
    except UnicodeDecodeError:
        return _BINARY_MIME
    head = text.lstrip().lower()
    if head.startswith("<?xml"):
        return "text/xml; charset=utf-8"
    if head.startswith("<!doctype html") or head.startswith("<html"):
        return "text/html; charset=utf-8"
    if complete and head[:1] in ("{", "["):
        try:
            json.loads(text)
        except ValueError:
            pass
        else:
            return "application/json"
    return _TEXT_MIME


def detect_mimetype(path: str) -> str:
    """Guess the MIME type of a file by sniffing its first bytes."""
    with open(path, "rb") as handle:
        data = handle.read(_READ_LIMIT + 1)
    complete = len(data) <= _READ_LIMIT
    return _sniff(data[:_READ_LIMIT], complete)


def _mode_string(mode: int) -> str:
    kind = _stat.S_IFMT(mode)
    flags = ""
    if kind == _stat.S_IFDIR:
        flags += "d"
    if kind == _stat.S_IFLNK:
        flags += "L"
    if kind in (_stat.S_IFBLK, _stat.S_IFCHR):
        flags += "D"
    if kind == _stat.S_IFIFO:
        flags += "p"
    if kind == _stat.S_IFSOCK:
        flags += "S"
    if mode & _stat.S_ISUID:
        flags += "u"
    if mode & _stat.S_ISGID:
        flags += "g"
    if kind == _stat.S_IFCHR:
        flags += "c"
    if mode & _stat.S_ISVTX:
        flags += "t"
    perms = "".join(
        letter if mode & (1 << (8 - index)) else "-"
        for index, letter in enumerate("rwxrwxrwx")
    )
    return (flags or "-") + perms


def _local_time(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).astimezone()


def _rfc3339(moment: datetime) -> str:
    text = moment.isoformat(timespec="seconds")
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


class Stat:
    """Information about a file or directory together with its MIME type."""

    __slots__ = ("_name", "_info", "mimetype")

    def __init__(self, name: str, info: os.stat_result, mimetype: str) -> None:
        self._name = name
        self._info = info
        self.mimetype = mimetype

    @property
    def name(self) -> str:
        return self._name

    @property
    def size(self) -> int:
        return self._info.st_size

    @property
    def mode(self) -> int:
        return self._info.st_mode

    @property
    def info(self) -> os.stat_result:
        return self._info

    def is_dir(self) -> bool:
        return _stat.S_ISDIR(self._info.st_mode)

    def is_symlink(self) -> bool:
        return _stat.S_ISLNK(self._info.st_mode)

    def ctime(self) -> datetime:
        """Status change time on POSIX systems; the modification time on Windows."""
        if os.name == "nt":
            return self.mtime()
        return _local_time(self._info.st_ctime)

    def mtime(self) -> datetime:
        return _local_time(self._info.st_mtime)

    def as_dict(self) -> dict:
        directory = self.is_dir()
        return {
            "name": self._name,
            "created": _rfc3339(self.ctime()),
            "modified": _rfc3339(self.mtime()),
            "mode": _mode_string(self._info.st_mode),
            "mode_bits": format(self._info.st_mode & 0o777, "o"),
            "size": self.size,
            "directory": directory,
            "file": not directory,
            "symlink": self.is_symlink(),
            "mime": self.mimetype,
        }

    def __repr__(self) -> str:
        return f"Stat(name={self._name!r}, size={self.size}, mimetype={self.mimetype!r})"


def stat_path(path: str) -> Stat:
    """Stat ``path`` (following symlinks) and detect its MIME type."""
    info = os.stat(path)
    mimetype = _DIRECTORY_MIME if _stat.S_ISDIR(info.st_mode) else detect_mimetype(path)
    return Stat(os.path.basename(os.path.normpath(path)), info, mimetype)