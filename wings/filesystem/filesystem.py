"""File operations confined to a server's data directory."""

from __future__ import annotations

import errno
import os
import posixpath
import shutil
import stat as _stat
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import BinaryIO, Iterable, List, Optional, Tuple

from wings.filesystem.disk_space import DEFAULT_DISK_CHECK_INTERVAL, DiskSpace
from wings.filesystem.errors import ErrorCode, FilesystemError, new_bad_path_resolution
from wings.filesystem.stat import Stat, detect_mimetype, stat_path

_CHUNK = 4 * 1024
_DEFAULT_WRITE_FLAGS = os.O_RDWR | os.O_CREAT | os.O_TRUNC
_DIRECTORY_MIME = "inode/directory"
_BINARY_MIME = "application/octet-stream"
_BUSY_RETRIES = 3


def _fdopen_mode(flags: int) -> str:
    access = flags & (os.O_RDONLY | os.O_WRONLY | os.O_RDWR)
    append = bool(flags & os.O_APPEND)
    if access == os.O_RDWR:
        return "a+b" if append else "r+b"
    if access == os.O_WRONLY:
        return "ab" if append else "wb"
    return "rb"


def _open_with_retry(path: str, flags: int, perm: int) -> BinaryIO:
    """Open ``path``, retrying with a backoff while the file is reported busy."""
    busy = 0
    flags |= getattr(os, "O_BINARY", 0)
    while True:
        try:
            fd = os.open(path, flags, perm)
        except OSError as err:
            if err.errno == getattr(errno, "ETXTBSY", None) and busy < _BUSY_RETRIES:
                time.sleep(0.1 * (1 << busy))
                busy += 1
                continue
            raise
        return os.fdopen(fd, _fdopen_mode(flags))


def _as_bytes(chunk) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk) if chunk else b""


def _extension(base: str) -> str:
    index = base.rfind(".")
    return base[index:] if index >= 0 else ""


def _rfc3339_now() -> str:
    text = datetime.now().astimezone().isoformat(timespec="seconds")
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


class Filesystem(DiskSpace):
    """A server's data directory with safe file operations and disk accounting.

    ``uid`` and ``gid`` are the owner applied by ``chown``; they default to the
    current process's user and group.
    """

    def __init__(
        self,
        root: str,
        disk_limit: int = 0,
        denylist: Iterable[str] = (),
        *,
        disk_check_interval: float = DEFAULT_DISK_CHECK_INTERVAL,
        uid: Optional[int] = None,
        gid: Optional[int] = None,
        is_test: bool = False,
    ) -> None:
        super().__init__(
            root,
            disk_limit,
            denylist,
            disk_check_interval=disk_check_interval,
            is_test=is_test,
        )
        self._uid = uid
        self._gid = gid

    def _owner(self) -> Tuple[int, int]:
        uid = self._uid if self._uid is not None else os.getuid()
        gid = self._gid if self._gid is not None else os.getgid()
        return uid, gid

    def stat(self, p: str) -> Stat:
        """Stat a file or directory inside the root, including its MIME type."""
        return stat_path(self.safe_path(p))

    def file(self, p: str) -> Tuple[BinaryIO, Stat]:
        """Open a file for reading and return it together with its Stat."""
        cleaned = self.safe_path(p)
        info = self.stat(cleaned)
        if info.is_dir():
            raise FilesystemError(ErrorCode.IS_DIRECTORY, resolved=cleaned)
        return open(cleaned, "rb"), info

    def touch(self, p: str, flags: int = _DEFAULT_WRITE_FLAGS) -> BinaryIO:
        """Open ``p`` with ``flags``, creating any missing parent directories."""
        cleaned = self.safe_path(p)
        try:
            return _open_with_retry(cleaned, flags, 0o644)
        except FileNotFoundError:
            pass

        parent = os.path.dirname(cleaned)
        if not os.path.exists(parent):
            os.makedirs(parent, 0o755, exist_ok=True)
            self.chown(parent)

        handle = _open_with_retry(cleaned, flags, 0o644)
        try:
            self.chown(cleaned)
        except (OSError, FilesystemError):
            pass
        return handle

    def readfile(self, p: str, writer) -> None:
        """Copy the contents of file ``p`` into ``writer``."""
        handle, _ = self.file(p)
        with handle:
            shutil.copyfileobj(handle, writer)

    def writefile(self, p: str, reader) -> None:
        """Write everything read from ``reader`` to ``p``, updating disk usage."""
        cleaned = self.safe_path(p)

        current_size = 0
        try:
            info = os.stat(cleaned)
        except FileNotFoundError:
            pass
        else:
            if _stat.S_ISDIR(info.st_mode):
                raise FilesystemError(ErrorCode.IS_DIRECTORY, resolved=cleaned)
            current_size = info.st_size

        head = _as_bytes(reader.read(_CHUNK))
        self.has_space_for(len(head) - current_size)

        written = 0
        with self.touch(cleaned, _DEFAULT_WRITE_FLAGS) as handle:
            chunk = head
            while chunk:
                handle.write(chunk)
                written += len(chunk)
                chunk = _as_bytes(reader.read(_CHUNK))

        self.add_disk(written - current_size)
        self.chown(cleaned)

    def create_directory(self, name: str, p: str) -> None:
        """Create directory ``name`` below ``p``, including missing parents."""
        cleaned = self.safe_path(p + "/" + name)
        os.makedirs(cleaned, 0o755, exist_ok=True)

    def rename(self, source: str, target: str) -> None:
        """Move or rename a file or directory; the target must not exist."""
        cleaned_from = self.safe_path(source)
        cleaned_to = self.safe_path(target)

        if os.path.exists(cleaned_to):
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), target)

        if cleaned_to == self.path():
            raise ValueError("attempting to rename into an invalid directory space")

        parent = os.path.dirname(cleaned_to)
        if parent != self.path():
            os.makedirs(parent, 0o755, exist_ok=True)

        os.rename(cleaned_from, cleaned_to)

    def chown(self, path: str) -> None:
        """Set the configured owner on ``path`` and, for directories, everything below.

        Symlinks are never changed or followed.
        """
        cleaned = self.safe_path(path)
        if self.is_test:
            return

        uid, gid = self._owner()
        try:
            os.chown(cleaned, uid, gid)
        except OSError as err:
            raise OSError(
                err.errno, f"server/filesystem: chown: failed to chown path: {err.strerror}", cleaned
            ) from err

        if not os.path.isdir(cleaned):
            return

        try:
            for current, dirnames, filenames in os.walk(cleaned, followlinks=False):
                for entry in dirnames + filenames:
                    full = os.path.join(current, entry)
                    if os.path.islink(full):
                        continue
                    os.chown(full, uid, gid)
        except OSError as err:
            raise OSError(
                err.errno,
                f"server/filesystem: chown: failed to chown during walk function: {err.strerror}",
                err.filename,
            ) from err

    def chmod(self, path: str, mode: int) -> None:
        """Change the permission bits of ``path``."""
        cleaned = self.safe_path(path)
        if self.is_test:
            return
        os.chmod(cleaned, mode)

    def _find_copy_suffix(self, directory: str, name: str, extension: str) -> str:
        suffix = " copy"
        for i in range(51):
            if i > 0:
                suffix = f" copy {i}"
            candidate = name + suffix + extension
            try:
                self.stat(posixpath.join(directory, candidate))
            except FileNotFoundError:
                break
            if i == 50:
                suffix = "copy." + _rfc3339_now()
        return name + suffix + extension

    def copy(self, p: str) -> None:
        """Copy a regular file next to itself with a " copy" suffix."""
        cleaned = self.safe_path(p)
        info = os.stat(cleaned)
        if not _stat.S_ISREG(info.st_mode):
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), p)

        self.has_space_for(info.st_size)

        base = os.path.basename(cleaned)
        relative = cleaned
        if relative.startswith(self.path()):
            relative = relative[len(self.path()):]
        if relative.endswith(base):
            relative = relative[: len(relative) - len(base)]
        extension = _extension(base)
        name = base[: len(base) - len(extension)] if extension else base

        if name.endswith(".tar"):
            extension = ".tar" + extension
            name = name[: -len(".tar")]

        with open(cleaned, "rb") as source:
            target = self._find_copy_suffix(relative, name, extension)
            self.writefile(posixpath.join(relative, target), source)

    def truncate_root_directory(self) -> None:
        """Remove everything in the root directory and reset disk usage to zero."""
        shutil.rmtree(self.path(), ignore_errors=False) if os.path.exists(self.path()) else None
        os.mkdir(self.path(), 0o755)
        self._set_cached_usage(0)

    def delete(self, p: str) -> None:
        """Delete a file, symlink or directory tree; the root itself is protected.

        Symlinks are removed, not resolved, so a link pointing outside the root can
        still be deleted.
        """
        resolved = self._unsafe_file_path(p)
        if not self._unsafe_is_in_data_directory(resolved):
            raise new_bad_path_resolution(p, resolved)

        if resolved == self.path():
            raise PermissionError("cannot delete root server directory")

        try:
            info = os.lstat(resolved)
        except FileNotFoundError:
            return

        if _stat.S_ISDIR(info.st_mode):
            try:
                self.add_disk(-self.directory_size(resolved))
            except (OSError, FilesystemError):
                pass
            shutil.rmtree(resolved)
        else:
            self.add_disk(-info.st_size)
            try:
                os.unlink(resolved)
            except FileNotFoundError:
                pass

    def _listing_entry(self, directory: str, entry: os.DirEntry) -> Stat:
        info = entry.stat(follow_symlinks=False)
        mimetype = _DIRECTORY_MIME
        if not _stat.S_ISDIR(info.st_mode):
            full = os.path.join(directory, entry.name)
            resolvable = True
            if _stat.S_ISLNK(info.st_mode):
                try:
                    self.safe_path(full)
                except (OSError, FilesystemError):
                    resolvable = False
            if resolvable:
                try:
                    mimetype = detect_mimetype(full)
                except OSError:
                    pass
            else:
                mimetype = _BINARY_MIME
        return Stat(entry.name, info, mimetype)

    def list_directory(self, p: str) -> List[Stat]:
        """List a directory: directories first, each group in descending name order."""
        cleaned = self.safe_path(p)
        with os.scandir(cleaned) as iterator:
            entries = list(iterator)
        if not entries:
            return []

        with ThreadPoolExecutor(max_workers=min(32, len(entries))) as pool:
            out = list(pool.map(lambda entry: self._listing_entry(cleaned, entry), entries))

        out.sort(key=lambda item: item.name, reverse=True)
        out.sort(key=lambda item: not item.is_dir())
        return out