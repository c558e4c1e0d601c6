"""Request handling for SFTP sessions working on a server's filesystem."""

from __future__ import annotations

import logging
import os
import posixpath
import stat as _stat
import threading
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Union

from wings.filesystem.errors import FilesystemError
from wings.filesystem.stat import Stat
from wings.sftp.utils import FxError, ListerAt, QuotaExceededError

log = logging.getLogger(__name__)

PERMISSION_FILE_READ = "file.read"
PERMISSION_FILE_READ_CONTENT = "file.read-content"
PERMISSION_FILE_CREATE = "file.create"
PERMISSION_FILE_UPDATE = "file.update"
PERMISSION_FILE_DELETE = "file.delete"

_WRITE_FLAGS = os.O_RDWR | os.O_CREAT | os.O_TRUNC
_ERRORS = (OSError, ValueError, FilesystemError)


@dataclass
class Request:
    """A single SFTP request: the method, the path acted on and its arguments."""

    method: str
    filepath: str
    target: str = ""
    flags: int = 0
    mode: int = 0


def _fx(code: int, cause: BaseException) -> FxError:
    err = FxError(code)
    err.__cause__ = cause
    return err


class Handler:
    """Serves SFTP file requests for one user on one server filesystem.

    ``permissions`` is a list of permission names, or a comma separated string of
    them; a lone ``*`` grants everything. Failures are raised as FxError.
    """

    def __init__(
        self,
        fs,
        permissions: Union[str, Iterable[str]],
        *,
        read_only: bool = False,
        username: str = "",
        ip: str = "",
    ) -> None:
        if isinstance(permissions, str):
            permissions = permissions.split(",")
        self._permissions = list(permissions)
        self._fs = fs
        self._read_only = read_only
        self._lock = threading.Lock()
        self._log = logging.LoggerAdapter(log, {"subsystem": "sftp", "username": username, "ip": ip})

    def _can(self, permission: str) -> bool:
        if self._permissions == ["*"]:
            return True
        return permission in self._permissions

    def _require(self, permission: str) -> None:
        if not self._can(permission):
            raise FxError(FxError.PERMISSION_DENIED)

    def fileread(self, request: Request) -> BinaryIO:
        """Open a file for reading."""
        self._require(PERMISSION_FILE_READ_CONTENT)
        with self._lock:
            try:
                handle, _ = self._fs.file(request.filepath)
            except FileNotFoundError as err:
                raise _fx(FxError.NO_SUCH_FILE, err) from err
            except _ERRORS as err:
                self._log.error("error processing readfile request: %s", err)
                raise _fx(FxError.FAILURE, err) from err
        return handle

    def filewrite(self, request: Request) -> BinaryIO:
        """Open a file for writing, creating or truncating it."""
        if self._read_only:
            raise FxError(FxError.OP_UNSUPPORTED)
        if not self._fs.has_space_available(True):
            raise QuotaExceededError()

        with self._lock:
            permission = PERMISSION_FILE_UPDATE
            try:
                self._fs.stat(request.filepath)
            except FileNotFoundError:
                permission = PERMISSION_FILE_CREATE
            except _ERRORS as err:
                self._log.error("error while getting file reader for %s: %s", request.filepath, err)
                raise _fx(FxError.FAILURE, err) from err

            # Check before touching so a denied request never creates the file.
            self._require(permission)
            try:
                return self._fs.touch(request.filepath, _WRITE_FLAGS)
            except _ERRORS as err:
                self._log.error(
                    "failed to open existing file on system: source=%s flags=%s error=%s",
                    request.filepath,
                    request.flags,
                    err,
                )
                raise _fx(FxError.FAILURE, err) from err

    def filecmd(self, request: Request) -> None:
        """Handle file commands other than reading and writing contents."""
        if self._read_only:
            raise FxError(FxError.OP_UNSUPPORTED)

        method = request.method
        if method == "Setstat":
            self._setstat(request)
        elif method == "Rename":
            self._require(PERMISSION_FILE_UPDATE)
            try:
                self._fs.rename(request.filepath, request.target)
            except FileNotFoundError as err:
                raise _fx(FxError.NO_SUCH_FILE, err) from err
            except _ERRORS as err:
                self._log.error("failed to rename file %s: %s", request.filepath, err)
                raise _fx(FxError.FAILURE, err) from err
        elif method == "Rmdir":
            self._require(PERMISSION_FILE_DELETE)
            try:
                self._fs.delete(request.filepath)
            except _ERRORS as err:
                self._log.error("failed to remove directory %s: %s", request.filepath, err)
                raise _fx(FxError.FAILURE, err) from err
            return
        elif method == "Mkdir":
            self._require(PERMISSION_FILE_CREATE)
            parts = posixpath.normpath(request.filepath).split("/")
            try:
                self._fs.create_directory(parts[-1], "/".join(parts[:-1]))
            except _ERRORS as err:
                self._log.error("failed to create directory %s: %s", request.filepath, err)
                raise _fx(FxError.FAILURE, err) from err
        elif method == "Symlink":
            self._symlink(request)
        elif method == "Remove":
            self._require(PERMISSION_FILE_DELETE)
            try:
                self._fs.delete(request.filepath)
            except FileNotFoundError as err:
                raise _fx(FxError.NO_SUCH_FILE, err) from err
            except _ERRORS as err:
                self._log.error("failed to remove a file %s: %s", request.filepath, err)
                raise _fx(FxError.FAILURE, err) from err
            return
        else:
            raise FxError(FxError.OP_UNSUPPORTED)

        target = request.target or request.filepath
        # The item exists at this point; a wrong owner is logged, not reported.
        try:
            self._fs.chown(target)
        except _ERRORS as err:
            self._log.warning("error chowning file %s: %s", target, err)

    def _setstat(self, request: Request) -> None:
        self._require(PERMISSION_FILE_UPDATE)
        mode = request.mode & 0o777
        if mode == 0:
            mode = 0o644
        if _stat.S_ISDIR(request.mode):
            mode = 0o755
        try:
            self._fs.chmod(request.filepath, mode)
        except FileNotFoundError as err:
            raise _fx(FxError.NO_SUCH_FILE, err) from err
        except _ERRORS as err:
            self._log.error("failed to perform setstat on item %s: %s", request.filepath, err)
            raise _fx(FxError.FAILURE, err) from err

    def _symlink(self, request: Request) -> None:
        self._require(PERMISSION_FILE_CREATE)
        try:
            source = self._fs.safe_path(request.filepath)
            target = self._fs.safe_path(request.target)
        except _ERRORS as err:
            raise _fx(FxError.NO_SUCH_FILE, err) from err
        try:
            os.symlink(source, target)
        except OSError as err:
            self._log.error("failed to create symlink %s: %s", target, err)
            raise _fx(FxError.FAILURE, err) from err

    def filelist(self, request: Request) -> ListerAt:
        """List a directory or stat a single file."""
        self._require(PERMISSION_FILE_READ)

        if request.method == "List":
            try:
                directory = self._fs.safe_path(request.filepath)
            except _ERRORS as err:
                raise _fx(FxError.NO_SUCH_FILE, err) from err
            try:
                with os.scandir(directory) as iterator:
                    entries = [
                        Stat(
                            entry.name,
                            entry.stat(follow_symlinks=False),
                            "inode/directory" if entry.is_dir(follow_symlinks=False) else "",
                        )
                        for entry in iterator
                    ]
            except OSError as err:
                self._log.error("error while listing directory %s: %s", request.filepath, err)
                raise _fx(FxError.FAILURE, err) from err
            entries.sort(key=lambda item: item.name)
            return ListerAt(entries)

        if request.method == "Stat":
            try:
                info = self._fs.stat(request.filepath)
            except FileNotFoundError as err:
                raise _fx(FxError.NO_SUCH_FILE, err) from err
            except _ERRORS as err:
                self._log.error("error performing stat on file %s: %s", request.filepath, err)
                raise _fx(FxError.FAILURE, err) from err
            return ListerAt([info])

        raise FxError(FxError.OP_UNSUPPORTED)