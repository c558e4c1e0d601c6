"""Errors raised by server filesystem operations."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    IS_DIRECTORY = "E_ISDIR"
    DISK_SPACE = "E_NODISK"
    UNKNOWN_ARCHIVE = "E_UNKNFMT"
    PATH_RESOLUTION = "E_BADPATH"
    DENYLIST_FILE = "E_DENYLIST"
    UNKNOWN_ERROR = "E_UNKNOWN"


class FilesystemError(Exception):
    """A filesystem failure identified by an ErrorCode.

    ``resolved`` holds the final destination that triggered the error; ``path`` is
    the path as requested and is mainly set for path resolution errors. The
    underlying cause, if any, is kept as ``__cause__``.
    """

    def __init__(
        self,
        code: ErrorCode,
        err: Optional[BaseException] = None,
        *,
        resolved: str = "",
        path: str = "",
    ) -> None:
        super().__init__(code)
        self._code = ErrorCode(code)
        self.resolved = resolved
        self.path = path
        self.__cause__ = err

    @property
    def code(self) -> ErrorCode:
        return self._code

    def __str__(self) -> str:
        code = self._code
        if code is ErrorCode.IS_DIRECTORY:
            return f"filesystem: cannot perform action: [{self.resolved}] is a directory"
        if code is ErrorCode.DISK_SPACE:
            return "filesystem: not enough disk space"
        if code is ErrorCode.UNKNOWN_ARCHIVE:
            return "filesystem: unknown archive format"
        if code is ErrorCode.DENYLIST_FILE:
            resolved = self.resolved or "<empty>"
            return f"filesystem: file access prohibited: [{resolved}] is on the denylist"
        if code is ErrorCode.PATH_RESOLUTION:
            resolved = self.resolved or "<empty>"
            return (
                f"filesystem: server path [{self.path}] resolves to a location "
                f"outside the server root: {resolved}"
            )
        cause = self.__cause__
        return f"filesystem: an error occurred: {cause if cause is not None else '<nil>'}"


def _find(err: Optional[BaseException]) -> Optional[FilesystemError]:
    seen = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, FilesystemError):
            return err
        seen.add(id(err))
        err = err.__cause__
    return None


def new_filesystem_error(code: ErrorCode, err: Optional[BaseException] = None) -> FilesystemError:
    """Build a FilesystemError with the given code, chaining ``err`` as its cause."""
    return FilesystemError(code, err)


def is_filesystem_error(err: Optional[BaseException]) -> bool:
    """Return True if ``err`` or anything in its cause chain is a FilesystemError."""
    return _find(err) is not None


def is_error_code(err: Optional[BaseException], code: ErrorCode) -> bool:
    """Return True if the first FilesystemError in the cause chain has ``code``."""
    found = _find(err)
    return found is not None and found.code == code


def is_unknown_archive_format_error(err: Optional[BaseException]) -> bool:
    """Return True if the error reports an unrecognised archive format."""
    return err is not None and str(err).startswith("format ")


def new_bad_path_resolution(path: str, resolved: str) -> FilesystemError:
    """Build the error for a path that resolves outside the server root."""
    return FilesystemError(ErrorCode.PATH_RESOLUTION, path=path, resolved=resolved)


def wrap_error(err: Optional[BaseException], resolved: str) -> Optional[BaseException]:
    """Wrap ``err`` as an unknown FilesystemError unless it already is one."""
    if err is None or is_filesystem_error(err):
        return err
    return FilesystemError(ErrorCode.UNKNOWN_ERROR, err, resolved=resolved)