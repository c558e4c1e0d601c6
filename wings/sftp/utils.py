"""SFTP status errors and the directory lister used by the SFTP handler."""

from __future__ import annotations

from typing import Any, List, Tuple

_MESSAGES = {
    0: "OK",
    1: "EOF",
    2: "No Such File",
    3: "Permission Denied",
    4: "Failure",
    5: "Bad Message",
    6: "No Connection",
    7: "Connection Lost",
    8: "Operation Unsupported",
    15: "Quota Exceeded",
}


class FxError(Exception):
    """An SFTP status code reported back to the client."""

    OK = 0
    EOF = 1
    NO_SUCH_FILE = 2
    PERMISSION_DENIED = 3
    FAILURE = 4
    BAD_MESSAGE = 5
    NO_CONNECTION = 6
    CONNECTION_LOST = 7
    OP_UNSUPPORTED = 8
    QUOTA_EXCEEDED = 15

    def __init__(self, code: int) -> None:
        super().__init__(int(code))
        self.code = int(code)

    def __str__(self) -> str:
        return _MESSAGES.get(self.code, "Failure")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code})"


class QuotaExceededError(FxError):
    """Reported when a write would take a server over its disk space limit."""

    def __init__(self) -> None:
        super().__init__(FxError.QUOTA_EXCEEDED)


class ListerAt(list):
    """A list of file entries that can be read out page by page."""

    def list_at(self, count: int, offset: int) -> Tuple[List[Any], bool]:
        """Return up to ``count`` entries from ``offset`` and whether the end was reached.

        The end is reached when ``offset`` is past the last entry or fewer than
        ``count`` entries were left to return.
        """
        if count < 0 or offset < 0:
            raise ValueError("list_at: count and offset must not be negative")
        if offset >= len(self):
            return [], True
        entries = list(self[offset:offset + count])
        return entries, len(entries) < count