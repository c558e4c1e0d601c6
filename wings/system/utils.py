"""Small helpers shared across the daemon: parsing, line scanning, timers and atomics."""

from __future__ import annotations

import re
import threading
from datetime import datetime, timedelta
from typing import Callable, Union

_CR = b" \r"
_CRLF = b"\r\n"
_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def first_not_empty(*args: str) -> str:
    """Return the first argument that is not an empty string, or an empty string."""
    return next((value for value in args if value != ""), "")


def must_int(value: str) -> int:
    """Parse a base-10 integer strictly, raising ValueError when it cannot be parsed."""
    if not _INT_RE.fullmatch(value):
        raise ValueError(f"system/utils: could not parse int: {value!r}")
    number = int(value)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f"system/utils: could not parse int: {value!r} is out of range")
    return number


def _emit(line: bytes, callback: Callable[[str], None]) -> None:
    # Some programs emit stray carriage returns sized to the terminal width; turn them
    # into real line breaks and report each resulting line on its own.
    text = line.replace(_CR, _CRLF).decode("utf-8", "replace")
    for part in text.split("\r\n"):
        callback(part)


def scan_reader(reader, callback: Callable[[str], None]) -> None:
    """Read lines from ``reader`` and pass each one to ``callback``.

    Line endings (``\\n`` or ``\\r\\n``) are removed and any `` \\r`` sequence inside a
    line splits it into separate lines. Once the input is exhausted the callback is
    called one final time with an empty string, marking the end of the stream.
    """
    while True:
        raw = reader.readline()
        if not raw:
            break
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        if raw.endswith(b"\n"):
            raw = raw[:-1]
            if raw.endswith(b"\r"):
                raw = raw[:-1]
        _emit(raw, callback)
    _emit(b"", callback)


def every(
    stop: threading.Event,
    interval: Union[float, timedelta],
    work: Callable[[datetime], None],
) -> threading.Thread:
    """Call ``work`` every ``interval`` until ``stop`` is set; returns the worker thread."""
    seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
    if seconds <= 0:
        raise ValueError("every: interval must be positive")

    def run() -> None:
        while not stop.wait(seconds):
            work(datetime.now())

    thread = threading.Thread(target=run, name="every", daemon=True)
    thread.start()
    return thread


def format_bytes(b: int) -> str:
    """Format a byte count using binary units, e.g. ``1.5 KiB``."""
    if b < 1024:
        return f"{b} B"
    div, exp = 1024, 0
    n = b // 1024
    while n >= 1024:
        div *= 1024
        exp += 1
        n //= 1024
    return f"{b / div:.1f} {'KMGTPE'[exp]}iB"


class AtomicBool:
    """A boolean guarded by a lock."""

    __slots__ = ("_value", "_lock")

    def __init__(self, value: bool = False) -> None:
        self._value = bool(value)
        self._lock = threading.Lock()

    def store(self, value: bool) -> None:
        with self._lock:
            self._value = bool(value)

    def swap_if(self, value: bool) -> bool:
        """Store ``value`` if the current value differs; return whether it was stored."""
        with self._lock:
            if self._value != value:
                self._value = bool(value)
                return True
            return False

    def load(self) -> bool:
        with self._lock:
            return self._value

    def __repr__(self) -> str:
        return f"AtomicBool({self.load()!r})"


class AtomicString:
    """A string guarded by a lock."""

    __slots__ = ("_value", "_lock")

    def __init__(self, value: str = "") -> None:
        self._value = value
        self._lock = threading.Lock()

    def store(self, value: str) -> None:
        with self._lock:
            self._value = value

    def load(self) -> str:
        with self._lock:
            return self._value

    def __repr__(self) -> str:
        return f"AtomicString({self.load()!r})"