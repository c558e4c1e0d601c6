"""Tracking of the open websocket connections of a server."""

from __future__ import annotations

import threading
from typing import Callable, Dict, Hashable


class WebsocketBag:
    """Holds a cancel function for every open websocket connection."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._conns: Dict[Hashable, Callable[[], None]] = {}

    def push(self, key: Hashable, cancel: Callable[[], None]) -> None:
        """Register the cancel function of a connection under ``key``."""
        with self._lock:
            self._conns[key] = cancel

    def remove(self, key: Hashable) -> None:
        """Forget the connection registered under ``key``, if any."""
        with self._lock:
            self._conns.pop(key, None)

    def cancel_all(self) -> None:
        """Call every stored cancel function, disconnecting all websockets, then reset."""
        with self._lock:
            cancels = list(self._conns.values())
            self._conns = {}
        for cancel in cancels:
            cancel()

    def __len__(self) -> int:
        with self._lock:
            return len(self._conns)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._conns