"""Disk usage tracking and limits for a server's data directory."""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Iterable, Optional, Tuple

from wings.filesystem.errors import ErrorCode, FilesystemError, is_error_code, new_filesystem_error
from wings.filesystem.path import PathResolver
from wings.system.utils import AtomicBool

log = logging.getLogger(__name__)

DEFAULT_DISK_CHECK_INTERVAL = 150


class DiskSpace(PathResolver):
    """A root directory with a cached measure of its disk usage and a size limit.

    ``disk_limit`` is in bytes, 0 meaning unlimited. ``disk_check_interval`` is the
    number of seconds a usage measurement stays fresh; 0 disables measuring.
    """

    def __init__(
        self,
        root: str,
        disk_limit: int = 0,
        denylist: Iterable[str] = (),
        *,
        disk_check_interval: float = DEFAULT_DISK_CHECK_INTERVAL,
        is_test: bool = False,
    ) -> None:
        super().__init__(root, denylist)
        self._disk_limit = disk_limit
        self._disk_used = 0
        self._disk_check_interval = disk_check_interval
        self._last_lookup: Optional[float] = None
        self._lookup_in_progress = AtomicBool(False)
        self._usage_lock = threading.Lock()
        self._update_lock = threading.Lock()
        self.is_test = is_test

    def max_disk(self) -> int:
        """Return the maximum disk space in bytes this root may use."""
        with self._usage_lock:
            return self._disk_limit

    def set_disk_limit(self, limit: int) -> None:
        with self._usage_lock:
            self._disk_limit = limit

    def has_space_err(self, allow_stale_value: bool) -> None:
        """Raise a disk space FilesystemError if the limit has been exceeded."""
        if not self.has_space_available(allow_stale_value):
            raise new_filesystem_error(ErrorCode.DISK_SPACE)

    def has_space_available(self, allow_stale_value: bool) -> bool:
        """Return whether current usage is within the limit (always True when unlimited)."""
        try:
            size = self.disk_usage(allow_stale_value)
        except (OSError, FilesystemError) as err:
            log.warning("failed to determine root fs directory size: root=%s error=%s", self.path(), err)
            size = self.cached_usage()
        limit = self.max_disk()
        if limit == 0:
            return True
        return size <= limit

    def cached_usage(self) -> int:
        """Return the last measured disk usage without touching the disk."""
        with self._usage_lock:
            return self._disk_used

    def _set_cached_usage(self, value: int) -> None:
        with self._usage_lock:
            self._disk_used = value

    def disk_usage(self, allow_stale_value: bool) -> int:
        """Return disk usage, measuring it again once the cached value has expired.

        With ``allow_stale_value`` an expired value is refreshed in the background
        and the cached value returned straight away.
        """
        if self._disk_check_interval == 0:
            return 0

        last = self._last_lookup
        expired = last is None or last <= time.monotonic() - self._disk_check_interval
        if expired:
            if not allow_stale_value:
                return self._update_cached_disk_usage()
            if not self._lookup_in_progress.load():
                threading.Thread(target=self._background_update, daemon=True).start()

        return self.cached_usage()

    def _background_update(self) -> None:
        try:
            self._update_cached_disk_usage()
        except (OSError, FilesystemError) as err:
            log.warning("failed to update fs disk usage from within routine: root=%s error=%s", self.path(), err)

    def _update_cached_disk_usage(self) -> int:
        with self._update_lock:
            self._lookup_in_progress.store(True)
            try:
                size, error = self._measure("/")
                # The size is cached even on failure so a transient error does not
                # cause endless re-measuring.
                self._last_lookup = time.monotonic()
                self._set_cached_usage(size)
            finally:
                self._lookup_in_progress.store(False)
        if error is not None:
            raise error
        return size

    def _measure(self, directory: str) -> Tuple[int, Optional[BaseException]]:
        try:
            start = self.safe_path(directory)
        except (OSError, FilesystemError) as err:
            return 0, err

        size = 0
        pending = [start]
        try:
            while pending:
                current = pending.pop()
                with os.scandir(current) as entries:
                    for entry in entries:
                        if entry.is_symlink():
                            try:
                                self.safe_path(entry.path)
                            except FilesystemError as err:
                                if is_error_code(err, ErrorCode.PATH_RESOLUTION):
                                    continue
                                raise
                        if entry.is_dir(follow_symlinks=False):
                            pending.append(entry.path)
                            continue
                        try:
                            size += entry.stat(follow_symlinks=False).st_size
                        except OSError:
                            pass
        except FilesystemError as err:
            return size, err
        except OSError as err:
            wrapped = OSError(
                err.errno,
                f"server/filesystem: directorysize: failed to walk directory: {err.strerror}",
                err.filename,
            )
            wrapped.__cause__ = err
            return size, wrapped
        return size, None

    def directory_size(self, directory: str) -> int:
        """Return the total size in bytes of the files below ``directory``.

        Symlinks are not followed; those resolving outside the root are skipped.
        """
        size, error = self._measure(directory)
        if error is not None:
            raise error
        return size

    def has_space_for(self, size: int) -> None:
        """Raise a disk space FilesystemError if ``size`` more bytes would exceed the limit."""
        limit = self.max_disk()
        if limit == 0:
            return
        if self.disk_usage(True) + size > limit:
            raise new_filesystem_error(ErrorCode.DISK_SPACE)

    def add_disk(self, delta: int) -> int:
        """Adjust the cached usage by ``delta`` bytes, never going below zero.

        Returns the new usage, or the previous usage when it was reset to zero.
        """
        size = self.cached_usage()
        if not self.is_test:
            try:
                size = self.disk_usage(True)
            except (OSError, FilesystemError):
                pass
        with self._usage_lock:
            if size + delta < 0:
                previous = self._disk_used
                self._disk_used = 0
                return previous
            self._disk_used += delta
            return self._disk_used