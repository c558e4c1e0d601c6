"""Resolution of user supplied paths to locations inside a server's data directory."""

from __future__ import annotations

import os
import posixpath
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Pattern, Tuple

from wings.filesystem.errors import ErrorCode, FilesystemError, new_bad_path_resolution

_MAGIC_STAR = "#$~"
_ESCAPED_LEAD = re.compile(r"^[#!]")
_NESTED_GLOB = re.compile(r"([^/+])/.*\*\.")


def _compile_line(line: str) -> Optional[Tuple[Pattern[str], bool]]:
    line = line.rstrip("\r")
    if line.startswith("#"):
        return None
    line = line.strip(" ")
    if not line:
        return None

    negate = False
    if line[0] == "!":
        negate = True
        line = line[1:]

    if _ESCAPED_LEAD.match(line):
        line = line[1:]

    if _NESTED_GLOB.search(line) and not line.startswith("/"):
        line = "/" + line

    line = line.replace(".", r"\.")

    if line.startswith("/**/"):
        line = line[1:]
    line = line.replace("/**/", "(/|/.+/)")
    line = line.replace("**/", "(|." + _MAGIC_STAR + "/)")
    line = line.replace("/**", "(|/." + _MAGIC_STAR + ")")

    line = line.replace("\\*", "\\" + _MAGIC_STAR)
    line = line.replace("*", "([^/]*)")
    line = line.replace("?", r"\?")
    line = line.replace(_MAGIC_STAR, "*")

    expr = line + ("(|.*)$" if line.endswith("/") else "(|/.*)$")
    if expr.startswith("/"):
        expr = "^(|/)" + expr[1:]
    else:
        expr = "^(|.*/)" + expr

    try:
        return re.compile(expr), negate
    except re.error:
        return None


class GitIgnore:
    """A set of gitignore style patterns that paths can be matched against."""

    def __init__(self, lines: Iterable[str] = ()) -> None:
        self._patterns: List[Tuple[Pattern[str], bool]] = [
            compiled for compiled in map(_compile_line, lines) if compiled is not None
        ]

    def matches_path(self, path: str) -> bool:
        """Return True if ``path`` is matched by the patterns, honouring negations."""
        path = path.replace(os.sep, "/")
        matched = False
        for pattern, negate in self._patterns:
            if pattern.match(path):
                if not negate:
                    matched = True
                elif matched:
                    matched = False
        return matched

    def __len__(self) -> int:
        return len(self._patterns)


def _symlink_error(err: OSError) -> OSError:
    return OSError(
        err.errno,
        f"server/filesystem: failed to evaluate symlink: {err.strerror}",
        err.filename,
    )


def _eval_symlinks(path: str) -> str:
    return os.path.realpath(path, strict=True)


class PathResolver:
    """Confines paths to a root directory and checks them against a denylist."""

    def __init__(self, root: str, denylist: Iterable[str] = ()) -> None:
        self._root = root
        self.denylist = GitIgnore(denylist)

    def path(self) -> str:
        """Return the root directory."""
        return self._root

    def _unsafe_file_path(self, p: str) -> str:
        root = self._root
        if p.startswith(root):
            p = p[len(root):]
        return posixpath.normpath(root + "/" + p)

    def _unsafe_is_in_data_directory(self, p: str) -> bool:
        candidate = p.removesuffix("/") + "/"
        return candidate.startswith(self._root.removesuffix("/") + "/")

    def safe_path(self, p: str) -> str:
        """Resolve ``p`` inside the root, following symlinks.

        Raises a path resolution FilesystemError if the result lies outside the root.
        """
        resolved = self._unsafe_file_path(p)
        evaluated = ""
        missing_resolution = ""
        try:
            evaluated = _eval_symlinks(resolved)
        except FileNotFoundError:
            parts = posixpath.dirname(resolved).split("/")
            for k in range(len(parts)):
                attempt = "/".join(parts[: len(parts) - k])
                if not self._unsafe_is_in_data_directory(attempt):
                    break
                try:
                    missing_resolution = _eval_symlinks(attempt)
                except OSError:
                    continue
                break
        except OSError as err:
            raise _symlink_error(err) from err

        if missing_resolution:
            if not self._unsafe_is_in_data_directory(missing_resolution):
                raise new_bad_path_resolution(p, missing_resolution)
            return resolved

        if evaluated and self._unsafe_is_in_data_directory(evaluated):
            return evaluated

        raise new_bad_path_resolution(p, resolved)

    def parallel_safe_path(self, paths: Iterable[str]) -> List[str]:
        """Resolve several paths concurrently; raises the first failure encountered."""
        paths = list(paths)
        if not paths:
            return []
        with ThreadPoolExecutor(max_workers=min(32, len(paths))) as pool:
            return list(pool.map(self.safe_path, paths))

    def is_ignored(self, *args: str) -> None:
        """Raise a denylist FilesystemError if any of the paths is on the denylist."""
        for p in args:
            resolved = self.safe_path(p)
            if self.denylist.matches_path(resolved):
                raise FilesystemError(ErrorCode.DENYLIST_FILE, path=p, resolved=resolved)