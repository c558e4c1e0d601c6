"""Version and host information reported by the daemon."""

from __future__ import annotations

import os
import platform
import re
from dataclasses import dataclass

VERSION = "0.0.1"

_ARCHITECTURES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv6l": "arm",
    "armv7l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}

_RELEASE_RE = re.compile(r"(\d+)\.(\d+)(\S*)")
_MINOR_RE = re.compile(r"\.(\d+)(\S*)")


@dataclass(frozen=True)
class Information:
    """Details about the host system."""

    version: str
    kernel_version: str
    architecture: str
    os: str
    cpu_count: int

    def as_dict(self) -> dict:
        return {
            "version": self.version,
            "kernel_version": self.kernel_version,
            "architecture": self.architecture,
            "os": self.os,
            "cpu_count": self.cpu_count,
        }


def _kernel_version(release: str) -> str:
    match = _RELEASE_RE.match(release.strip())
    if match is None:
        raise ValueError(f"can't parse kernel version {release!r}")
    kernel, major, partial = int(match.group(1)), int(match.group(2)), match.group(3)
    minor = 0
    flavor = partial
    minor_match = _MINOR_RE.match(partial)
    if minor_match is not None:
        minor = int(minor_match.group(1))
        flavor = minor_match.group(2)
    return f"{kernel}.{major}.{minor}{flavor}"


def _architecture() -> str:
    machine = platform.machine()
    return _ARCHITECTURES.get(machine.lower(), machine.lower())


def get_system_information() -> Information:
    """Collect the version, kernel, architecture, OS and CPU count of this host."""
    return Information(
        version=VERSION,
        kernel_version=_kernel_version(platform.release()),
        architecture=_architecture(),
        os=platform.system().lower(),
        cpu_count=os.cpu_count() or 1,
    )