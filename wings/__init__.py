"""Sandboxed server data directory management: paths, quotas, archives and SFTP request handling."""

__version__ = "0.0.1"