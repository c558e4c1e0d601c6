[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wings"
version = "0.0.1"
description = "Sandboxed server data directories: safe path resolution, disk quotas, archives and SFTP request handling"
requires-python = ">=3.10"
dependencies = []
keywords = ["game-server", "filesystem", "sandbox", "disk-quota", "sftp", "archive"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Topic :: System :: Filesystems",
    "Topic :: System :: Archiving",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["wings"]

[tool.pytest.ini_options]
addopts = "-ra"
