# wings

A library for managing a game server's data directory safely from Python.

Every path a user gives is resolved inside the server's root directory. Neither symlinks nor `..` segments can lead out of it. Disk usage is tracked against a quota. The library has no dependencies outside the standard library.

## What it provides

### Filesystem

`wings.filesystem.filesystem.Filesystem(root, disk_limit=0, denylist=(), *, disk_check_interval=150, uid=None, gid=None, is_test=False)` works on files inside an existing root directory. Its methods are:

- `file`, `readfile`, `writefile` and `touch` open, read and write files. `writefile` checks the quota before writing and updates the cached disk usage afterwards.
- `create_directory`, `rename`, `copy`, `delete` and `truncate_root_directory` change the tree.
  - `copy` names the new file `name copy.ext`, then `name copy 1.ext`, and so on.
  - `delete` removes a symlink itself and never what it points to. It refuses to delete the root.
- `chown` and `chmod` change ownership and permission bits. `chown` never follows symlinks. The owner defaults to the current process's user and group. With `is_test=True` both methods only validate the path.
- `stat` and `list_directory` return `Stat` objects. `list_directory` puts directories first.

### Path resolution

`wings.filesystem.path.PathResolver` is the base of `Filesystem`. It offers:

- `safe_path`, which resolves a path inside the root;
- `parallel_safe_path`, which does the same for several paths;
- `is_ignored`, which checks paths against a denylist.

`wings.filesystem.path.GitIgnore` matches paths against gitignore-style patterns, including negated ones.

### Disk space

`wings.filesystem.disk_space.DiskSpace` keeps a cached measure of disk usage. A measurement stays fresh for `disk_check_interval` seconds. Its methods are:

- `disk_usage`, `cached_usage` and `directory_size`;
- `has_space_available`, `has_space_err` and `has_space_for`;
- `max_disk`, `set_disk_limit` and `add_disk`.

A limit of 0 means unlimited.

### Archives

`wings.filesystem.archive.Archive(base_path, ignore="", files=[], write_limit=0)` writes a `.tar.gz` of a directory.

- The archive can be limited to a list of files or path prefixes.
- It can leave out paths that match gitignore-style rules.
- Symlinks are stored as links.
- `write_limit` caps the output rate in MiB per second.

### Compressing and extracting

`wings.filesystem.compress` provides:

- `compress_files(fs, directory, paths)` writes `archive-<time>.tar.gz` into the directory and counts it against the quota.
- `decompress_file(fs, directory, file)` extracts `.zip`, `.tar`, `.tar.gz`/`.tgz`, `.tar.bz2` and `.tar.xz` archives. Entries that resolve outside the root or are on the denylist are skipped.
- `space_available_for_decompression(fs, directory, file)` raises a disk-space error if the extracted contents would exceed the limit.
- `extract_name_from_archive(member)` gives an entry's full path inside the archive.

### Errors and file details

`wings.filesystem.errors` defines:

- `FilesystemError` and its `ErrorCode` values;
- the helpers `is_error_code`, `is_filesystem_error`, `new_bad_path_resolution`, `new_filesystem_error`, `wrap_error` and `is_unknown_archive_format_error`.

`wings.filesystem.stat` provides `Stat` and `stat_path`, which give file details together with a MIME type found by sniffing the content. It also provides `detect_mimetype`. `Stat.as_dict()` returns the JSON-ready form.

### SFTP requests

`wings.sftp.handler.Handler(fs, permissions, *, read_only=False, username="", ip="")` serves SFTP file requests, each described by a `Request`. It has four methods: `fileread`, `filewrite`, `filecmd` and `filelist`.

- Each request is checked against the user's permissions. The names are `file.read`, `file.read-content`, `file.create`, `file.update` and `file.delete`; a lone `*` grants everything.
- Failures are raised as `wings.sftp.utils.FxError`.
- `QuotaExceededError` is raised when the server is over its disk limit.
- `wings.sftp.utils.ListerAt` pages through listings.

### Websockets

`wings.websockets.WebsocketBag` keeps the cancel callbacks of open websocket connections. `cancel_all` calls every callback and then clears the bag.

### Helpers

`wings.system.utils` provides:

- `scan_reader`, `format_bytes`, `first_not_empty`, `must_int` and `every` (which takes a `threading.Event` to stop);
- the lock-guarded `AtomicBool` and `AtomicString`.

`wings.system.info.get_system_information()` returns an `Information` with these fields:

- version;
- kernel version;
- architecture;
- OS;
- CPU count.

## Example

```python
import io
from wings.filesystem.filesystem import Filesystem
from wings.filesystem.errors import ErrorCode, is_error_code

fs = Filesystem("/srv/servers/example", 1024 * 1024 * 1024)
fs.writefile("config/server.properties", io.BytesIO(b"motd=hello\n"))

out = io.BytesIO()
fs.readfile("config/server.properties", out)

try:
    fs.readfile("../outside.txt", out)
except Exception as exc:
    assert is_error_code(exc, ErrorCode.PATH_RESOLUTION)
```

The root directory must already exist.

## What it does not do

This is a library only. It does not provide:

- a command-line program;
- a daemon or an HTTP API;
- container management, server installation or power control.

`Handler` answers individual SFTP requests. It does not run an SSH or SFTP server, authenticate users or generate host keys. Those are left to the calling program. RAR archives cannot be extracted.

## Tests

The tests use pytest. Install them with the `test` extra.