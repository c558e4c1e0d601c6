import os

import pytest

from wings.filesystem.filesystem import Filesystem
from wings.sftp.handler import Handler, Request
from wings.sftp.utils import FxError, QuotaExceededError


@pytest.fixture
def root(tmp_path):
    path = tmp_path / "server"
    path.mkdir()
    return os.path.realpath(str(path))


@pytest.fixture
def fs(root):
    return Filesystem(root, is_test=True, disk_check_interval=0)


def write(root, name, content):
    path = os.path.join(root, name)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as handle:
        handle.write(content)
    return path


def stat_via_handler(fs, name):
    return Handler(fs, "*").filelist(Request("Stat", name))


def test_fileread_returns_contents(fs, root):
    write(root, "test.txt", "testing")
    handler = Handler(fs, "file.read-content")
    with handler.fileread(Request("Get", "test.txt")) as handle:
        assert handle.read() == b"testing"


def test_fileread_wildcard_permission(fs, root):
    write(root, "test.txt", "testing")
    handler = Handler(fs, ["*"])
    with handler.fileread(Request("Get", "/test.txt")) as handle:
        assert handle.read() == b"testing"


def test_fileread_requires_permission(fs, root):
    write(root, "test.txt", "testing")
    handler = Handler(fs, "file.read,file.update")
    with pytest.raises(FxError) as info:
        handler.fileread(Request("Get", "test.txt"))
    assert info.value.code == FxError.PERMISSION_DENIED


def test_fileread_missing_file(fs):
    with pytest.raises(FxError) as info:
        Handler(fs, "*").fileread(Request("Get", "missing.txt"))
    assert info.value.code == FxError.NO_SUCH_FILE


def test_fileread_outside_root_fails(fs, root):
    write(os.path.dirname(root), "outside.txt", "external")
    with pytest.raises(FxError) as info:
        Handler(fs, "*").fileread(Request("Get", "../outside.txt"))
    assert info.value.code == FxError.FAILURE


def test_filewrite_read_only(fs):
    with pytest.raises(FxError) as info:
        Handler(fs, "*", read_only=True).filewrite(Request("Put", "new.txt"))
    assert info.value.code == FxError.OP_UNSUPPORTED


def test_filewrite_creates_file(fs, root):
    handler = Handler(fs, "file.create")
    with handler.filewrite(Request("Put", "nested/new.txt")) as handle:
        handle.write(b"content")
    with open(os.path.join(root, "nested", "new.txt"), "rb") as handle:
        assert handle.read() == b"content"


def test_filewrite_new_file_needs_create_permission(fs, root):
    with pytest.raises(FxError) as info:
        Handler(fs, "file.update").filewrite(Request("Put", "new.txt"))
    assert info.value.code == FxError.PERMISSION_DENIED
    assert not os.path.exists(os.path.join(root, "new.txt"))


def test_filewrite_existing_file_needs_update_permission(fs, root):
    write(root, "existing.txt", "original")
    with pytest.raises(FxError) as info:
        Handler(fs, "file.create").filewrite(Request("Put", "existing.txt"))
    assert info.value.code == FxError.PERMISSION_DENIED

    with Handler(fs, "file.update").filewrite(Request("Put", "existing.txt")) as handle:
        handle.write(b"new")
    with open(os.path.join(root, "existing.txt"), "rb") as handle:
        assert handle.read() == b"new"


def test_filewrite_quota_exceeded(root):
    limited = Filesystem(root, disk_limit=1, is_test=True, disk_check_interval=150)
    write(root, "big.txt", "more than one byte")
    limited.disk_usage(False)
    with pytest.raises(QuotaExceededError) as info:
        Handler(limited, "*").filewrite(Request("Put", "other.txt"))
    assert info.value.code == FxError.QUOTA_EXCEEDED


def test_filecmd_read_only(fs):
    with pytest.raises(FxError) as info:
        Handler(fs, "*", read_only=True).filecmd(Request("Mkdir", "dir"))
    assert info.value.code == FxError.OP_UNSUPPORTED


def test_filecmd_unknown_method(fs):
    with pytest.raises(FxError) as info:
        Handler(fs, "*").filecmd(Request("Link", "a"))
    assert info.value.code == FxError.OP_UNSUPPORTED


def test_filecmd_mkdir(fs, root):
    Handler(fs, "file.create").filecmd(Request("Mkdir", "/foo/bar"))
    listing = stat_via_handler(fs, "foo/bar")
    assert len(listing) == 1
    assert listing[0].name == "bar"
    assert listing[0].is_dir() is True
    assert os.path.isdir(os.path.join(root, "foo", "bar"))


def test_filecmd_mkdir_needs_permission(fs, root):
    with pytest.raises(FxError) as info:
        Handler(fs, "file.read").filecmd(Request("Mkdir", "foo"))
    assert info.value.code == FxError.PERMISSION_DENIED
    assert not os.path.exists(os.path.join(root, "foo"))


def test_filecmd_rename(fs, root):
    write(root, "source.txt", "text content")
    Handler(fs, "file.update").filecmd(Request("Rename", "source.txt", target="target.txt"))
    listing = stat_via_handler(fs, "target.txt")
    assert listing[0].name == "target.txt"
    assert listing[0].size == len("text content")
    with pytest.raises(FxError) as info:
        stat_via_handler(fs, "source.txt")
    assert info.value.code == FxError.NO_SUCH_FILE


def test_filecmd_rename_missing_source(fs):
    with pytest.raises(FxError) as info:
        Handler(fs, "*").filecmd(Request("Rename", "missing.txt", target="target.txt"))
    assert info.value.code == FxError.NO_SUCH_FILE


def test_filecmd_rename_onto_existing_fails(fs, root):
    write(root, "source.txt", "a")
    write(root, "target.txt", "b")
    with pytest.raises(FxError) as info:
        Handler(fs, "*").filecmd(Request("Rename", "source.txt", target="target.txt"))
    assert info.value.code == FxError.FAILURE


def test_filecmd_remove(fs, root):
    write(root, "source.txt", "test content")
    assert stat_via_handler(fs, "source.txt")[0].size == len("test content")
    Handler(fs, "file.delete").filecmd(Request("Remove", "source.txt"))
    with pytest.raises(FxError) as info:
        stat_via_handler(fs, "source.txt")
    assert info.value.code == FxError.NO_SUCH_FILE
    assert not os.path.exists(os.path.join(root, "source.txt"))


def test_filecmd_remove_needs_permission(fs, root):
    path = write(root, "source.txt", "test content")
    with pytest.raises(FxError) as info:
        Handler(fs, "file.update").filecmd(Request("Remove", "source.txt"))
    assert info.value.code == FxError.PERMISSION_DENIED
    assert os.path.exists(path)


def test_filecmd_rmdir(fs, root):
    write(root, "foo/bar/source.txt", "test content")
    Handler(fs, "*").filecmd(Request("Rmdir", "foo"))
    with pytest.raises(FxError) as info:
        stat_via_handler(fs, "foo/bar/source.txt")
    assert info.value.code == FxError.NO_SUCH_FILE
    listing = Handler(fs, "*").filelist(Request("List", "/"))
    assert [item.name for item in listing] == []
    assert not os.path.exists(os.path.join(root, "foo"))


def test_filecmd_rmdir_root_fails(fs, root):
    with pytest.raises(FxError) as info:
        Handler(fs, "*").filecmd(Request("Rmdir", "/"))
    assert info.value.code == FxError.FAILURE
    assert os.path.isdir(root)


def test_filecmd_symlink(fs, root):
    write(root, "source.txt", "test content")
    Handler(fs, "file.create").filecmd(Request("Symlink", "source.txt", target="link.txt"))
    listing = stat_via_handler(fs, "link.txt")
    assert listing[0].size == len("test content")
    link = os.path.join(root, "link.txt")
    assert os.path.islink(link)
    assert os.path.realpath(link) == os.path.join(root, "source.txt")


def test_filecmd_symlink_outside_root(fs, root):
    with pytest.raises(FxError) as info:
        Handler(fs, "*").filecmd(Request("Symlink", "../outside.txt", target="link.txt"))
    assert info.value.code == FxError.NO_SUCH_FILE


def test_filecmd_setstat_needs_permission(fs, root):
    write(root, "source.txt", "x")
    with pytest.raises(FxError) as info:
        Handler(fs, "file.read").filecmd(Request("Setstat", "source.txt", mode=0o600))
    assert info.value.code == FxError.PERMISSION_DENIED


def test_filelist_list_sorted(fs, root):
    write(root, "b.txt", "b")
    write(root, "a.txt", "a")
    os.mkdir(os.path.join(root, "dir"))
    listing = Handler(fs, "file.read").filelist(Request("List", "/"))
    assert [item.name for item in listing] == ["a.txt", "b.txt", "dir"]
    assert [item.is_dir() for item in listing] == [False, False, True]


def test_filelist_stat(fs, root):
    write(root, "a.txt", "abc")
    listing = Handler(fs, "*").filelist(Request("Stat", "a.txt"))
    assert len(listing) == 1
    assert listing[0].name == "a.txt"
    assert listing[0].size == len("abc")


def test_filelist_stat_missing(fs):
    with pytest.raises(FxError) as info:
        Handler(fs, "*").filelist(Request("Stat", "missing.txt"))
    assert info.value.code == FxError.NO_SUCH_FILE


def test_filelist_needs_permission(fs):
    with pytest.raises(FxError) as info:
        Handler(fs, "file.read-content").filelist(Request("List", "/"))
    assert info.value.code == FxError.PERMISSION_DENIED


def test_filelist_unknown_method(fs):
    with pytest.raises(FxError) as info:
        Handler(fs, "*").filelist(Request("Readlink", "a"))
    assert info.value.code == FxError.OP_UNSUPPORTED