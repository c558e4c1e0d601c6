import pytest

from wings.filesystem.errors import (
    ErrorCode,
    FilesystemError,
    is_error_code,
    is_filesystem_error,
    is_unknown_archive_format_error,
    new_bad_path_resolution,
    new_filesystem_error,
    wrap_error,
)


def test_new_filesystem_error_includes_traceback_when_raised():
    err = new_filesystem_error(ErrorCode.UNKNOWN_ERROR, None)
    assert is_error_code(err, ErrorCode.UNKNOWN_ERROR) is True
    assert err.code is ErrorCode.UNKNOWN_ERROR
    with pytest.raises(FilesystemError) as caught:
        raise err
    assert caught.value.__traceback__ is not None
    assert caught.value.code is ErrorCode.UNKNOWN_ERROR
    assert caught.value.__cause__ is None


def test_new_filesystem_error_wraps_underlying_cause():
    underlying = EOFError("EOF")
    err = new_filesystem_error(ErrorCode.UNKNOWN_ERROR, underlying)
    assert err.__cause__ is underlying
    assert str(err) == "filesystem: an error occurred: EOF"
    with pytest.raises(FilesystemError) as caught:
        raise err
    assert caught.value.__cause__ is underlying


def test_bad_path_resolution_detects_itself():
    err = new_bad_path_resolution("foo", "bar")
    assert is_error_code(err, ErrorCode.PATH_RESOLUTION) is True
    assert str(err) == "filesystem: server path [foo] resolves to a location outside the server root: bar"
    assert is_error_code(FilesystemError(ErrorCode.IS_DIRECTORY), ErrorCode.PATH_RESOLUTION) is False


def test_bad_path_resolution_empty_destination():
    err = new_bad_path_resolution("foo", "")
    assert str(err) == "filesystem: server path [foo] resolves to a location outside the server root: <empty>"


def test_messages_per_code():
    assert str(FilesystemError(ErrorCode.DISK_SPACE)) == "filesystem: not enough disk space"
    assert str(FilesystemError(ErrorCode.UNKNOWN_ARCHIVE)) == "filesystem: unknown archive format"
    assert (
        str(FilesystemError(ErrorCode.IS_DIRECTORY, resolved="/srv/data"))
        == "filesystem: cannot perform action: [/srv/data] is a directory"
    )
    assert (
        str(FilesystemError(ErrorCode.DENYLIST_FILE))
        == "filesystem: file access prohibited: [<empty>] is on the denylist"
    )
    assert (
        str(FilesystemError(ErrorCode.DENYLIST_FILE, resolved="/srv/x"))
        == "filesystem: file access prohibited: [/srv/x] is on the denylist"
    )


@pytest.mark.parametrize(
    "code,expected",
    [
        (ErrorCode.IS_DIRECTORY, "E_ISDIR"),
        (ErrorCode.DISK_SPACE, "E_NODISK"),
        (ErrorCode.UNKNOWN_ARCHIVE, "E_UNKNFMT"),
        (ErrorCode.PATH_RESOLUTION, "E_BADPATH"),
        (ErrorCode.DENYLIST_FILE, "E_DENYLIST"),
        (ErrorCode.UNKNOWN_ERROR, "E_UNKNOWN"),
    ],
)
def test_error_code_values(code, expected):
    err = new_filesystem_error(code, None)
    assert err.code.value == expected
    assert is_error_code(err, ErrorCode(expected)) is True


def test_is_error_code_follows_cause_chain():
    outer = RuntimeError("outer")
    outer.__cause__ = new_filesystem_error(ErrorCode.DISK_SPACE, None)
    assert is_error_code(outer, ErrorCode.DISK_SPACE) is True
    assert is_filesystem_error(outer) is True


def test_non_filesystem_errors():
    assert is_filesystem_error(None) is False
    assert is_filesystem_error(ValueError("x")) is False
    assert is_error_code(None, ErrorCode.DISK_SPACE) is False
    assert is_error_code(ValueError("x"), ErrorCode.DISK_SPACE) is False


def test_unknown_archive_format_detection():
    assert is_unknown_archive_format_error(ValueError("format unrecognized by filename")) is True
    assert is_unknown_archive_format_error(ValueError("other problem")) is False
    assert is_unknown_archive_format_error(None) is False


def test_wrap_error():
    assert wrap_error(None, "/srv") is None
    existing = new_filesystem_error(ErrorCode.DISK_SPACE, None)
    assert wrap_error(existing, "/srv") is existing
    cause = OSError("boom")
    wrapped = wrap_error(cause, "/srv/file")
    assert is_error_code(wrapped, ErrorCode.UNKNOWN_ERROR) is True
    assert wrapped.resolved == "/srv/file"
    assert wrapped.__cause__ is cause