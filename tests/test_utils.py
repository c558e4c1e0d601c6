import io
import threading

import pytest

from wings.system.utils import (
    AtomicBool,
    AtomicString,
    every,
    first_not_empty,
    format_bytes,
    must_int,
    scan_reader,
)


def _scan(data):
    lines = []
    scan_reader(io.BytesIO(data), lines.append)
    return lines


def test_first_not_empty_picks_first_value():
    assert first_not_empty("", "", "alpha", "beta") == "alpha"


def test_first_not_empty_with_nothing_set():
    assert first_not_empty("", "") == ""
    assert first_not_empty() == ""


def test_must_int_parses_signed_numbers():
    assert must_int("42") == 42
    assert must_int("-7") == -7
    assert must_int("+3") == 3


@pytest.mark.parametrize("value", ["abc", "", " 1", "1.5", "1_000", "99999999999999999999"])
def test_must_int_rejects_invalid(value):
    with pytest.raises(ValueError):
        must_int(value)


def test_scan_reader_splits_lines_and_ends_with_empty():
    assert _scan(b"one\ntwo\n") == ["one", "two", ""]


def test_scan_reader_handles_crlf_and_missing_final_newline():
    assert _scan(b"first\r\nsecond") == ["first", "second", ""]


def test_scan_reader_breaks_on_space_carriage_return():
    assert _scan(b"left \rright\n") == ["left", "right", ""]


def test_scan_reader_empty_input():
    assert _scan(b"") == [""]


def test_scan_reader_accepts_text_streams():
    lines = []
    scan_reader(io.StringIO("a\nb\n"), lines.append)
    assert lines == ["a", "b", ""]


def test_format_bytes_below_a_kibibyte():
    for n in (0, 1, 1023):
        assert format_bytes(n) == f"{n} B"


def test_format_bytes_units():
    assert format_bytes(1024) == "1.0 KiB"
    assert format_bytes(1536) == "1.5 KiB"
    assert format_bytes(1024 * 1024) == "1.0 MiB"


def test_format_bytes_unit_letters_follow_order():
    for exp, letter in enumerate("KMGTPE"):
        assert format_bytes(1024 ** (exp + 1)).endswith(letter + "iB")


def test_every_runs_until_stopped():
    stop = threading.Event()
    reached = threading.Event()
    calls = []

    def work(t):
        calls.append(t)
        if len(calls) >= 2:
            reached.set()

    thread = every(stop, 0.01, work)
    assert reached.wait(5)
    stop.set()
    thread.join(5)
    assert not thread.is_alive()
    assert len(calls) >= 2
    assert calls[0] <= calls[1]


def test_every_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        every(threading.Event(), 0, lambda t: None)


def test_atomic_bool_swap_if():
    value = AtomicBool(False)
    assert value.swap_if(True) is True
    assert value.load() is True
    assert value.swap_if(True) is False
    value.store(False)
    assert value.load() is False


def test_atomic_bool_swap_if_only_one_winner():
    value = AtomicBool(False)
    results = []
    lock = threading.Lock()

    def attempt():
        won = value.swap_if(True)
        with lock:
            results.append(won)

    threads = [threading.Thread(target=attempt) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert value.load() is True
    assert value.swap_if(True) is False
    assert results.count(True) == 1
    assert len(results) == 16


def test_atomic_string_store_and_load():
    value = AtomicString("offline")
    assert value.load() == "offline"
    value.store("running")
    assert value.load() == "running"