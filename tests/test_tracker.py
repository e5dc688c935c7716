"""
Tests for the sentinel line protocol (status + working directory recovery).
"""

from __future__ import annotations

import subprocess

from sitesh.tracker import (
    MISSING,
    SentinelFilter,
    demux,
    make_sentinel,
    parse_control,
    wrap_tracked,
)

SENTINEL = "__TEST_SENTINEL__"


# ----------------------------------------------------------------
# Sentinel token
# ----------------------------------------------------------------


def test_make_sentinel_uses_prefix_and_is_unique_per_call():
    a = make_sentinel("__X__")
    b = make_sentinel("__X__")

    assert a.startswith("__X__")
    assert b.startswith("__X__")
    assert a != b
    assert " " not in a


# ----------------------------------------------------------------
# Control payload parsing
# ----------------------------------------------------------------


def test_parse_control_reads_status_and_cwd():
    status = parse_control("3,/code/web\n")

    assert status.found
    assert status.exit_status == 3
    assert status.cwd == "/code/web"


def test_parse_control_splits_on_first_comma_only():
    status = parse_control("0,/srv/a,b,c\n")

    assert status.exit_status == 0
    assert status.cwd == "/srv/a,b,c"


def test_parse_control_rejects_garbage():
    assert parse_control("abc,/code") == MISSING
    assert parse_control("0") == MISSING
    assert parse_control("0,") == MISSING


# ----------------------------------------------------------------
# Stream demultiplexing
# ----------------------------------------------------------------


def test_demux_forwards_lines_and_consumes_sentinel():
    lines = [f"line {i}\n" for i in range(5)] + [f"{SENTINEL} 0,/tmp\n"]

    out, status = demux(SENTINEL, lines)

    assert out == [f"line {i}\n" for i in range(5)]
    assert not any(SENTINEL in line for line in out)
    assert status.exit_status == 0
    assert status.cwd == "/tmp"


def test_demux_directory_with_comma():
    out, status = demux(SENTINEL, ["x\n", f"{SENTINEL} 1,/data/a,b\n"])

    assert out == ["x\n"]
    assert status.exit_status == 1
    assert status.cwd == "/data/a,b"


def test_demux_without_sentinel_reports_missing():
    out, status = demux(SENTINEL, ["partial output\n"])

    assert out == ["partial output\n"]
    assert status == MISSING
    assert not status.found


def test_only_first_sentinel_is_control_data():
    lines = [f"{SENTINEL} 0,/one\n", f"{SENTINEL} 5,/two\n"]

    out, status = demux(SENTINEL, lines)

    assert status.cwd == "/one"
    assert out == [f"{SENTINEL} 5,/two\n"]


def test_sentinel_after_output_without_newline():
    out, status = demux(SENTINEL, [f"no newline{SENTINEL} 0,/code\n"])

    assert out == ["no newline"]
    assert status.cwd == "/code"


def test_filter_streams_lines_as_they_arrive():
    seen: list[str] = []
    flt = SentinelFilter(SENTINEL, seen.append)

    flt.feed("first\n")
    assert seen == ["first\n"]
    assert not flt.result.found

    flt.feed(f"{SENTINEL} 2,/var\n")
    assert seen == ["first\n"]
    assert flt.result.exit_status == 2


def test_token_without_trailing_space_is_ordinary_output():
    out, status = demux(SENTINEL, [f"{SENTINEL}\n"])

    assert out == [f"{SENTINEL}\n"]
    assert not status.found


def test_marker_mid_line_in_command_output_is_taken_as_control():
    # Known limitation: the first marker wins even inside ordinary output.
    lines = [f"log: {SENTINEL} 7,/fake\n", f"{SENTINEL} 0,/real\n"]

    out, status = demux(SENTINEL, lines)

    assert status.exit_status == 7
    assert status.cwd == "/fake"
    assert out == ["log: ", f"{SENTINEL} 0,/real\n"]


# ----------------------------------------------------------------
# Wrapper (run through a real POSIX shell)
# ----------------------------------------------------------------


def _run(script: str) -> tuple[int, list[str]]:
    proc = subprocess.run(
        ["/bin/sh", "-c", script], capture_output=True, text=True
    )
    return proc.returncode, proc.stdout.splitlines(keepends=True)


def test_wrapper_reports_user_status_not_wrapper_status():
    rc, lines = _run(wrap_tracked(SENTINEL, "echo hi; (exit 3)"))

    out, status = demux(SENTINEL, lines)

    assert out == ["hi\n"]
    assert status.exit_status == 3
    assert rc == 3


def test_wrapper_reports_explicit_exit():
    _rc, lines = _run(wrap_tracked(SENTINEL, "cd /tmp\nexit 4\necho unreachable"))

    out, status = demux(SENTINEL, lines)

    assert out == []
    assert status.exit_status == 4
    assert status.cwd == "/tmp"


def test_wrapper_reports_directory_after_cd():
    _rc, lines = _run(wrap_tracked(SENTINEL, "cd /"))

    _out, status = demux(SENTINEL, lines)

    assert status.exit_status == 0
    assert status.cwd == "/"
