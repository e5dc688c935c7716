# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Exit status and working directory recovery for tracked commands.

A tracked command runs under a wrapper that, when the remote shell exits,
prints one control line::

    <SENTINEL> <status>,<cwd>

after everything the command itself wrote to stdout. ``SentinelFilter``
sits between the transport and the user: it forwards ordinary lines
verbatim and consumes the first sentinel line.

Known limitation: the marker (sentinel token plus a space) is matched
anywhere in a line, not only at its start. If a command writes that text,
even mid-line and without a trailing newline, the first occurrence is
taken as the control line; what precedes it on the line is still
forwarded. The token carries a per-session random suffix so this does
not happen by accident.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .utils import shell_quote

lgr = logging.getLogger("sitesh.tracker")

DEFAULT_SENTINEL_PREFIX = "__SITESH_STATUS__"

# Shell variable used inside the EXIT trap.
_STATUS_VAR = "__sitesh_rc"


def make_sentinel(prefix: str = DEFAULT_SENTINEL_PREFIX) -> str:
    """Return a sentinel token unique to this session."""
    return f"{prefix}{secrets.token_hex(8)}"


@dataclass(frozen=True)
class TrackedStatus:
    """Control data recovered from a tracked command.

    ``found`` is False when the stream ended without a (parsable)
    sentinel line; status and cwd are None in that case.
    """

    found: bool
    exit_status: int | None = None
    cwd: str | None = None


MISSING = TrackedStatus(found=False)


def parse_control(payload: str) -> TrackedStatus:
    """Parse ``status,cwd``; only the first comma separates the fields."""
    status_text, sep, cwd = payload.rstrip("\r\n").partition(",")
    try:
        status = int(status_text.strip())
    except ValueError:
        lgr.debug("unparsable sentinel payload: %r", payload)
        return MISSING
    if not sep or not cwd:
        lgr.debug("sentinel payload without directory: %r", payload)
        return MISSING
    return TrackedStatus(found=True, exit_status=status, cwd=cwd)


def wrap_tracked(sentinel: str, body: str) -> str:
    """Prefix ``body`` with an EXIT trap that reports status and cwd.

    The trap runs however the shell ends, including an explicit
    ``exit N`` typed by the user, and sees ``$?`` as the shell's exit
    status.
    """
    report = (
        f"{_STATUS_VAR}=$?; "
        f"printf '%s %d,%s\\n' {sentinel} \"${_STATUS_VAR}\" \"$PWD\""
    )
    return f"trap {shell_quote(report)} EXIT\n{body}"


class SentinelFilter:
    """Line filter that separates user output from the control line.

    Feed it every stdout line in order. Lines are forwarded to ``forward``
    until the sentinel arrives; the sentinel line is never forwarded.
    """

    def __init__(self, sentinel: str, forward: Callable[[str], None] | None = None):
        self.marker = sentinel + " "
        self.forward = forward
        self._status: TrackedStatus | None = None

    @property
    def result(self) -> TrackedStatus:
        return self._status if self._status is not None else MISSING

    def feed(self, line: str) -> None:
        if self._status is None:
            idx = line.find(self.marker)
            if idx >= 0:
                if idx > 0:
                    # Command output without a trailing newline.
                    self._emit(line[:idx])
                self._status = parse_control(line[idx + len(self.marker):])
                return
        else:
            lgr.debug("output after sentinel: %r", line)
        self._emit(line)

    def _emit(self, text: str) -> None:
        if self.forward:
            self.forward(text)


def demux(sentinel: str, lines: Iterable[str]) -> tuple[list[str], TrackedStatus]:
    """Split a finished stream into user lines and control data."""
    out: list[str] = []
    flt = SentinelFilter(sentinel, out.append)
    for line in lines:
        flt.feed(line)
    return out, flt.result
