# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Utility functions for sitesh.
"""

from __future__ import annotations

import hashlib
import shlex
from enum import Enum, auto
from pathlib import Path


def shell_quote(s: str) -> str:
    """Quote ``s`` so a POSIX shell on the remote side reads it literally."""
    return shlex.quote(s)


def file_checksum(path: Path | str) -> str:
    """SHA-256 hex digest of a local file's bytes."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            digest.update(block)
    return digest.hexdigest()


def split_words(text: str) -> list[str]:
    """Split a line shell-style, falling back to whitespace on bad quotes."""
    try:
        return shlex.split(text)
    except ValueError:
        # shlex can fail on unmatched quotes
        return text.split()


class LexerState(Enum):
    NORMAL = auto()
    SINGLE_QUOTE = auto()
    DOUBLE_QUOTE = auto()
    ESCAPE = auto()


def _scan(text: str) -> tuple[LexerState, bool]:
    """Walk ``text`` with POSIX quoting rules.

    Returns:
        (final lexer state, True if a double-quoted string ends in a
        dangling backslash)
    """
    state = LexerState.NORMAL
    i = 0

    while i < len(text):
        ch = text[i]

        if state == LexerState.ESCAPE:
            # After backslash, consume one char and return to NORMAL
            state = LexerState.NORMAL
        elif state == LexerState.NORMAL:
            if ch == "\\":
                state = LexerState.ESCAPE
            elif ch == "'":
                state = LexerState.SINGLE_QUOTE
            elif ch == '"':
                state = LexerState.DOUBLE_QUOTE
        elif state == LexerState.SINGLE_QUOTE:
            if ch == "'":
                state = LexerState.NORMAL
        elif state == LexerState.DOUBLE_QUOTE:
            if ch == "\\":
                if i + 1 >= len(text):
                    return state, True
                i += 1
            elif ch == '"':
                state = LexerState.NORMAL
        i += 1

    return state, False


def is_quote_balanced(text: str) -> bool:
    """True if every single and double quote in ``text`` is closed."""
    state, _ = _scan(text)
    return state in (LexerState.NORMAL, LexerState.ESCAPE)


def has_trailing_backslash(text: str) -> bool:
    """True if ``text`` ends with a backslash the shell would treat
    as a line continuation."""
    if not text:
        return False
    state, dangling = _scan(text)
    return dangling or state == LexerState.ESCAPE


def is_shell_input_incomplete(text: str) -> bool:
    """Check if a command line needs continuation before it can be sent.

    Input is incomplete if quotes are unbalanced or it ends with an
    unescaped backslash.
    """
    return not is_quote_balanced(text) or has_trailing_backslash(text)
