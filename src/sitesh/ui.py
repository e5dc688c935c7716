# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.history import FileHistory, InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import print_formatted_text
from prompt_toolkit.styles import Style

if TYPE_CHECKING:
    from .session import Session  # pragma: no cover


DIRECTIVE_HELP: dict[str, str] = {
    ".ed": "edit remote file",
    ".vw": "view remote file",
    ".ls": "toggle auto-list",
    "exit": "end session",
}


def _default_style_dict() -> dict[str, str]:
    return {
        "completion-menu": "bg:#111111 #d0d0d0",
        "completion-menu.completion": "bg:#111111 #d0d0d0",
        "completion-menu.completion.current": "bg:#303030 #ffffff bold",
        "completion-menu.meta.completion": "bg:#111111 #808080",
        "completion-menu.meta.completion.current": "bg:#303030 #a0a0a0",
        "bottom-toolbar": "bg:#0b0b0b #d0d0d0",
        "sitesh.toolbar.label": "bg:#0b0b0b #808080",
        "sitesh.toolbar.value": "bg:#0b0b0b #d0d0d0 bold",
    }


def _build_style(session: Session | None) -> Style:
    base = _default_style_dict()
    if session is not None:
        overrides = session.config.get_path("ui.theme.style", {})
        if isinstance(overrides, dict):
            # only keep string->string
            for k, v in overrides.items():
                if isinstance(k, str) and isinstance(v, str):
                    base[k] = v
    return Style.from_dict(base)


class DirectiveCompleter(Completer):
    """Completes dot-directives and ``exit`` on the first token."""

    def get_completions(
        self, document, complete_event
    ) -> Iterable[Completion]:
        before = (document.text_before_cursor or "").lstrip()
        # Only the first token; arguments are remote paths.
        if not before or " " in before:
            return
        for word, meta in DIRECTIVE_HELP.items():
            if word.startswith(before):
                yield Completion(
                    word, start_position=-len(before), display_meta=meta
                )


class PromptToolkitUI:
    """
    Terminal-friendly front-end:
      - keeps normal terminal scrollback
      - per site/env persistent history with history-based suggestions
      - bottom toolbar with the auto-list flag and last exit status
      - Ctrl+L clears the screen
    """

    def __init__(
        self, session: Session | None = None, history_file: Path | None = None
    ) -> None:
        self.site_session = session
        self.history_file = history_file
        self.session: PromptSession[str] | None = None
        self._style = _build_style(session)
        # Track whether we ended on a newline (to prevent prompt mangling)
        self._needs_newline_before_prompt = False

    # ---------- toolbar rendering ----------

    def _bottom_toolbar(self):
        s = self.site_session
        if s is None:
            return ""
        return [
            ("class:sitesh.toolbar.label", f" {s.target.label} "),
            ("class:sitesh.toolbar.label", " auto-list "),
            ("class:sitesh.toolbar.value", "on" if s.auto_list else "off"),
            ("class:sitesh.toolbar.label", "  last exit "),
            ("class:sitesh.toolbar.value", str(s.last_exit_status)),
        ]

    # ---------- session ----------

    def _ensure_session(self) -> None:
        if self.session is not None:
            return

        history = (
            FileHistory(str(self.history_file))
            if self.history_file is not None
            else InMemoryHistory()
        )
        self.session = PromptSession(
            history=history,
            auto_suggest=AutoSuggestFromHistory(),
            key_bindings=self.build_key_bindings(),
            completer=DirectiveCompleter(),
            complete_while_typing=False,
            style=self._style,
            bottom_toolbar=self._bottom_toolbar,
        )

    # ---------- public API ----------

    def read(self, prompt: str) -> str:
        self._ensure_session()
        assert self.session is not None

        if self._needs_newline_before_prompt:
            print_formatted_text(ANSI("\n"), style=self._style, end="")
            self._needs_newline_before_prompt = False

        with patch_stdout():
            return self.session.prompt(ANSI(prompt + " "))

    def write(self, text: str) -> None:
        """Write EXACTLY what we receive (no extra newline)."""
        if not text:
            return
        print_formatted_text(ANSI(text), style=self._style, end="")
        self._needs_newline_before_prompt = not text.endswith("\n")

    # ---------- TTY handoff support ----------

    def prepare_tty_handoff(self) -> None:
        """Make sure the editor does not start on a half-written line."""
        if self._needs_newline_before_prompt:
            print_formatted_text(ANSI("\n"), style=self._style, end="")
            self._needs_newline_before_prompt = False

    def restore_after_tty(self) -> None:
        """Editors clean up their own screen; start the next prompt fresh."""
        self._needs_newline_before_prompt = False

    # ---------- keybindings ----------

    def build_key_bindings(self) -> KeyBindings:
        kb = KeyBindings()

        @kb.add("c-l")
        def _(event):
            event.app.renderer.clear()
            event.app.invalidate()

        return kb
