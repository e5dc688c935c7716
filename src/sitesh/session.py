# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
sitesh session engine.

Owns the per-process session state (current directory, auto-list flag,
last exit status) and dispatches one input line at a time:
- ``exit`` ends the session
- ``.ed``/``.vw``/``.ls`` dot-directives are handled locally
- anything else is a tracked remote command

Important boundary:
- Session does not read input or own the terminal; the REPL in cli.py
  feeds it lines and renders what it returns.
- Streaming output goes through the injected output_fn / error_fn.
"""

from __future__ import annotations

import logging
import sys
import traceback
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from . import config as cfg_module
from .config import ANSI_COLORS, YAMLConfig, tag
from .editor import RemoteFileEditor
from .exceptions import SiteShellError, TransportError
from .executor import CommandExecutor
from .registry import SiteTarget
from .transport import CONNECTION_LOST_STATUS
from .utils import split_words

lgr = logging.getLogger("sitesh.session")

DIRECTIVES = (".ed", ".vw", ".ls")
EXIT_COMMAND = "exit"
DEFAULT_INITIAL_DIRECTORY = "/code"
INTERRUPTED_STATUS = 130


def write_crash_log(
    error: BaseException,
    target: str = "",
    raw_command: str = "",
    cwd: str = "",
) -> None:
    """Append an entry to <data_root>/sitesh/logs/crash.log.

    Only creates the log directory when actually needed. Never raises.
    """
    try:
        logs_dir = cfg_module.app_dir() / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)

        lines = [f"{datetime.now().isoformat()}", f"target={target}"]
        if raw_command:
            lines.append(f"raw={raw_command}")
        if cwd:
            lines.append(f"cwd={cwd}")
        lines.append(f"error={type(error).__name__}: {error}")
        lines.append("traceback:")
        lines.append(
            "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        )
        lines.append("----")

        with (logs_dir / "crash.log").open("a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")

    except Exception:
        # Already in an error state; the caller reports the original error.
        lgr.debug("could not write crash log", exc_info=True)


def parse_directive(line: str) -> tuple[str, list[str]] | None:
    """Return (directive, args) for a dot-directive line, else None.

    ``.ls`` takes no arguments; ``.ls something`` is a remote command.
    """
    stripped = line.strip()
    if not stripped.startswith("."):
        return None
    words = split_words(stripped)
    if not words or words[0] not in DIRECTIVES:
        return None
    if words[0] == ".ls" and len(words) > 1:
        return None
    return words[0], words[1:]


@dataclass
class Session:
    """Interactive state for one site/environment pair."""

    target: SiteTarget
    executor: CommandExecutor
    editor: RemoteFileEditor
    config: YAMLConfig

    cwd: str = DEFAULT_INITIAL_DIRECTORY
    auto_list: bool = False
    last_exit_status: int = 0
    running: bool = False
    # Set when the session ended because the connection could not be restored.
    connection_failed: bool = False

    auto_list_command: str = "ls -la"

    # ---- Streaming hooks (wired by UI/CLI) ----
    output_fn: Callable[[str], None] = field(default_factory=lambda: sys.stdout.write)
    error_fn: Callable[[str], None] = field(default_factory=lambda: sys.stderr.write)
    # Called around the local editor so the UI can hand over the terminal.
    before_tty: Callable[[], None] | None = None
    after_tty: Callable[[], None] | None = None

    _reconnect_needed: bool = False

    @classmethod
    def from_config(
        cls,
        target: SiteTarget,
        executor: CommandExecutor,
        editor: RemoteFileEditor,
        config: YAMLConfig,
    ) -> Session:
        return cls(
            target=target,
            executor=executor,
            editor=editor,
            config=config,
            cwd=str(
                config.remote.get("initial_directory", DEFAULT_INITIAL_DIRECTORY)
            ),
            auto_list_command=str(
                config.session.get("auto_list_command", "ls -la")
            ),
        )

    def start(self) -> str:
        """Start the session and return the welcome text (may be empty)."""
        self.running = True
        welcome = self.config.get_path("system.welcome.message", "")
        lines = [tag("INFO", f"{self.target.label} ({self.target.destination})")]
        if isinstance(welcome, str) and welcome.strip():
            lines.append(welcome.strip())
        return "\n".join(lines)

    def prompt(self) -> str:
        """Return the prompt string with ANSI colors."""

        def color(key: str, default: str) -> str:
            name = self.config.get_path(f"ui.prompt.{key}", default)
            return ANSI_COLORS.get(str(name), ANSI_COLORS["reset"])

        reset = ANSI_COLORS["reset"]
        prompt = (
            f"{color('site_color', 'cyan')}{self.target.site_name}{reset}"
            f".{color('env_color', 'pink')}{self.target.env_id}{reset}"
            f":{color('cwd_color', 'green')}{self.cwd}{reset}"
        )
        if self.last_exit_status:
            prompt += (
                f" {color('status_color', 'red')}[{self.last_exit_status}]{reset}"
            )
        return prompt + "$"

    # -----------------------
    # Command handling
    # -----------------------

    def handle_command(self, line: str) -> str:
        """Handle one input line; returns a message to show (may be empty)."""
        stripped = line.strip()
        if not stripped:
            return ""

        if stripped == EXIT_COMMAND:
            self.running = False
            return ""

        # Ctrl-C stops only the local ssh client of whatever remote call is
        # in flight (command, listing, path check or transfer); the session stays.
        try:
            directive = parse_directive(stripped)
            if directive is not None:
                name, args = directive
                return self._handle_directive(name, args)

            return self._run_command(line)
        except KeyboardInterrupt:
            self.last_exit_status = INTERRUPTED_STATUS
            return tag("ERR", "interrupted")

    def _ensure_connection(self) -> bool:
        """Re-open the transport after a connection loss.

        Returns False (and ends the session) if that fails.
        """
        if not self._reconnect_needed:
            return True
        try:
            self.executor.transport.open()
        except TransportError as e:
            self.running = False
            self.connection_failed = True
            self.last_exit_status = CONNECTION_LOST_STATUS
            self.error_fn(tag("ERR", f"connection lost: {e}") + "\n")
            return False
        self._reconnect_needed = False
        return True

    def _run_command(self, line: str) -> str:
        if not self._ensure_connection():
            return ""

        before = self.cwd
        result = self.executor.exec_tracked(
            line, self.cwd, on_stdout=self.output_fn, on_stderr=self.error_fn
        )

        self.last_exit_status = result.exit_status
        self.cwd = result.cwd

        if result.connection_lost:
            self._reconnect_needed = True
            return tag("ERR", "connection lost; reconnecting on next command")
        if not result.sentinel_seen:
            return tag("INFO", "exit status unknown; directory unchanged")

        if self.auto_list and self.cwd != before:
            self.executor.exec_plain(
                self.auto_list_command,
                cwd=self.cwd,
                on_stdout=self.output_fn,
                on_stderr=self.error_fn,
            )
        return ""

    def _handle_directive(self, name: str, args: list[str]) -> str:
        if name == ".ls":
            self.auto_list = not self.auto_list
            state = "on" if self.auto_list else "off"
            return tag("INFO", f"auto-list {state}")

        if not args:
            return f"usage: {name} <path> [editor args...]"

        if not self._ensure_connection():
            return ""

        path, editor_args = args[0], args[1:]
        if self.before_tty:
            self.before_tty()
        try:
            if name == ".vw":
                self.editor.view(path, self.cwd, editor_args)
            else:
                self.editor.edit(path, self.cwd, editor_args)
        except SiteShellError as e:
            return tag("ERR", str(e))
        finally:
            if self.after_tty:
                self.after_tty()
        return ""
