# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Remote command execution on top of a Transport.

Two modes:
- plain: environment preamble + optional ``cd`` + command; only the exit
  status matters (probes, setup, batch commands, auto-listing)
- tracked: the same, wrapped so the exit status and resulting working
  directory come back on a sentinel line (interactive commands)

The executor never holds session state; the caller passes the current
directory in and gets the new one back in ``CommandResult``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .interfaces import Transport
from .tracker import SentinelFilter, make_sentinel, wrap_tracked
from .transport import CONNECTION_LOST_STATUS
from .utils import shell_quote

lgr = logging.getLogger("sitesh.executor")

DEFAULT_REMOTE_HOME = "/tmp/sitesh-home"
DEFAULT_CACHE_SUBDIR = ".cache"


@dataclass(frozen=True)
class CommandResult:
    exit_status: int
    cwd: str
    connection_lost: bool = False
    sentinel_seen: bool = True


class CommandExecutor:
    """Runs command text remotely in plain or tracked mode."""

    def __init__(
        self,
        transport: Transport,
        remote_home: str = DEFAULT_REMOTE_HOME,
        cache_subdir: str = DEFAULT_CACHE_SUBDIR,
        sentinel: str | None = None,
    ):
        self.transport = transport
        self.remote_home = remote_home
        self.cache_dir = f"{remote_home.rstrip('/')}/{cache_subdir}"
        self.sentinel = sentinel or make_sentinel()

    @classmethod
    def from_config(cls, transport: Transport, config) -> CommandExecutor:
        remote = config.remote
        session_cfg = config.session
        prefix = session_cfg.get("sentinel_prefix")
        return cls(
            transport,
            remote_home=str(remote.get("home", DEFAULT_REMOTE_HOME)),
            cache_subdir=str(remote.get("cache_subdir", DEFAULT_CACHE_SUBDIR)),
            sentinel=make_sentinel(prefix) if prefix else None,
        )

    # ----------------------------------------------------------------
    # Script composition
    # ----------------------------------------------------------------

    def env_preamble(self) -> str:
        return (
            f"export HOME={shell_quote(self.remote_home)}; "
            f"export XDG_CACHE_HOME={shell_quote(self.cache_dir)}"
        )

    def compose(self, text: str, cwd: str | None = None) -> str:
        """Environment preamble, ``cd`` into ``cwd`` (if given), then text."""
        parts = [self.env_preamble()]
        if cwd:
            parts.append(f"cd {shell_quote(cwd)}")
        parts.append(text)
        return "\n".join(parts)

    # ----------------------------------------------------------------
    # Plain mode
    # ----------------------------------------------------------------

    def exec_plain(
        self,
        text: str,
        cwd: str | None = None,
        on_stdout: Callable[[str], None] | None = None,
        on_stderr: Callable[[str], None] | None = None,
    ) -> int:
        """Run ``text`` and return only its exit status.

        Output is discarded unless callbacks are given.
        """
        result = self.transport.run_stream(
            self.compose(text, cwd), on_stdout=on_stdout, on_stderr=on_stderr
        )
        return result.exit_code

    def exec_capture(self, text: str, cwd: str | None = None) -> tuple[int, str]:
        """Run ``text`` in plain mode and return (status, stdout)."""
        status, stdout, stderr = self.transport.run(self.compose(text, cwd))
        if status != 0 and stderr:
            lgr.debug("capture failed (%s): %s", status, stderr.strip())
        return status, stdout

    def test_path(self, flag: str, path: str, cwd: str | None = None) -> bool:
        """Boolean probe, e.g. ``test_path("-f", "/code/index.php")``."""
        return self.exec_plain(f"test {flag} {shell_quote(path)}", cwd) == 0

    def prepare_remote_home(self) -> int:
        """Create the overridden home and cache directories."""
        return self.exec_plain(
            f"mkdir -p {shell_quote(self.remote_home)} {shell_quote(self.cache_dir)}"
        )

    # ----------------------------------------------------------------
    # Tracked mode
    # ----------------------------------------------------------------

    def exec_tracked(
        self,
        text: str,
        cwd: str,
        on_stdout: Callable[[str], None] | None = None,
        on_stderr: Callable[[str], None] | None = None,
    ) -> CommandResult:
        """Run ``text`` in ``cwd`` and recover its status and new directory.

        Output is streamed through the callbacks as it arrives; the
        sentinel line is consumed. When no sentinel arrives the status
        falls back to the transport's and the directory is unchanged.
        """
        flt = SentinelFilter(self.sentinel, on_stdout)
        script = wrap_tracked(self.sentinel, self.compose(text, cwd))
        result = self.transport.run_stream(
            script, on_stdout=flt.feed, on_stderr=on_stderr
        )

        control = flt.result
        if control.found:
            assert control.exit_status is not None and control.cwd is not None
            return CommandResult(exit_status=control.exit_status, cwd=control.cwd)

        lgr.debug("no sentinel; transport exit %s", result.exit_code)
        return CommandResult(
            exit_status=result.exit_code,
            cwd=cwd,
            connection_lost=result.exit_code == CONNECTION_LOST_STATUS,
            sentinel_seen=False,
        )
