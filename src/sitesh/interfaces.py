# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Protocol definitions for dependency injection.

These interfaces keep the session loop, the command executor and the
file editor independent of the SSH client and of the terminal UI, so
tests can swap in local fakes.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .transport import StreamResult  # pragma: no cover

LineCallback = Callable[[str], None]


class Transport(Protocol):
    """Protocol for a reusable connection to one remote endpoint."""

    def open(self) -> None:
        """Establish or attach to the connection (idempotent).

        Raises:
            TransportError: if the endpoint cannot be reached
        """
        ...

    def run_stream(
        self,
        script: str,
        on_stdout: LineCallback | None = None,
        on_stderr: LineCallback | None = None,
    ) -> StreamResult:
        """Run one remote script, streaming output lines as they arrive."""
        ...

    def run(self, script: str) -> tuple[int, str, str]:
        """Run one remote script and return (status, stdout, stderr)."""
        ...

    def copy_file(self, local_path: str, remote_path: str, direction: str) -> None:
        """Copy one file; ``direction`` is "download" or "upload".

        Raises:
            TransferError: on any copy failure
        """
        ...

    def close(self) -> None:
        """Tear the connection down (safe to call repeatedly)."""
        ...


class UI(Protocol):
    """Protocol for the terminal front-end used by the REPL."""

    def read(self, prompt: str) -> str:
        ...

    def write(self, text: str) -> None:
        ...
