# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
View and edit remote files through a local scratch copy.

Workflow for both operations:
1. resolve the path on the remote side (``..`` and symlinks honored there)
2. probe existence/permissions with plain remote commands
3. pick a local editor
4. download into a private scratch file
5. run the editor on the scratch file
6. edit only: upload if the content checksum changed

The scratch file is removed on every exit path.
"""

from __future__ import annotations

import logging
import os
import posixpath
import shlex
import shutil
import signal
import subprocess
import sys
import tempfile
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path

from . import config as cfg_module
from .exceptions import NoEditorError, ProbeError, TransferError
from .executor import CommandExecutor
from .interfaces import Transport
from .utils import file_checksum, shell_quote

lgr = logging.getLogger("sitesh.editor")

DEFAULT_EDITOR_CANDIDATES = ("nano", "vim", "vi", "micro", "emacs", "joe")


def _launch_editor(argv: list[str]) -> int:
    """Run the editor on the inherited terminal and return its status.

    Ctrl-C belongs to the editor while it runs, so it is ignored here and
    restored to the default in the child.
    """
    previous = signal.signal(signal.SIGINT, signal.SIG_IGN)
    try:
        proc = subprocess.Popen(
            argv,
            preexec_fn=lambda: signal.signal(signal.SIGINT, signal.SIG_DFL),
        )
        return proc.wait()
    finally:
        signal.signal(signal.SIGINT, previous)


def find_editor(
    configured: str | None = None,
    candidates: Sequence[str] = DEFAULT_EDITOR_CANDIDATES,
    which: Callable[[str], str | None] = shutil.which,
) -> list[str]:
    """Pick the local editor command as an argv prefix.

    Order: $VISUAL, $EDITOR, the configured command, then the first
    candidate found on PATH.

    Raises:
        NoEditorError: nothing usable was found
    """
    for cmd in (os.environ.get("VISUAL"), os.environ.get("EDITOR"), configured):
        if not cmd or not cmd.strip():
            continue
        argv = shlex.split(cmd)
        if which(argv[0]):
            return argv
        lgr.debug("configured editor %r not found", cmd)

    for name in candidates:
        path = which(name)
        if path:
            return [path]

    raise NoEditorError("no editor available (set $EDITOR)")


class RemoteFileEditor:
    """Runs ``.vw``/``.ed`` against one session's transport."""

    def __init__(
        self,
        executor: CommandExecutor,
        transport: Transport,
        scratch_dir: Path,
        editor_command: str | None = None,
        editor_candidates: Sequence[str] = DEFAULT_EDITOR_CANDIDATES,
        launch: Callable[[list[str]], int] = _launch_editor,
        write: Callable[[str], None] = sys.stdout.write,
        which: Callable[[str], str | None] = shutil.which,
        recovery_dir: Callable[[], Path] = cfg_module.recovery_dir,
    ):
        self.executor = executor
        self.transport = transport
        self.scratch_dir = Path(scratch_dir)
        self.editor_command = editor_command
        self.editor_candidates = tuple(editor_candidates)
        self.launch = launch
        self.write = write
        self.which = which
        self.recovery_dir = recovery_dir

    # ----------------------------------------------------------------
    # Preamble helpers
    # ----------------------------------------------------------------

    def resolve(self, path: str, cwd: str) -> str:
        """Return the absolute remote path for ``path`` relative to ``cwd``.

        The parent directory is resolved remotely with ``pwd -P``; the
        final component is kept as given so new files can be named.

        Raises:
            ProbeError: the parent directory does not exist
        """
        parent = posixpath.dirname(path) or "."
        base = posixpath.basename(path)
        status, out = self.executor.exec_capture(
            f"cd {shell_quote(parent)} && pwd -P", cwd=cwd
        )
        resolved_parent = out.strip().splitlines()[-1] if out.strip() else ""
        if status != 0 or not resolved_parent.startswith("/"):
            raise ProbeError(path, ProbeError.NO_PARENT)
        if not base:
            raise ProbeError(path, ProbeError.NOT_A_FILE)
        return posixpath.join(resolved_parent, base)

    def _exists(self, path: str) -> bool:
        return self.executor.test_path("-e", path)

    def _check_readable_file(self, path: str) -> None:
        if not self._exists(path):
            raise ProbeError(path, ProbeError.NOT_FOUND)
        if not self.executor.test_path("-f", path):
            raise ProbeError(path, ProbeError.NOT_A_FILE)
        if not self.executor.test_path("-r", path):
            raise ProbeError(path, ProbeError.NOT_READABLE)

    def _check_creatable(self, path: str) -> None:
        parent = posixpath.dirname(path) or "/"
        if not self.executor.test_path("-d", parent):
            raise ProbeError(path, ProbeError.NO_PARENT)
        if not self.executor.test_path("-w", parent):
            raise ProbeError(path, ProbeError.PARENT_NOT_WRITABLE)

    def _editor_argv(self) -> list[str]:
        return find_editor(self.editor_command, self.editor_candidates, self.which)

    def _new_scratch(self, remote_path: str) -> Path:
        self.scratch_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        suffix = "-" + (posixpath.basename(remote_path) or "file")
        fd, name = tempfile.mkstemp(prefix="sitesh-", suffix=suffix, dir=self.scratch_dir)
        os.close(fd)
        return Path(name)

    def _run_editor(self, argv: list[str], editor_args: Sequence[str], scratch: Path) -> int:
        return self.launch([*argv, *editor_args, str(scratch)])

    # ----------------------------------------------------------------
    # Operations
    # ----------------------------------------------------------------

    def view(self, path: str, cwd: str, editor_args: Sequence[str] = ()) -> None:
        """Open a read-only local copy of a remote file.

        Nothing is ever uploaded, even if the local copy was modified.

        Raises:
            ProbeError, NoEditorError, TransferError
        """
        try:
            remote = self.resolve(path, cwd)
        except ProbeError as e:
            if e.reason != ProbeError.NO_PARENT:
                raise
            raise ProbeError(path, ProbeError.NOT_FOUND) from e
        self._check_readable_file(remote)
        editor = self._editor_argv()

        scratch = self._new_scratch(remote)
        try:
            self.transport.copy_file(str(scratch), remote, "download")
            try:
                scratch.chmod(0o400)
            except OSError as e:
                # Read-only mode is a hint to the editor; view still works.
                lgr.debug("could not mark %s read-only: %s", scratch, e)
            status = self._run_editor(editor, editor_args, scratch)
            if status != 0:
                self.write(f"editor exited with status {status}\n")
        finally:
            self._discard(scratch)

    def edit(self, path: str, cwd: str, editor_args: Sequence[str] = ()) -> bool:
        """Edit a remote file, creating it if its parent allows.

        Returns:
            True if the file was uploaded, False otherwise

        Raises:
            ProbeError, NoEditorError, TransferError
        """
        remote = self.resolve(path, cwd)
        exists = self._exists(remote)
        if exists:
            self._check_readable_file(remote)
            if not self.executor.test_path("-w", remote):
                raise ProbeError(remote, ProbeError.NOT_WRITABLE)
        else:
            self._check_creatable(remote)
        editor = self._editor_argv()

        scratch = self._new_scratch(remote)
        try:
            if exists:
                self.transport.copy_file(str(scratch), remote, "download")
            before = file_checksum(scratch)

            status = self._run_editor(editor, editor_args, scratch)
            if status != 0:
                self.write(
                    f"editor exited with status {status}; not uploading {remote}\n"
                )
                return False

            if file_checksum(scratch) == before:
                self.write(f"no changes to {remote}\n")
                return False

            try:
                self.transport.copy_file(str(scratch), remote, "upload")
            except TransferError as e:
                kept = self._keep_copy(scratch, remote)
                raise TransferError(f"{e} (your edits were saved to {kept})") from e
            except KeyboardInterrupt as e:
                kept = self._keep_copy(scratch, remote)
                raise TransferError(
                    f"upload of {remote} interrupted (your edits were saved to {kept})"
                ) from e

            self.write(f"saved {remote}\n")
            return True
        finally:
            self._discard(scratch)

    # ----------------------------------------------------------------
    # Cleanup
    # ----------------------------------------------------------------

    def _keep_copy(self, scratch: Path, remote: str) -> Path:
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        dest = self.recovery_dir() / f"{stamp}-{posixpath.basename(remote)}"
        shutil.copyfile(scratch, dest)
        return dest

    def _discard(self, scratch: Path) -> None:
        try:
            scratch.unlink()
        except FileNotFoundError:
            pass
