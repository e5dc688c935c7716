# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
OpenSSH-backed transport for sitesh.

Every remote command is a separate ``ssh`` invocation. Connection setup
is amortized with OpenSSH multiplexing (ControlMaster/ControlPersist):
the first invocation starts a master process and later invocations
attach to its socket.

This module provides:
- open(): connectivity probe that also starts the master
- run_stream(): stream stdout/stderr lines in real time
- run(): buffered execution
- copy_file(): ``cat`` through ssh in either direction over the same master
- close(): ``ssh -O exit``
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .config import YAMLConfig
from .exceptions import TransferError, TransportError
from .registry import SiteTarget
from .utils import shell_quote

lgr = logging.getLogger("sitesh.transport")

# ssh reports its own failures (as opposed to the remote command's) as 255.
CONNECTION_LOST_STATUS = 255

DIRECTIONS = ("download", "upload")


@dataclass(frozen=True)
class StreamResult:
    exit_code: int
    stdout: str
    stderr: str

    @property
    def connection_lost(self) -> bool:
        return self.exit_code == CONNECTION_LOST_STATUS


class SSHTransport:
    """Transport protocol implementation on top of the ssh binary."""

    def __init__(
        self,
        target: SiteTarget,
        control_dir: Path,
        config: YAMLConfig | None = None,
    ):
        """Initialize transport for one endpoint.

        Args:
            target: resolved site/environment endpoint
            control_dir: private directory that holds the control socket
            config: merged configuration (``ssh`` section is used)
        """
        ssh_cfg = config.ssh if config is not None else {}
        self.target = target
        self.control_path = Path(control_dir) / "cm-%C"
        self.ssh_binary = str(ssh_cfg.get("ssh_binary", "ssh"))
        self.connect_timeout = int(ssh_cfg.get("connect_timeout", 15))
        self.control_persist = int(ssh_cfg.get("control_persist", 600))
        self.extra_options = [str(o) for o in ssh_cfg.get("options", []) or []]
        self._opened = False

    # ----------------------------------------------------------------
    # argv construction
    # ----------------------------------------------------------------

    def _common_options(self) -> list[str]:
        opts = [
            "-o", "ControlMaster=auto",
            "-o", f"ControlPath={self.control_path}",
            "-o", f"ControlPersist={self.control_persist}",
            "-o", f"ConnectTimeout={self.connect_timeout}",
            "-o", "BatchMode=yes",
        ]
        for option in self.extra_options:
            opts.extend(["-o", option])
        return opts

    def ssh_argv(self, script: str | None = None, *control: str) -> list[str]:
        """Build an ssh argv running ``script`` or a ``-O`` control command."""
        argv = [self.ssh_binary, "-p", str(self.target.port)]
        argv.extend(self._common_options())
        if control:
            argv.extend(control)
        argv.extend(["-T", self.target.destination])
        if script is not None:
            argv.append(script)
        return argv

    # ----------------------------------------------------------------
    # Connection lifecycle
    # ----------------------------------------------------------------

    def _master_alive(self) -> bool:
        result = subprocess.run(
            self.ssh_argv(None, "-O", "check"),
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
        )
        return result.returncode == 0

    def open(self) -> None:
        """Attach to a live master or start one with a ``true`` probe.

        Raises:
            TransportError: host unreachable, auth failure or timeout
        """
        try:
            if self._master_alive():
                lgr.debug("reusing control master for %s", self.target.destination)
                self._opened = True
                return

            lgr.debug("starting control master for %s", self.target.destination)
            result = subprocess.run(
                self.ssh_argv("true"),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise TransportError(f"cannot run {self.ssh_binary}: {e}") from e

        if result.returncode != 0:
            detail = result.stderr.strip() or f"ssh exited {result.returncode}"
            raise TransportError(
                f"cannot connect to {self.target.destination}: {detail}"
            )
        self._opened = True

    def close(self) -> None:
        """Stop the control master; repeated calls are no-ops."""
        if not self._opened:
            return
        self._opened = False
        try:
            subprocess.run(
                self.ssh_argv(None, "-O", "exit"),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            lgr.debug("control master shutdown failed: %s", e)

    # ----------------------------------------------------------------
    # Command execution
    # ----------------------------------------------------------------

    def run(self, script: str) -> tuple[int, str, str]:
        """Run a remote script and return buffered results.

        Returns:
            (exit_code, stdout, stderr)
        """
        result = self.run_stream(script)
        return result.exit_code, result.stdout, result.stderr

    def run_stream(
        self,
        script: str,
        on_stdout: Callable[[str], None] | None = None,
        on_stderr: Callable[[str], None] | None = None,
    ) -> StreamResult:
        """Run a remote script and stream output line-by-line in real time.

        There is no timeout once the command is running. A local
        interrupt stops the ssh client and is re-raised to the caller.

        Args:
            script: shell text executed by the remote login shell
            on_stdout: called with each stdout line (including newline
                if present)
            on_stderr: called with each stderr line

        Returns:
            StreamResult; a stream is captured into it only when no
            callback was given for that stream
        """
        argv = self.ssh_argv(script)
        lgr.debug("ssh run: %r", script)
        start_ts = time.time()

        cap_out: list[str] = []
        cap_err: list[str] = []

        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            msg = f"Error executing {self.ssh_binary}: {e}\n"
            if on_stderr:
                on_stderr(msg)
            return StreamResult(
                exit_code=CONNECTION_LOST_STATUS, stdout="", stderr=msg
            )

        assert proc.stdout is not None
        assert proc.stderr is not None

        def _reader(pipe, sink: Callable[[str], None]) -> None:
            try:
                for line in iter(pipe.readline, ""):
                    sink(line)
            finally:
                pipe.close()

        t_out = threading.Thread(
            target=_reader,
            args=(proc.stdout, on_stdout or cap_out.append),
            daemon=True,
        )
        t_err = threading.Thread(
            target=_reader,
            args=(proc.stderr, on_stderr or cap_err.append),
            daemon=True,
        )
        t_out.start()
        t_err.start()

        try:
            while proc.poll() is None:
                time.sleep(0.03)
            # Drain what the readers still hold after exit.
            t_out.join()
            t_err.join()
        except KeyboardInterrupt:
            lgr.debug("interrupted; stopping local ssh client")
            proc.terminate()
            try:
                proc.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
            raise

        lgr.debug(
            "ssh exit %s after %sms",
            proc.returncode,
            int((time.time() - start_ts) * 1000),
        )
        return StreamResult(
            exit_code=proc.returncode,
            stdout="".join(cap_out),
            stderr="".join(cap_err),
        )

    # ----------------------------------------------------------------
    # File transfer
    # ----------------------------------------------------------------

    def copy_file(self, local_path: str, remote_path: str, direction: str) -> None:
        """Copy one file over the shared connection.

        The remote side is a quoted ``cat``, so any file name is taken
        literally. Uploading into an existing file keeps its mode; a new
        file gets the remote umask.

        Args:
            local_path: path on this machine
            remote_path: absolute path on the remote side
            direction: "download" (remote -> local) or "upload"

        Raises:
            TransferError: remote path inaccessible or connection dropped
        """
        if direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}")

        quoted = shell_quote(remote_path)
        lgr.debug("%s %s <-> %s", direction, local_path, remote_path)
        try:
            if direction == "download":
                with open(local_path, "wb") as local:
                    result = subprocess.run(
                        self.ssh_argv(f"cat -- {quoted}"),
                        stdin=subprocess.DEVNULL,
                        stdout=local,
                        stderr=subprocess.PIPE,
                    )
            else:
                with open(local_path, "rb") as local:
                    result = subprocess.run(
                        self.ssh_argv(f"cat > {quoted}"),
                        stdin=local,
                        stdout=subprocess.DEVNULL,
                        stderr=subprocess.PIPE,
                    )
        except OSError as e:
            raise TransferError(f"{direction} of {remote_path} failed: {e}") from e

        if result.returncode != 0:
            detail = (
                result.stderr.decode("utf-8", errors="replace").strip()
                or f"ssh exited {result.returncode}"
            )
            raise TransferError(f"{direction} of {remote_path} failed: {detail}")
