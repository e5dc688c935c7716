# tests/conftest.py
from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from sitesh.config import YAMLConfig
from sitesh.exceptions import TransferError, TransportError
from sitesh.executor import CommandExecutor
from sitesh.registry import SiteTarget
from sitesh.transport import StreamResult


class LocalTransport:
    """
    Transport double that runs every "remote" script with the local
    /bin/sh, so the real wrapper and sentinel protocol are exercised.

    Files are copied with shutil; remote paths are local paths.
    """

    def __init__(self) -> None:
        self.scripts: list[str] = []
        self.copies: list[tuple[str, str]] = []
        self.opened = 0
        self.closed = 0
        self.open_error: TransportError | None = None
        self.fail_upload = False
        self.fail_download = False

    def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.opened += 1

    def run_stream(self, script, on_stdout=None, on_stderr=None) -> StreamResult:
        self.scripts.append(script)
        proc = subprocess.run(
            ["/bin/sh", "-c", script],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
        )
        for line in proc.stdout.splitlines(keepends=True):
            if on_stdout:
                on_stdout(line)
        for line in proc.stderr.splitlines(keepends=True):
            if on_stderr:
                on_stderr(line)
        return StreamResult(
            exit_code=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
        )

    def run(self, script: str) -> tuple[int, str, str]:
        result = self.run_stream(script)
        return result.exit_code, result.stdout, result.stderr

    def copy_file(self, local_path: str, remote_path: str, direction: str) -> None:
        self.copies.append((direction, remote_path))
        if direction == "upload":
            if self.fail_upload:
                raise TransferError(f"upload of {remote_path} failed: lost connection")
            shutil.copyfile(local_path, remote_path)
        else:
            if self.fail_download:
                raise TransferError(f"download of {remote_path} failed: lost connection")
            shutil.copyfile(remote_path, local_path)

    def close(self) -> None:
        self.closed += 1

    @property
    def uploads(self) -> list[str]:
        return [remote for direction, remote in self.copies if direction == "upload"]


class InterruptingTransport(LocalTransport):
    """Raises KeyboardInterrupt on the Nth remote call, like a Ctrl-C
    reaching the local ssh client; every other call runs normally."""

    def __init__(self, interrupt_on: int):
        super().__init__()
        self.interrupt_on = interrupt_on
        self.calls = 0

    def run_stream(self, script, on_stdout=None, on_stderr=None) -> StreamResult:
        self.calls += 1
        if self.calls == self.interrupt_on:
            self.scripts.append(script)
            raise KeyboardInterrupt
        return super().run_stream(script, on_stdout, on_stderr)


class ScriptedTransport(LocalTransport):
    """Returns canned results instead of running anything."""

    def __init__(self, results: list[StreamResult], lines: list[list[str]] | None = None):
        super().__init__()
        self.results = list(results)
        self.lines = list(lines or [])

    def run_stream(self, script, on_stdout=None, on_stderr=None) -> StreamResult:
        self.scripts.append(script)
        for line in self.lines.pop(0) if self.lines else []:
            if on_stdout:
                on_stdout(line)
        return self.results.pop(0)


def stream_result(exit_code: int, stdout: str = "") -> StreamResult:
    return StreamResult(
        exit_code=exit_code,
        stdout=stdout,
        stderr="",
    )


@pytest.fixture
def local_transport() -> LocalTransport:
    return LocalTransport()


@pytest.fixture
def remote_home(tmp_path: Path) -> Path:
    return tmp_path / "remote-home"


@pytest.fixture
def executor(local_transport: LocalTransport, remote_home: Path) -> CommandExecutor:
    return CommandExecutor(
        local_transport, remote_home=str(remote_home), sentinel="__TEST_SENTINEL__"
    )


@pytest.fixture
def site_target() -> SiteTarget:
    return SiteTarget(
        site_name="acme",
        site_id="1234-abcd",
        env_id="dev",
        remote_user="dev.1234-abcd",
        remote_host="appserver.dev.1234-abcd.drush.in",
        port=2222,
    )


@pytest.fixture
def yaml_config(tmp_path: Path) -> YAMLConfig:
    return YAMLConfig(
        {
            "remote": {"initial_directory": str(tmp_path)},
            "session": {"auto_list_command": "echo LISTING"},
            "system": {"welcome": {"message": "hello"}},
            "ui": {"prompt": {"site_color": "cyan"}},
        }
    )
