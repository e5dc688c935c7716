# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
sitesh CLI entry point and REPL loop.

Design:
- CLI owns process startup: argument parsing, registry lookup, scratch
  directory, transport lifetime.
- Session is the engine (executor + editor + config injected).
- UI is a terminal-friendly PromptSession (keeps scrollback + history).

Invocation modes:
- ``sitesh site.env``                 interactive (stdin is a terminal)
- ``sitesh site.env cmd args...``     run one command, exit with its status
- ``echo cmd | sitesh site.env``      run stdin as one command
"""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import signal
import sys
import tempfile
from collections.abc import Callable
from contextlib import ExitStack
from pathlib import Path

import yaml

from . import __version__
from . import config
from .config import tag
from .editor import DEFAULT_EDITOR_CANDIDATES, RemoteFileEditor
from .exceptions import StartupError, TransportError
from .executor import CommandExecutor
from .interfaces import UI
from .registry import SiteTarget, lookup_site
from .session import DEFAULT_INITIAL_DIRECTORY, Session, write_crash_log
from .transport import SSHTransport
from .ui import PromptToolkitUI
from .utils import is_shell_input_incomplete

lgr = logging.getLogger("sitesh.cli")

CONTINUATION_PROMPT = (
    config.ANSI_COLORS["cyan"] + "..." +
    config.ANSI_COLORS["pink"] + ">" +
    config.ANSI_COLORS["reset"]
)


def _read_continuation(
    line: str,
    read: Callable[[str], str],
    write: Callable[[str], None],
) -> str:
    """Keep reading lines while quotes or a trailing backslash are open.

    Returns "" if the user aborts.
    """
    while is_shell_input_incomplete(line):
        try:
            continuation = read(CONTINUATION_PROMPT)
        except (KeyboardInterrupt, EOFError):
            write("\n[Cancelled]\n")
            return ""
        line = line + "\n" + continuation
    return line


def run_repl(
    session: Session,
    ui: UI | None = None,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
) -> None:
    """Run the interactive loop until exit, end-of-input or fatal loss."""

    def read(prompt: str) -> str:
        if ui is not None:
            return ui.read(prompt)
        return input_fn(prompt + " ")

    def write(text: str) -> None:
        if ui is not None:
            ui.write(text)
        else:
            output_fn(text.rstrip("\n"))

    while session.running:
        try:
            line = read(session.prompt()) or ""
        except KeyboardInterrupt:
            # Drop the pending line only.
            continue
        except EOFError:
            write("\n")
            break

        if not line.strip():
            continue

        line = _read_continuation(line, read, write)
        if not line.strip():
            continue

        try:
            response = session.handle_command(line)
            if response:
                write(response if response.endswith("\n") else response + "\n")
        except Exception as e:
            # Unhandled exception - write crash log, keep the session
            write_crash_log(
                e, target=session.target.label, raw_command=line, cwd=session.cwd
            )
            write(
                tag("ERR", f"Unhandled exception: {type(e).__name__}: {e}")
                + "\n"
            )


# -----------------------
# Startup
# -----------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitesh",
        description="Shell-like sessions on a hosted site environment.",
    )
    parser.add_argument("target", help="site and environment, e.g. acme.dev")
    parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        help="run this command once instead of starting a session",
    )
    parser.add_argument(
        "--debug", action="store_true", help="log ssh activity to stderr"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def _raise_system_exit(signum, _frame) -> None:
    # Unwinds through the ExitStack so the connection and scratch dir go.
    raise SystemExit(128 + signum)


def _fail(message: str) -> int:
    sys.stderr.write(f"sitesh: {message}\n")
    return 1


def _batch_command(args: argparse.Namespace) -> str | None:
    """The one-shot command for batch modes, or None for interactive."""
    if args.command:
        return " ".join(args.command)
    if not sys.stdin.isatty():
        return sys.stdin.read()
    return None


def run_interactive(
    target: SiteTarget,
    cfg: config.YAMLConfig,
    executor: CommandExecutor,
    transport: SSHTransport,
    scratch: Path,
) -> int:
    editor_cfg = cfg.editor
    editor = RemoteFileEditor(
        executor,
        transport,
        scratch,
        editor_command=editor_cfg.get("command"),
        editor_candidates=editor_cfg.get("candidates") or DEFAULT_EDITOR_CANDIDATES,
    )
    session = Session.from_config(target, executor, editor, cfg)
    start_output = session.start()

    # If user explicitly disables prompt_toolkit UI:
    if os.environ.get("SITESH_LEGACY_UI") == "1":
        editor.write = sys.stdout.write
        if start_output:
            print(start_output)
        run_repl(session)
        return session.last_exit_status

    ui = PromptToolkitUI(session, config.history_path(target.label))

    # Route streaming output through UI
    session.output_fn = ui.write
    session.error_fn = ui.write
    session.before_tty = ui.prepare_tty_handoff
    session.after_tty = ui.restore_after_tty
    editor.write = ui.write

    if start_output:
        ui.write(start_output + "\n")

    run_repl(session, ui=ui)
    return session.last_exit_status


def main(argv: list[str] | None = None) -> int:
    """Main entry point for sitesh; returns the process exit status."""
    args = build_parser().parse_args(argv)
    _configure_logging(args.debug)

    try:
        cfg = config.load_system_config()
        target = lookup_site(args.target, cfg)
    except StartupError as e:
        return _fail(str(e))
    except (OSError, ValueError, yaml.YAMLError) as e:
        return _fail(f"cannot load configuration: {e}")

    signal.signal(signal.SIGTERM, _raise_system_exit)
    signal.signal(signal.SIGHUP, _raise_system_exit)

    try:
        with ExitStack() as stack:
            # mkdtemp creates the directory with mode 0700.
            scratch = Path(tempfile.mkdtemp(prefix="sitesh-"))
            stack.callback(shutil.rmtree, scratch, ignore_errors=True)

            transport = SSHTransport(target, scratch, cfg)
            stack.callback(transport.close)
            try:
                transport.open()
            except TransportError as e:
                return _fail(str(e))

            executor = CommandExecutor.from_config(transport, cfg)
            executor.prepare_remote_home()

            command = _batch_command(args)
            if command is not None:
                if not command.strip():
                    return 0
                return executor.exec_plain(
                    command,
                    cwd=str(
                        cfg.remote.get("initial_directory", DEFAULT_INITIAL_DIRECTORY)
                    ),
                    on_stdout=sys.stdout.write,
                    on_stderr=sys.stderr.write,
                )

            return run_interactive(target, cfg, executor, transport, scratch)
    except KeyboardInterrupt:
        sys.stderr.write("\n")
        return 130
