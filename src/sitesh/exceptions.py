# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""Error types raised by sitesh components."""

from __future__ import annotations


class SiteShellError(Exception):
    """Base class for all errors reported to the user."""


class StartupError(SiteShellError):
    """Fatal before a session exists (registry, target, first connect)."""


class TransportError(SiteShellError):
    """The SSH connection could not be established."""


class TransferError(SiteShellError):
    """A file copy to or from the remote side failed."""


class ProbeError(SiteShellError):
    """A remote existence/permission check failed.

    ``reason`` is one of the short reason strings below so callers can
    tell the cases apart without parsing the message.
    """

    NOT_FOUND = "not found"
    NOT_A_FILE = "not a regular file"
    NOT_READABLE = "not readable"
    NOT_WRITABLE = "not writable"
    NO_PARENT = "parent directory does not exist"
    PARENT_NOT_WRITABLE = "parent directory not writable"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class NoEditorError(SiteShellError):
    """No usable local editor was found."""
