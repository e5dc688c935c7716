# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
sitesh core package.

Shell-like sessions (tracked working directory, exit status, remote file
editing) over an SSH login that runs one command per invocation.
"""

__version__ = "0.1.0"

from .session import Session as Session  # noqa: E402,F401 (re-export)
