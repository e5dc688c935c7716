# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Site registry lookup.

The registry is a local text file with one ``name,id`` pair per line.
A ``site.env`` argument is resolved against it into a ``SiteTarget``
carrying everything needed to reach the environment over SSH.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from . import config as cfg_module
from .config import YAMLConfig
from .exceptions import StartupError


@dataclass(frozen=True)
class SiteTarget:
    site_name: str
    site_id: str
    env_id: str
    remote_user: str
    remote_host: str
    port: int

    @property
    def label(self) -> str:
        return f"{self.site_name}.{self.env_id}"

    @property
    def destination(self) -> str:
        return f"{self.remote_user}@{self.remote_host}"


def parse_target(target: str) -> tuple[str, str]:
    """Split ``site.env`` on its last dot.

    Raises:
        StartupError: if either part is missing
    """
    site, sep, env = target.strip().rpartition(".")
    if not sep or not site or not env:
        raise StartupError(
            f"malformed target {target!r} (expected <site>.<env>)"
        )
    return site, env


def load_registry(path: Path) -> dict[str, str]:
    """Read ``name,id`` lines into a mapping.

    Blank lines and ``#`` comments are skipped, as are lines without a
    comma. The first entry for a name wins.
    """
    if not path.is_file():
        raise StartupError(f"site registry not found: {path}")

    sites: dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        name, sep, site_id = line.partition(",")
        name, site_id = name.strip(), site_id.strip()
        if not sep or not name or not site_id:
            continue
        sites.setdefault(name, site_id)
    return sites


def lookup_site(
    target: str, config: YAMLConfig, registry: Path | None = None
) -> SiteTarget:
    """Resolve ``site.env`` to a SiteTarget using the registry and config."""
    site, env = parse_target(target)
    path = registry or cfg_module.registry_path()
    sites = load_registry(path)

    site_id = sites.get(site)
    if site_id is None:
        raise StartupError(f"unknown site {site!r} (not listed in {path})")

    remote = config.remote
    fields = {"site": site, "site_id": site_id, "env": env}
    try:
        user = str(remote.get("user_template", "{env}.{site_id}")).format(
            **fields
        )
        host = str(remote.get("host_template", "{site}")).format(**fields)
        port = int(remote.get("port", 22))
    except (KeyError, ValueError) as e:
        raise StartupError(f"invalid remote configuration: {e}") from e

    return SiteTarget(
        site_name=site,
        site_id=site_id,
        env_id=env,
        remote_user=user,
        remote_host=host,
        port=port,
    )
