"""Shared pytest fixtures."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from fanssh.config import Settings

# Stands in for ssh: runs the last argument (the remote command) locally.
FAKE_SSH = """#!/bin/sh
for arg; do last=$arg; done
exec /bin/sh -c "$last"
"""


@pytest.fixture
def fake_ssh(tmp_path: Path) -> Path:
    script = tmp_path / "fake-ssh"
    script.write_text(FAKE_SSH)
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script


@pytest.fixture
def settings(fake_ssh: Path) -> Settings:
    return Settings(ssh_binary=str(fake_ssh))


@pytest.fixture
def clean_env(monkeypatch):
    for var in ("FANSSH_SSH", "FANSSH_USER", "FANSSH_TIMEOUT", "FANSSH_GROUPS"):
        monkeypatch.delenv(var, raising=False)
    return os.environ


def probe_failing_for(*down: str) -> list[str]:
    """A probe command that fails only for the given hosts."""
    test = " && ".join(f'[ "$0" != {host} ]' for host in down) or "true"
    return ["/bin/sh", "-c", test, "{}"]
