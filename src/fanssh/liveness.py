"""Reachability probing used to narrow a group to hosts that answer."""

from __future__ import annotations

from typing import Sequence

from loguru import logger

from .errors import FenceExceeded, SpawnFailure
from .spawner import DISCARD, ProcessSpawner

# Hard cap on concurrent probes per call.
PROBE_FENCE = 32

DEFAULT_PROBE = ("ping", "-c", "1", "-W", "1", "{}")


def probe_argv(host: str, probe_command: Sequence[str], placeholder: str = "{}") -> list[str]:
    return [arg.replace(placeholder, host) for arg in probe_command]


def filter_reachable(
    hosts: Sequence[str],
    probe_command: Sequence[str] = DEFAULT_PROBE,
    placeholder: str = "{}",
    spawner: ProcessSpawner | None = None,
) -> list[str]:
    """Return the hosts whose probe exits cleanly, keeping their order."""
    hosts = list(hosts)
    if len(hosts) > PROBE_FENCE:
        raise FenceExceeded(
            f"Refusing to probe {len(hosts)} hosts at once (limit {PROBE_FENCE})"
        )
    spawner = spawner or ProcessSpawner()

    handles = []
    try:
        for host in hosts:
            handles.append(spawner.spawn(probe_argv(host, probe_command, placeholder), DISCARD))
    except SpawnFailure:
        spawner.abort(handles)
        raise

    pending = list(handles)
    while pending:
        handle = spawner.wait_any(pending)
        pending.remove(handle)

    alive = []
    for host, handle in zip(hosts, handles):
        if handle.status.ok:
            alive.append(host)
        else:
            logger.debug("Probe for {} failed (status {})", host, handle.status.raw)
    return alive
