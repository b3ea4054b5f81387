"""Turns a host spec into the ordered list of hosts to run on."""

from __future__ import annotations

import random
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Sequence

from loguru import logger

from .errors import EmptyResolution, InvalidSubset
from .expand import expand_token, natural_sort, split_hostspec
from .groups import GroupStore
from .liveness import filter_reachable

ReachabilityFilter = Callable[[Sequence[str]], list[str]]


@dataclass(frozen=True)
class ResolvedHost:
    """A hostname and how many times it appears in the resolved list."""

    hostname: str
    occurrences: int = 1


def count_occurrences(hosts: Sequence[str]) -> list[ResolvedHost]:
    """Collapse a host list into unique hosts with occurrence counts."""
    counts = Counter(hosts)
    seen = set()
    resolved = []
    for host in hosts:
        if host not in seen:
            seen.add(host)
            resolved.append(ResolvedHost(host, counts[host]))
    return resolved


def dedupe(hosts: Sequence[str]) -> list[str]:
    """Drop repeats, keeping the first occurrence of each host."""
    return list(dict.fromkeys(hosts))


class Resolver:
    """Resolves host specs against a group store."""

    def __init__(
        self,
        groups: GroupStore | None = None,
        dedup: bool = True,
        preserve_order: bool = False,
        random_count: int | None = None,
        reachable: ReachabilityFilter = filter_reachable,
        rng: random.Random | None = None,
    ):
        self.groups = groups or GroupStore()
        # Picking a random subset only makes sense over unique hosts.
        self.dedup = dedup or random_count is not None
        self.preserve_order = preserve_order
        self.random_count = random_count
        self.reachable = reachable
        self.rng = rng or random.Random()

    def _resolve_group(self, token: str) -> list[str]:
        name, _, subset = token[1:].partition(":")
        subset = subset.upper() or "ALL"
        if subset not in ("ALL", "UP"):
            raise InvalidSubset(f"Unknown subset {subset!r} in {token!r} (use ALL or UP)")

        group = self.groups.get(name)
        if group is None:
            logger.warning("Group {} is not defined, skipping it", name)
            return []

        hosts = group.hostnames
        if subset == "UP":
            hosts = self.reachable(hosts)
        return hosts

    def expand(self, spec: str) -> list[str]:
        """Expand every token of ``spec`` in order, without dedup or sorting."""
        hosts: list[str] = []
        for token in split_hostspec(spec):
            if token.startswith("@"):
                hosts.extend(self._resolve_group(token))
            else:
                hosts.extend(expand_token(token))
        return hosts

    def resolve(self, spec: str) -> list[str]:
        """Resolve ``spec`` to the final host list."""
        hosts = self.expand(spec)
        if self.dedup:
            hosts = dedupe(hosts)
        if self.random_count is not None and self.random_count < len(hosts):
            chosen = set(self.rng.sample(hosts, self.random_count))
            hosts = [host for host in hosts if host in chosen]
        if not self.preserve_order:
            hosts = natural_sort(hosts)
        if not hosts:
            raise EmptyResolution(f"Host spec {spec!r} matched no hosts")
        logger.debug("Resolved {!r} to {} hosts", spec, len(hosts))
        return hosts
