"""Named host groups loaded from a sectioned text file.

The file format::

    # comment
    [WEB]
    web1-3 : FRONT PROD
    web9

    [ALL]
    @WEB
    db1 : PROD

Group names are case-insensitive; hostnames are stored lowercase. An
``@NAME`` line appends every member of another group, which may be defined
anywhere in the file.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from .errors import ConfigError, MalformedRange
from .expand import expand_token

_SECTION = re.compile(r"^\[\s*(?P<name>[^\]\s]+)\s*\]$")
_MEMBER = re.compile(r"^(?P<name>@?[^\s:@]+)\s*(?::\s*(?P<attrs>.*))?$")


@dataclass(frozen=True)
class Member:
    """A host in a group, with its attribute tags."""

    hostname: str
    attrs: frozenset[str] = frozenset()


@dataclass
class Group:
    """An ordered collection of members plus a per-host attribute map."""

    name: str
    members: list[Member] = field(default_factory=list)
    attrs: dict[str, frozenset[str]] = field(default_factory=dict)

    @property
    def hostnames(self) -> list[str]:
        return [member.hostname for member in self.members]

    def extend(self, other: Group) -> None:
        """Append another group's members; local attributes win on conflict."""
        self.members.extend(other.members)
        for hostname, attrs in other.attrs.items():
            self.attrs.setdefault(hostname, attrs)


def _parse_lines(lines, source: str) -> tuple[list[str], dict[str, list[tuple[str, object]]]]:
    """First pass: collect each section's entries in file order."""
    order: list[str] = []
    entries: dict[str, list[tuple[str, object]]] = {}
    current: str | None = None

    for lineno, raw in enumerate(lines, start=1):
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue

        section = _SECTION.match(line)
        if section:
            current = section.group("name").upper()
            if current not in entries:
                order.append(current)
                entries[current] = []
            continue

        member = _MEMBER.match(line)
        if member is None:
            raise ConfigError(f"{source}:{lineno}: cannot parse line: {raw.rstrip()!r}")
        if current is None:
            raise ConfigError(f"{source}:{lineno}: member outside of any [GROUP] section")

        name = member.group("name")
        if name.startswith("@"):
            if member.group("attrs") is not None:
                raise ConfigError(f"{source}:{lineno}: attributes are not allowed on {name}")
            entries[current].append(("ref", (name[1:].upper(), lineno)))
            continue

        attrs = frozenset((member.group("attrs") or "").split())
        try:
            hostnames = expand_token(name)
        except MalformedRange as e:
            raise ConfigError(f"{source}:{lineno}: {e}") from e
        for hostname in hostnames:
            entries[current].append(("host", Member(hostname.lower(), attrs)))

    return order, entries


def parse_groups(lines, source: str = "<groups>") -> dict[str, Group]:
    """Parse group definitions, resolving ``@`` references."""
    order, entries = _parse_lines(lines, source)
    groups: dict[str, Group] = {}
    in_progress: set[str] = set()

    def build(name: str) -> Group:
        if name in groups:
            return groups[name]
        if name in in_progress:
            raise ConfigError(f"{source}: group {name} includes itself")
        in_progress.add(name)

        group = Group(name)
        for kind, value in entries[name]:
            if kind == "host":
                group.members.append(value)
                group.attrs.setdefault(value.hostname, value.attrs)
                continue
            ref, lineno = value
            if ref not in entries:
                raise ConfigError(f"{source}:{lineno}: undefined group @{ref}")
            group.extend(build(ref))

        in_progress.discard(name)
        groups[name] = group
        return group

    for name in order:
        build(name)
    # Keep file order regardless of the order references were resolved in.
    return {name: groups[name] for name in order}


class GroupStore:
    """Lazily loaded, per-run registry of host groups."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path).expanduser() if path else None
        self._groups: dict[str, Group] | None = None

    @classmethod
    def from_text(cls, text: str) -> GroupStore:
        store = cls()
        store._groups = parse_groups(text.splitlines())
        return store

    def load(self) -> dict[str, Group]:
        """Load the groups file once; later calls return the cached result."""
        if self._groups is not None:
            return self._groups

        if self.path is None or not self.path.exists():
            logger.debug("No groups file at {}, using an empty group store", self.path)
            self._groups = {}
            return self._groups

        try:
            with open(self.path, encoding="utf-8") as f:
                self._groups = parse_groups(f, source=str(self.path))
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read groups file {self.path}: {e}") from e
        logger.debug("Loaded {} groups from {}", len(self._groups), self.path)
        return self._groups

    def get(self, name: str) -> Group | None:
        return self.load().get(name.upper())

    def names(self) -> list[str]:
        return list(self.load())
