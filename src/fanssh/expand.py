"""Host-spec tokenizing, range expansion and natural host ordering."""

from __future__ import annotations

import re

from .errors import MalformedRange

# Commas separate tokens only when the next character is not a digit, so
# "foo1,3,5-7i,bar2" stays two tokens.
_TOKEN_SPLIT = re.compile(r",(?=\D)")
_TOKEN = re.compile(r"^(?P<prefix>[^\d,]*)(?P<ranges>\d(?:[\d,\-]*\d)?)?(?P<suffix>\D.*)?$")
_DIGITS = re.compile(r"(\d+)")


def split_hostspec(spec: str) -> list[str]:
    """Split a host spec into tokens, dropping empty pieces."""
    pieces = (piece.strip(" ,") for piece in _TOKEN_SPLIT.split(spec))
    return [piece for piece in pieces if piece]


def parse_token(token: str) -> tuple[str, str, str]:
    """Break a token into ``(prefix, ranges, suffix)``."""
    match = _TOKEN.match(token)
    if match is None:
        raise MalformedRange(f"Cannot parse host token: {token!r}")
    return match.group("prefix"), match.group("ranges") or "", match.group("suffix") or ""


def _parse_range(part: str) -> tuple[int, int, int]:
    """Return ``(first, last, width)`` for a single ``N`` or ``N-M`` part."""
    if not any(ch.isdigit() for ch in part):
        raise MalformedRange(f"Range has no digits: {part!r}")

    first_text, _, last_text = part.partition("-")
    if not last_text:
        last_text = first_text
    if not first_text.isdigit() or not last_text.isdigit():
        raise MalformedRange(f"Invalid range: {part!r}")

    width = len(first_text)
    # "10-2" means 10-12: a short upper bound borrows leading digits.
    if len(last_text) < width:
        last_text = first_text[: width - len(last_text)] + last_text

    first, last = int(first_text), int(last_text)
    if first > last:
        raise MalformedRange(f"Range runs backwards: {part!r}")
    return first, last, width


def expand(prefix: str, range_expr: str, suffix: str = "") -> list[str]:
    """Expand ``prefix[ranges]suffix`` into hostnames, in range order.

    ``range_expr`` is a comma-separated list of ``N`` or ``N-M`` parts. Each
    generated number keeps the digit width of the part's first bound, so
    ``expand("n", "08-10")`` gives ``n08, n09, n10``. An empty ``range_expr``
    yields ``prefix`` alone.
    """
    if not range_expr:
        return [prefix]

    hosts = []
    for part in range_expr.split(","):
        first, last, width = _parse_range(part)
        for number in range(first, last + 1):
            hosts.append(f"{prefix}{number:0{width}d}{suffix}")
    return hosts


def expand_token(token: str) -> list[str]:
    """Parse and expand a single host-spec token."""
    return expand(*parse_token(token))


def natural_key(hostname: str) -> list[str | int]:
    """Sort key comparing text runs lexically and digit runs numerically."""
    parts = _DIGITS.split(hostname)
    # re.split with a capture group puts digit runs at odd indexes.
    return [int(part) if i % 2 else part for i, part in enumerate(parts)]


def natural_sort(hostnames: list[str]) -> list[str]:
    """Return hostnames in natural host order (``foo2`` before ``foo10``)."""
    return sorted(hostnames, key=natural_key)
