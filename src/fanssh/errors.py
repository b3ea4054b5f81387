"""Exception types for fanssh."""

from __future__ import annotations


class FansshError(Exception):
    """Base class for fatal errors; the run aborts before or during fan-out."""


class ConfigError(FansshError):
    """Malformed groups file or inconsistent settings."""


class MalformedRange(FansshError):
    """A host-spec token or range sub-expression could not be parsed."""


class InvalidSubset(FansshError):
    """A group reference asked for a subset other than ALL or UP."""


class EmptyResolution(FansshError):
    """The host spec resolved to no hosts at all."""


class SpawnFailure(FansshError):
    """A child process could not be created."""


class FenceExceeded(FansshError):
    """Too many hosts were handed to the liveness probe."""
