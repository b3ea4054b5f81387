"""fanssh: Run one command on many hosts over ssh and collect the results."""

from .config import Settings, load_config, merge_settings, settings_from_env
from .errors import (
    ConfigError,
    EmptyResolution,
    FansshError,
    FenceExceeded,
    InvalidSubset,
    MalformedRange,
    SpawnFailure,
)
from .executor import Executor, Job, JobStatus
from .groups import Group, GroupStore
from .resolver import Resolver, ResolvedHost

__all__ = [
    "Settings",
    "load_config",
    "merge_settings",
    "settings_from_env",
    "ConfigError",
    "EmptyResolution",
    "FansshError",
    "FenceExceeded",
    "InvalidSubset",
    "MalformedRange",
    "SpawnFailure",
    "Executor",
    "Job",
    "JobStatus",
    "Group",
    "GroupStore",
    "Resolver",
    "ResolvedHost",
]
