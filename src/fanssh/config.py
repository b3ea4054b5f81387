"""Configuration loader for fanssh."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError

EXIT_CODE_MODES = ("never", "auto", "always")
ORDERS = ("host", "completion")

# Environment variables and the settings they feed.
ENV_VARS = {
    "FANSSH_SSH": "ssh_binary",
    "FANSSH_USER": "user",
    "FANSSH_TIMEOUT": "timeout",
    "FANSSH_GROUPS": "groups_file",
}


@dataclass
class Settings:
    """Everything that shapes a run, after all layers are merged."""

    ssh_binary: str = "ssh"
    user: str | None = None
    strict_host_keys: bool = True
    timeout: float = 0
    output_dir: Path | None = None
    dedup: bool = True
    preserve_order: bool = False
    random_count: int | None = None
    no_wait: bool = False
    order: str | None = None
    show_exit_code: str = "auto"
    show_elapsed: bool = False
    separators: bool = False
    color: bool = False
    groups_file: Path | None = None
    placeholder: str = "{}"
    probe_command: list[str] = field(
        default_factory=lambda: ["ping", "-c", "1", "-W", "1", "{}"]
    )

    @property
    def effective_order(self) -> str:
        if self.order:
            return self.order
        return "completion" if self.no_wait else "host"

    def validate(self) -> Settings:
        """Check cross-field constraints; returns self for chaining."""
        if self.show_exit_code not in EXIT_CODE_MODES:
            raise ConfigError(
                f"show_exit_code must be one of {', '.join(EXIT_CODE_MODES)}, "
                f"got {self.show_exit_code!r}"
            )
        if self.order is not None and self.order not in ORDERS:
            raise ConfigError(f"order must be one of {', '.join(ORDERS)}, got {self.order!r}")
        if self.no_wait and (self.order == "host" or self.preserve_order):
            raise ConfigError("no-wait output cannot be combined with host or input ordering")
        if self.timeout < 0:
            raise ConfigError(f"timeout must not be negative, got {self.timeout}")
        if self.random_count is not None:
            if self.random_count <= 0:
                raise ConfigError(f"random host count must be positive, got {self.random_count}")
            self.dedup = True
        if not self.probe_command:
            raise ConfigError("probe_command must not be empty")
        return self


_FIELD_NAMES = {f.name for f in fields(Settings)}


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw layer value to the type the field expects."""
    try:
        if name in ("output_dir", "groups_file"):
            return Path(value).expanduser()
        if name == "timeout":
            return float(value)
        if name == "random_count":
            return int(value)
        if name == "probe_command":
            return value.split() if isinstance(value, str) else [str(arg) for arg in value]
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e
    return value


def merge_settings(*layers: Mapping[str, Any]) -> Settings:
    """Apply layers over the defaults, later layers winning.

    ``None`` values never override, so an unset flag leaves the value from
    the environment or config file in place.
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        unknown = set(layer) - _FIELD_NAMES
        if unknown:
            raise ConfigError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        for name, value in layer.items():
            if value is not None:
                merged[name] = _coerce(name, value)
    return Settings(**merged).validate()


def settings_from_env(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Read the FANSSH_* environment variables."""
    environ = os.environ if environ is None else environ
    return {
        name: environ[var] for var, name in ENV_VARS.items() if environ.get(var)
    }


def load_config(config_path: str | Path) -> dict[str, Any]:
    """Load settings from a YAML file."""
    config_path = Path(config_path).expanduser().resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"{config_path}: invalid YAML: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path}: expected a mapping at the top level")
    # YAML files use dashes like the command-line flags do.
    return {str(key).replace("-", "_"): value for key, value in raw.items()}
