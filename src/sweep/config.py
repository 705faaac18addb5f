"""Configuration for sweep.

Settings are resolved from, lowest to highest precedence:

1. Built-in defaults
2. A JSON config file (``$SWEEP_CONFIG`` or ``~/.sweep/config.json``)
3. Environment variables (``SWEEP_INVENTORY``, ``SWEEP_HOST_ID``,
   ``SWEEP_HOST_TAGS``, ``SWEEP_PARALLEL``, ``SWEEP_WORKERS``)
4. Command line options

The inventory and host selection variables are also what external
subcommands receive, so a ``sweep-<name>`` program can resolve the same
hosts as the command that launched it.
"""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from .exceptions import InvalidConfig
from .ssh import SSHConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".sweep" / "config.json"
CONFIG_PATH_VARIABLE = "SWEEP_CONFIG"

ENV_INVENTORY = "SWEEP_INVENTORY"
ENV_HOST_ID = "SWEEP_HOST_ID"
ENV_HOST_TAGS = "SWEEP_HOST_TAGS"
ENV_PARALLEL = "SWEEP_PARALLEL"
ENV_WORKERS = "SWEEP_WORKERS"

OUTPUT_FORMATS = ("json", "text")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class SweepConfig:
    """Resolved settings for one invocation.

    Attributes:
        inventory: Path to the inventory file or program
        host_id: Identifier of a single host to target
        host_tags: Tag query selecting the hosts to target
        parallel: Run hosts concurrently instead of one at a time
        workers: Thread pool size for parallel runs (default: CPU count)
        format: Report format, "json" or "text"
        connect_timeout: SSH connection timeout in seconds
        known_hosts: known_hosts file (None for ~/.ssh/known_hosts)
        strict_host_keys: Whether to verify host keys
    """

    inventory: str | None = None
    host_id: str | None = None
    host_tags: str | None = None
    parallel: bool = False
    workers: int | None = None
    format: str = "json"
    connect_timeout: float = 30.0
    known_hosts: str | None = None
    strict_host_keys: bool = True

    def __post_init__(self) -> None:
        if self.format not in OUTPUT_FORMATS:
            raise InvalidConfig(
                f"Invalid output format: {self.format!r}. Valid formats: {', '.join(OUTPUT_FORMATS)}"
            )
        if self.workers is not None and self.workers < 1:
            raise InvalidConfig(f"workers must be at least 1, got {self.workers}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization, skipping unset values."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SweepConfig":
        """Create from dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidConfig(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        try:
            return cls(**data)
        except TypeError as e:
            raise InvalidConfig(f"Invalid configuration: {e}") from e

    def with_overrides(self, **overrides: Any) -> "SweepConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_environment(self) -> dict[str, str]:
        """Variables exported to external subcommands."""
        return {
            ENV_INVENTORY: self.inventory or "",
            ENV_HOST_ID: self.host_id or "",
            ENV_HOST_TAGS: self.host_tags or "",
        }

    def ssh_config(self) -> SSHConfig:
        """SSH connection settings for the transport."""
        if not self.strict_host_keys:
            known_hosts = None
        elif self.known_hosts:
            known_hosts = self.known_hosts
        else:
            known_hosts = ()
        return SSHConfig(connect_timeout=self.connect_timeout, known_hosts=known_hosts)


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise InvalidConfig(f"{name} must be a boolean, got {value!r}")


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise InvalidConfig(f"{name} must be an integer, got {value!r}") from None


def config_from_environment(environ: Mapping[str, str]) -> dict[str, Any]:
    """Extract configuration overrides from environment variables."""
    overrides: dict[str, Any] = {}

    for variable, key in ((ENV_INVENTORY, "inventory"), (ENV_HOST_ID, "host_id"), (ENV_HOST_TAGS, "host_tags")):
        if environ.get(variable):
            overrides[key] = environ[variable]
    if ENV_PARALLEL in environ:
        overrides["parallel"] = _parse_bool(ENV_PARALLEL, environ[ENV_PARALLEL])
    if environ.get(ENV_WORKERS):
        overrides["workers"] = _parse_int(ENV_WORKERS, environ[ENV_WORKERS])

    return overrides


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> SweepConfig:
    """Resolve configuration from the config file and the environment.

    Args:
        path: Config file path (default: $SWEEP_CONFIG or ~/.sweep/config.json)
        environ: Environment mapping (default: os.environ)

    Returns:
        SweepConfig with file and environment settings applied

    Raises:
        InvalidConfig: If the file is not valid JSON or a value is invalid
    """
    environ = os.environ if environ is None else environ

    if path is None:
        path = environ.get(CONFIG_PATH_VARIABLE) or DEFAULT_CONFIG_PATH
    config_path = Path(path)

    config = SweepConfig()
    if config_path.is_file():
        logger.debug(f"Loading configuration from {config_path}")
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError as e:
            raise InvalidConfig(f"Invalid JSON in config file {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise InvalidConfig(f"Config file {config_path} must contain a JSON object")
        config = SweepConfig.from_dict(data)

    return config.with_overrides(**config_from_environment(environ))
