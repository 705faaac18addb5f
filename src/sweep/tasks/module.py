"""Run a module on remote hosts.

A module is an executable that reads a JSON document on its standard
input and acts on it. The document is built per host:

1. Default data is loaded from an optional data file (JSON, TOML or YAML)
2. The host variable ``module_<name>`` (``<name>`` being the module's file
   name) is deep-merged over it

The module is uploaded to ``~/.local/sweep/modules/<name>`` on each host
and executed there:

    {"host": "web01", "success": true,
     "info": {"exit_code": 0, "stdout": "...", "stderr": ""}}
"""

import copy
import json
import logging
import shlex
import tomllib
from pathlib import Path
from typing import Any, Iterator

import yaml

from ..exceptions import FileNotFound, IsADirectory, MissingInput, Other
from ..ssh import BLOCK_SIZE
from ..transport import Transport
from ..types import Host, to_json_value
from .base import RemoteTask, decode_output

logger = logging.getLogger(__name__)

REMOTE_MODULE_DIR = ".local/sweep/modules"
MODULE_FILE_MODE = 0o700


def merge(base: Any, override: Any) -> Any:
    """Deep-merge override into a copy of base.

    Objects are merged key by key; any other value in override replaces
    the value in base.

    Example:
        >>> merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}})
        {'a': {'b': 1, 'c': 3}}
    """
    if isinstance(base, dict) and isinstance(override, dict):
        merged = dict(base)
        for key, value in override.items():
            merged[key] = merge(merged[key], value) if key in merged else copy.deepcopy(value)
        return merged
    return copy.deepcopy(override)


def load_data_file(path: Path) -> Any:
    """Load a module data file, choosing the format from its suffix."""
    if not path.exists():
        raise FileNotFound(f"No such file: {path}", path=str(path))
    if path.is_dir():
        raise IsADirectory(f"Path is a directory, not a file: {path}", path=str(path))

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise Other(f"Cannot read module data file {path}: {e}", path=str(path)) from e
    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            data = tomllib.loads(content)
        elif suffix in (".yml", ".yaml"):
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)
        return to_json_value(data)
    except (tomllib.TOMLDecodeError, yaml.YAMLError, json.JSONDecodeError, TypeError) as e:
        raise Other(f"Invalid module data file {path}: {e}") from e


class ModuleTask(RemoteTask[str]):
    """Upload a module to each host and run it with per-host data.

    Attributes:
        module_path: Local path of the module executable
        data_path: Optional local path of the default data document
        module_name: File name of the module, also used for the host variable
    """

    name = "module"

    def __init__(
        self,
        module_path: str | Path,
        data_path: str | Path | None = None,
        transport: Transport | None = None,
    ) -> None:
        super().__init__(transport)
        self.module_path = Path(module_path)
        self.data_path = Path(data_path) if data_path is not None else None
        self.module_name = self.module_path.name
        if not self.module_name:
            raise MissingInput(f"Invalid module path: {module_path!r}")

    @property
    def host_var(self) -> str:
        return f"module_{self.module_name}"

    def prepare(self, host: Host) -> str:
        if not self.module_path.exists():
            raise FileNotFound(f"No such file: {self.module_path}", path=str(self.module_path))
        if self.module_path.is_dir():
            raise IsADirectory(
                f"Path is a directory, not a file: {self.module_path}", path=str(self.module_path)
            )

        override = host.get_var(self.host_var, {})

        if self.data_path is not None:
            data = merge(load_data_file(self.data_path), override)
        else:
            data = override

        logger.debug(f"{host.id}: module data {data}")
        return json.dumps(data)

    def _read_blocks(self) -> Iterator[bytes]:
        with self.module_path.open("rb") as module_file:
            while block := module_file.read(BLOCK_SIZE):
                yield block

    def apply(self, host: Host, data: str) -> dict[str, Any]:
        size = self.module_path.stat().st_size

        with self.open_session(host) as session:
            home = session.home_directory()
            remote_dir = f"{home}/{REMOTE_MODULE_DIR}"
            remote_path = f"{remote_dir}/{self.module_name}"

            session.exec(f"mkdir -p {shlex.quote(remote_dir)}")
            session.put(remote_path, MODULE_FILE_MODE, size, self._read_blocks())
            result = session.exec(shlex.quote(remote_path), stdin=data.encode("utf-8"))

        logger.debug(f"{host.id}: module {self.module_name} exited with {result.exit_code}")
        return {
            "exit_code": result.exit_code,
            "stdout": decode_output(result.stdout),
            "stderr": decode_output(result.stderr),
        }
