"""Inventory management for sweep.

An inventory is an ordered list of hosts, built once per invocation from a
TOML, JSON or YAML document, or from the JSON printed by an executable
inventory program. It is never mutated while a task runs.
"""

import json
import logging
import os
import subprocess
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

import yaml

from .exceptions import CommandExecutionFailed, FileNotFound, InvalidInventory
from .tag_query import TagQuery
from .types import Host, HostId

logger = logging.getLogger(__name__)

DOCUMENT_SUFFIXES = (".toml", ".json", ".yml", ".yaml")


@dataclass
class Inventory:
    """Ordered collection of hosts.

    Host ids are not required to be unique: lookups by id return the first
    matching host in list order.

    Attributes:
        hosts: Hosts in inventory order

    Example:
        >>> inventory = Inventory().add_host(
        ...     Host(Host.id_of("web01"), "10.0.0.1:22", tags=[Host.tag_of("web")])
        ... )
        >>> [str(h.id) for h in inventory.get_hosts_by_tag_query("web")]
        ['web01']
    """

    hosts: list[Host] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.hosts)

    def __iter__(self) -> Iterator[Host]:
        return iter(self.hosts)

    @classmethod
    def from_dict(cls, data: Any) -> "Inventory":
        """Build an inventory from a parsed document.

        Expected structure (``hosts`` defaults to an empty list):

            {"hosts": [{"id": "web01", "address": "10.0.0.1:22",
                        "user": "root", "tags": ["web"], "vars": {}}]}

        Raises:
            InvalidInventory: If the document structure is invalid
            InvalidHostId: If a host id is invalid
            InvalidHostTag: If a host tag is invalid
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidInventory(
                f"Inventory document must be a table/object, got {type(data).__name__}"
            )

        entries = data.get("hosts", [])
        if not isinstance(entries, list):
            raise InvalidInventory("Inventory 'hosts' must be a list")

        return cls(hosts=[Host.from_dict(entry) for entry in entries])

    @classmethod
    def from_toml(cls, content: str) -> "Inventory":
        """Parse a TOML inventory.

        Example:

            [[hosts]]
            id = "localhost"
            address = "localhost:22"
            user = "root"
            tags = ["local"]
            vars = { msg = "hi" }
        """
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as e:
            raise InvalidInventory(f"Invalid TOML inventory: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_json(cls, content: str) -> "Inventory":
        """Parse a JSON inventory."""
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise InvalidInventory(f"Invalid JSON inventory: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_yaml(cls, content: str) -> "Inventory":
        """Parse a YAML inventory with the same structure as the JSON one."""
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise InvalidInventory(f"Invalid YAML inventory: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_program(cls, program: str | Path, timeout: float | None = None) -> "Inventory":
        """Run an inventory program and parse its standard output as JSON.

        Raises:
            CommandExecutionFailed: If the program cannot be run or exits non-zero
        """
        path = Path(program)
        logger.debug(f"Running inventory program {path}")

        try:
            result = subprocess.run(
                [str(path)],
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except (OSError, UnicodeDecodeError, subprocess.TimeoutExpired) as e:
            raise CommandExecutionFailed(f"Failed to execute inventory {path}: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            message = f"Failed to execute inventory {path}: exit status {result.returncode}"
            if stderr:
                message += f": {stderr}"
            raise CommandExecutionFailed(message, returncode=result.returncode)

        return cls.from_json(result.stdout)

    def add_host(self, host: Host) -> "Inventory":
        """Append a host to the inventory."""
        self.hosts.append(host)
        return self

    def remove_host(self, host_id: HostId | str) -> "Inventory":
        """Remove every host with the given id (no-op when absent)."""
        host_id = _as_host_id(host_id)
        self.hosts = [host for host in self.hosts if host.id != host_id]
        return self

    def get_host_by_id(self, host_id: HostId | str) -> Host | None:
        """Get the first host with the given id, or None."""
        host_id = _as_host_id(host_id)
        for host in self.hosts:
            if host.id == host_id:
                return host
        return None

    def get_hosts_by_tag_query(self, query: str | TagQuery) -> list[Host]:
        """Get the hosts whose tags match a tag query, in inventory order.

        Raises:
            InvalidToken: If the query is malformed
        """
        if not isinstance(query, TagQuery):
            query = TagQuery(query)
        return [host for host in self.hosts if query.matches(host.tag_names)]


def _as_host_id(host_id: HostId | str) -> HostId:
    return host_id if isinstance(host_id, HostId) else HostId(host_id)


def load_inventory(inventory_file: str | Path) -> Inventory:
    """Load an inventory from a file, auto-detecting the format.

    - Executable files (without a document suffix) are run and their
      output parsed as JSON
    - ``.json`` files are parsed as JSON
    - ``.yml`` / ``.yaml`` files are parsed as YAML
    - Anything else is parsed as TOML

    Raises:
        FileNotFound: If the inventory does not exist
        CommandExecutionFailed: If an inventory program fails
        InvalidInventory: If the document is malformed

    Example:
        >>> inventory = load_inventory("inventory.toml")
        >>> inventory = load_inventory("./cloud_inventory.py")
    """
    path = Path(inventory_file)

    if not path.exists():
        raise FileNotFound(f"Inventory '{path}' does not exist", path=str(path))

    suffix = path.suffix.lower()

    if path.is_file() and os.access(path, os.X_OK) and suffix not in DOCUMENT_SUFFIXES:
        return Inventory.from_program(path)

    try:
        content = path.read_text(encoding="utf-8")
    except IsADirectoryError as e:
        raise InvalidInventory(f"Inventory '{path}' is a directory") from e
    except (OSError, UnicodeDecodeError) as e:
        raise InvalidInventory(f"Cannot read inventory '{path}': {e}") from e

    if suffix == ".json":
        return Inventory.from_json(content)
    if suffix in (".yml", ".yaml"):
        return Inventory.from_yaml(content)
    return Inventory.from_toml(content)
