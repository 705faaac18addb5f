"""Type definitions for sweep.

This module defines the core data types used throughout sweep: validated
host identifiers and tags, the host record carrying connection details and
variables, and the per-host outcomes that make up an execution report.
"""

import datetime
import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterator

from .exceptions import InvalidHostId, InvalidHostTag, InvalidInventory

HOST_ID_REGEX = r"^[a-zA-Z0-9_][a-zA-Z0-9_\-]*$"
HOST_TAG_REGEX = r"^[^!&|\s()]+$"

_HOST_ID_RE = re.compile(HOST_ID_REGEX)
_HOST_TAG_RE = re.compile(HOST_TAG_REGEX)

DEFAULT_USER = "root"
DEFAULT_SSH_PORT = 22


@dataclass(frozen=True)
class HostId:
    """Validated host identifier.

    Starts with an alphanumeric character or an underscore, followed by any
    number of alphanumerics, underscores or hyphens.

    Example:
        >>> HostId("web-01")
        HostId(value='web-01')
        >>> str(HostId("web-01"))
        'web-01'
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or _HOST_ID_RE.fullmatch(self.value) is None:
            raise InvalidHostId(str(self.value), HOST_ID_REGEX)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class HostTag:
    """Validated host tag.

    A tag is a non-empty string without whitespace and without any of the
    tag query operators: ``!``, ``&``, ``|``, ``(`` and ``)``.

    Example:
        >>> str(HostTag("db"))
        'db'
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or _HOST_TAG_RE.fullmatch(self.value) is None:
            raise InvalidHostTag(str(self.value), HOST_TAG_REGEX)

    def __str__(self) -> str:
        return self.value


def to_json_value(value: Any) -> Any:
    """Convert a parsed TOML or YAML value to one JSON can encode.

    Dates and times become ISO 8601 strings; tuples become lists.

    Raises:
        TypeError: If the value (or a nested one) has no JSON equivalent
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, dict):
        converted = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"object keys must be strings, got {key!r}")
            converted[key] = to_json_value(item)
        return converted
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    raise TypeError(f"{type(value).__name__} values are not supported")


def parse_address(address: str) -> tuple[str, int]:
    """Split a ``host:port`` address into hostname and port.

    The port defaults to 22 when omitted. IPv6 literals must be bracketed
    when a port is given (``[::1]:2222``).
    """
    if address.startswith("["):
        hostname, _, rest = address[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        hostname, _, port = address.partition(":")
    else:
        hostname, port = address, ""

    if not port:
        return hostname, DEFAULT_SSH_PORT
    try:
        return hostname, int(port)
    except ValueError:
        raise InvalidInventory(f"Invalid port in address {address!r}") from None


@dataclass
class Host:
    """A managed host from the inventory.

    Attributes:
        id: Host identifier, the lookup key in the inventory
        address: SSH endpoint in the form ``hostname:port``
        user: SSH user to authenticate as (default: root)
        tags: Ordered tags used to select hosts with a tag query
        vars: Host variables, available to templates and module tasks

    The mutators return the host itself so they can be chained while
    building an inventory. Hosts must not be mutated once a run started.

    Example:
        >>> host = (
        ...     Host(Host.id_of("web01"), "10.0.0.1:22")
        ...     .set_user("deploy")
        ...     .add_tag(Host.tag_of("web"))
        ...     .set_var("msg", "hello")
        ... )
        >>> host.port
        22
    """

    id: HostId
    address: str
    user: str = DEFAULT_USER
    tags: list[HostTag] = field(default_factory=list)
    vars: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def id_of(value: str) -> HostId:
        """Shortcut to ``HostId(value)``."""
        return HostId(value)

    @staticmethod
    def tag_of(value: str) -> HostTag:
        """Shortcut to ``HostTag(value)``."""
        return HostTag(value)

    @property
    def hostname(self) -> str:
        """Hostname part of the address."""
        return parse_address(self.address)[0]

    @property
    def port(self) -> int:
        """Port part of the address (22 when omitted)."""
        return parse_address(self.address)[1]

    @property
    def tag_names(self) -> set[str]:
        """Tags as plain strings, for tag query evaluation."""
        return {tag.value for tag in self.tags}

    def set_user(self, user: str) -> "Host":
        self.user = user
        return self

    def add_tag(self, tag: HostTag) -> "Host":
        self.tags.append(tag)
        return self

    def remove_tag(self, tag: HostTag) -> "Host":
        self.tags = [current for current in self.tags if current != tag]
        return self

    def set_var(self, key: str, value: Any) -> "Host":
        self.vars[key] = value
        return self

    def remove_var(self, key: str) -> "Host":
        self.vars.pop(key, None)
        return self

    def get_var(self, key: str, default: Any = None) -> Any:
        """Get a host variable by key with optional default."""
        return self.vars.get(key, default)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Host":
        """Build a host from a parsed inventory entry.

        The id and every tag go through the validating constructors, so an
        invalid document fails here, at load time.

        Raises:
            InvalidInventory: If a required field is missing or has the wrong type
            InvalidHostId: If the id is invalid
            InvalidHostTag: If a tag is invalid
        """
        if not isinstance(data, dict):
            raise InvalidInventory(f"Host entry must be a table/object, got {type(data).__name__}")
        for required in ("id", "address"):
            if required not in data:
                raise InvalidInventory(f"Host entry is missing required field '{required}'")

        tags = data.get("tags", [])
        if not isinstance(tags, list):
            raise InvalidInventory(f"Host {data['id']!r}: 'tags' must be a list")
        host_vars = data.get("vars", {})
        if not isinstance(host_vars, dict):
            raise InvalidInventory(f"Host {data['id']!r}: 'vars' must be a table/object")
        try:
            host_vars = to_json_value(host_vars)
        except TypeError as e:
            raise InvalidInventory(f"Host {data['id']!r}: invalid 'vars': {e}") from e

        return cls(
            id=HostId(data["id"]),
            address=str(data["address"]),
            user=str(data.get("user", DEFAULT_USER)),
            tags=[HostTag(tag) for tag in tags],
            vars=host_vars,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "id": self.id.value,
            "address": self.address,
            "user": self.user,
            "tags": [tag.value for tag in self.tags],
            "vars": self.vars,
        }


@dataclass(frozen=True)
class HostOutcome:
    """Outcome of applying a task to one host.

    Attributes:
        host: Host identifier
        success: Whether the task was applied without error
        info: Task-specific result data (success only)
        error: Error message (failure only)
    """

    host: str
    success: bool
    info: Any = None
    error: str | None = None

    @classmethod
    def succeeded(cls, host: str, info: Any) -> "HostOutcome":
        return cls(host=host, success=True, info=info)

    @classmethod
    def failed(cls, host: str, error: str) -> "HostOutcome":
        return cls(host=host, success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stable report entry shape."""
        if self.success:
            return {"host": self.host, "success": True, "info": self.info}
        return {"host": self.host, "success": False, "error": self.error}


@dataclass(frozen=True)
class ExecutionReport:
    """Ordered per-host outcomes of one run.

    The order of outcomes always equals the order of the input host list,
    whatever the scheduling strategy.

    Example:
        >>> report = ExecutionReport((HostOutcome.succeeded("web01", {}),))
        >>> report.to_list()
        [{'host': 'web01', 'success': True, 'info': {}}]
    """

    outcomes: tuple[HostOutcome, ...] = ()

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self) -> Iterator[HostOutcome]:
        return iter(self.outcomes)

    def __getitem__(self, index: int) -> HostOutcome:
        return self.outcomes[index]

    @property
    def successful(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.successful

    def is_success(self) -> bool:
        """Check if every host succeeded."""
        return self.failed == 0

    def to_list(self) -> list[dict[str, Any]]:
        return [outcome.to_dict() for outcome in self.outcomes]

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_list(), indent=indent)
