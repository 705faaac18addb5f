"""Exceptions raised by sweep.

Every error the library raises on purpose derives from SweepError, so
callers (and the CLI) can tell a hard failure of the run apart from an
unexpected bug.

Validation errors (ids, tags, tag queries, inventories) and prepare-phase
errors abort a run before any host is contacted. Errors raised while a task
is applied to one host are caught by the executor and recorded in that
host's outcome instead.
"""

from typing import Any


class SweepError(Exception):
    """Base class for all sweep errors.

    Attributes:
        msg: Human-readable error message
        details: Extra structured fields describing the failure

    Example:
        raise SweepError("Something went wrong", path="/tmp/missing.txt")
    """

    def __init__(self, msg: str, **details: Any) -> None:
        super().__init__(msg)
        self.msg = msg
        self.details: dict[str, Any] = details

    def __str__(self) -> str:
        return self.msg


class InvalidHostId(SweepError):
    """Raised when a host identifier does not match the id grammar."""

    def __init__(self, value: str, rule: str) -> None:
        super().__init__(f"ID {value!r} does not match regex {rule}", value=value, rule=rule)
        self.value = value
        self.rule = rule


class InvalidHostTag(SweepError):
    """Raised when a host tag is empty or contains a reserved character."""

    def __init__(self, value: str, rule: str) -> None:
        super().__init__(f"Tag {value!r} does not match regex {rule}", value=value, rule=rule)
        self.value = value
        self.rule = rule


class InvalidToken(SweepError):
    """Raised when a tag query cannot be tokenized or parsed.

    Attributes:
        query: The full query string
        fragment: The offending fragment of the query
        position: Character offset of the fragment in the query
    """

    def __init__(self, reason: str, query: str, fragment: str, position: int) -> None:
        super().__init__(
            f"Invalid token in tag expression {query!r} at position {position}: "
            f"{reason} (near {fragment!r})",
            query=query,
            fragment=fragment,
            position=position,
        )
        self.query = query
        self.fragment = fragment
        self.position = position


class InvalidInventory(SweepError):
    """Raised when an inventory document is malformed."""


class FileNotFound(SweepError):
    """Raised when a local file required by a task does not exist."""


class IsADirectory(SweepError):
    """Raised when a local path expected to be a file is a directory."""


class IsAbsolute(SweepError):
    """Raised when a path that must be relative is absolute."""


class CommandExecutionFailed(SweepError):
    """Raised when a local program (such as an executable inventory) fails."""


class MissingInput(SweepError):
    """Raised when a required input was not provided."""


class InvalidConfig(SweepError):
    """Raised when the configuration file or environment is invalid."""


class InvalidFileMode(SweepError):
    """Raised when a file mode string cannot be parsed."""


class TemplateError(SweepError):
    """Raised when a command or file template cannot be rendered."""


class ConnectionFailed(SweepError):
    """Raised when a session to a remote host cannot be opened or breaks."""


class Other(SweepError):
    """Generic operation failure."""
