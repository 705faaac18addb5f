"""Transport capability consumed by sweep tasks.

Tasks never talk to a remote protocol directly. They open a Session through
a Transport and use its four operations. The SSH implementation lives in
sweep.ssh; tests provide in-memory fakes with the same shape.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, Protocol


@dataclass(frozen=True)
class CommandResult:
    """Result of a remote command.

    A non-zero exit code is a normal result, not an error.

    Attributes:
        exit_code: Exit status of the remote command
        stdout: Raw standard output
        stderr: Raw standard error
    """

    exit_code: int
    stdout: bytes
    stderr: bytes


class Session(Protocol):
    """An open session to one remote host."""

    def exec(self, command: str, stdin: bytes | None = None) -> CommandResult:
        """Run a command, optionally feeding it data on standard input."""
        ...

    def put(self, remote_path: str, mode: int, size: int, chunks: Iterable[bytes]) -> None:
        """Write a stream of bytes to a remote file with the given mode."""
        ...

    def get(self, remote_path: str) -> Iterator[bytes]:
        """Read a remote file as a stream of byte chunks."""
        ...

    def home_directory(self) -> str:
        """Home directory of the remote user."""
        ...

    def close(self) -> None:
        ...

    def __enter__(self) -> "Session":
        ...

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        ...


class Transport(Protocol):
    """Opens sessions to remote hosts."""

    def open_session(self, address: str, user: str) -> Session:
        """Open an authenticated session to ``address`` as ``user``.

        Raises:
            ConnectionFailed: If the host cannot be reached or authentication fails
        """
        ...
