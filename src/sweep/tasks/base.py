"""Two-phase task contract.

A task describes one kind of operation, run against many hosts:

- ``prepare(host)`` is local. It builds whatever the host needs before the
  network is touched (a rendered command, a validated path, merged data)
  and must be safe to call for every host before any ``apply``.
- ``apply(host, data)`` is the remote, side-effecting step. It is the only
  step allowed to do network I/O and returns JSON-ready data.

Task instances are immutable once built and are shared by the worker
threads of a parallel run.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from ..ssh import SSHTransport
from ..transport import Transport
from ..types import Host

D = TypeVar("D")


class Task(ABC, Generic[D]):
    """Abstract base class for all tasks.

    Attributes:
        name: Short task name, used in logs and progress output
    """

    name: str = "task"

    @abstractmethod
    def prepare(self, host: Host) -> D:
        """Compute the per-host data needed by apply, without network I/O.

        Raises:
            SweepError: If the task cannot be prepared for this host. Any
                prepare error aborts the whole run.
        """

    @abstractmethod
    def apply(self, host: Host, data: D) -> Any:
        """Perform the operation on the remote host.

        Raises:
            Exception: Any error is recorded as a failure for this host only
        """


class RemoteTask(Task[D]):
    """Base class for tasks that open a session to the host.

    Attributes:
        transport: Transport used to open sessions (default: SSH)
    """

    def __init__(self, transport: Transport | None = None) -> None:
        self.transport: Transport = transport or SSHTransport()

    def open_session(self, host: Host):
        return self.transport.open_session(host.address, host.user)


def decode_output(data: bytes) -> str:
    """Decode command output, replacing undecodable bytes."""
    return data.decode("utf-8", errors="replace")
