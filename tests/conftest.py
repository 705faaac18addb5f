"""Shared fixtures: in-memory transport fakes and inventory builders."""

import logging
import threading

import pytest

from sweep.exceptions import ConnectionFailed
from sweep.inventory import Inventory
from sweep.transport import CommandResult
from sweep.types import Host


class FakeSession:
    """Session recording every operation in its transport."""

    def __init__(self, transport: "FakeTransport", address: str, user: str) -> None:
        self.transport = transport
        self.address = address
        self.user = user
        self.closed = False

    def exec(self, command, stdin=None):
        with self.transport.lock:
            self.transport.commands.append((self.address, command, stdin))
        if self.transport.handler is not None:
            return self.transport.handler(self.address, command, stdin)
        if command == "echo $HOME":
            return CommandResult(0, f"/home/{self.user}\n".encode(), b"")
        return CommandResult(0, f"ran: {command}\n".encode(), b"")

    def put(self, remote_path, mode, size, chunks):
        content = b"".join(chunks)
        assert len(content) == size
        with self.transport.lock:
            self.transport.uploads[(self.address, remote_path)] = (mode, content)

    def get(self, remote_path):
        try:
            content = self.transport.remote_files[(self.address, remote_path)]
        except KeyError:
            raise FileNotFoundError(f"No such file: {remote_path}") from None
        # Two chunks, to exercise reassembly
        middle = len(content) // 2
        yield content[:middle]
        yield content[middle:]

    def home_directory(self):
        return self.exec("echo $HOME").stdout.decode().strip()

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class FakeTransport:
    """Transport handing out FakeSessions.

    Attributes:
        unreachable: Addresses for which open_session raises ConnectionFailed
        handler: Optional callable (address, command, stdin) -> CommandResult
        commands: Every command run, as (address, command, stdin)
        uploads: Uploaded files, keyed by (address, remote_path)
        remote_files: Files served by get, keyed by (address, remote_path)
    """

    def __init__(self, unreachable=(), handler=None, remote_files=None) -> None:
        self.unreachable = set(unreachable)
        self.handler = handler
        self.remote_files = dict(remote_files or {})
        self.commands = []
        self.uploads = {}
        self.sessions = []
        self.lock = threading.Lock()

    def open_session(self, address, user):
        if address in self.unreachable:
            raise ConnectionFailed(f"Connection refused: {address}", address=address)
        session = FakeSession(self, address, user)
        with self.lock:
            self.sessions.append(session)
        return session


def make_host(host_id, address=None, user="root", tags=(), vars=None):
    """Build a host with the given id, tags and variables."""
    return Host(
        id=Host.id_of(host_id),
        address=address or f"{host_id}.example.com:22",
        user=user,
        tags=[Host.tag_of(tag) for tag in tags],
        vars=dict(vars or {}),
    )


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def hosts():
    """Three hosts with distinct tags and variables."""
    return [
        make_host("web01", tags=["web", "prod"], vars={"msg": "hi"}),
        make_host("web02", tags=["web", "staging"], vars={"msg": "hello"}),
        make_host("db01", user="postgres", tags=["db", "prod"], vars={"msg": "hey"}),
    ]


@pytest.fixture
def inventory(hosts):
    return Inventory(hosts=list(hosts))


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo handler changes made by configure_logging during a test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    asyncssh_level = logging.getLogger("asyncssh").level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger("asyncssh").setLevel(asyncssh_level)
