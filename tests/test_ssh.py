"""Tests for the SSH transport, with asyncssh replaced by in-memory fakes."""

import asyncio
from types import SimpleNamespace

import asyncssh
import pytest

from sweep.exceptions import ConnectionFailed, InvalidInventory
from sweep.ssh import BLOCK_SIZE, SSHConfig, SSHSession, SSHTransport


class FakeRemoteFile:
    def __init__(self, sftp, path, mode):
        self.sftp = sftp
        self.path = path
        self.mode = mode
        self.offset = 0

    async def write(self, data):
        self.sftp.files[self.path] = self.sftp.files.get(self.path, b"") + data

    async def read(self, size):
        data = self.sftp.files[self.path][self.offset:self.offset + size]
        self.offset += len(data)
        return data

    async def close(self):
        pass


class FakeSFTP:
    def __init__(self, files):
        self.files = files
        self.modes = {}
        self.exited = False

    async def open(self, path, mode):
        if "w" in mode:
            self.files[path] = b""
        return FakeRemoteFile(self, path, mode)

    async def chmod(self, path, mode):
        self.modes[path] = mode

    def exit(self):
        self.exited = True

    async def wait_closed(self):
        pass


class FakeConnection:
    def __init__(self):
        self.files = {}
        self.sftp = FakeSFTP(self.files)
        self.commands = []
        self.closed = False

    async def run(self, command, input=None, check=False, encoding="utf-8"):
        assert encoding is None
        self.commands.append((command, input))
        if command == "echo $HOME":
            return SimpleNamespace(exit_status=0, stdout=b"/home/deploy\n", stderr=b"")
        return SimpleNamespace(exit_status=1, stdout=b"out", stderr=None)

    async def start_sftp_client(self):
        return self.sftp

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


@pytest.fixture
def connection(monkeypatch):
    """Patch asyncssh.connect to return a FakeConnection and record its options."""
    conn = FakeConnection()
    conn.options = None

    async def fake_connect(**options):
        conn.options = options
        return conn

    monkeypatch.setattr(asyncssh, "connect", fake_connect)
    return conn


class TestSSHConfig:
    """Tests for SSHConfig."""

    def test_default_options(self):
        options = SSHConfig().to_asyncssh_options("10.0.0.1", 2222, "deploy")

        assert options == {
            "host": "10.0.0.1",
            "port": 2222,
            "username": "deploy",
            "keepalive_interval": 0,
            "connect_timeout": 30.0,
        }

    def test_disable_host_key_checking(self):
        options = SSHConfig(known_hosts=None).to_asyncssh_options("h", 22, "root")
        assert options["known_hosts"] is None

    def test_custom_known_hosts_and_no_timeout(self):
        options = SSHConfig(connect_timeout=None, known_hosts="/tmp/kh").to_asyncssh_options("h", 22, "root")
        assert options["known_hosts"] == "/tmp/kh"
        assert "connect_timeout" not in options


class TestSSHSession:
    """Tests for SSHSession."""

    def test_connect_uses_address_and_user(self, connection):
        with SSHTransport().open_session("10.0.0.1:2222", "deploy") as session:
            assert isinstance(session, SSHSession)

        assert connection.options["host"] == "10.0.0.1"
        assert connection.options["port"] == 2222
        assert connection.options["username"] == "deploy"
        assert connection.closed

    def test_connect_failure(self, monkeypatch):
        async def refuse(**options):
            raise ConnectionRefusedError("Connection refused")

        monkeypatch.setattr(asyncssh, "connect", refuse)

        with pytest.raises(ConnectionFailed, match="Connection refused") as exc_info:
            SSHTransport().open_session("10.0.0.1:22", "root")

        assert exc_info.value.details["address"] == "10.0.0.1:22"

    def test_connect_timeout_without_message(self, monkeypatch):
        async def hang(**options):
            raise asyncio.TimeoutError()

        monkeypatch.setattr(asyncssh, "connect", hang)

        with pytest.raises(ConnectionFailed, match="TimeoutError"):
            SSHSession("10.0.0.1:22", "root").connect()

    def test_invalid_address(self, connection):
        with pytest.raises(InvalidInventory):
            SSHSession("host:notaport", "root").connect()

    def test_exec(self, connection):
        with SSHTransport().open_session("h:22", "root") as session:
            result = session.exec("false", stdin=b"data")

        assert result.exit_code == 1
        assert result.stdout == b"out"
        assert result.stderr == b""
        assert connection.commands == [("false", b"data")]

    def test_home_directory(self, connection):
        with SSHTransport().open_session("h:22", "deploy") as session:
            assert session.home_directory() == "/home/deploy"

    def test_put_and_get(self, connection):
        content = b"x" * (BLOCK_SIZE + 10)

        with SSHTransport().open_session("h:22", "root") as session:
            session.put("/tmp/file", 0o640, len(content), [content[:5], content[5:]])
            chunks = list(session.get("/tmp/file"))

        assert connection.files["/tmp/file"] == content
        assert connection.sftp.modes["/tmp/file"] == 0o640
        assert [len(chunk) for chunk in chunks] == [BLOCK_SIZE, 10]
        assert b"".join(chunks) == content

    def test_closed_session(self, connection):
        session = SSHTransport().open_session("h:22", "root")
        session.close()
        session.close()

        with pytest.raises(ConnectionFailed):
            session.exec("uptime")

    def test_close_releases_loop_when_disconnect_fails(self, connection, monkeypatch):
        async def broken_wait_closed():
            raise asyncssh.ConnectionLost("reset by peer")

        monkeypatch.setattr(connection, "wait_closed", broken_wait_closed)
        session = SSHTransport().open_session("h:22", "root")
        loop = session._loop

        with pytest.raises(asyncssh.ConnectionLost):
            session.close()

        assert connection.closed
        assert loop.is_closed()
        session.close()
