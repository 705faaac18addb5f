"""SSH transport for sweep.

Provides SSH sessions using asyncssh for remote host execution. Each
session owns a private event loop and exposes blocking methods, so one
session can live entirely inside the worker thread that applies a task to
its host. Sessions are never shared between hosts.

Features:
- Authentication delegated to the SSH agent (and default client keys)
- Command execution with separate stdout/stderr capture
- SFTP file transfers in fixed-size blocks
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

import asyncssh

from .exceptions import ConnectionFailed
from .transport import CommandResult
from .types import parse_address

logger = logging.getLogger(__name__)

BLOCK_SIZE = 4 * 1024 * 1024


@dataclass
class SSHConfig:
    """SSH connection configuration.

    Attributes:
        connect_timeout: Connection timeout in seconds (None waits forever)
        known_hosts: Path to known_hosts file (None to disable checking,
            empty tuple to use the default ~/.ssh/known_hosts)
        keepalive_interval: Keepalive interval (0 to disable)
    """

    connect_timeout: float | None = 30.0
    known_hosts: str | None | tuple = ()
    keepalive_interval: float = 0

    def to_asyncssh_options(self, hostname: str, port: int, username: str) -> dict[str, Any]:
        """Convert to asyncssh.connect() kwargs."""
        options: dict[str, Any] = {
            "host": hostname,
            "port": port,
            "username": username,
            "keepalive_interval": self.keepalive_interval,
        }

        if self.connect_timeout is not None:
            options["connect_timeout"] = self.connect_timeout
        if self.known_hosts is None:
            options["known_hosts"] = None  # Disable host key checking
        elif self.known_hosts != ():
            options["known_hosts"] = self.known_hosts

        return options


class SSHSession:
    """Blocking SSH session to one host.

    Example:
        with SSHTransport().open_session("server.example.com:22", "deploy") as session:
            result = session.exec("uptime")
            print(result.stdout.decode())
    """

    def __init__(self, address: str, user: str, config: SSHConfig | None = None) -> None:
        self.address = address
        self.user = user
        self.config = config or SSHConfig()
        self._loop = asyncio.new_event_loop()
        self._conn: asyncssh.SSHClientConnection | None = None

    def _run(self, coro: Any) -> Any:
        return self._loop.run_until_complete(coro)

    @property
    def connection(self) -> asyncssh.SSHClientConnection:
        if self._conn is None:
            raise ConnectionFailed(f"Session to {self.address} is not open")
        return self._conn

    def connect(self) -> "SSHSession":
        """Establish the SSH connection.

        Raises:
            ConnectionFailed: If the host is unreachable or authentication fails
        """
        try:
            hostname, port = parse_address(self.address)
        except Exception:
            self.close()
            raise
        logger.debug(f"Connecting to {self.user}@{hostname}:{port}")

        try:
            self._conn = self._run(
                asyncssh.connect(**self.config.to_asyncssh_options(hostname, port, self.user))
            )
        except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
            self.close()
            message = str(e) or type(e).__name__
            logger.debug(f"Connection to {self.address} failed: {message}")
            raise ConnectionFailed(message, address=self.address) from e

        logger.info(f"Connected to {self.address}")
        return self

    def close(self) -> None:
        """Close the SSH connection and the session's event loop."""
        if self._loop.is_closed():
            return
        try:
            if self._conn is not None:
                conn, self._conn = self._conn, None
                conn.close()
                self._run(conn.wait_closed())
                logger.debug(f"Disconnected from {self.address}")
        finally:
            self._loop.close()

    def __enter__(self) -> "SSHSession":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def exec(self, command: str, stdin: bytes | None = None) -> CommandResult:
        """Run a command on the remote host.

        Returns:
            CommandResult with the exit code and both raw output streams
        """
        logger.debug(f"Running on {self.address}: {command[:100]}")

        result = self._run(
            self.connection.run(command, input=stdin, check=False, encoding=None)
        )

        exit_code = result.exit_status if result.exit_status is not None else -1
        stdout = result.stdout or b""
        stderr = result.stderr or b""

        logger.debug(
            f"Command completed: rc={exit_code}, "
            f"stdout={len(stdout)} bytes, stderr={len(stderr)} bytes"
        )
        return CommandResult(exit_code=exit_code, stdout=stdout, stderr=stderr)

    def put(self, remote_path: str, mode: int, size: int, chunks: Iterable[bytes]) -> None:
        """Write chunks to a remote file, then set its mode."""
        logger.debug(f"Writing {size} bytes to {self.address}:{remote_path}")

        sftp = self._run(self.connection.start_sftp_client())
        try:
            remote_file = self._run(sftp.open(remote_path, "wb"))
            try:
                for chunk in chunks:
                    self._run(remote_file.write(chunk))
            finally:
                self._run(remote_file.close())
            self._run(sftp.chmod(remote_path, mode))
        finally:
            sftp.exit()
            self._run(sftp.wait_closed())

        logger.debug(f"Wrote file: {remote_path}")

    def get(self, remote_path: str) -> Iterator[bytes]:
        """Read a remote file in blocks."""
        sftp = self._run(self.connection.start_sftp_client())
        try:
            remote_file = self._run(sftp.open(remote_path, "rb"))
            try:
                while True:
                    chunk = self._run(remote_file.read(BLOCK_SIZE))
                    if not chunk:
                        break
                    yield chunk
            finally:
                self._run(remote_file.close())
        finally:
            sftp.exit()
            self._run(sftp.wait_closed())

    def home_directory(self) -> str:
        result = self.exec("echo $HOME")
        return result.stdout.decode("utf-8", errors="replace").strip()


class SSHTransport:
    """Transport opening one SSHSession per call.

    Attributes:
        config: Connection settings shared by every session
    """

    def __init__(self, config: SSHConfig | None = None) -> None:
        self.config = config or SSHConfig()

    def open_session(self, address: str, user: str) -> SSHSession:
        return SSHSession(address, user, self.config).connect()
