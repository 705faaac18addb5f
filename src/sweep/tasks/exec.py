"""Execute a command on remote hosts.

The command is a Jinja2 template rendered against each host:

    ExecTask('echo "{{ host.id }} says {{ host.vars.msg }}"')

Each report entry carries the exit code and both output streams:

    {"host": "web01", "success": true,
     "info": {"exit_code": 0, "stdout": "web01 says hi\\n", "stderr": ""}}

A non-zero exit code is reported as a successful invocation.
"""

import logging
from typing import Any

from ..templating import render
from ..transport import Transport
from ..types import Host
from .base import RemoteTask, decode_output

logger = logging.getLogger(__name__)


class ExecTask(RemoteTask[str]):
    """Run a templated command on each host."""

    name = "exec"

    def __init__(self, command_template: str, transport: Transport | None = None) -> None:
        super().__init__(transport)
        self.command_template = command_template

    def prepare(self, host: Host) -> str:
        return render(self.command_template, host)

    def apply(self, host: Host, command: str) -> dict[str, Any]:
        with self.open_session(host) as session:
            result = session.exec(command)

        logger.debug(f"{host.id}: command exited with {result.exit_code}")
        return {
            "exit_code": result.exit_code,
            "stdout": decode_output(result.stdout),
            "stderr": decode_output(result.stderr),
        }
