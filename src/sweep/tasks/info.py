"""Report what the inventory knows about each host.

No connection is made; each report entry carries the host itself:

    {"host": "web01", "success": true,
     "info": {"id": "web01", "address": "10.0.0.1:22", "user": "root",
              "tags": ["web"], "vars": {"msg": "hi"}}}
"""

from typing import Any

from ..types import Host
from .base import Task


class InfoTask(Task[None]):
    name = "info"

    def prepare(self, host: Host) -> None:
        return None

    def apply(self, host: Host, data: None) -> dict[str, Any]:
        return host.to_dict()
