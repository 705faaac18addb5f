"""Download a file from remote hosts.

Each host's copy lands in its own directory, ``{base_dir}/{host.id}/{local_path}``,
where ``base_dir`` defaults to the current working directory:

    {"host": "web01", "success": true,
     "info": {"file_path": "/work/web01/app.log", "file_size": 12345}}
"""

import logging
from pathlib import Path
from typing import Any

from ..exceptions import IsAbsolute, Other
from ..transport import Transport
from ..types import Host
from .base import RemoteTask

logger = logging.getLogger(__name__)


class DownloadTask(RemoteTask[Path]):
    """Fetch a remote file from each host into a per-host local directory."""

    name = "download"

    def __init__(
        self,
        remote_path: str,
        local_path: str | Path,
        base_dir: str | Path | None = None,
        transport: Transport | None = None,
    ) -> None:
        super().__init__(transport)
        self.remote_path = remote_path
        self.local_path = Path(local_path)
        self.base_dir = Path(base_dir) if base_dir is not None else None

    def prepare(self, host: Host) -> Path:
        if self.local_path.is_absolute():
            raise IsAbsolute(
                "Local path should be a relative path, not absolute", path=str(self.local_path)
            )

        base_dir = self.base_dir if self.base_dir is not None else Path.cwd()
        full_path = base_dir.resolve() / host.id.value / self.local_path
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise Other(f"Cannot create directory {full_path.parent}: {e}", path=str(full_path.parent)) from e
        return full_path

    def apply(self, host: Host, local_path: Path) -> dict[str, Any]:
        with self.open_session(host) as session:
            chunks = iter(session.get(self.remote_path))
            # The remote file is opened on the first read; a missing file
            # must not truncate an earlier local copy
            first = next(chunks, b"")
            with local_path.open("wb") as local_file:
                local_file.write(first)
                size = len(first)
                for chunk in chunks:
                    local_file.write(chunk)
                    size += len(chunk)

        logger.debug(f"{host.id}: downloaded {size} bytes to {local_path}")
        return {"file_path": str(local_path), "file_size": size}
