"""Upload a file to remote hosts.

The local file is sent as is, or first rendered as a Jinja2 template
against each host. Report entries carry the number of bytes sent:

    {"host": "web01", "success": true, "info": {"file_size": 12345}}
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from ..exceptions import FileNotFound, InvalidFileMode, IsADirectory, TemplateError
from ..ssh import BLOCK_SIZE
from ..templating import render
from ..transport import Transport
from ..types import Host
from .base import RemoteTask

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644


def parse_file_mode(mode: str | None) -> int:
    """Parse an octal file mode such as ``644``, ``0644`` or ``0o644``.

    Raises:
        InvalidFileMode: If the mode is not an octal number between 0 and 0o7777
    """
    if mode is None or mode == "":
        return DEFAULT_FILE_MODE

    text = mode.strip().lower()
    if text.startswith("0o"):
        text = text[2:]
    try:
        value = int(text, 8)
    except ValueError:
        raise InvalidFileMode(f"Invalid file mode: {mode!r}") from None
    if not 0 <= value <= 0o7777:
        raise InvalidFileMode(f"File mode out of range: {mode!r}")
    return value


@dataclass(frozen=True)
class UploadContext:
    """Prepared upload for one host.

    Attributes:
        file_size: Number of bytes that will be sent
        content: Rendered content, or None to stream the local file
    """

    file_size: int
    content: bytes | None = None


class UploadTask(RemoteTask[UploadContext]):
    """Send a local file (or a rendered template) to each host.

    Attributes:
        local_path: Path of the local file
        remote_path: Destination path on the remote host
        file_mode: UNIX mode of the uploaded file
        template: Whether local_path is rendered as a template per host
    """

    name = "upload"

    def __init__(
        self,
        local_path: str | Path,
        remote_path: str,
        file_mode: int = DEFAULT_FILE_MODE,
        template: bool = False,
        transport: Transport | None = None,
    ) -> None:
        super().__init__(transport)
        self.local_path = Path(local_path)
        self.remote_path = remote_path
        self.file_mode = file_mode
        self.template = template

    @classmethod
    def from_file(cls, local_path: str | Path, remote_path: str, file_mode: int = DEFAULT_FILE_MODE,
                  transport: Transport | None = None) -> "UploadTask":
        return cls(local_path, remote_path, file_mode, template=False, transport=transport)

    @classmethod
    def from_template(cls, local_path: str | Path, remote_path: str, file_mode: int = DEFAULT_FILE_MODE,
                      transport: Transport | None = None) -> "UploadTask":
        return cls(local_path, remote_path, file_mode, template=True, transport=transport)

    def prepare(self, host: Host) -> UploadContext:
        if not self.local_path.exists():
            raise FileNotFound(f"No such file: {self.local_path}", path=str(self.local_path))
        if self.local_path.is_dir():
            raise IsADirectory(
                f"Path is a directory, not a file: {self.local_path}", path=str(self.local_path)
            )

        if self.template:
            try:
                template_text = self.local_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise TemplateError(f"Cannot read template {self.local_path}: {e}", path=str(self.local_path)) from e
            content = render(template_text, host).encode("utf-8")
            return UploadContext(file_size=len(content), content=content)

        return UploadContext(file_size=self.local_path.stat().st_size)

    def _read_blocks(self) -> Iterator[bytes]:
        with self.local_path.open("rb") as local_file:
            while block := local_file.read(BLOCK_SIZE):
                yield block

    def apply(self, host: Host, context: UploadContext) -> dict[str, Any]:
        chunks = [context.content] if context.content is not None else self._read_blocks()

        with self.open_session(host) as session:
            session.put(self.remote_path, self.file_mode, context.file_size, chunks)

        logger.debug(f"{host.id}: uploaded {context.file_size} bytes to {self.remote_path}")
        return {"file_size": context.file_size}
