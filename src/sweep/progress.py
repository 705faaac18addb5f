"""Progress reporting while a task runs.

The executor notifies a ProgressReporter three times per run: once when
the apply phase starts, once per host as it completes, and once at the
end. Reporters write to stderr, never to stdout where the report goes.

Callbacks are always made from the thread that started the run.
"""

import json
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TextIO

from rich.console import Console
from rich.text import Text

RUN_WIDE = "*"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ProgressEvent:
    """One line of the JSON progress stream.

    Attributes:
        event_type: execution_start, host_complete or execution_complete
        host: Host identifier, or "*" for events about the whole run
        details: Event fields merged into the JSON object
        timestamp: ISO 8601 UTC time of the event
    """

    event_type: str
    host: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event_type, "host": self.host, "timestamp": self.timestamp, **self.details}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class ProgressReporter(ABC):
    """Receives progress callbacks from TaskRunner."""

    @abstractmethod
    def on_execution_start(self, total_hosts: int, task: str) -> None:
        """The prepare phase succeeded and hosts are about to be contacted."""

    @abstractmethod
    def on_host_complete(
        self,
        host: str,
        success: bool,
        duration: float,
        error: str | None = None,
    ) -> None:
        """A host's apply step finished, successfully or not."""

    @abstractmethod
    def on_execution_complete(
        self,
        total: int,
        successful: int,
        failed: int,
        duration: float,
    ) -> None:
        """Every host has an outcome."""


class JsonProgressReporter(ProgressReporter):
    """Writes one JSON object per event (NDJSON), for tools following a run.

    Example output:
        {"event": "host_complete", "host": "web01", "timestamp": "...", "success": true, "duration": 0.42}
    """

    def __init__(self, output: TextIO | None = None) -> None:
        self.output = output if output is not None else sys.stderr

    def emit(self, event_type: str, host: str = RUN_WIDE, **details: Any) -> None:
        self.output.write(ProgressEvent(event_type, host, details).to_json() + "\n")
        self.output.flush()

    def on_execution_start(self, total_hosts: int, task: str) -> None:
        self.emit("execution_start", total_hosts=total_hosts, task=task)

    def on_host_complete(
        self,
        host: str,
        success: bool,
        duration: float,
        error: str | None = None,
    ) -> None:
        details: dict[str, Any] = {"success": success, "duration": round(duration, 3)}
        if error:
            details["error"] = error
        self.emit("host_complete", host, **details)

    def on_execution_complete(
        self,
        total: int,
        successful: int,
        failed: int,
        duration: float,
    ) -> None:
        self.emit(
            "execution_complete",
            total=total,
            successful=successful,
            failed=failed,
            duration=round(duration, 3),
        )


class TextProgressReporter(ProgressReporter):
    """Prints a line per host on a rich console, numbered as hosts complete."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console if console is not None else Console(stderr=True, highlight=False)
        self.total = 0
        self.done = 0

    def on_execution_start(self, total_hosts: int, task: str) -> None:
        self.total = total_hosts
        self.done = 0
        self.console.print(f"Running task '{task}' on {total_hosts} host(s)...")

    def on_host_complete(
        self,
        host: str,
        success: bool,
        duration: float,
        error: str | None = None,
    ) -> None:
        self.done += 1
        position = f"({self.done}/{self.total})"
        if success:
            line = Text.assemble(f"  {position} ", ("ok", "green"), f" {host} in {duration:.2f}s")
        else:
            # Error text comes from remote hosts and is not markup
            line = Text.assemble(f"  {position} ", ("failed", "red"), f" {host}: {error or 'unknown error'}")
        self.console.print(line)

    def on_execution_complete(
        self,
        total: int,
        successful: int,
        failed: int,
        duration: float,
    ) -> None:
        summary = f"Done: {successful}/{total} succeeded"
        if failed:
            summary += f", {failed} failed"
        self.console.print(f"{summary} in {duration:.2f}s")


class NullProgressReporter(ProgressReporter):
    """Discards every event."""

    def on_execution_start(self, total_hosts: int, task: str) -> None:
        pass

    def on_host_complete(
        self,
        host: str,
        success: bool,
        duration: float,
        error: str | None = None,
    ) -> None:
        pass

    def on_execution_complete(
        self,
        total: int,
        successful: int,
        failed: int,
        duration: float,
    ) -> None:
        pass


def create_progress_reporter(enabled: bool, output_format: str = "text") -> ProgressReporter:
    """Pick the reporter for the CLI's ``--progress`` and ``--format`` options."""
    if not enabled:
        return NullProgressReporter()
    if output_format == "json":
        return JsonProgressReporter()
    return TextProgressReporter()
