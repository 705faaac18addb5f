"""Rendering of execution reports for the command line."""

import io
import json
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .types import ExecutionReport


def format_report_json(report: ExecutionReport, indent: int | None = None) -> str:
    """Format a report as the stable JSON array of per-host entries."""
    return report.to_json(indent=indent)


def _summarize_info(info: Any) -> str:
    if isinstance(info, dict) and "exit_code" in info:
        lines = [f"exit_code={info['exit_code']}"]
        for stream in ("stdout", "stderr"):
            text = str(info.get(stream) or "").rstrip("\n")
            if text:
                lines.append(f"{stream}: {text}")
        return "\n".join(lines)
    return json.dumps(info, sort_keys=True)


def format_report_text(report: ExecutionReport, width: int = 120) -> str:
    """Format a report as a human-readable table.

    Args:
        report: Report to render
        width: Table width in characters

    Returns:
        Rendered table followed by a one-line summary
    """
    table = Table(title="Execution Results", show_lines=True)
    table.add_column("Host", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Details")

    for outcome in report:
        if outcome.success:
            table.add_row(outcome.host, "[green]OK[/green]", Text(_summarize_info(outcome.info)))
        else:
            table.add_row(outcome.host, "[red]FAILED[/red]", Text(outcome.error or ""))

    buffer = io.StringIO()
    console = Console(file=buffer, width=width, color_system=None, highlight=False)
    console.print(table)
    console.print(
        f"Total hosts: {len(report)}  Successful: {report.successful}  Failed: {report.failed}"
    )
    return buffer.getvalue()
