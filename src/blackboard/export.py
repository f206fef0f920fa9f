"""Render the blackboard as JSON, CSV or Markdown."""

from __future__ import annotations

import csv
import io
import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from blackboard.models import Document, Entry

CSV_FIELDS = ("id", "agent", "violation", "severity", "repetitions", "timestamp", "lastSeen")


def to_json(doc: Document) -> str:
    return json.dumps(doc.to_dict(), indent=2)


def to_csv(entries: Iterable[Entry]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_FIELDS)
    for e in entries:
        writer.writerow([e.id, e.agent, e.violation, e.severity, e.repetitions, e.timestamp, e.last_seen])
    return buf.getvalue()


def _md_cell(value: object) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def to_markdown(entries: Iterable[Entry], exported_at: str, title: str = "SimpleLLMs Blackboard") -> str:
    lines = [
        f"# {title} Export",
        "",
        f"Exported: {exported_at}",
        "",
        "| Violation | Agent | Severity | Repetitions |",
        "|-----------|-------|----------|-------------|",
    ]
    lines.extend(
        f"| {_md_cell(e.violation)} | {_md_cell(e.agent)} | {_md_cell(e.severity)} | {e.repetitions} |"
        for e in entries
    )
    return "\n".join(lines) + "\n"
