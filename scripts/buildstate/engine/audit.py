#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Execution Log

The execution log is the audit trail of the pipeline: a plain-text file with
one timestamped line per notable event. It is append-only and never rewritten.

Line format:
    <ISO timestamp> | <actor> | <action> | task=<id or -> | <details>

Actors:
- "cycle"     for the state-update cycle
- "cli"       for human CLI actions
- "agent"     for calls arriving through the MCP server
- "operator"  for manual maintenance (correction resets, snapshots)

Actions:
- cycle_start / cycle_complete / cycle_abort
- phase_complete      — one cycle phase finished
- backup              — snapshot written
- mark_complete       — task header marked COMPLETE in the plan
- compliance_failed   — produced files violate the compliance rules
- compliance_checked  — stand-alone re-check (CLI check-files)
- gate                — gate outcome computed
- warning             — consistency warning (cycle proceeds)
- correction_reset    — operator cleared a task's correction counter
"""

from datetime import datetime
from pathlib import Path
from typing import Callable

from .models import LogEntry

SEPARATOR = " | "


def _single_line(text: str) -> str:
    return " ".join(str(text).split())


def format_entry(
    timestamp: str,
    actor: str,
    action: str,
    task_id: int | None = None,
    details: str | None = None,
) -> str:
    task = f"task={task_id}" if task_id is not None else "task=-"
    return SEPARATOR.join([
        timestamp,
        _single_line(actor),
        _single_line(action),
        task,
        _single_line(details or ""),
    ])


def parse_entry(line: str) -> LogEntry | None:
    """Parse one log line, or None for lines not in the log format."""
    parts = line.rstrip("\n").split(SEPARATOR, 4)
    if len(parts) < 4 or not parts[3].startswith("task="):
        return None
    raw_task = parts[3][len("task="):]
    task_id = int(raw_task) if raw_task.isascii() and raw_task.isdigit() else None
    return LogEntry(
        timestamp=parts[0],
        actor=parts[1],
        action=parts[2],
        task_id=task_id,
        details=parts[4] if len(parts) > 4 else "",
    )


class ExecutionLog:
    """Append-only execution log bound to one file."""

    def __init__(
        self,
        path: str | Path,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.path = Path(path)
        self._clock = clock

    def log(
        self,
        actor: str,
        action: str,
        task_id: int | None = None,
        details: str | None = None,
    ) -> str:
        """
        Append one entry and return the line written.

        The file and its directory are created on first use. The file is
        only ever opened in append mode.
        """
        timestamp = self._clock().isoformat(timespec="seconds")
        line = format_entry(timestamp, actor, action, task_id, details)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")
        return line

    def read_entries(
        self,
        task_id: int | None = None,
        action: str | None = None,
        limit: int = 100,
    ) -> list[LogEntry]:
        """
        Query the log with optional filters, newest first.

        Lines that do not follow the log format are skipped.
        """
        if not self.path.exists():
            return []

        entries: list[LogEntry] = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            entry = parse_entry(line)
            if entry is None:
                continue
            if task_id is not None and entry.task_id != task_id:
                continue
            if action is not None and entry.action != action:
                continue
            entries.append(entry)

        entries.reverse()
        return entries[:limit]
