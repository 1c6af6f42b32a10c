#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Progress Tracker

Writes the progress document. Four independent operations, each a single
atomic document write, invoked by the cycle in this order:

    record_status             → ## Agent Status        (banner, replaced)
    record_completion         → ## Task Progress       (entry, patched)
    record_component_summary  → ## Completed Components (agent summary, patched)
    record_timeline           → ## Timeline            (one line after the anchor)

Entries are never deduplicated. Recording the same task twice writes a
second entry; a warning is logged so the duplicate is visible.
"""

import logging
import re
from datetime import datetime
from typing import Callable

from .document import Document
from .models import ProgressEntry
from .section_patch import patch_section, replace_section_body
from .store import PROGRESS, DocumentStore
from .task_ledger import TaskLedger

logger = logging.getLogger(__name__)

STATUS_SECTION = "## Agent Status"
TASK_PROGRESS_SECTION = "## Task Progress"
COMPONENTS_SECTION = "## Completed Components"
TIMELINE_SECTION = "## Timeline"

TIMELINE_ANCHOR = "Workflow initialized"

_ENTRY_HEADING_RE = re.compile(r"^###\s+Task\s+(\d+)\s*:\s*(.*?)\s*$")
_COMPLETED_RE = re.compile(r"^-\s+\*\*Completed\*\*:\s*(.*?)\s*$")


def parse_entries(document: Document) -> list[ProgressEntry]:
    """Progress entries under ## Task Progress, in document order."""
    section = document.section(TASK_PROGRESS_SECTION)
    if section is None:
        return []

    entries: list[ProgressEntry] = []
    for line in section.body:
        heading = _ENTRY_HEADING_RE.match(line)
        if heading:
            entries.append(ProgressEntry(task_id=int(heading.group(1)), title=heading.group(2)))
            continue
        completed = _COMPLETED_RE.match(line)
        if completed and entries and entries[-1].completed_at is None:
            entries[-1].completed_at = completed.group(1)
    return entries


class ProgressTracker:
    def __init__(
        self,
        store: DocumentStore,
        ledger: TaskLedger,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.ledger = ledger
        self._clock = clock

    def _now(self) -> str:
        return self._clock().strftime("%Y-%m-%d %H:%M:%S")

    def _update(self, transform: Callable[[Document], Document]) -> None:
        document = self.store.read(PROGRESS)
        self.store.write(PROGRESS, transform(document))

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def entries(self) -> list[ProgressEntry]:
        return parse_entries(self.store.read(PROGRESS))

    def has_entry(self, task_id: int) -> bool:
        return any(e.task_id == task_id for e in self.entries())

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def record_status(self, task_id: int, title: str) -> None:
        """Replace the status banner: task complete, next task expected."""
        next_id = self.ledger.next_task_id(task_id)
        if next_id is None:
            next_line = "**Next Task**: None - all planned tasks complete"
        else:
            next_line = f"**Next Task**: Task {next_id} - {self.ledger.title_of(next_id)}"

        banner = [
            f"**Current Status**: Task {task_id} COMPLETE - {title}",
            next_line,
            f"**Last Updated**: {self._now()}",
        ]
        self._update(lambda doc: replace_section_body(doc, STATUS_SECTION, banner))

    def record_completion(self, task_id: int, title: str) -> ProgressEntry:
        """Add a Progress Entry under ## Task Progress."""
        if self.has_entry(task_id):
            logger.warning(
                "Progress entry for task %s already exists; writing a duplicate entry",
                task_id,
            )
        completed_at = self._now()
        block = [
            f"### Task {task_id}: {title}",
            "- **Status**: COMPLETE",
            f"- **Completed**: {completed_at}",
        ]
        self._update(lambda doc: patch_section(doc, TASK_PROGRESS_SECTION, block))
        return ProgressEntry(task_id=task_id, title=title, completed_at=completed_at)

    def record_component_summary(self, task_id: int, title: str, summary_text: str) -> None:
        """Add the agent's self-reported summary under ## Completed Components."""
        summary = summary_text.strip() or "(no summary provided)"
        block = [f"### Task {task_id}: {title}"] + summary.split("\n")
        self._update(lambda doc: patch_section(doc, COMPONENTS_SECTION, block))

    def record_timeline(self, task_id: int, title: str) -> bool:
        """
        Add one timestamped line to ## Timeline after the anchor line.

        The line goes after the anchor and any entries already following it.
        If the anchor is missing the entry is dropped with a warning and
        False is returned.
        """
        document = self.store.read(PROGRESS)
        section = document.section(TIMELINE_SECTION)
        anchor = None
        if section is not None:
            anchor = next(
                (i for i, line in enumerate(section.body) if TIMELINE_ANCHOR in line),
                None,
            )
        if anchor is None:
            logger.warning(
                "Timeline anchor '%s' not found in %s; timeline entry for task %s dropped",
                TIMELINE_ANCHOR, self.store.path(PROGRESS), task_id,
            )
            return False

        updated = document.copy()
        body = updated.section(TIMELINE_SECTION).body
        insert_at = anchor + 1
        while insert_at < len(body) and body[insert_at].strip():
            insert_at += 1
        body.insert(insert_at, f"- {self._now()} - Task {task_id} complete: {title}")
        self.store.write(PROGRESS, updated)
        return True
