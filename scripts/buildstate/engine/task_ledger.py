#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Task Ledger

Reads the task plan document and marks tasks complete.

Plan format (authored outside the engine):

    ## Task 1: Build the parser
    ## Task 2: COMPLETE - Wire the CLI

A task is COMPLETE when its title carries the "COMPLETE - " marker. The
legacy form "## COMPLETE - Task 2: Wire the CLI" is also read as complete.
Tasks are never deleted; mark_complete() is the only mutation.
"""

import logging
import re

from .document import Document
from .errors import MissingDocumentError
from .models import Task, TaskStatus
from .section_patch import rewrite_line
from .store import PLAN, DocumentStore

logger = logging.getLogger(__name__)

COMPLETE_MARKER = "COMPLETE - "

TASK_HEADER_RE = re.compile(
    r"^##\s+(?P<legacy>COMPLETE\s+-\s+)?Task\s+(?P<id>\d+)\s*:\s*"
    r"(?P<marker>COMPLETE\s+-\s+)?(?P<title>.*?)\s*$"
)


def parse_task_header(line: str) -> Task | None:
    """Parse a "## Task <N>: <Title>" header, or None."""
    match = TASK_HEADER_RE.match(line)
    if not match:
        return None
    complete = bool(match.group("legacy") or match.group("marker"))
    return Task(
        id=int(match.group("id")),
        title=match.group("title"),
        status=TaskStatus.COMPLETE if complete else TaskStatus.PENDING,
    )


def parse_tasks(document: Document) -> list[Task]:
    """All tasks in the plan, ordered by id. First occurrence wins on duplicates."""
    tasks: dict[int, Task] = {}
    for header in document.headers():
        task = parse_task_header(header)
        if task is not None and task.id not in tasks:
            tasks[task.id] = task
    return [tasks[k] for k in sorted(tasks)]


def default_title(task_id: int) -> str:
    return f"Task {task_id}"


class TaskLedger:
    def __init__(self, store: DocumentStore):
        self.store = store

    def tasks(self) -> list[Task]:
        return parse_tasks(self.store.read(PLAN))

    def get(self, task_id: int) -> Task | None:
        for task in self.tasks():
            if task.id == task_id:
                return task
        return None

    def exists(self, task_id: int) -> bool:
        return self.get(task_id) is not None

    def title_of(self, task_id: int) -> str:
        """The task's literal title, or a generic title when not found. Never fails."""
        try:
            task = self.get(task_id)
        except (OSError, MissingDocumentError) as exc:
            logger.warning("Cannot read plan for task %s title: %s", task_id, exc)
            return default_title(task_id)
        if task is None or not task.title:
            return default_title(task_id)
        return task.title

    def titles(self) -> dict[int, str]:
        return {t.id: t.title or default_title(t.id) for t in self.tasks()}

    def total_count(self) -> int:
        return len(self.tasks())

    def completed_ids(self, up_to: int | None = None) -> list[int]:
        return [
            t.id for t in self.tasks()
            if t.is_complete and (up_to is None or t.id <= up_to)
        ]

    def is_complete(self, task_id: int) -> bool:
        task = self.get(task_id)
        return task is not None and task.is_complete

    def next_task_id(self, current: int) -> int | None:
        """Smallest task id greater than current, or None."""
        later = [t.id for t in self.tasks() if t.id > current]
        return min(later) if later else None

    def mark_complete(self, task_id: int) -> bool:
        """
        Prefix the task's title with the completion marker.

        Returns True when the plan was rewritten, False when the task was
        already complete (logged as a no-op) or is absent from the plan.
        """
        document = self.store.read(PLAN)
        task = next((t for t in parse_tasks(document) if t.id == task_id), None)
        if task is None:
            logger.warning("Task %s not found in plan; nothing to mark complete", task_id)
            return False
        if task.is_complete:
            logger.warning("Task %s is already marked complete; no change", task_id)
            return False

        pattern = re.compile(rf"^(##\s+Task\s+{task_id}\s*:\s*)(.*)$")
        updated, changed = rewrite_line(
            document,
            pattern,
            lambda m: f"{m.group(1)}{COMPLETE_MARKER}{m.group(2).strip()}",
            headers_only=True,
        )
        if changed:
            self.store.write(PLAN, updated)
        return changed
