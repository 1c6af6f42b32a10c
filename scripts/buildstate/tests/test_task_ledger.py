"""
Tests for engine/task_ledger.py

Validates:
- Task headers are parsed with id, title and status
- Both completion marker forms are recognised
- mark_complete rewrites only the header line and is a no-op when repeated
- title_of never fails
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from buildstate.engine.document import parse_document
from buildstate.engine.models import TaskStatus
from buildstate.engine.store import PLAN
from buildstate.engine.task_ledger import TaskLedger, parse_task_header, parse_tasks


@pytest.fixture
def ledger(store):
    return TaskLedger(store)


@pytest.mark.parametrize("line,task_id,title,status", [
    ("## Task 1: Build the parser", 1, "Build the parser", TaskStatus.PENDING),
    ("## Task 12:Wire it", 12, "Wire it", TaskStatus.PENDING),
    ("## Task 2: COMPLETE - Wire the CLI", 2, "Wire the CLI", TaskStatus.COMPLETE),
    ("## COMPLETE - Task 3: Package", 3, "Package", TaskStatus.COMPLETE),
])
def test_parse_task_header(line, task_id, title, status):
    task = parse_task_header(line)
    assert (task.id, task.title, task.status) == (task_id, title, status)


@pytest.mark.parametrize("line", ["## Tasks", "### Task 1: Nested", "## Task one: Words"])
def test_non_task_headers_ignored(line):
    assert parse_task_header(line) is None


def test_parse_tasks_sorted_and_deduplicated():
    doc = parse_document("## Task 3: C\n## Task 1: A\n## Task 3: Duplicate\n")
    tasks = parse_tasks(doc)
    assert [(t.id, t.title) for t in tasks] == [(1, "A"), (3, "C")]


def test_task_inside_fence_is_not_parsed():
    doc = parse_document("## Task 1: A\n```\n## Task 2: Example\n```\n")
    assert [t.id for t in parse_tasks(doc)] == [1]


def test_ledger_queries(ledger):
    assert [t.id for t in ledger.tasks()] == [1, 2, 3]
    assert ledger.total_count() == 3
    assert ledger.next_task_id(1) == 2
    assert ledger.next_task_id(3) is None
    assert ledger.titles()[2] == "Wire the CLI"
    assert ledger.completed_ids() == []


def test_mark_complete_rewrites_header_only(ledger, store):
    before = store.read_text(PLAN)
    assert ledger.mark_complete(2) is True

    after = store.read_text(PLAN)
    assert "## Task 2: COMPLETE - Wire the CLI\n" in after
    assert after.replace("COMPLETE - ", "", 1) == before
    assert ledger.is_complete(2)
    assert ledger.completed_ids(up_to=3) == [2]


def test_mark_complete_twice_is_noop(ledger, store):
    ledger.mark_complete(1)
    once = store.read_text(PLAN)
    assert ledger.mark_complete(1) is False
    assert store.read_text(PLAN) == once


def test_mark_complete_unknown_task(ledger):
    assert ledger.mark_complete(99) is False


def test_mark_complete_skips_fenced_example(ledger, store):
    store.write_text(PLAN, (
        "# Task Plan\n\n"
        "Headers look like this:\n"
        "```\n## Task 1: Example header\n```\n\n"
        "## Task 1: Build it\n"
    ))
    assert ledger.mark_complete(1) is True

    after = store.read_text(PLAN)
    assert "## Task 1: Example header\n" in after
    assert "## Task 1: COMPLETE - Build it\n" in after
    assert ledger.is_complete(1)


def test_title_of_falls_back(ledger, store):
    assert ledger.title_of(1) == "Build the parser"
    assert ledger.title_of(42) == "Task 42"
    store.path(PLAN).unlink()
    assert ledger.title_of(1) == "Task 1"
