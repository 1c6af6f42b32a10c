#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Gate Evaluator

Decides whether the next task may be deployed. Three terminal outcomes:

    BLOCKED       any blocking condition holds; carries the reasons
    ALL_COMPLETE  no task id greater than the current one exists
    READY         carries the next task id and the available-imports listing

Blocking conditions:
- a task with id <= current is not marked COMPLETE in the plan
- an INCOMPLETE or FAILED status tag in the progress or dependency document
  ("**Status**: FAILED", "- INCOMPLETE", "Task 2 FAILED", "- [FAILED] build");
  the same word inside a task title or heading is not a tag
- a non-empty ## Known Issues section in the dependency document
- a structural compliance violation (location, extension, missing file)
  reported for the current task
- the target ecosystem's manifest file is missing

BLOCKED is checked first so a recorded problem is never hidden behind
ALL_COMPLETE. evaluate_gate() is pure: the same inputs always produce the
same outcome. It must run only after every document write of the cycle.
"""

import re

from .compliance import check_manifest_present
from .document import Document, Section, is_placeholder
from .errors import InputValidationError
from .exports import (
    KNOWN_ISSUES_SECTION,
    TREE_SECTION,
    parse_export_records,
    render_available_imports,
)
from .models import (
    ComplianceReport,
    GateOutcome,
    GateResult,
    PipelineConfig,
    Task,
)
from .store import DEPENDENCIES, PLAN, PROGRESS, DocumentStore
from .task_ledger import parse_tasks

# A tag counts only where a status goes: first word of the line, after a
# "**Label**:" or "Label:" prefix, after "Task <N>", or opening a bracket. Titles
# copied into headings and banners never match. The dependency tree is
# rendered from plan titles only and is not scanned.
BLOCKING_TAG_RE = re.compile(
    r"^\s*(?:[-*+]\s+)?"
    r"(?:\*\*[^*]+\*\*\s*:?\s*|[A-Za-z][\w ]*:\s*)?"
    r"(?:Task\s+\d+\s+)?"
    r"\[?(INCOMPLETE|FAILED)\b"
)


def _scan_lines(label: str, where: str, lines: list[str]) -> list[str]:
    reasons = []
    for line in lines:
        if is_placeholder(line) or line.lstrip().startswith("#"):
            continue
        match = BLOCKING_TAG_RE.search(line)
        if match:
            reasons.append(f"{label}: {match.group(1)} tag in {where}: {line.strip()}")
    return reasons


def find_blocking_markers(document: Document, label: str) -> list[str]:
    """INCOMPLETE/FAILED status tags, except under ## Known Issues and ## Dependency Tree."""
    reasons = _scan_lines(label, "preamble", document.preamble)
    for section in document.sections:
        if section.matches(KNOWN_ISSUES_SECTION) or section.matches(TREE_SECTION):
            continue
        reasons.extend(_scan_lines(label, section.header.strip(), section.body))
    return reasons


def known_issues(document: Document) -> list[str]:
    """Non-blank, non-placeholder lines of ## Known Issues."""
    section: Section | None = document.section(KNOWN_ISSUES_SECTION)
    if section is None:
        return []
    return [line.strip() for line in section.content_lines()]


def evaluate_gate(
    current_task_id: int,
    tasks: list[Task],
    progress: Document,
    dependencies: Document,
    compliance: ComplianceReport | None = None,
    manifest_reason: str | None = None,
) -> GateResult:
    """Compute the gate outcome from already-read inputs."""
    up_to_current = [t for t in tasks if t.id <= current_task_id]
    completed = [t for t in up_to_current if t.is_complete]

    reasons: list[str] = []
    incomplete = [t.id for t in up_to_current if not t.is_complete]
    if incomplete:
        reasons.append(
            "tasks not marked COMPLETE in plan: "
            + ", ".join(f"Task {i}" for i in incomplete)
        )
    reasons.extend(find_blocking_markers(progress, "progress"))
    reasons.extend(find_blocking_markers(dependencies, "dependencies"))
    reasons.extend(f"known issue: {issue}" for issue in known_issues(dependencies))
    if compliance is not None and compliance.task_id == current_task_id:
        reasons.extend(
            f"file compliance: {v.message}" for v in compliance.structural_violations
        )
    if manifest_reason:
        reasons.append(manifest_reason)

    base = dict(
        current_task_id=current_task_id,
        total_tasks=len(tasks),
        completed_tasks=len(completed),
    )

    if reasons:
        return GateResult(outcome=GateOutcome.BLOCKED, reasons=reasons, **base)

    later = [t.id for t in tasks if t.id > current_task_id]
    if not later:
        return GateResult(outcome=GateOutcome.ALL_COMPLETE, **base)

    return GateResult(
        outcome=GateOutcome.READY,
        next_task_id=min(later),
        available_imports=render_available_imports(parse_export_records(dependencies)),
        **base,
    )


class GateEvaluator:
    """Reads the shared documents and evaluates the gate for one task."""

    def __init__(self, store: DocumentStore, config: PipelineConfig):
        self.store = store
        self.config = config

    def evaluate(
        self,
        current_task_id: int,
        compliance: ComplianceReport | None = None,
    ) -> GateResult:
        tasks = parse_tasks(self.store.read(PLAN))
        if not any(t.id == current_task_id for t in tasks):
            raise InputValidationError(
                f"Task {current_task_id} not found in {self.store.path(PLAN)}",
                remedy=f"add a '## Task {current_task_id}: <Title>' header to {self.store.path(PLAN)}",
            )
        return evaluate_gate(
            current_task_id,
            tasks,
            self.store.read(PROGRESS),
            self.store.read(DEPENDENCIES),
            compliance=compliance,
            manifest_reason=check_manifest_present(self.config.project_root, self.config.ecosystem),
        )
