#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Data Models

Typed dataclasses representing the domain objects the engine reads from and
writes to the shared documents. The documents themselves are the store; these
objects are transient views parsed out of them and are never persisted in any
other form.
"""

from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Status constants
# ---------------------------------------------------------------------------

class TaskStatus:
    PENDING = "pending"
    COMPLETE = "complete"

    ALL = frozenset([PENDING, COMPLETE])


class GateOutcome:
    ALL_COMPLETE = "all_complete"
    BLOCKED = "blocked"
    READY = "ready"

    ALL = frozenset([ALL_COMPLETE, BLOCKED, READY])


class ViolationKind:
    LOCATION = "location"
    LINE_COUNT = "line_count"
    EXTENSION = "extension"
    MISSING = "missing"


# ---------------------------------------------------------------------------
# Core dataclasses
# ---------------------------------------------------------------------------


@dataclass
class Task:
    """One `## Task <N>: <Title>` entry of the plan document."""
    id: int
    title: str
    status: str = TaskStatus.PENDING

    @property
    def is_complete(self) -> bool:
        return self.status == TaskStatus.COMPLETE


@dataclass
class ProgressEntry:
    """A completion entry under ## Task Progress."""
    task_id: int
    title: str
    completed_at: str | None = None
    summary: str | None = None


@dataclass
class ExportRecord:
    """An `### Agent <id> Exports` subsection of the dependency document."""
    task_id: int
    workspace: str | None = None
    exports: str = ""
    packages: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "workspace": self.workspace,
            "exports": self.exports,
            "packages": list(self.packages),
        }


@dataclass
class BackupSnapshot:
    """Immutable copy of a document, keyed by (document, task, moment)."""
    document: str
    task_id: int
    timestamp: str
    path: str


@dataclass
class LogEntry:
    """One parsed line of the execution log."""
    timestamp: str
    actor: str
    action: str
    task_id: int | None = None
    details: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "actor": self.actor,
            "action": self.action,
            "task_id": self.task_id,
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Compliance and gate results
# ---------------------------------------------------------------------------


@dataclass
class ComplianceViolation:
    """A single file that failed the compliance check."""
    path: str
    kind: str                       # ViolationKind value
    message: str
    line_count: int | None = None
    limit: int | None = None
    content: str | None = None      # full file text, line-count violations only

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "path": self.path,
            "kind": self.kind,
            "message": self.message,
        }
        if self.line_count is not None:
            d["line_count"] = self.line_count
            d["limit"] = self.limit
        if self.content is not None:
            d["content"] = self.content
        return d


@dataclass
class ComplianceReport:
    """Outcome of checking every file a task produced."""
    task_id: int
    checked: list[str] = field(default_factory=list)
    violations: list[ComplianceViolation] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.violations

    @property
    def line_count_violations(self) -> list[ComplianceViolation]:
        return [v for v in self.violations if v.kind == ViolationKind.LINE_COUNT]

    @property
    def structural_violations(self) -> list[ComplianceViolation]:
        """Violations other than line count (location, extension, missing file)."""
        return [v for v in self.violations if v.kind != ViolationKind.LINE_COUNT]

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "passed": self.passed,
            "checked": list(self.checked),
            "violations": [v.to_dict() for v in self.violations],
        }


@dataclass
class GateResult:
    """Terminal outcome of one gate evaluation."""
    outcome: str                    # GateOutcome value
    current_task_id: int
    total_tasks: int
    completed_tasks: int
    next_task_id: int | None = None
    reasons: list[str] = field(default_factory=list)
    available_imports: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.outcome == GateOutcome.READY

    @property
    def is_blocked(self) -> bool:
        return self.outcome == GateOutcome.BLOCKED

    @property
    def is_all_complete(self) -> bool:
        return self.outcome == GateOutcome.ALL_COMPLETE

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome,
            "current_task_id": self.current_task_id,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "next_task_id": self.next_task_id,
            "reasons": list(self.reasons),
            "available_imports": self.available_imports,
        }


# ---------------------------------------------------------------------------
# Configuration (from .pipeline/config.yaml, only used at runtime)
# ---------------------------------------------------------------------------


@dataclass
class EcosystemSpec:
    """File conventions for one target project type."""
    name: str
    extensions: list[str] = field(default_factory=list)
    manifest: str | None = None     # required file at the project root


@dataclass
class PipelineConfig:
    """Runtime configuration loaded from .pipeline/config.yaml."""
    project_root: str = "."
    plan_path: str = "docs/tasks.md"
    progress_path: str = "docs/progress.md"
    dependencies_path: str = "docs/dependencies.md"
    execution_log_path: str = "logs/execution.log"
    backup_directory: str = ".pipeline/backups"
    corrections_directory: str = ".pipeline/corrections"
    project_type: str = "python"
    max_lines: int = 500
    allowed_roots: list[str] = field(default_factory=lambda: ["src", "tests"])
    max_correction_attempts: int = 3
    package_update_window_minutes: int = 10
    ecosystems: dict[str, EcosystemSpec] = field(default_factory=dict)

    @property
    def ecosystem(self) -> EcosystemSpec:
        """The ecosystem selected by project_type (validated by the loader)."""
        return self.ecosystems[self.project_type]

    @property
    def document_paths(self) -> dict[str, str]:
        return {
            "plan": self.plan_path,
            "progress": self.progress_path,
            "dependencies": self.dependencies_path,
        }
