#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine State-Update Cycle

Runs once per finished task, after the external agent has produced its
output. Phases run strictly in order, each to completion:

1. validate_inputs      — task id, required documents, consistency warnings
2. update_progress      — backup, status banner, progress entry, summary, timeline
3. update_dependencies  — backup, export record, package note, dependency tree
4. analyze_integration  — integration notes (supplied or synthesised)
5. validate_files       — compliance check through the correction loop
6. prepare_next         — backup, mark task COMPLETE, evaluate the gate

A cycle stopped by line-count violations is resumed by the next check of
its files (check-files, or update run again): resume() runs validate_files and prepare_next only, so the entries
already written are not duplicated.

Fatal errors abort the cycle immediately (logged as cycle_abort) and leave
the documents as the last finished phase wrote them; the backup store holds
the pre-phase copies. Consistency warnings are logged and the cycle proceeds.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator

from .audit import ExecutionLog
from .backup import BackupManager
from .compliance import check_files
from .corrections import CorrectionTracker
from .errors import InputValidationError, PipelineError
from .exports import ExportLedger
from .gate import GateEvaluator
from .models import BackupSnapshot, ComplianceReport, GateResult, PipelineConfig
from .progress import ProgressTracker
from .state_machine import CorrectionState, CyclePhase, CycleTracker
from .store import DEPENDENCIES, DOCUMENT_NAMES, PLAN, PROGRESS, DocumentStore
from .task_ledger import TaskLedger

logger = logging.getLogger(__name__)

ACTOR = "cycle"


def parse_task_id(raw: object) -> int:
    """Parse a positive integer task id, raising InputValidationError otherwise."""
    if isinstance(raw, bool):
        value = None
    elif isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        value = int(text) if text.isascii() and text.isdigit() else None
    if value is None or value < 1:
        raise InputValidationError(
            f"Malformed task id {raw!r}: must be a positive integer",
            remedy="pass the numeric id from a '## Task <N>: <Title>' header, e.g. 'buildstate update 3'",
        )
    return value


@dataclass
class CycleRequest:
    """What the producing phase hands over for one finished task."""
    task_id: int
    summary: str = ""
    workspace: str | None = None
    exports: str = ""
    packages: list[str] = field(default_factory=list)
    integration_notes: str | None = None
    files: list[str] = field(default_factory=list)


@dataclass
class CycleResult:
    task_id: int
    title: str
    gate: GateResult
    compliance: ComplianceReport
    backups: list[BackupSnapshot] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    phases: list[str] = field(default_factory=list)


class StateUpdateCycle:
    """Wires the components together for one project."""

    def __init__(
        self,
        config: PipelineConfig,
        store: DocumentStore | None = None,
        clock: Callable[[], datetime] = datetime.now,
        actor: str = ACTOR,
    ):
        self.config = config
        self.store = store or DocumentStore.from_config(config)
        self.actor = actor
        self._clock = clock

        manifest = config.ecosystem.manifest
        self.ledger = TaskLedger(self.store)
        self.progress = ProgressTracker(self.store, self.ledger, clock=clock)
        self.exports = ExportLedger(
            self.store,
            manifest_path=Path(config.project_root) / manifest if manifest else None,
            update_window_minutes=config.package_update_window_minutes,
            clock=clock,
        )
        self.backups = BackupManager(self.store, config.backup_directory, clock=clock)
        self.log = ExecutionLog(config.execution_log_path, clock=clock)
        self.corrections = CorrectionTracker(
            config.corrections_directory,
            max_attempts=config.max_correction_attempts,
            clock=clock,
        )
        self.gate = GateEvaluator(self.store, config)

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    @contextmanager
    def _phase(self, tracker: CycleTracker, phase: str, task_id: int) -> Iterator[None]:
        tracker.begin(phase)
        yield
        tracker.finish(phase)
        self.log.log(self.actor, "phase_complete", task_id, phase)

    def _warn(self, warnings: list[str], task_id: int, message: str) -> None:
        logger.warning(message)
        warnings.append(message)
        self.log.log(self.actor, "warning", task_id, message)

    def _backup(self, result_backups: list[BackupSnapshot], document: str, task_id: int) -> None:
        snapshot = self.backups.snapshot(document, task_id)
        result_backups.append(snapshot)
        self.log.log(self.actor, "backup", task_id, f"{document} -> {snapshot.path}")

    # -----------------------------------------------------------------------
    # Phases
    # -----------------------------------------------------------------------

    def validate_inputs(self, task_id: int, files: list[str], warnings: list[str]) -> str:
        """Fatal checks first, then consistency warnings. Returns the task title."""
        for name in DOCUMENT_NAMES:
            self.store.require(name)

        tasks = self.ledger.tasks()
        task = next((t for t in tasks if t.id == task_id), None)
        if task is None:
            plan = self.store.path(PLAN)
            raise InputValidationError(
                f"Task {task_id} not found in {plan}",
                remedy=f"add a '## Task {task_id}: <Title>' header to {plan}",
            )

        if task.is_complete:
            self._warn(
                warnings, task_id,
                f"Task {task_id} is already marked COMPLETE; re-running duplicates its entries",
            )

        earlier = [t for t in tasks if t.id < task_id]
        if earlier:
            previous = earlier[-1]
            if not previous.is_complete:
                self._warn(
                    warnings, task_id,
                    f"Previous task {previous.id} is not marked COMPLETE in the plan",
                )
            if not self.progress.has_entry(previous.id):
                self._warn(
                    warnings, task_id,
                    f"No progress record for previous task {previous.id}",
                )

        if not files:
            self._warn(
                warnings, task_id,
                f"No files listed for task {task_id}; file compliance has nothing to check",
            )

        return task.title or f"Task {task_id}"

    def update_progress(self, task_id: int, title: str, summary: str, warnings: list[str]) -> None:
        self.progress.record_status(task_id, title)
        self.progress.record_completion(task_id, title)
        self.progress.record_component_summary(task_id, title, summary)
        if not self.progress.record_timeline(task_id, title):
            message = f"Timeline entry for task {task_id} dropped: anchor line missing"
            warnings.append(message)
            self.log.log(self.actor, "warning", task_id, message)

    def update_dependencies(self, request: CycleRequest, title: str) -> None:
        workspace = request.workspace or f"task-{request.task_id}"
        self.exports.record_exports(request.task_id, workspace, request.exports, request.packages)
        self.exports.note_package_update(request.task_id, request.packages or None)

        completed = set(self.ledger.completed_ids(up_to=request.task_id))
        completed.add(request.task_id)
        titles = self.ledger.titles()
        titles[request.task_id] = title
        self.exports.rebuild_dependency_tree(sorted(completed), titles)

    def integration_notes(self, task_id: int) -> str:
        """Default notes: which earlier tasks' exports this task can build on."""
        upstream = [r for r in self.exports.export_records() if r.task_id < task_id]
        if not upstream:
            return f"No upstream exports; Task {task_id} starts the dependency chain."
        sources = ", ".join(
            f"Task {r.task_id}" + (f" (`{r.workspace}`)" if r.workspace else "")
            for r in upstream
        )
        return f"Builds on exports from: {sources}"

    def validate_files(self, task_id: int, files: list[str]) -> ComplianceReport:
        report = check_files(
            task_id,
            files,
            project_root=self.config.project_root,
            allowed_roots=self.config.allowed_roots,
            ecosystem=self.config.ecosystem,
            max_lines=self.config.max_lines,
        )
        if not report.passed:
            self.log.log(
                self.actor, "compliance_failed", task_id,
                "; ".join(v.message for v in report.violations),
            )
        self.corrections.apply(report)
        return report

    def prepare_next(
        self, task_id: int, title: str, report: ComplianceReport, backups: list[BackupSnapshot],
    ) -> GateResult:
        self._backup(backups, PLAN, task_id)
        if self.ledger.mark_complete(task_id):
            self.log.log(self.actor, "mark_complete", task_id, title)
        gate = self.gate.evaluate(task_id, compliance=report)
        self.log.log(
            self.actor, "gate", task_id,
            f"{gate.outcome} next={gate.next_task_id} reasons={len(gate.reasons)}",
        )
        return gate

    def awaiting_correction(self, task_id: int) -> bool:
        """
        True when an earlier run recorded the task but stopped in the
        correction loop: progress entry written, plan not yet marked
        COMPLETE, correction state 'correcting'.
        """
        if self.corrections.load(task_id)["state"] != CorrectionState.CORRECTING:
            return False
        if not (self.store.exists(PLAN) and self.store.exists(PROGRESS)):
            return False
        return self.progress.has_entry(task_id) and not self.ledger.is_complete(task_id)

    # -----------------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------------

    def run(self, request: CycleRequest) -> CycleResult:
        task_id = parse_task_id(request.task_id)
        if self.awaiting_correction(task_id):
            logger.info("Task %s is awaiting a compliance re-check; resuming the cycle", task_id)
            return self.resume(task_id, request.files)

        tracker = CycleTracker()
        warnings: list[str] = []
        backups: list[BackupSnapshot] = []

        self.log.log(self.actor, "cycle_start", task_id, f"{len(request.files)} file(s)")
        try:
            with self._phase(tracker, CyclePhase.VALIDATE_INPUTS, task_id):
                title = self.validate_inputs(task_id, request.files, warnings)

            with self._phase(tracker, CyclePhase.UPDATE_PROGRESS, task_id):
                self._backup(backups, PROGRESS, task_id)
                self.update_progress(task_id, title, request.summary, warnings)

            with self._phase(tracker, CyclePhase.UPDATE_DEPENDENCIES, task_id):
                self._backup(backups, DEPENDENCIES, task_id)
                self.update_dependencies(request, title)

            with self._phase(tracker, CyclePhase.ANALYZE_INTEGRATION, task_id):
                notes = request.integration_notes or self.integration_notes(task_id)
                self.exports.record_integration_notes(task_id, notes)

            with self._phase(tracker, CyclePhase.VALIDATE_FILES, task_id):
                report = self.validate_files(task_id, request.files)

            with self._phase(tracker, CyclePhase.PREPARE_NEXT, task_id):
                gate = self.prepare_next(task_id, title, report, backups)
        except PipelineError as exc:
            self.log.log(
                self.actor, "cycle_abort", task_id,
                f"{tracker.current or tracker.last}: {exc.message}",
            )
            raise

        self.log.log(self.actor, "cycle_complete", task_id, gate.outcome)
        return CycleResult(
            task_id=task_id,
            title=title,
            gate=gate,
            compliance=report,
            backups=backups,
            warnings=warnings,
            phases=list(tracker.completed),
        )

    def resume(self, task_id: int, files: list[str]) -> CycleResult:
        """
        Finish a cycle that stopped in the correction loop.

        The progress, dependency and integration writes of the interrupted run
        stand; only validate_files and prepare_next run again. Raises
        InputValidationError when the task has no pending correction.
        """
        task_id = parse_task_id(task_id)
        if not self.awaiting_correction(task_id):
            state = self.corrections.load(task_id)["state"]
            raise InputValidationError(
                f"Task {task_id} has no interrupted cycle to resume (correction state: {state})",
                remedy=f"run 'buildstate update {task_id}' to record the task",
            )

        tracker = CycleTracker(start=CyclePhase.VALIDATE_FILES)
        backups: list[BackupSnapshot] = []
        title = self.ledger.title_of(task_id)

        self.log.log(self.actor, "cycle_resume", task_id, f"{len(files)} file(s)")
        try:
            with self._phase(tracker, CyclePhase.VALIDATE_FILES, task_id):
                report = self.validate_files(task_id, files)

            with self._phase(tracker, CyclePhase.PREPARE_NEXT, task_id):
                gate = self.prepare_next(task_id, title, report, backups)
        except PipelineError as exc:
            self.log.log(
                self.actor, "cycle_abort", task_id,
                f"{tracker.current or tracker.last}: {exc.message}",
            )
            raise

        self.log.log(self.actor, "cycle_complete", task_id, gate.outcome)
        return CycleResult(
            task_id=task_id,
            title=title,
            gate=gate,
            compliance=report,
            backups=backups,
            phases=list(tracker.completed),
        )
