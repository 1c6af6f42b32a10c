#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Correction Tracking

Drives the compliance correction loop for one task and persists its state in
.pipeline/corrections/task-<id>.yaml so the attempt count survives process
restarts and is visible to the operator:

    task_id: 3
    state: correcting
    attempts: 2
    max_attempts: 3
    history:
      - {attempt: 1, at: "2026-10-18T10:02:11", files: ["src/big.py"]}

Each check that finds line-count violations is one attempt. While attempts
stay within max_attempts a ComplianceGateError is raised and the corrective
actor is expected to rewrite the files and re-run the check. The first
failure beyond the bound moves the loop to 'exhausted' and raises
CorrectionLimitExceeded; only an operator reset leaves that state.
max_attempts = 0 means unbounded (attempts are still counted).
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import yaml

from .compliance import enforce
from .errors import CorrectionLimitExceeded
from .models import ComplianceReport
from .state_machine import CorrectionState, validate_transition
from .store import atomic_write_text

logger = logging.getLogger(__name__)


class CorrectionTracker:
    def __init__(
        self,
        state_dir: str | Path,
        max_attempts: int = 3,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.state_dir = Path(state_dir)
        self.max_attempts = max_attempts
        self._clock = clock

    def state_path(self, task_id: int) -> Path:
        return self.state_dir / f"task-{task_id}.yaml"

    def load(self, task_id: int) -> dict[str, Any]:
        path = self.state_path(task_id)
        if not path.exists():
            return {
                "task_id": task_id,
                "state": CorrectionState.IDLE,
                "attempts": 0,
                "max_attempts": self.max_attempts,
                "history": [],
            }
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        data.setdefault("task_id", task_id)
        data.setdefault("state", CorrectionState.IDLE)
        data.setdefault("attempts", 0)
        data.setdefault("history", [])
        data["max_attempts"] = self.max_attempts
        return data

    def _save(self, data: dict[str, Any]) -> None:
        atomic_write_text(
            self.state_path(data["task_id"]),
            yaml.safe_dump(data, sort_keys=False),
        )

    def _move(self, data: dict[str, Any], to_state: str) -> None:
        validate_transition(data["state"], to_state)
        data["state"] = to_state

    def _bounded(self) -> bool:
        return self.max_attempts > 0

    def apply(self, report: ComplianceReport) -> dict[str, Any]:
        """
        Feed one compliance report through the loop.

        Returns the persisted state when the check passed.

        Raises:
            CorrectionLimitExceeded: the loop is (or just became) exhausted.
            ComplianceGateError: line-count violations within the attempt bound.
        """
        data = self.load(report.task_id)
        path = str(self.state_path(report.task_id))

        if data["state"] == CorrectionState.EXHAUSTED:
            raise CorrectionLimitExceeded(report.task_id, data["attempts"], path)
        if data["state"] in (CorrectionState.VIOLATION, CorrectionState.CHECKING):
            # An interrupted run left the loop mid-check; resume as a re-check.
            data["state"] = CorrectionState.CORRECTING
        if data["state"] == CorrectionState.PASSED:
            data["attempts"] = 0
            data["history"] = []

        self._move(data, CorrectionState.CHECKING)

        if not report.line_count_violations:
            self._move(data, CorrectionState.PASSED)
            self._save(data)
            return data

        self._move(data, CorrectionState.VIOLATION)
        data["attempts"] += 1
        data["history"].append({
            "attempt": data["attempts"],
            "at": self._clock().isoformat(timespec="seconds"),
            "files": [v.path for v in report.line_count_violations],
        })

        if self._bounded() and data["attempts"] > self.max_attempts:
            self._move(data, CorrectionState.EXHAUSTED)
            self._save(data)
            logger.error(
                "Task %s: correction attempts exhausted (%s)", report.task_id, data["attempts"],
            )
            raise CorrectionLimitExceeded(report.task_id, data["attempts"], path)

        self._move(data, CorrectionState.CORRECTING)
        self._save(data)
        enforce(
            report,
            attempt=data["attempts"],
            max_attempts=self.max_attempts if self._bounded() else None,
        )
        return data

    def reset(self, task_id: int) -> dict[str, Any]:
        """Operator reset: clear attempts and return the loop to idle."""
        data = self.load(task_id)
        if data["state"] == CorrectionState.EXHAUSTED:
            self._move(data, CorrectionState.IDLE)
        else:
            data["state"] = CorrectionState.IDLE
        data["attempts"] = 0
        data["history"] = []
        self._save(data)
        return data
