#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Error Types

Every fatal condition of a state-update cycle is a PipelineError. Each carries
the specific artifact that is missing or violating, the remedy (a command to
run or a document to fix), and the process exit code the CLI reports.

Consistency warnings are not errors: they are logged and the cycle proceeds.
"""

from .models import ComplianceViolation


class ExitCode:
    OK = 0
    INPUT = 1
    BLOCKED = 2
    COMPLIANCE = 3
    CORRUPTION = 4
    BACKUP = 5
    CORRECTION_LIMIT = 6


class PipelineError(Exception):
    """Base class for fatal pipeline conditions."""

    exit_code = ExitCode.INPUT

    def __init__(self, message: str, remedy: str | None = None):
        self.message = message
        self.remedy = remedy
        super().__init__(message)

    def describe(self) -> str:
        """Message plus remedy, as printed by the CLI."""
        if self.remedy:
            return f"{self.message}\n  Fix: {self.remedy}"
        return self.message


class InputValidationError(PipelineError):
    """Missing document, missing task, or malformed task id."""

    exit_code = ExitCode.INPUT


class MissingDocumentError(InputValidationError):
    """A required document does not exist on disk."""

    def __init__(self, name: str, path: str):
        self.name = name
        self.path = path
        super().__init__(
            f"Required {name} document not found: {path}",
            remedy=(
                "run 'buildstate init' to create the progress and dependency "
                f"documents, or author the {name} document at {path}"
            ),
        )


class CorruptionError(PipelineError):
    """A required section or fenced block is not in the expected shape."""

    exit_code = ExitCode.CORRUPTION

    def __init__(self, path: str, message: str, remedy: str | None = None):
        self.path = path
        super().__init__(
            f"{path}: {message}",
            remedy=remedy or f"repair {path} by hand or restore it from the backup store",
        )


class BackupError(PipelineError):
    """The backup store could not be written. Fail closed."""

    exit_code = ExitCode.BACKUP


class ComplianceGateError(PipelineError):
    """
    One or more produced files exceed the line-count limit.

    The payload (path, current line count, full content) is structured to drive
    a corrective rewrite, after which the same check must be re-run.
    """

    exit_code = ExitCode.COMPLIANCE

    def __init__(
        self,
        task_id: int,
        violations: list[ComplianceViolation],
        attempt: int | None = None,
        max_attempts: int | None = None,
    ):
        self.task_id = task_id
        self.violations = violations
        self.attempt = attempt
        self.max_attempts = max_attempts
        listing = ", ".join(
            f"{v.path} ({v.line_count} lines > {v.limit})" for v in violations
        )
        super().__init__(
            f"Task {task_id}: file line-count limit exceeded: {listing}",
            remedy=(
                "split or rewrite the listed file(s), then re-run "
                f"'buildstate check-files {task_id} <paths...>'; a passing re-check "
                "finishes the interrupted update and evaluates the gate"
            ),
        )

    def to_payload(self) -> dict:
        return {
            "task_id": self.task_id,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "violations": [v.to_dict() for v in self.violations],
        }


class CorrectionLimitExceeded(PipelineError):
    """Corrective rewrites did not bring the files under the limit in time."""

    exit_code = ExitCode.CORRECTION_LIMIT

    def __init__(self, task_id: int, attempts: int, state_path: str):
        self.task_id = task_id
        self.attempts = attempts
        self.state_path = state_path
        super().__init__(
            f"Task {task_id}: compliance still failing after {attempts} correction attempt(s)",
            remedy=(
                "fix the files manually, then run "
                f"'buildstate corrections {task_id} --reset' (state: {state_path})"
            ),
        )
