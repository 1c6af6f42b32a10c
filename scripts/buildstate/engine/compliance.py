#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine File-Compliance Check

Verifies every file a task produced. The set of files is an explicit
manifest handed over by the producing phase (the agent or the CLI caller);
nothing is inferred from modification times.

Per file:
(a) location — the path lies under one of the allowed roots
(b) size     — line count <= max_lines (a file of exactly max_lines passes)
(c) type     — the extension is in the target ecosystem's expected set

Line-count violations are hard gate failures: enforce() raises
ComplianceGateError carrying path, current line count and full content so a
corrective rewrite can be requested. Location, extension and missing-file
violations stay in the report and block the gate.
"""

import logging
from pathlib import Path

from .errors import ComplianceGateError
from .models import (
    ComplianceReport,
    ComplianceViolation,
    EcosystemSpec,
    ViolationKind,
)

logger = logging.getLogger(__name__)


def count_lines(text: str) -> int:
    """Number of lines, counting a final line without a trailing newline."""
    if not text:
        return 0
    return text.count("\n") + (0 if text.endswith("\n") else 1)


def read_file_manifest(path: str | Path) -> list[str]:
    """Read a manifest file: one path per line, blank lines and '#' comments ignored."""
    paths: list[str] = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            paths.append(stripped)
    return paths


def _relative_to_root(path: Path, project_root: Path) -> Path | None:
    try:
        return path.resolve().relative_to(project_root.resolve())
    except ValueError:
        return None


def _under_allowed_root(relative: Path | None, allowed_roots: list[str]) -> bool:
    if relative is None:
        return False
    for root in allowed_roots:
        root_parts = Path(root).parts
        if relative.parts[:len(root_parts)] == root_parts:
            return True
    return False


def check_files(
    task_id: int,
    files: list[str | Path],
    project_root: str | Path,
    allowed_roots: list[str],
    ecosystem: EcosystemSpec,
    max_lines: int = 500,
) -> ComplianceReport:
    """Check each manifest file and collect violations. Never raises for violations."""
    project_root = Path(project_root)
    extensions = {e.lower() for e in ecosystem.extensions}
    report = ComplianceReport(task_id=task_id)

    for entry in files:
        path = Path(entry)
        if not path.is_absolute():
            path = project_root / path
        relative = _relative_to_root(path, project_root)
        display = str(relative) if relative is not None else str(path)
        report.checked.append(display)

        if not path.exists():
            report.violations.append(ComplianceViolation(
                path=display,
                kind=ViolationKind.MISSING,
                message=f"{display}: listed in the file manifest but does not exist",
            ))
            continue
        if not path.is_file():
            report.violations.append(ComplianceViolation(
                path=display,
                kind=ViolationKind.MISSING,
                message=f"{display}: listed in the file manifest but is not a regular file",
            ))
            continue

        if not _under_allowed_root(relative, allowed_roots):
            report.violations.append(ComplianceViolation(
                path=display,
                kind=ViolationKind.LOCATION,
                message=f"{display}: outside the allowed roots {allowed_roots}",
            ))

        if extensions and path.suffix.lower() not in extensions:
            report.violations.append(ComplianceViolation(
                path=display,
                kind=ViolationKind.EXTENSION,
                message=(
                    f"{display}: extension '{path.suffix}' is not expected for "
                    f"{ecosystem.name} projects {sorted(extensions)}"
                ),
            ))

        content = path.read_text(encoding="utf-8", errors="replace")
        lines = count_lines(content)
        if lines > max_lines:
            report.violations.append(ComplianceViolation(
                path=display,
                kind=ViolationKind.LINE_COUNT,
                message=f"{display}: {lines} lines exceeds the limit of {max_lines}",
                line_count=lines,
                limit=max_lines,
                content=content,
            ))

    for violation in report.violations:
        logger.info("Compliance violation (task %s): %s", task_id, violation.message)
    return report


def enforce(
    report: ComplianceReport,
    attempt: int | None = None,
    max_attempts: int | None = None,
) -> None:
    """Raise ComplianceGateError when the report holds line-count violations."""
    oversized = report.line_count_violations
    if oversized:
        raise ComplianceGateError(report.task_id, oversized, attempt, max_attempts)


def check_manifest_present(project_root: str | Path, ecosystem: EcosystemSpec) -> str | None:
    """Return a blocking reason when the ecosystem's manifest file is missing."""
    if not ecosystem.manifest:
        return None
    manifest = Path(project_root) / ecosystem.manifest
    if manifest.exists():
        return None
    return f"required {ecosystem.name} manifest '{ecosystem.manifest}' missing at {manifest}"
