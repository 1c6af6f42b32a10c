#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Dependency/Export Ledger

Writes the dependency document: what each completed task exports, how its
output composes with earlier tasks, and a rendering of the dependency chain.
The next task's context builder reads the export records back through
export_records() / render_available_imports().

Document sections:
    ## Exported Components   (or ## Component Dependencies)
        ### Agent <id> Exports          one per completed task
    ## Integration Points
        ### Task <id> Integration
    ## Dependency Tree
        ```                             fenced block, fully regenerated
        ```
    ## Known Issues                     read by the gate evaluator
"""

import logging
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

from .document import Document, is_fence
from .errors import CorruptionError
from .models import ExportRecord
from .section_patch import append_to_subsection, patch_section
from .store import DEPENDENCIES, DocumentStore

logger = logging.getLogger(__name__)

EXPORTS_SECTION = "## Exported Components"
EXPORTS_SECTION_ALT = "## Component Dependencies"
INTEGRATION_SECTION = "## Integration Points"
TREE_SECTION = "## Dependency Tree"
KNOWN_ISSUES_SECTION = "## Known Issues"

_EXPORT_HEADING_RE = re.compile(r"^###\s+Agent\s+(\d+)\s+Exports\s*$")
_WORKSPACE_RE = re.compile(r"^-\s+\*\*Workspace\*\*:\s*`?(.*?)`?\s*$")
_PACKAGES_RE = re.compile(r"^-\s+\*\*Packages Added\*\*:\s*(.*?)\s*$")
_MANIFEST_NOTE_PREFIX = "- **Package Manifest**:"


def export_heading(task_id: int) -> str:
    return f"### Agent {task_id} Exports"


def exports_section_header(document: Document) -> str:
    """The export section this document uses; the primary name when neither exists."""
    if document.find(EXPORTS_SECTION) is None and document.find(EXPORTS_SECTION_ALT) is not None:
        return EXPORTS_SECTION_ALT
    return EXPORTS_SECTION


def _strip_blank_edges(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


def parse_export_records(document: Document) -> list[ExportRecord]:
    """All Agent-Exports subsections, in document order."""
    section = document.section(exports_section_header(document))
    if section is None:
        return []

    records: list[ExportRecord] = []
    body: list[str] = []

    def flush() -> None:
        if records:
            records[-1].exports = "\n".join(_strip_blank_edges(body))

    for line in section.body:
        heading = _EXPORT_HEADING_RE.match(line)
        if heading:
            flush()
            body = []
            records.append(ExportRecord(task_id=int(heading.group(1))))
            continue
        if not records:
            continue
        if line.startswith("### "):
            # An unrelated subsection ends the current record.
            flush()
            body = []
            continue
        workspace = _WORKSPACE_RE.match(line)
        if workspace and records[-1].workspace is None:
            records[-1].workspace = workspace.group(1)
            continue
        packages = _PACKAGES_RE.match(line)
        if packages:
            records[-1].packages.extend(
                p.strip() for p in packages.group(1).split(",") if p.strip()
            )
            continue
        if line.startswith(_MANIFEST_NOTE_PREFIX):
            continue
        body.append(line)
    flush()
    return records


def render_dependency_tree(completed_ids: list[int], titles: dict[int, str] | None = None) -> list[str]:
    """
    One line per completed task, each pointing at its immediate predecessor.

    The first task has no dependency arrow.
    """
    titles = titles or {}
    lines: list[str] = []
    previous: int | None = None
    for task_id in sorted(set(completed_ids)):
        label = f"Task {task_id}: {titles.get(task_id, f'Task {task_id}')}"
        if previous is None:
            lines.append(label)
        else:
            lines.append(f"{label} -> depends on Task {previous}")
        previous = task_id
    return lines


def render_available_imports(records: list[ExportRecord]) -> str:
    """Markdown listing of every export record, for the next task's context."""
    if not records:
        return "## Available Imports\n\nNo exports recorded yet.\n"

    lines = ["## Available Imports", ""]
    for record in records:
        where = f" (`{record.workspace}`)" if record.workspace else ""
        lines.append(f"### From Task {record.task_id}{where}")
        if record.exports:
            lines.extend(record.exports.split("\n"))
        else:
            lines.append("(no exports listed)")
        if record.packages:
            lines.append(f"Packages: {', '.join(record.packages)}")
        lines.append("")
    return "\n".join(lines)


class ExportLedger:
    def __init__(
        self,
        store: DocumentStore,
        manifest_path: str | Path | None = None,
        update_window_minutes: int = 10,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.manifest_path = Path(manifest_path) if manifest_path else None
        self.update_window = timedelta(minutes=update_window_minutes)
        self._clock = clock

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def export_records(self) -> list[ExportRecord]:
        return parse_export_records(self.store.read(DEPENDENCIES))

    def available_imports(self) -> str:
        return render_available_imports(self.export_records())

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def record_exports(
        self,
        task_id: int,
        workspace_path: str,
        exports_text: str,
        packages: list[str] | None = None,
    ) -> ExportRecord:
        """Insert an "Agent <id> Exports" subsection under the export section."""
        document = self.store.read(DEPENDENCIES)
        header = exports_section_header(document)

        block = [export_heading(task_id), f"- **Workspace**: `{workspace_path}`"]
        if packages:
            block.append(f"- **Packages Added**: {', '.join(packages)}")
        exports = exports_text.strip()
        block.extend(exports.split("\n") if exports else ["(no exports listed)"])

        self.store.write(DEPENDENCIES, patch_section(document, header, block))
        return ExportRecord(
            task_id=task_id,
            workspace=workspace_path,
            exports=exports,
            packages=list(packages or []),
        )

    def record_integration_notes(self, task_id: int, notes_text: str) -> None:
        """Insert a "Task <id> Integration" block under ## Integration Points."""
        notes = notes_text.strip() or "(no integration notes)"
        block = [f"### Task {task_id} Integration"] + notes.split("\n")
        document = self.store.read(DEPENDENCIES)
        self.store.write(DEPENDENCIES, patch_section(document, INTEGRATION_SECTION, block))

    def rebuild_dependency_tree(
        self,
        completed_task_ids: list[int],
        titles: dict[int, str] | None = None,
    ) -> list[str]:
        """
        Regenerate the fenced block under ## Dependency Tree.

        Everything between the opening and closing fence is replaced.

        Raises:
            CorruptionError: the section, its opening fence, or its closing
                fence cannot be found.
        """
        document = self.store.read(DEPENDENCIES)
        path = str(self.store.path(DEPENDENCIES))
        idx = document.find(TREE_SECTION)
        if idx is None:
            raise CorruptionError(
                path,
                f"section '{TREE_SECTION}' not found",
                remedy=f"add a '{TREE_SECTION}' section containing an empty ``` fenced block to {path}",
            )

        body = document.sections[idx].body
        fences = [i for i, line in enumerate(body) if is_fence(line)]
        if not fences:
            raise CorruptionError(
                path,
                f"no fenced block under '{TREE_SECTION}'",
                remedy=f"add an empty ``` fenced block under '{TREE_SECTION}' in {path}",
            )
        if len(fences) < 2:
            raise CorruptionError(
                path,
                f"fenced block under '{TREE_SECTION}' is not closed before end-of-file",
                remedy=f"add the closing ``` line to the '{TREE_SECTION}' block in {path}",
            )

        lines = render_dependency_tree(completed_task_ids, titles)
        updated = document.copy()
        start, end = fences[0], fences[1]
        updated.sections[idx].body[start + 1:end] = lines
        self.store.write(DEPENDENCIES, updated)
        return lines

    def note_package_update(
        self,
        task_id: int,
        packages: list[str] | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Note a recent package-manifest change under the task's export subsection.

        Only written when the manifest was modified within the update window.
        Returns True when a note was added.
        """
        if self.manifest_path is None or not self.manifest_path.exists():
            return False

        now = now or self._clock()
        modified = datetime.fromtimestamp(self.manifest_path.stat().st_mtime)
        if now - modified > self.update_window:
            return False

        note = (
            f"{_MANIFEST_NOTE_PREFIX} `{self.manifest_path.name}` updated "
            f"{modified.strftime('%Y-%m-%d %H:%M:%S')}"
        )
        if packages:
            note += f" (new: {', '.join(packages)})"

        document = self.store.read(DEPENDENCIES)
        updated, changed = append_to_subsection(
            document, exports_section_header(document), export_heading(task_id), note,
        )
        if not changed:
            logger.warning(
                "No '%s' subsection in %s; package update note for task %s dropped",
                export_heading(task_id), self.store.path(DEPENDENCIES), task_id,
            )
            return False
        self.store.write(DEPENDENCIES, updated)
        return True
