#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine CLI

Human-facing command-line interface for the document-based build pipeline.

Usage:
    # All commands auto-detect .pipeline/config.yaml from the current directory
    # or accept --project-root / --config overrides.

    buildstate init                        # create progress/dependency documents
    buildstate update <task-id> ...        # run the full state-update cycle
    buildstate gate <task-id>              # evaluate the gate without writing
    buildstate check-files <task-id> <paths...>  # re-run the compliance check

    buildstate status                      # plan, progress and next task
    buildstate tree                        # current dependency tree
    buildstate imports                     # available-imports listing
    buildstate log                         # execution log

    buildstate snapshot <document> <task-id>    # manual backup
    buildstate corrections <task-id> [--reset]  # correction-loop state

Exit codes: 0 ready/all-complete, 1 input error, 2 blocked, 3 compliance
failure (payload on stdout), 4 corrupted document, 5 backup failure,
6 correction attempts exhausted.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Allow running as script or module
_HERE = Path(__file__).parent
sys.path.insert(0, str(_HERE.parent.parent))  # scripts/

from buildstate.engine.audit import ExecutionLog
from buildstate.engine.backup import BackupManager
from buildstate.engine.compliance import check_files, read_file_manifest
from buildstate.engine.config import find_project_root, load_pipeline_config
from buildstate.engine.corrections import CorrectionTracker
from buildstate.engine.cycle import CycleRequest, StateUpdateCycle, parse_task_id
from buildstate.engine.errors import ComplianceGateError, ExitCode, PipelineError
from buildstate.engine.exports import ExportLedger, TREE_SECTION
from buildstate.engine.gate import GateEvaluator
from buildstate.engine.models import GateOutcome, GateResult
from buildstate.engine.progress import ProgressTracker
from buildstate.engine.store import DEPENDENCIES, DOCUMENT_NAMES, PLAN, PROGRESS, DocumentStore
from buildstate.engine.task_ledger import TaskLedger
from buildstate.engine.templates import init_documents

ACTOR = "cli"


def _load(args: argparse.Namespace) -> tuple:
    """Load config and open the document store from args or auto-discovery."""
    project_root = Path(args.project_root) if args.project_root else find_project_root()
    config = load_pipeline_config(project_root, args.config)
    return config, DocumentStore.from_config(config)


def _text_arg(value: str | None, path: str | None) -> str:
    """Inline text wins over a file; '-' reads stdin."""
    if value is not None:
        return value
    if path == "-":
        return sys.stdin.read()
    if path:
        return Path(path).read_text(encoding="utf-8")
    return ""


def _files_arg(args: argparse.Namespace) -> list[str]:
    files = list(getattr(args, "files", None) or [])
    if getattr(args, "manifest", None):
        files.extend(read_file_manifest(args.manifest))
    return files


def _print_gate(gate: GateResult) -> None:
    print(f"Gate: {gate.outcome.upper()}")
    print(f"  Task      : {gate.current_task_id}")
    print(f"  Completed : {gate.completed_tasks}/{gate.total_tasks}")
    if gate.outcome == GateOutcome.BLOCKED:
        print(f"\nBlocking reasons ({len(gate.reasons)}):")
        for reason in gate.reasons:
            print(f"  - {reason}")
    elif gate.outcome == GateOutcome.READY:
        print(f"  Next task : {gate.next_task_id}")
    else:
        print("  All planned tasks are complete.")


def _gate_exit(gate: GateResult) -> int:
    return ExitCode.BLOCKED if gate.is_blocked else ExitCode.OK


# ---------------------------------------------------------------------------
# Cycle commands
# ---------------------------------------------------------------------------


def cmd_init(args: argparse.Namespace) -> int:
    """Create the progress and dependency documents from templates."""
    config, store = _load(args)
    created = init_documents(store)
    for path in created:
        print(f"  Created: {path}")
    if not created:
        print("All documents already exist.")
    if not store.exists(PLAN):
        print(f"Note: task plan not found at {store.path(PLAN)}; author it before running 'update'.")
    return 0


def cmd_update(args: argparse.Namespace) -> int:
    """Run the full state-update cycle for a finished task."""
    config, store = _load(args)
    request = CycleRequest(
        task_id=parse_task_id(args.task_id),
        summary=_text_arg(args.summary, args.summary_file),
        workspace=args.workspace,
        exports=_text_arg(args.exports, args.exports_file),
        packages=list(args.package or []),
        integration_notes=_text_arg(args.notes, args.notes_file) or None,
        files=_files_arg(args),
    )
    result = StateUpdateCycle(config, store).run(request)

    if args.json:
        print(json.dumps({
            "task_id": result.task_id,
            "title": result.title,
            "warnings": result.warnings,
            "backups": [b.path for b in result.backups],
            "compliance": result.compliance.to_dict(),
            "gate": result.gate.to_dict(),
        }, indent=2))
    else:
        print(f"Task {result.task_id} ({result.title}) recorded.")
        for warning in result.warnings:
            print(f"  WARNING: {warning}")
        print(f"  Backups: {len(result.backups)}")
        _print_gate(result.gate)

    if args.context_out and result.gate.is_ready:
        Path(args.context_out).write_text(result.gate.available_imports or "", encoding="utf-8")
        if not args.json:
            print(f"  Available imports written to {args.context_out}")
    return _gate_exit(result.gate)


def cmd_gate(args: argparse.Namespace) -> int:
    """Evaluate the gate without writing any document."""
    config, store = _load(args)
    task_id = parse_task_id(args.task_id)
    report = None
    files = _files_arg(args)
    if files:
        report = check_files(
            task_id, files, config.project_root, config.allowed_roots,
            config.ecosystem, config.max_lines,
        )
    gate = GateEvaluator(store, config).evaluate(task_id, compliance=report)
    if args.json:
        print(json.dumps(gate.to_dict(), indent=2))
    else:
        _print_gate(gate)
        if gate.is_ready and args.show_imports:
            print()
            print(gate.available_imports)
    return _gate_exit(gate)


def cmd_check_files(args: argparse.Namespace) -> int:
    """
    Re-run the compliance check through the correction loop.

    When an update for the task stopped on oversized files, a passing
    re-check resumes that cycle: the task is marked COMPLETE and the gate
    is evaluated.
    """
    config, store = _load(args)
    task_id = parse_task_id(args.task_id)
    files = _files_arg(args)

    cycle = StateUpdateCycle(config, store, actor=ACTOR)
    if cycle.awaiting_correction(task_id):
        result = cycle.resume(task_id, files)
        print(f"Checked {len(result.compliance.checked)} file(s) for task {task_id}; cycle resumed.")
        _print_gate(result.gate)
        return _gate_exit(result.gate)

    report = check_files(
        task_id, files, config.project_root, config.allowed_roots,
        config.ecosystem, config.max_lines,
    )
    ExecutionLog(config.execution_log_path).log(
        ACTOR, "compliance_checked", task_id,
        "passed" if report.passed else f"{len(report.violations)} violation(s)",
    )
    tracker = CorrectionTracker(config.corrections_directory, config.max_correction_attempts)
    tracker.apply(report)

    print(f"Checked {len(report.checked)} file(s) for task {task_id}.")
    if report.structural_violations:
        for v in report.structural_violations:
            print(f"  BLOCKING: {v.message}")
        return ExitCode.BLOCKED
    print("  All files within limits.")
    return 0


# ---------------------------------------------------------------------------
# Query commands
# ---------------------------------------------------------------------------


def cmd_status(args: argparse.Namespace) -> int:
    """Show plan tasks with their progress records."""
    config, store = _load(args)
    ledger = TaskLedger(store)
    tasks = ledger.tasks()
    recorded = set()
    if store.exists(PROGRESS):
        recorded = {e.task_id for e in ProgressTracker(store, ledger).entries()}

    if not tasks:
        print(f"No tasks found in {store.path(PLAN)}.")
        return 0

    print(f"\n{'ID':<6} {'Status':<10} {'Progress':<10} {'Title'}")
    print("-" * 70)
    for t in tasks:
        print(
            f"{t.id:<6} {t.status:<10} {'recorded' if t.id in recorded else '-':<10} {t.title}"
        )
    done = sum(1 for t in tasks if t.is_complete)
    pending = [t.id for t in tasks if not t.is_complete]
    print(f"\n{done}/{len(tasks)} task(s) complete.", end="")
    print(f" Next pending: Task {pending[0]}" if pending else " All tasks complete.")
    return 0


def cmd_tree(args: argparse.Namespace) -> int:
    """Print the dependency tree block."""
    config, store = _load(args)
    section = store.read(DEPENDENCIES).section(TREE_SECTION)
    if section is None:
        print(f"No '{TREE_SECTION}' section in {store.path(DEPENDENCIES)}.", file=sys.stderr)
        return ExitCode.CORRUPTION
    lines = [line for line in section.body if line.strip() and not line.lstrip().startswith("```")]
    print("\n".join(lines) if lines else "(empty)")
    return 0


def cmd_imports(args: argparse.Namespace) -> int:
    """Print the available-imports listing built from all export records."""
    config, store = _load(args)
    ledger = ExportLedger(store)
    if args.json:
        print(json.dumps([r.to_dict() for r in ledger.export_records()], indent=2))
    else:
        print(ledger.available_imports())
    return 0


def cmd_log(args: argparse.Namespace) -> int:
    """Show the execution log, newest first."""
    config, _ = _load(args)
    entries = ExecutionLog(config.execution_log_path).read_entries(
        task_id=args.task, limit=args.limit or 50,
    )
    if not entries:
        print("No execution log entries found.")
        return 0

    print(f"\n{'Timestamp':<22} {'Actor':<10} {'Action':<20} {'Task':<6} {'Details'}")
    print("-" * 100)
    for e in entries:
        task = str(e.task_id) if e.task_id is not None else "-"
        print(f"{e.timestamp[:19]:<22} {e.actor:<10} {e.action:<20} {task:<6} {e.details}")
    return 0


# ---------------------------------------------------------------------------
# Maintenance commands
# ---------------------------------------------------------------------------


def cmd_snapshot(args: argparse.Namespace) -> int:
    """Back up one document by hand."""
    config, store = _load(args)
    task_id = parse_task_id(args.task_id)
    snapshot = BackupManager(store, config.backup_directory).snapshot(args.document, task_id)
    ExecutionLog(config.execution_log_path).log("operator", "backup", task_id, snapshot.path)
    print(f"Snapshot written: {snapshot.path}")
    return 0


def cmd_corrections(args: argparse.Namespace) -> int:
    """Show or reset the correction-loop state of a task."""
    config, _ = _load(args)
    task_id = parse_task_id(args.task_id)
    tracker = CorrectionTracker(config.corrections_directory, config.max_correction_attempts)
    if args.reset:
        data = tracker.reset(task_id)
        ExecutionLog(config.execution_log_path).log("operator", "correction_reset", task_id)
        print(f"Task {task_id}: correction state reset.")
    else:
        data = tracker.load(task_id)

    bound = data["max_attempts"] if data["max_attempts"] > 0 else "unbounded"
    print(f"Task {task_id}: state={data['state']} attempts={data['attempts']} (max {bound})")
    for item in data.get("history", []):
        print(f"  Attempt {item['attempt']} at {item['at']}: {', '.join(item['files'])}")
    return 0


# ---------------------------------------------------------------------------
# Main CLI
# ---------------------------------------------------------------------------


def _report_error(exc: PipelineError) -> int:
    if isinstance(exc, ComplianceGateError):
        print(json.dumps(exc.to_payload(), indent=2))
    print(f"Error: {exc.describe()}", file=sys.stderr)
    return exc.exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buildstate",
        description="Build pipeline state engine: task, progress and dependency documents",
    )
    parser.add_argument(
        "--project-root",
        metavar="PATH",
        help="Path to the project root (default: auto-detect from .pipeline/)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to config.yaml (default: <project-root>/.pipeline/config.yaml)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # init
    p_init = subparsers.add_parser("init", help="Create progress/dependency documents")
    p_init.set_defaults(func=cmd_init)

    # update
    p_update = subparsers.add_parser("update", help="Run the state-update cycle for a task")
    p_update.add_argument("task_id", help="Task ID (e.g. 3)")
    p_update.add_argument("--summary", help="Agent summary text")
    p_update.add_argument("--summary-file", metavar="PATH", help="Read summary from file ('-' for stdin)")
    p_update.add_argument("--workspace", help="Workspace path the task wrote to")
    p_update.add_argument("--exports", help="Exported symbols/interfaces text")
    p_update.add_argument("--exports-file", metavar="PATH", help="Read exports from file")
    p_update.add_argument("--package", action="append", help="Newly added external package (repeatable)")
    p_update.add_argument("--notes", help="Integration notes")
    p_update.add_argument("--notes-file", metavar="PATH", help="Read integration notes from file")
    p_update.add_argument("--files", nargs="*", help="Files the task produced")
    p_update.add_argument("--manifest", metavar="PATH", help="File listing produced files, one per line")
    p_update.add_argument("--context-out", metavar="PATH", help="Write available imports here when READY")
    p_update.add_argument("--json", action="store_true", help="JSON output")
    p_update.set_defaults(func=cmd_update)

    # gate
    p_gate = subparsers.add_parser("gate", help="Evaluate the gate for a task")
    p_gate.add_argument("task_id", help="Current task ID")
    p_gate.add_argument("--files", nargs="*", help="Files to include in the compliance report")
    p_gate.add_argument("--manifest", metavar="PATH", help="File listing produced files")
    p_gate.add_argument("--show-imports", action="store_true", help="Print available imports when READY")
    p_gate.add_argument("--json", action="store_true", help="JSON output")
    p_gate.set_defaults(func=cmd_gate)

    # check-files
    p_check = subparsers.add_parser("check-files", help="Re-run the file-compliance check")
    p_check.add_argument("task_id", help="Task ID")
    p_check.add_argument("files", nargs="*", help="Files to check")
    p_check.add_argument("--manifest", metavar="PATH", help="File listing produced files")
    p_check.set_defaults(func=cmd_check_files)

    # status
    p_status = subparsers.add_parser("status", help="Show task status")
    p_status.set_defaults(func=cmd_status)

    # tree
    p_tree = subparsers.add_parser("tree", help="Show the dependency tree")
    p_tree.set_defaults(func=cmd_tree)

    # imports
    p_imports = subparsers.add_parser("imports", help="Show available imports")
    p_imports.add_argument("--json", action="store_true", help="JSON output")
    p_imports.set_defaults(func=cmd_imports)

    # log
    p_log = subparsers.add_parser("log", help="Show execution log")
    p_log.add_argument("--task", type=int, help="Filter by task ID")
    p_log.add_argument("--limit", type=int, default=50, help="Max entries")
    p_log.set_defaults(func=cmd_log)

    # snapshot
    p_snap = subparsers.add_parser("snapshot", help="Back up a document")
    p_snap.add_argument("document", choices=DOCUMENT_NAMES, help="Document to back up")
    p_snap.add_argument("task_id", help="Task ID the snapshot belongs to")
    p_snap.set_defaults(func=cmd_snapshot)

    # corrections
    p_corr = subparsers.add_parser("corrections", help="Show or reset correction-loop state")
    p_corr.add_argument("task_id", help="Task ID")
    p_corr.add_argument("--reset", action="store_true", help="Clear attempts (operator action)")
    p_corr.set_defaults(func=cmd_corrections)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    try:
        code = args.func(args)
    except PipelineError as exc:
        code = _report_error(exc)
    sys.exit(code)


if __name__ == "__main__":
    main()
