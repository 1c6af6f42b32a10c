#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine MCP Server

FastMCP server exposing the pipeline state to the external agent.
Supports both stdio (local development) and SSE transports.

Usage (stdio mode):
    python server.py --project-root <path>

Usage (SSE mode):
    python server.py --project-root <path> --transport sse --port 8080

Usage (CLI smoke-test):
    python server.py --project-root <path> <command>

MCP Tools exposed:
    get_task_list          — plan tasks with status and progress records
    evaluate_gate          — gate outcome for a task (no writes)
    get_available_imports  — export records of all completed tasks
    check_files            — compliance check through the correction loop
    complete_task          — run the state-update cycle for a finished task
    get_execution_log      — query the execution log

MCP Resources:
    pipeline://dashboard   — summary of plan progress and the last gate
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

# Allow running from the scripts/buildstate directory or as a module
_HERE = Path(__file__).parent
sys.path.insert(0, str(_HERE.parent.parent))  # scripts/

from buildstate.engine.audit import ExecutionLog
from buildstate.engine.compliance import check_files as run_compliance
from buildstate.engine.config import load_pipeline_config
from buildstate.engine.corrections import CorrectionTracker
from buildstate.engine.cycle import CycleRequest, StateUpdateCycle, parse_task_id
from buildstate.engine.errors import (
    ComplianceGateError,
    CorrectionLimitExceeded,
    PipelineError,
)
from buildstate.engine.exports import ExportLedger, render_available_imports
from buildstate.engine.gate import GateEvaluator
from buildstate.engine.progress import ProgressTracker
from buildstate.engine.store import PROGRESS, DocumentStore
from buildstate.engine.task_ledger import TaskLedger

ACTOR = "agent"


def _error(exc: PipelineError) -> dict[str, Any]:
    return {
        "success": False,
        "error": exc.message,
        "remedy": exc.remedy,
        "exit_code": exc.exit_code,
    }


class PipelineServer:
    """
    Pipeline engine server bound to one project root.

    Loads the configuration once and exposes the pipeline operations.
    The FastMCP tools delegate to this class.
    """

    def __init__(self, project_root: str, config_path: str | None = None):
        self.project_root = Path(project_root)
        self.config = load_pipeline_config(project_root, config_path)
        self.store = DocumentStore.from_config(self.config)
        self.log = ExecutionLog(self.config.execution_log_path)

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def _tasks(self) -> list[dict[str, Any]]:
        ledger = TaskLedger(self.store)
        recorded: set[int] = set()
        if self.store.exists(PROGRESS):
            recorded = {e.task_id for e in ProgressTracker(self.store, ledger).entries()}
        return [
            {
                "task_id": t.id,
                "title": t.title,
                "status": t.status,
                "progress_recorded": t.id in recorded,
            }
            for t in ledger.tasks()
        ]

    def get_task_list(self) -> list[dict[str, Any]] | dict[str, Any]:
        """Plan tasks with their status and whether progress was recorded."""
        try:
            return self._tasks()
        except PipelineError as exc:
            return _error(exc)

    def evaluate_gate(self, task_id: int, files: list[str] | None = None) -> dict[str, Any]:
        """Gate outcome for task_id. Read-only."""
        try:
            task_id = parse_task_id(task_id)
            report = None
            if files:
                report = run_compliance(
                    task_id, files, self.config.project_root, self.config.allowed_roots,
                    self.config.ecosystem, self.config.max_lines,
                )
            gate = GateEvaluator(self.store, self.config).evaluate(task_id, compliance=report)
        except PipelineError as exc:
            return _error(exc)
        result = gate.to_dict()
        result["success"] = True
        return result

    def get_available_imports(self) -> dict[str, Any]:
        try:
            ledger = ExportLedger(self.store)
            records = ledger.export_records()
        except PipelineError as exc:
            return _error(exc)
        return {
            "success": True,
            "records": [r.to_dict() for r in records],
            "markdown": render_available_imports(records),
        }

    def get_execution_log(self, task_id: int | None = None, limit: int = 50) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self.log.read_entries(task_id=task_id, limit=limit)]

    def get_dashboard(self) -> dict[str, Any]:
        try:
            tasks = self._tasks()
        except PipelineError as exc:
            return _error(exc)
        complete = [t["task_id"] for t in tasks if t["status"] == "complete"]
        pending = [t["task_id"] for t in tasks if t["status"] != "complete"]
        last_gate = self.log.read_entries(action="gate", limit=1)
        return {
            "total_tasks": len(tasks),
            "completed_tasks": complete,
            "pending_tasks": pending,
            "last_gate": last_gate[0].to_dict() if last_gate else None,
        }

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def check_files(self, task_id: int, files: list[str]) -> dict[str, Any]:
        """
        Run the compliance check through the correction loop.

        Returns:
            {success: true, report} when no line-count violation remains
            {success: true, report, gate} when the re-check resumed a
                complete_task run that stopped on oversized files
            {success: false, status: "correction_required", violations, attempt, ...}
                when files must be rewritten and checked again
            {success: false, status: "exhausted", ...} once the attempt bound is hit
        """
        try:
            task_id = parse_task_id(task_id)
            cycle = StateUpdateCycle(self.config, self.store, actor=ACTOR)
            if cycle.awaiting_correction(task_id):
                result = cycle.resume(task_id, list(files))
                return {
                    "success": True,
                    "report": result.compliance.to_dict(),
                    "gate": result.gate.to_dict(),
                }
            report = run_compliance(
                task_id, files, self.config.project_root, self.config.allowed_roots,
                self.config.ecosystem, self.config.max_lines,
            )
            self.log.log(
                ACTOR, "compliance_checked", task_id,
                "passed" if report.passed else f"{len(report.violations)} violation(s)",
            )
            CorrectionTracker(
                self.config.corrections_directory, self.config.max_correction_attempts,
            ).apply(report)
        except ComplianceGateError as exc:
            payload = exc.to_payload()
            payload.update({
                "success": False,
                "status": "correction_required",
                "message": exc.describe(),
            })
            return payload
        except CorrectionLimitExceeded as exc:
            result = _error(exc)
            result["status"] = "exhausted"
            return result
        except PipelineError as exc:
            return _error(exc)
        return {"success": True, "report": report.to_dict()}

    def complete_task(
        self,
        task_id: int,
        summary: str = "",
        exports: str = "",
        workspace: str | None = None,
        files: list[str] | None = None,
        packages: list[str] | None = None,
        integration_notes: str | None = None,
    ) -> dict[str, Any]:
        """Run the state-update cycle for a task the agent has finished."""
        try:
            request = CycleRequest(
                task_id=parse_task_id(task_id),
                summary=summary,
                workspace=workspace,
                exports=exports,
                packages=list(packages or []),
                integration_notes=integration_notes,
                files=list(files or []),
            )
            result = StateUpdateCycle(self.config, self.store, actor=ACTOR).run(request)
        except ComplianceGateError as exc:
            payload = exc.to_payload()
            payload.update({
                "success": False,
                "status": "correction_required",
                "message": exc.describe(),
            })
            return payload
        except PipelineError as exc:
            return _error(exc)

        return {
            "success": True,
            "task_id": result.task_id,
            "title": result.title,
            "warnings": result.warnings,
            "gate": result.gate.to_dict(),
        }


# ---------------------------------------------------------------------------
# FastMCP server factory
# ---------------------------------------------------------------------------


def create_mcp_server(project_root: str, config_path: str | None = None) -> FastMCP:
    """Create a FastMCP server wrapping the PipelineServer."""
    ps = PipelineServer(project_root, config_path)
    mcp = FastMCP("buildstate")

    @mcp.tool()
    def get_task_list() -> str:
        """
        List every task of the plan with its status.

        Each entry has task_id, title, status ('pending' or 'complete') and
        whether a progress record exists.
        """
        return json.dumps(ps.get_task_list(), indent=2)

    @mcp.tool()
    def evaluate_gate(task_id: int, files: list[str] | None = None) -> str:
        """
        Decide whether the task after task_id may start.

        Outcome is one of 'ready' (with next_task_id and available_imports),
        'blocked' (with reasons) or 'all_complete'. Does not modify documents.

        Args:
            task_id: The task that was just finished
            files: Optional list of files the task produced, for the compliance part
        """
        return json.dumps(ps.evaluate_gate(task_id, files), indent=2)

    @mcp.tool()
    def get_available_imports() -> str:
        """
        Exports recorded by completed tasks (workspace, symbols, packages).

        Use this to learn what earlier tasks made available before starting work.
        """
        return json.dumps(ps.get_available_imports(), indent=2)

    @mcp.tool()
    def check_files(task_id: int, files: list[str]) -> str:
        """
        Check produced files for location, size (max lines) and extension.

        When status is 'correction_required', rewrite or split the listed files
        (full content is included) and call check_files again. If complete_task
        stopped on those files, a passing check finishes it and returns the gate.

        Args:
            task_id: The task that produced the files
            files: Paths relative to the project root
        """
        return json.dumps(ps.check_files(task_id, files), indent=2)

    @mcp.tool()
    def complete_task(
        task_id: int,
        summary: str = "",
        exports: str = "",
        workspace: str | None = None,
        files: list[str] | None = None,
        packages: list[str] | None = None,
        integration_notes: str | None = None,
    ) -> str:
        """
        Record a finished task: progress, exports, dependency tree, compliance, gate.

        Args:
            task_id: The finished task
            summary: What was built, in a few lines
            exports: Symbols/interfaces other tasks can import
            workspace: Directory the task wrote to
            files: Every file the task created or modified
            packages: External packages newly added to the manifest
            integration_notes: How this output composes with earlier tasks
        """
        return json.dumps(
            ps.complete_task(
                task_id, summary, exports, workspace, files, packages, integration_notes,
            ),
            indent=2,
        )

    @mcp.tool()
    def get_execution_log(task_id: int | None = None, limit: int = 50) -> str:
        """
        Query the execution log, newest first.

        Args:
            task_id: Optional task filter
            limit: Maximum entries (default: 50)
        """
        return json.dumps(ps.get_execution_log(task_id, limit), indent=2)

    # MCP Resources
    @mcp.resource("pipeline://dashboard")
    def dashboard() -> str:
        """Summary: task counts, pending tasks and the last gate outcome."""
        return json.dumps(ps.get_dashboard(), indent=2)

    return mcp


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Pipeline Engine MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # MCP server mode
    python server.py --project-root .

    # SSE mode
    python server.py --project-root /app/project --transport sse --port 8080

    # CLI smoke tests
    python server.py --project-root . dashboard
    python server.py --project-root . imports
        """,
    )
    parser.add_argument("--project-root", default=".", help="Path to the project root")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--transport", choices=["stdio", "sse"], default="stdio")
    parser.add_argument("--port", type=int, default=8080, help="Port for SSE mode")
    parser.add_argument(
        "command",
        nargs="?",
        help="CLI command (omit for MCP server mode)",
    )

    args = parser.parse_args()

    if not args.command:
        mcp_server = create_mcp_server(args.project_root, args.config)
        if args.transport == "sse":
            mcp_server.settings.port = args.port
            mcp_server.run(transport="sse")
        else:
            mcp_server.run(transport="stdio")
        return

    ps = PipelineServer(args.project_root, args.config)
    if args.command == "dashboard":
        result = ps.get_dashboard()
    elif args.command == "tasks":
        result = ps.get_task_list()
    elif args.command == "imports":
        result = ps.get_available_imports()
    else:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
