"""
Tests for server/server.py

Validates:
- PipelineServer tools return plain dicts and never raise pipeline errors
- complete_task runs the cycle and reports the gate
- check_files reports correction_required and exhausted states
- The FastMCP factory builds a server for the project
"""

import sys
from pathlib import Path

import pytest
from mcp.server.fastmcp import FastMCP

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from buildstate.engine.errors import ExitCode
from buildstate.server.server import PipelineServer, create_mcp_server

from conftest import write_source


@pytest.fixture
def server(project, store):
    return PipelineServer(str(project))


def test_task_list(server):
    tasks = server.get_task_list()
    assert [t["task_id"] for t in tasks] == [1, 2, 3]
    assert tasks[0]["status"] == "pending"
    assert tasks[0]["progress_recorded"] is False


def test_complete_task_then_dashboard(server, project):
    write_source(project, "src/parser/core.py", 5)
    result = server.complete_task(
        1, summary="Parser", exports="- `parse()`", workspace="src/parser",
        files=["src/parser/core.py"],
    )
    assert result["success"] is True
    assert result["gate"]["outcome"] == "ready"
    assert result["gate"]["next_task_id"] == 2

    dashboard = server.get_dashboard()
    assert dashboard["completed_tasks"] == [1]
    assert dashboard["pending_tasks"] == [2, 3]
    assert "ready" in dashboard["last_gate"]["details"]

    imports = server.get_available_imports()
    assert imports["records"][0]["workspace"] == "src/parser"
    assert "### From Task 1" in imports["markdown"]

    log = server.get_execution_log(task_id=1, limit=1)
    assert log[0]["action"] == "cycle_complete"
    assert log[0]["actor"] == "agent"


def test_complete_unknown_task(server):
    result = server.complete_task(9)
    assert result["success"] is False
    assert result["exit_code"] == ExitCode.INPUT
    assert result["remedy"]


def test_evaluate_gate_blocked(server):
    result = server.evaluate_gate(2)
    assert result["success"] is True
    assert result["outcome"] == "blocked"
    assert result["reasons"]


def test_evaluate_gate_bad_id(server):
    assert server.evaluate_gate("x")["success"] is False


def test_check_files_correction_loop(project, store):
    (project / ".pipeline" / "config.yaml").write_text(
        "compliance:\n  max_correction_attempts: 1\n", encoding="utf-8",
    )
    server = PipelineServer(str(project))
    write_source(project, "src/big.py", 501)

    first = server.check_files(1, ["src/big.py"])
    assert first["status"] == "correction_required"
    assert first["attempt"] == 1
    assert first["violations"][0]["content"]

    second = server.check_files(1, ["src/big.py"])
    assert second["status"] == "exhausted"
    assert second["exit_code"] == ExitCode.CORRECTION_LIMIT


def test_check_files_passes(server, project):
    write_source(project, "src/small.py", 5)
    result = server.check_files(1, ["src/small.py"])
    assert result["success"] is True
    assert result["report"]["passed"] is True


def test_check_files_resumes_stopped_completion(server, project):
    write_source(project, "src/parser/core.py", 501)
    stopped = server.complete_task(1, exports="- `parse()`", files=["src/parser/core.py"])
    assert stopped["status"] == "correction_required"

    write_source(project, "src/parser/core.py", 10)
    result = server.check_files(1, ["src/parser/core.py"])
    assert result["success"] is True
    assert result["gate"]["outcome"] == "ready"
    assert result["gate"]["next_task_id"] == 2

    [task_one] = [t for t in server.get_task_list() if t["task_id"] == 1]
    assert task_one["status"] == "complete"
    assert task_one["progress_recorded"] is True


def test_queries_without_plan_return_error(server, project):
    (project / "docs" / "tasks.md").unlink()
    for result in (server.get_task_list(), server.get_dashboard()):
        assert result["success"] is False
        assert result["exit_code"] == ExitCode.INPUT
        assert result["remedy"]


def test_create_mcp_server(project, store):
    mcp = create_mcp_server(str(project))
    assert isinstance(mcp, FastMCP)
