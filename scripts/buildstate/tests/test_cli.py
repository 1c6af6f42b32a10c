"""
Tests for cli/cli.py

Validates:
- Exit codes: 0 ready, 2 blocked, 1 input error, 3 compliance failure
- init creates documents, update runs the cycle, gate never writes
- Compliance failures print the JSON payload on stdout
- Query and maintenance commands read the documents and the log
"""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from buildstate.cli.cli import main
from buildstate.engine.store import PLAN

from conftest import write_source


def run_cli(project, *argv):
    with pytest.raises(SystemExit) as exc_info:
        main(["--project-root", str(project), *argv])
    return exc_info.value.code


@pytest.fixture
def initialized(project):
    assert run_cli(project, "init") == 0
    return project


def test_init_creates_documents(project, capsys):
    assert run_cli(project, "init") == 0
    out = capsys.readouterr().out
    assert "progress.md" in out
    assert (project / "docs" / "dependencies.md").exists()

    assert run_cli(project, "init") == 0
    assert "already exist" in capsys.readouterr().out


def test_update_then_gate(initialized, capsys):
    write_source(initialized, "src/parser/core.py", 5)
    code = run_cli(
        initialized, "update", "1",
        "--summary", "Parser done",
        "--workspace", "src/parser",
        "--exports", "- `parse()`",
        "--files", "src/parser/core.py",
    )
    assert code == 0
    assert "Gate: READY" in capsys.readouterr().out

    assert run_cli(initialized, "gate", "1", "--json") == 0
    gate = json.loads(capsys.readouterr().out)
    assert gate["outcome"] == "ready"
    assert gate["next_task_id"] == 2


def test_update_writes_context_file(initialized, tmp_path, capsys):
    write_source(initialized, "src/parser/core.py", 5)
    context = tmp_path / "next-context.md"
    code = run_cli(
        initialized, "update", "1",
        "--exports", "- `parse()`",
        "--files", "src/parser/core.py",
        "--context-out", str(context),
        "--json",
    )
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["gate"]["outcome"] == "ready"
    assert "## Available Imports" in context.read_text(encoding="utf-8")


def test_gate_blocked_exit_code(initialized, capsys):
    assert run_cli(initialized, "gate", "2") == 2
    assert "Blocking reasons" in capsys.readouterr().out


def test_malformed_task_id(initialized, capsys):
    assert run_cli(initialized, "gate", "two") == 1
    assert "positive integer" in capsys.readouterr().err


def test_update_without_documents(project, capsys):
    assert run_cli(project, "update", "1") == 1
    err = capsys.readouterr().err
    assert "not found" in err
    assert "Fix:" in err


def test_check_files_compliance_payload(initialized, capsys):
    write_source(initialized, "src/big.py", 501)
    assert run_cli(initialized, "check-files", "1", "src/big.py") == 3
    captured = capsys.readouterr()
    payload = json.loads(captured.out)
    assert payload["violations"][0]["line_count"] == 501
    assert "check-files 1" in captured.err


def test_check_files_resumes_stopped_update(initialized, capsys):
    write_source(initialized, "src/parser/core.py", 501)
    assert run_cli(initialized, "update", "1", "--files", "src/parser/core.py") == 3
    capsys.readouterr()

    write_source(initialized, "src/parser/core.py", 10)
    assert run_cli(initialized, "check-files", "1", "src/parser/core.py") == 0
    out = capsys.readouterr().out
    assert "cycle resumed" in out
    assert "Gate: READY" in out

    assert run_cli(initialized, "status") == 0
    assert "1/3 task(s) complete" in capsys.readouterr().out
    progress = (initialized / "docs" / "progress.md").read_text(encoding="utf-8")
    assert progress.count("- **Status**: COMPLETE") == 1


def test_check_files_structural_violation(initialized, capsys):
    write_source(initialized, "lib/helper.py", 5)
    assert run_cli(initialized, "check-files", "1", "lib/helper.py") == 2
    assert "BLOCKING" in capsys.readouterr().out


def test_check_files_from_manifest(initialized, tmp_path, capsys):
    write_source(initialized, "src/a.py", 3)
    manifest = tmp_path / "files.txt"
    manifest.write_text("src/a.py\n", encoding="utf-8")
    assert run_cli(initialized, "check-files", "1", "--manifest", str(manifest)) == 0
    assert "within limits" in capsys.readouterr().out


def test_status_tree_imports_log(initialized, capsys):
    write_source(initialized, "src/parser/core.py", 5)
    run_cli(initialized, "update", "1", "--exports", "- `parse()`", "--workspace", "src/parser",
            "--files", "src/parser/core.py")
    capsys.readouterr()

    assert run_cli(initialized, "status") == 0
    out = capsys.readouterr().out
    assert "1/3 task(s) complete" in out
    assert "Next pending: Task 2" in out

    assert run_cli(initialized, "tree") == 0
    assert "Task 1: Build the parser" in capsys.readouterr().out

    assert run_cli(initialized, "imports", "--json") == 0
    records = json.loads(capsys.readouterr().out)
    assert records[0]["workspace"] == "src/parser"

    assert run_cli(initialized, "log", "--task", "1") == 0
    assert "cycle_complete" in capsys.readouterr().out


def test_snapshot_and_corrections(initialized, capsys):
    assert run_cli(initialized, "snapshot", "plan", "1") == 0
    assert "Snapshot written" in capsys.readouterr().out
    assert list((initialized / ".pipeline" / "backups").iterdir())

    write_source(initialized, "src/big.py", 501)
    run_cli(initialized, "check-files", "1", "src/big.py")
    capsys.readouterr()

    assert run_cli(initialized, "corrections", "1") == 0
    assert "state=correcting attempts=1" in capsys.readouterr().out

    assert run_cli(initialized, "corrections", "1", "--reset") == 0
    assert "state=idle attempts=0" in capsys.readouterr().out


def test_gate_does_not_modify_plan(initialized):
    plan = initialized / "docs" / "tasks.md"
    before = plan.read_bytes()
    run_cli(initialized, "gate", "1")
    assert plan.read_bytes() == before
