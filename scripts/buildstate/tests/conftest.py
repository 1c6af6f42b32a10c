"""
pytest configuration for pipeline engine tests.

Adds the scripts/ directory to sys.path so that
'from buildstate.engine.xxx import ...' works correctly, and provides a
temporary project with a three-task plan and freshly initialised documents.
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

# Ensure scripts/ is on the path (buildstate package lives at scripts/buildstate/)
scripts_dir = Path(__file__).parent.parent.parent
if str(scripts_dir) not in sys.path:
    sys.path.insert(0, str(scripts_dir))

from buildstate.engine.config import load_pipeline_config
from buildstate.engine.store import DocumentStore
from buildstate.engine.templates import init_documents

PLAN_TEXT = """\
# Task Plan

## Task 1: Build the parser
Parse the input format into tokens.

## Task 2: Wire the CLI
Expose the parser on the command line.

## Task 3: Package the release
Ship the wheel.
"""

FIXED_NOW = datetime(2026, 10, 18, 10, 0, 0)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def project(tmp_path):
    """Project root with .pipeline/, the plan document and a python manifest."""
    (tmp_path / ".pipeline").mkdir()
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "tasks.md").write_text(PLAN_TEXT, encoding="utf-8")
    (tmp_path / "requirements.txt").write_text("pyyaml\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def config(project):
    return load_pipeline_config(project)


@pytest.fixture
def store(config):
    """Document store with the progress and dependency templates written."""
    s = DocumentStore.from_config(config)
    init_documents(s, clock=fixed_clock)
    return s


def write_source(root: Path, relative: str, lines: int) -> Path:
    """Create a source file with the given number of lines."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"x_{i} = {i}\n" for i in range(lines)), encoding="utf-8")
    return path
