#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Configuration Reader

Reads project-specific configuration from the consuming repository's
.pipeline/config.yaml:
- document locations (plan, progress, dependencies, execution log)
- backup and correction-state directories
- target project type and the per-ecosystem file conventions
- compliance limits and the package-manifest update window

The engine has sensible defaults for all settings and the file is optional.
Project-type auto-detection is not done here; the type is read from config.
"""

from pathlib import Path
from typing import Any

import yaml

from .errors import InputValidationError
from .models import EcosystemSpec, PipelineConfig


CONFIG_DIRNAME = ".pipeline"
CONFIG_FILENAME = "config.yaml"


# ---------------------------------------------------------------------------
# Default config.yaml (used for every key missing from the project file)
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_YAML = """
documents:
  plan: "docs/tasks.md"
  progress: "docs/progress.md"
  dependencies: "docs/dependencies.md"
  execution_log: "logs/execution.log"

backups:
  directory: ".pipeline/backups"

corrections:
  directory: ".pipeline/corrections"

project:
  type: "python"

compliance:
  max_lines: 500
  allowed_roots: ["src", "tests"]
  max_correction_attempts: 3

packages:
  update_window_minutes: 10

ecosystems:
  python:
    extensions: [".py"]
    manifest: "requirements.txt"
  node:
    extensions: [".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs"]
    manifest: "package.json"
  rust:
    extensions: [".rs"]
    manifest: "Cargo.toml"
  go:
    extensions: [".go"]
    manifest: "go.mod"
  java:
    extensions: [".java"]
    manifest: "pom.xml"
"""


# ---------------------------------------------------------------------------
# Ecosystem table
# ---------------------------------------------------------------------------


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"


def load_ecosystems(sections: list[dict[str, Any]]) -> dict[str, EcosystemSpec]:
    """
    Merge ecosystem tables in order; later tables override earlier entries
    key by key (extensions and manifest independently).
    """
    merged: dict[str, dict[str, Any]] = {}
    for table in sections:
        for name, entry in (table or {}).items():
            target = merged.setdefault(name, {})
            entry = entry or {}
            if "extensions" in entry:
                target["extensions"] = [_normalize_extension(e) for e in entry["extensions"] or []]
            if "manifest" in entry:
                target["manifest"] = entry["manifest"]

    return {
        name: EcosystemSpec(
            name=name,
            extensions=entry.get("extensions", []),
            manifest=entry.get("manifest"),
        )
        for name, entry in merged.items()
    }


# ---------------------------------------------------------------------------
# config.yaml loader
# ---------------------------------------------------------------------------


def _resolve(project_root: Path, value: str) -> str:
    path = Path(value)
    if not path.is_absolute():
        path = project_root / path
    return str(path)


def load_pipeline_config(
    project_root: str | Path,
    config_yaml_path: str | Path | None = None,
) -> PipelineConfig:
    """
    Load PipelineConfig from .pipeline/config.yaml.

    Args:
        project_root: Root of the consuming repository.
        config_yaml_path: Override path for config.yaml (default: .pipeline/config.yaml).

    Returns:
        PipelineConfig with all settings resolved (defaults applied where missing,
        document and store paths made absolute against project_root).

    Raises:
        InputValidationError: the file is not a mapping, or project.type names
            an ecosystem that has no definition.
    """
    project_root = Path(project_root).resolve()
    config_path = (
        Path(config_yaml_path) if config_yaml_path
        else project_root / CONFIG_DIRNAME / CONFIG_FILENAME
    )

    defaults = yaml.safe_load(DEFAULT_CONFIG_YAML)
    config_doc: dict[str, Any] = {}
    if config_path.exists():
        config_doc = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        if not isinstance(config_doc, dict):
            raise InputValidationError(
                f"{config_path} must contain a YAML mapping",
                remedy=f"rewrite {config_path} as 'key: value' sections",
            )

    def section(name: str) -> dict[str, Any]:
        merged = dict(defaults.get(name, {}))
        merged.update(config_doc.get(name) or {})
        return merged

    documents = section("documents")
    backups = section("backups")
    corrections = section("corrections")
    project = section("project")
    compliance = section("compliance")
    packages = section("packages")

    ecosystems = load_ecosystems([defaults["ecosystems"], config_doc.get("ecosystems")])
    project_type = str(project.get("type", "python"))
    if project_type not in ecosystems:
        raise InputValidationError(
            f"Unknown project type '{project_type}'. Known types: {sorted(ecosystems)}",
            remedy=f"set project.type in {config_path} or add an ecosystems.{project_type} entry",
        )

    return PipelineConfig(
        project_root=str(project_root),
        plan_path=_resolve(project_root, documents["plan"]),
        progress_path=_resolve(project_root, documents["progress"]),
        dependencies_path=_resolve(project_root, documents["dependencies"]),
        execution_log_path=_resolve(project_root, documents["execution_log"]),
        backup_directory=_resolve(project_root, backups["directory"]),
        corrections_directory=_resolve(project_root, corrections["directory"]),
        project_type=project_type,
        max_lines=int(compliance["max_lines"]),
        allowed_roots=[str(r) for r in compliance["allowed_roots"]],
        max_correction_attempts=int(compliance["max_correction_attempts"]),
        package_update_window_minutes=int(packages["update_window_minutes"]),
        ecosystems=ecosystems,
    )


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start directory to find a .pipeline/ directory."""
    current = (start or Path.cwd()).resolve()
    for candidate in [current] + list(current.parents):
        if (candidate / CONFIG_DIRNAME).exists():
            return candidate
    return current  # fallback to cwd
