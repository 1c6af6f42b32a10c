#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Document Store

Repository over the shared documents. Components receive a DocumentStore
instead of touching the filesystem themselves, so tests (and any future
single-writer actor) can swap the backing location.

Writes are atomic: the new content is written to a temporary file in the
target directory, flushed and fsync'ed, then os.replace()d over the target.
An interrupted process leaves either the old or the new document, never a
partial one.

There is no locking. The engine assumes a single writer per project.
"""

import os
from pathlib import Path
from tempfile import NamedTemporaryFile

from .document import Document, parse_document, render_document
from .errors import MissingDocumentError
from .models import PipelineConfig

PLAN = "plan"
PROGRESS = "progress"
DEPENDENCIES = "dependencies"

DOCUMENT_NAMES = (PLAN, PROGRESS, DEPENDENCIES)


def atomic_write_text(path: str | Path, content: str) -> None:
    """Write content to path via temp file + rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_name = None
    try:
        with NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="",
            delete=False,
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    finally:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)


class DocumentStore:
    """Named access to the plan, progress and dependency documents."""

    def __init__(self, paths: dict[str, str | Path]):
        self._paths = {name: Path(p) for name, p in paths.items()}

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "DocumentStore":
        return cls(config.document_paths)

    def names(self) -> list[str]:
        return list(self._paths)

    def path(self, name: str) -> Path:
        try:
            return self._paths[name]
        except KeyError:
            raise KeyError(f"Unknown document '{name}'. Known: {sorted(self._paths)}") from None

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def require(self, name: str) -> Path:
        """Return the document path, raising MissingDocumentError if absent."""
        path = self.path(name)
        if not path.is_file():
            raise MissingDocumentError(name, str(path))
        return path

    def read_text(self, name: str) -> str:
        return self.require(name).read_text(encoding="utf-8")

    def read_bytes(self, name: str) -> bytes:
        return self.require(name).read_bytes()

    def read(self, name: str) -> Document:
        return parse_document(self.read_text(name))

    def write_text(self, name: str, content: str) -> None:
        atomic_write_text(self.path(name), content)

    def write(self, name: str, document: Document) -> None:
        self.write_text(name, render_document(document))
