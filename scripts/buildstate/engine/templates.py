#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Initial content for the progress and dependency documents.

Every mutable section starts with a single bracketed placeholder line so the
first write replaces it. The timeline starts with the anchor line that
record_timeline() inserts after. The task plan is authored outside the engine
and has no template.
"""

from datetime import datetime
from pathlib import Path
from typing import Callable

from .store import DEPENDENCIES, PROGRESS, DocumentStore

PROGRESS_TEMPLATE = """\
# Build Progress

## Agent Status
[No tasks completed yet]

## Task Progress
[None yet]

## Completed Components
[None yet]

## Timeline
- {initialized} - Workflow initialized
"""

DEPENDENCIES_TEMPLATE = """\
# Component Dependencies

## Exported Components
[No exports yet]

## Integration Points
[None yet]

## Dependency Tree
```
```

## Known Issues
[None]
"""


def init_documents(
    store: DocumentStore,
    clock: Callable[[], datetime] = datetime.now,
) -> list[Path]:
    """Write the templates for documents that do not exist yet. Never overwrites."""
    created: list[Path] = []
    contents = {
        PROGRESS: PROGRESS_TEMPLATE.format(
            initialized=clock().strftime("%Y-%m-%d %H:%M:%S"),
        ),
        DEPENDENCIES: DEPENDENCIES_TEMPLATE,
    }
    for name, content in contents.items():
        if store.exists(name):
            continue
        store.write_text(name, content)
        created.append(store.path(name))
    return created
