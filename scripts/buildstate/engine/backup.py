#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Backup Manager

Snapshots a shared document before the phase that mutates it. Snapshots are
plain byte copies named by document, task id and timestamp:

    <backup dir>/<document>.task-<id>.<YYYYmmdd-HHMMSS-ffffff><suffix>

There is no automated restore and no pruning. Restoring is an operator
action: copy the snapshot path back over the document.

Failure to create the backup directory or write the snapshot aborts the
cycle (fail-closed).
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from .errors import BackupError
from .models import BackupSnapshot
from .store import DocumentStore

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S-%f"


class BackupManager:
    def __init__(
        self,
        store: DocumentStore,
        backup_dir: str | Path,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.backup_dir = Path(backup_dir)
        self._clock = clock

    def snapshot(self, document: str, task_id: int) -> BackupSnapshot:
        """
        Copy the current on-disk content of document into the backup store.

        Raises:
            MissingDocumentError: the document does not exist.
            BackupError: the backup directory or file could not be written.
        """
        content = self.store.read_bytes(document)
        source = self.store.path(document)
        moment = self._clock()
        stamp = moment.strftime(TIMESTAMP_FORMAT)

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BackupError(
                f"Cannot create backup directory {self.backup_dir}: {exc}",
                remedy=f"make {self.backup_dir} writable or set backups.directory in .pipeline/config.yaml",
            ) from exc

        target = self.backup_dir / f"{document}.task-{task_id}.{stamp}{source.suffix}"
        counter = 1
        while target.exists():
            target = self.backup_dir / f"{document}.task-{task_id}.{stamp}-{counter}{source.suffix}"
            counter += 1

        try:
            target.write_bytes(content)
        except OSError as exc:
            raise BackupError(
                f"Cannot write backup {target}: {exc}",
                remedy=f"check free space and permissions on {self.backup_dir}",
            ) from exc

        logger.debug("Backed up %s to %s", source, target)
        return BackupSnapshot(
            document=document,
            task_id=task_id,
            timestamp=moment.isoformat(timespec="microseconds"),
            path=str(target),
        )

    def list_snapshots(self, document: str | None = None, task_id: int | None = None) -> list[Path]:
        """Existing snapshot files, oldest first by name."""
        if not self.backup_dir.exists():
            return []
        prefix = f"{document}." if document else ""
        marker = f".task-{task_id}." if task_id is not None else ""
        return sorted(
            p for p in self.backup_dir.iterdir()
            if p.is_file() and p.name.startswith(prefix) and marker in p.name
        )
