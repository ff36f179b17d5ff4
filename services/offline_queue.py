from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from core.errors import NotFoundError, StorageError
from datetime_utils import now_millis
from models.queue_entry import (
    KIND_INPUT_RECORD,
    QUEUE_SCHEMA_VERSION,
    STATUS_ABANDONED,
    STATUS_PENDING,
    STATUS_SYNCING,
    VALID_STATUSES,
    QueueEntry,
)
from services import payload_codec
from storage import migrations


logger = logging.getLogger("canemap.queue")


@dataclass
class PendingRecord:
    id: int
    payload: dict
    created_at: int
    status: str
    last_updated: Optional[int]
    schema_version: int
    retry_count: int = 0


class OfflineRecordQueue:
    """Durable FIFO of records captured while offline.

    Several queues share one table; ``kind`` keeps input records and work
    logs apart.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        engine=None,
        kind: str = KIND_INPUT_RECORD,
    ) -> None:
        if session_factory is None or engine is None:
            from storage import db

            engine = engine or db.get_engine()
            if session_factory is None:
                session_factory = lambda: Session(engine)  # noqa: E731
        self._engine = engine
        self._session_factory = session_factory
        self.kind = kind
        self._initialized = False

    def initialize(self) -> None:
        if self._initialized:
            return
        try:
            SQLModel.metadata.create_all(self._engine)
            migrations.run_all(self._engine)
        except SQLAlchemyError as exc:
            logger.error("Offline queue store failed to open: %s", exc)
            raise StorageError(f"Offline queue store unavailable: {exc}") from exc
        self._initialized = True

    def enqueue(self, payload: Mapping) -> int:
        self.initialize()
        try:
            body = payload_codec.dumps(payload)
        except (TypeError, ValueError) as exc:
            logger.error("Record payload cannot be stored: %s", exc)
            raise StorageError(f"Record payload cannot be stored: {exc}") from exc
        try:
            with self._session_factory() as session:
                last_id = session.exec(select(func.max(QueueEntry.id))).one()
                entry_id = max(now_millis(), int(last_id or 0) + 1)
                record = QueueEntry(
                    id=entry_id,
                    kind=self.kind,
                    payload=body,
                    created_at=entry_id,
                    status=STATUS_PENDING,
                    schema_version=QUEUE_SCHEMA_VERSION,
                )
                session.add(record)
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to add pending %s: %s", self.kind, exc)
            raise StorageError(f"Failed to add pending record: {exc}") from exc
        logger.info("Pending %s %s queued", self.kind, entry_id)
        return entry_id

    def _pending_filter(self, stmt):
        # Entries written by a newer client stay queued but are invisible here.
        return (
            stmt.where(QueueEntry.kind == self.kind)
            .where(QueueEntry.status == STATUS_PENDING)
            .where(QueueEntry.schema_version <= QUEUE_SCHEMA_VERSION)
        )

    def list_pending(self) -> List[PendingRecord]:
        """Snapshot of pending entries, oldest first.

        Entries whose payload cannot be parsed are moved to ``abandoned``
        instead of being handed to the sync engine again.
        """
        self.initialize()
        result: List[PendingRecord] = []
        try:
            with self._session_factory() as session:
                stmt = self._pending_filter(select(QueueEntry)).order_by(
                    QueueEntry.created_at.asc(), QueueEntry.id.asc()
                )
                rows = list(session.exec(stmt))
                abandoned = 0
                for row in rows:
                    try:
                        payload = payload_codec.loads(row.payload)
                    except (json.JSONDecodeError, ValueError) as exc:
                        logger.error("Abandoning %s %s: unreadable payload (%s)", self.kind, row.id, exc)
                        row.status = STATUS_ABANDONED
                        row.last_updated = now_millis()
                        session.add(row)
                        abandoned += 1
                        continue
                    result.append(
                        PendingRecord(
                            id=row.id,
                            payload=payload,
                            created_at=row.created_at,
                            status=row.status,
                            last_updated=row.last_updated,
                            schema_version=row.schema_version,
                            retry_count=row.retry_count,
                        )
                    )
                if abandoned:
                    session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read pending records: {exc}") from exc
        return result

    def set_status(self, entry_id: int, status: str) -> None:
        if status not in VALID_STATUSES:
            raise ValueError(f"Unsupported status: {status}")
        self._update(entry_id, status=status)
        logger.debug("Record %s status updated to: %s", entry_id, status)

    def record_failure(self, entry_id: int) -> None:
        """Return an entry to ``pending`` after a failed upload and count the attempt."""
        self._update(entry_id, status=STATUS_PENDING, failed=True)

    def abandon(self, entry_id: int, reason: str) -> None:
        self._update(entry_id, status=STATUS_ABANDONED)
        logger.warning("Record %s abandoned: %s", entry_id, reason)

    def _update(self, entry_id: int, *, status: str, failed: bool = False) -> None:
        self.initialize()
        try:
            with self._session_factory() as session:
                record = session.get(QueueEntry, entry_id)
                if not record:
                    raise NotFoundError(entry_id)
                record.status = status
                record.last_updated = now_millis()
                if failed:
                    record.retry_count = (record.retry_count or 0) + 1
                session.add(record)
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to update record {entry_id}: {exc}") from exc

    def remove(self, entry_id: int) -> None:
        self.initialize()
        try:
            with self._session_factory() as session:
                record = session.get(QueueEntry, entry_id)
                if record:
                    session.delete(record)
                    session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to delete record {entry_id}: {exc}") from exc

    def count_pending(self) -> int:
        self.initialize()
        try:
            with self._session_factory() as session:
                stmt = self._pending_filter(select(func.count()).select_from(QueueEntry))
                return int(session.exec(stmt).one())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to count pending records: {exc}") from exc

    def recover_stale(self) -> int:
        """Return entries stranded in ``syncing`` by an interrupted pass to ``pending``."""
        self.initialize()
        try:
            with self._session_factory() as session:
                rows = list(
                    session.exec(
                        select(QueueEntry)
                        .where(QueueEntry.kind == self.kind)
                        .where(QueueEntry.status == STATUS_SYNCING)
                    )
                )
                stamp = now_millis()
                for row in rows:
                    row.status = STATUS_PENDING
                    row.last_updated = stamp
                    session.add(row)
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to recover stale records: {exc}") from exc
        if rows:
            logger.info("Returned %d stale syncing %s(s) to pending", len(rows), self.kind)
        return len(rows)


__all__ = ["OfflineRecordQueue", "PendingRecord"]
