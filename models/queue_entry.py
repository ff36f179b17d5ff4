"""SQLModel table for records waiting to be uploaded."""

from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import now_millis


QUEUE_SCHEMA_VERSION = 1

KIND_INPUT_RECORD = "input_record"
KIND_WORK_LOG = "work_log"

STATUS_PENDING = "pending"
STATUS_SYNCING = "syncing"
STATUS_SYNCED = "synced"
# Terminal: the entry can never be uploaded and is kept only for inspection.
STATUS_ABANDONED = "abandoned"
VALID_STATUSES = {STATUS_PENDING, STATUS_SYNCING, STATUS_SYNCED, STATUS_ABANDONED}


class QueueEntry(SQLModel, table=True):
    # Creation time in milliseconds; doubles as the FIFO key.
    id: int = Field(primary_key=True, sa_column_kwargs={"autoincrement": False})
    kind: str = Field(default=KIND_INPUT_RECORD, index=True)
    payload: str
    created_at: int = Field(default_factory=now_millis, index=True)
    status: str = Field(default=STATUS_PENDING, index=True)
    last_updated: Optional[int] = None
    retry_count: int = Field(default=0)
    schema_version: int = Field(default=QUEUE_SCHEMA_VERSION)


__all__ = [
    "QueueEntry",
    "QUEUE_SCHEMA_VERSION",
    "KIND_INPUT_RECORD",
    "KIND_WORK_LOG",
    "STATUS_PENDING",
    "STATUS_SYNCING",
    "STATUS_SYNCED",
    "STATUS_ABANDONED",
    "VALID_STATUSES",
]
