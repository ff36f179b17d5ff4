"""Lease row that lets only one process drain the queue at a time."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from sqlalchemy import insert, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from core.errors import StorageError
from core.settings import OFFLINE_SYNC
from datetime_utils import now_millis
from models.sync_lease import SyncLease


logger = logging.getLogger("canemap.lease")


class SyncLeaseManager:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        owner: str,
        *,
        name: str = OFFLINE_SYNC.lease_name,
        ttl_sec: int = OFFLINE_SYNC.lease_ttl_sec,
    ) -> None:
        self._session_factory = session_factory
        self.owner = owner
        self.name = name
        self.ttl_ms = int(ttl_sec * 1000)

    def acquire(self) -> bool:
        """Take the lease if it is free, expired, or already ours.

        The conditional UPDATE is atomic in SQLite, so two processes racing
        for an expired lease cannot both win.
        """
        now = now_millis()
        table = SyncLease.__table__
        try:
            with self._session_factory() as session:
                session.execute(
                    insert(table)
                    .prefix_with("OR IGNORE")
                    .values(name=self.name, owner="", expires_at=0)
                )
                result = session.execute(
                    update(table)
                    .where(table.c.name == self.name)
                    .where(or_(table.c.owner == self.owner, table.c.expires_at <= now))
                    .values(owner=self.owner, expires_at=now + self.ttl_ms)
                )
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to acquire sync lease: {exc}") from exc
        if result.rowcount != 1:
            logger.info("Sync lease %s is held by another process", self.name)
            return False
        return True

    def release(self) -> None:
        try:
            with self._session_factory() as session:
                lease = session.get(SyncLease, self.name)
                if lease and lease.owner == self.owner:
                    session.delete(lease)
                    session.commit()
        except SQLAlchemyError as exc:
            logger.warning("Failed to release sync lease: %s", exc)

    def holder(self) -> Optional[str]:
        try:
            with self._session_factory() as session:
                lease = session.get(SyncLease, self.name)
        except SQLAlchemyError as exc:
            logger.warning("Failed to read sync lease: %s", exc)
            return None
        if lease and lease.owner and lease.expires_at > now_millis():
            return lease.owner
        return None


__all__ = ["SyncLeaseManager"]
