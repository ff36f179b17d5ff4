from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from core.errors import AuthenticationMissing, NotFoundError, RemoteWriteError, StorageError
from core.settings import FIRESTORE, SYNC_LOG_PATH
from datetime_utils import utc_now
from models.queue_entry import STATUS_SYNCING
from services import payload_codec
from services.connectivity import probe_reachable
from services.field_updates import harvest_prediction_update
from services.notifications import (
    PASS_FAILED_MESSAGE,
    SYNC_BANNER,
    SYNC_TEXT,
    LoggingNotifier,
    Notifier,
    failure_message,
    success_message,
    toast_options,
)
from services.offline_queue import OfflineRecordQueue, PendingRecord
from services.payload_codec import SERVER_TIMESTAMP
from services.remote_store import RemoteStore, join_path
from storage.device import get_device_id


REQUIRED_FIELDS = ("fieldId", "status", "operation")


def _ensure_logger() -> logging.Logger:
    logger = logging.getLogger("canemap.sync")
    if not logger.handlers:
        Path(SYNC_LOG_PATH).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(SYNC_LOG_PATH, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


@dataclass
class SyncResult:
    success: int = 0
    failed: int = 0
    skipped: bool = False
    reason: Optional[str] = None

    @property
    def attempted(self) -> int:
        return self.success + self.failed


@dataclass
class PreparedRecord:
    document_id: str
    fields: Dict[str, Any]
    bought_items: List[Dict[str, Any]]
    vehicle_update: Optional[Dict[str, Any]]


class SyncEngine:
    """Drains the offline queue into the remote store, one record at a time.

    One instance per session. ``sync_all`` is single-flight: a call made while
    a pass is running returns immediately. Across processes the optional
    lease keeps two clients sharing the queue file from draining it together;
    it is renewed before every record so a long pass never outlives it.
    """

    banner_name = SYNC_BANNER
    banner_text = SYNC_TEXT
    success_noun = "input record"
    failure_noun = "record"

    def __init__(
        self,
        queue: OfflineRecordQueue,
        remote: RemoteStore,
        auth,
        notifier: Optional[Notifier] = None,
        state_store=None,
        is_online: Optional[Callable[[], bool]] = None,
        lease=None,
        device_id: Optional[str] = None,
    ) -> None:
        self.queue = queue
        self.remote = remote
        self.auth = auth
        self.notifier = notifier or LoggingNotifier()
        self.state_store = state_store
        self.lease = lease
        self.device_id = device_id or get_device_id()
        self._is_online = is_online or probe_reachable
        self._is_syncing = False
        self.last_result: Optional[SyncResult] = None
        self.last_pass_at = None
        self.logger = _ensure_logger()

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    # ------------------------------------------------------------------
    # Public API
    async def sync_all(self) -> SyncResult:
        if self._is_syncing:
            self.logger.info("Sync already in progress, skipping...")
            return SyncResult(skipped=True, reason="in_progress")

        self._is_syncing = True
        try:
            result = await self._run_pass()
        finally:
            self._is_syncing = False
        self.last_result = result
        return result

    def status(self) -> dict:
        try:
            queue_size = self.queue.count_pending()
        except StorageError:
            queue_size = None
        result = self.last_result
        return {
            "queueSize": queue_size,
            "syncing": self._is_syncing,
            "lastPassAt": self.last_pass_at,
            "lastSuccess": result.success if result else None,
            "lastFailed": result.failed if result else None,
            "leaseHolder": self.lease.holder() if self.lease else None,
        }

    def remote_document_id(self, entry_id: int) -> str:
        return f"{self.device_id}-{entry_id}"

    def prepare_record(self, entry_id: int, record: Mapping[str, Any], user_id: str) -> PreparedRecord:
        """Build the remote document for a deserialized queued record."""
        fields = dict(record)
        bought_items = fields.pop("boughtItems", None) or []
        vehicle_update = fields.pop("vehicleUpdates", None) or None

        if not fields.get("userId"):
            fields["userId"] = user_id

        missing = [name for name in REQUIRED_FIELDS if not fields.get(name)]
        if missing:
            raise RemoteWriteError(f"Missing required fields in synced record: {', '.join(missing)}")

        if not fields.get("recordDate"):
            fields["recordDate"] = fields.get("createdAt") or SERVER_TIMESTAMP

        if fields.get("recordStatus") == "Pending Sync":
            fields["recordStatus"] = fields.pop("_originalStatus", None) or "In Progress"

        return PreparedRecord(
            document_id=self.remote_document_id(entry_id),
            fields=fields,
            bought_items=[dict(item) for item in bought_items],
            vehicle_update=dict(vehicle_update) if vehicle_update else None,
        )

    # ------------------------------------------------------------------
    # Pass
    async def _run_pass(self) -> SyncResult:
        if not self._is_online():
            self.logger.info("Device is offline, cannot sync")
            return SyncResult(skipped=True, reason="offline")

        try:
            user_id = self._require_user()
        except AuthenticationMissing as exc:
            self.logger.info("%s, cannot sync", exc)
            return SyncResult(skipped=True, reason="unauthenticated")

        if self.lease is not None:
            try:
                if not await asyncio.to_thread(self.lease.acquire):
                    return SyncResult(skipped=True, reason="locked")
            except StorageError as exc:
                self.logger.error("Sync lease unavailable: %s", exc)
                return SyncResult(skipped=True, reason="storage")

        self.notifier.show_banner(self.banner_name, self.banner_text)
        try:
            return await self._drain(user_id)
        except StorageError as exc:
            self.logger.error("Error during sync: %s", exc)
            self.notifier.show(PASS_FAILED_MESSAGE, "error", toast_options("error"))
            return SyncResult(skipped=True, reason="storage")
        finally:
            self.notifier.hide_banner(self.banner_name)
            if self.lease is not None:
                await asyncio.to_thread(self.lease.release)
            self.last_pass_at = utc_now()

    async def _drain(self, user_id: str) -> SyncResult:
        pending = await asyncio.to_thread(self.queue.list_pending)
        if not pending:
            self.logger.info("No pending %s(s) to sync", self.success_noun)
            return SyncResult()

        self.logger.info("Starting sync of %d pending %s(s)...", len(pending), self.success_noun)
        result = SyncResult()
        for entry in pending:
            if not await self._renew_lease():
                self.logger.warning(
                    "Sync lease taken over by another process; stopping with %d record(s) left",
                    len(pending) - result.attempted,
                )
                result.reason = "lease_lost"
                break

            try:
                await asyncio.to_thread(self.queue.set_status, entry.id, STATUS_SYNCING)
            except NotFoundError:
                self.logger.warning("Record %s vanished before sync, skipping", entry.id)
                continue

            try:
                await self._sync_entry(entry, user_id)
                await asyncio.to_thread(self.queue.remove, entry.id)
            except Exception as exc:
                if isinstance(exc, RemoteWriteError):
                    self.logger.warning("Failed to sync record %s: %s", entry.id, exc)
                else:
                    self.logger.exception("Record %s crashed during sync: %s", entry.id, exc)
                await self._return_to_queue(entry.id)
                result.failed += 1
            else:
                result.success += 1
                self.logger.info("Record %s synced successfully", entry.id)

        self._report(result)
        if self.state_store is not None and result.reason is None:
            self.state_store.clear_capture_page()
        self.logger.info("Sync completed: %d success, %d failed", result.success, result.failed)
        return result

    async def _renew_lease(self) -> bool:
        if self.lease is None:
            return True
        return await asyncio.to_thread(self.lease.acquire)

    # ------------------------------------------------------------------
    # Per-record helpers
    async def _sync_entry(self, entry: PendingRecord, user_id: str) -> None:
        record = payload_codec.deserialize(entry.payload)
        prepared = self.prepare_record(entry.id, record, user_id)
        records = FIRESTORE.records_collection
        record_path = join_path(records, prepared.document_id)

        await self._write(record_path, prepared.fields)

        for index, item in enumerate(prepared.bought_items):
            item_path = join_path(record_path, FIRESTORE.bought_items_collection, f"item-{index}")
            await self._write(item_path, {**item, "createdAt": SERVER_TIMESTAMP})

        if prepared.vehicle_update:
            vehicle_path = join_path(record_path, FIRESTORE.vehicle_updates_collection, "vehicle-0")
            await self._write(vehicle_path, {**prepared.vehicle_update, "createdAt": SERVER_TIMESTAMP})

        await self._apply_derived_update(entry.id, record)

    async def _write(self, path: str, fields: Mapping[str, Any]) -> None:
        await asyncio.to_thread(self.remote.set_document, path, fields)

    async def _apply_derived_update(self, entry_id: int, record: Mapping[str, Any]) -> None:
        # Never fails the record: it is already stored remotely at this point.
        try:
            update = harvest_prediction_update(record)
            if update is None:
                return
            path, fields = update
            await asyncio.to_thread(self.remote.update_document, path, fields)
            self.logger.info(
                "Predicted harvest date for %s updated: %s",
                path,
                fields["expectedHarvestDate"].date().isoformat(),
            )
        except Exception as exc:
            self.logger.warning("Error updating predicted harvest for record %s: %s", entry_id, exc)

    async def _return_to_queue(self, entry_id: int) -> None:
        try:
            await asyncio.to_thread(self.queue.record_failure, entry_id)
        except NotFoundError:
            self.logger.warning("Record %s no longer queued; nothing to reset", entry_id)
        except StorageError as exc:
            self.logger.error("Could not reset record %s to pending: %s", entry_id, exc)

    def _require_user(self) -> str:
        user_id = None
        if self.auth is not None:
            user_id = self.auth.current_user_id()
        if not user_id:
            raise AuthenticationMissing("User not authenticated")
        return user_id

    def _report(self, result: SyncResult) -> None:
        if result.success > 0:
            self.notifier.show(
                success_message(result.success, self.success_noun), "success", toast_options("success")
            )
        if result.failed > 0:
            self.notifier.show(
                failure_message(result.failed, self.failure_noun), "warning", toast_options("warning")
            )


__all__ = ["SyncEngine", "SyncResult", "PreparedRecord", "REQUIRED_FIELDS"]
