"""Worker work logs captured offline and uploaded as completed tasks."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Mapping, Optional

from core.errors import RemoteWriteError
from core.settings import FIRESTORE
from datetime_utils import coerce_datetime, utc_now
from services import payload_codec
from services.notifications import WORK_LOG_SYNC_BANNER, WORK_LOG_SYNC_TEXT
from services.offline_queue import PendingRecord
from services.payload_codec import SERVER_TIMESTAMP
from services.remote_store import join_path
from services.sync_engine import SyncEngine


TASK_DISPLAY_NAMES = {
    "plowing": "Plowing",
    "harrowing": "Harrowing",
    "furrowing": "Furrowing",
    "planting": "Planting (0 DAP)",
    "basal_fertilizer": "Basal Fertilizer (0-30 DAP)",
    "main_fertilization": "Main Fertilization (45-60 DAP)",
    "spraying": "Spraying",
    "weeding": "Weeding",
    "irrigation": "Irrigation",
    "pest_control": "Pest Control",
    "harvesting": "Harvesting",
    "others": "Others",
}

UNKNOWN_FIELD = "Unknown Field"
UNKNOWN_WORKER = "Unknown Worker"


def task_display_name(task_name: str) -> str:
    return TASK_DISPLAY_NAMES.get(task_name, task_name)


def new_work_log(
    user_id: str,
    field_id: str,
    task_name: str,
    description: str = "",
    task_status: str = "done",
    worker_name: Optional[str] = None,
    completion_date=None,
) -> Dict[str, Any]:
    """Payload stored in the work-log queue."""
    return {
        "userId": user_id,
        "fieldId": field_id,
        "taskName": task_name,
        "description": description or "",
        "taskStatus": task_status,
        "workerName": worker_name,
        "completionDate": coerce_datetime(completion_date),
        "timestamp": utc_now(),
    }


def field_summary(field: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    field = field or {}
    return {
        "handlerId": field.get("userId") or field.get("handlerId") or None,
        "fieldName": field.get("fieldName") or field.get("field_name") or field.get("name") or UNKNOWN_FIELD,
        "variety": field.get("sugarcane_variety") or field.get("variety") or None,
    }


def build_task_document(log: Mapping[str, Any], field: Mapping[str, Any], user_id: str) -> Dict[str, Any]:
    worker = log.get("userId") or user_id
    title = task_display_name(log.get("taskName") or "")
    description = log.get("description") or ""
    return {
        "taskType": "worker_log",
        "title": title,
        "details": title,
        "description": description,
        "notes": description,
        "photoURL": "",
        "status": "done",
        "assignedTo": [worker],
        "createdAt": SERVER_TIMESTAMP,
        "createdBy": worker,
        "created_by": worker,
        "completionDate": log.get("completionDate") or SERVER_TIMESTAMP,
        "completedAt": SERVER_TIMESTAMP,
        "workerName": log.get("workerName") or UNKNOWN_WORKER,
        "verified": True,
        "fieldId": log.get("fieldId"),
        "fieldName": field["fieldName"],
        "handlerId": field["handlerId"],
        "variety": field["variety"],
        "metadata": {
            "variety": field["variety"],
            "synced_from_offline": True,
            "offline_timestamp": log.get("timestamp"),
        },
    }


def build_handler_notification(log: Mapping[str, Any], field: Mapping[str, Any]) -> Dict[str, Any]:
    title = task_display_name(log.get("taskName") or "")
    return {
        "userId": field["handlerId"],
        "type": "work_log_synced",
        "relatedEntityId": log.get("fieldId"),
        "message": f"New work log synced for {field['fieldName']}: {title} (completed offline)",
        "read": False,
        "status": "unread",
        "timestamp": SERVER_TIMESTAMP,
    }


class WorkLogSyncEngine(SyncEngine):
    """Uploads queued work logs to ``tasks`` and tells the field's handler."""

    banner_name = WORK_LOG_SYNC_BANNER
    banner_text = WORK_LOG_SYNC_TEXT
    success_noun = "work log"
    failure_noun = "log"

    async def _sync_entry(self, entry: PendingRecord, user_id: str) -> None:
        log = payload_codec.deserialize(entry.payload)
        if not log.get("taskName"):
            raise RemoteWriteError("Work log has no task name")

        field = field_summary(await self._field(log.get("fieldId")))
        doc_id = self.remote_document_id(entry.id)
        await self._write(
            join_path(FIRESTORE.tasks_collection, doc_id),
            build_task_document(log, field, user_id),
        )

        if field["handlerId"]:
            await self._notify_handler(doc_id, log, field)

    async def _field(self, field_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not field_id:
            return None
        try:
            return await asyncio.to_thread(
                self.remote.get_document, join_path(FIRESTORE.fields_collection, str(field_id))
            )
        except RemoteWriteError as exc:
            self.logger.warning("Could not fetch field %s for handler notification: %s", field_id, exc)
            return None

    async def _notify_handler(self, doc_id: str, log: Mapping[str, Any], field: Mapping[str, Any]) -> None:
        # The task is already stored; a lost notification does not fail the log.
        try:
            await self._write(
                join_path(FIRESTORE.notifications_collection, doc_id),
                build_handler_notification(log, field),
            )
        except Exception as exc:
            self.logger.warning("Failed to notify handler %s: %s", field["handlerId"], exc)


__all__ = [
    "TASK_DISPLAY_NAMES",
    "WorkLogSyncEngine",
    "build_handler_notification",
    "build_task_document",
    "field_summary",
    "new_work_log",
    "task_display_name",
]
