import asyncio
from datetime import datetime, timezone

import pytest

from core.errors import RemoteWriteError
from models.queue_entry import KIND_WORK_LOG
from services.connectivity import ConnectivityMonitor
from services.notifications import WORK_LOG_SYNC_BANNER, LoggingNotifier
from services.offline_queue import OfflineRecordQueue
from services.remote_store import InMemoryStore
from services.sync_engine import SyncEngine
from services.work_logs import (
    UNKNOWN_FIELD,
    UNKNOWN_WORKER,
    WorkLogSyncEngine,
    build_task_document,
    field_summary,
    new_work_log,
    task_display_name,
)


class RecordingNotifier(LoggingNotifier):
    def __init__(self):
        super().__init__()
        self.banner_history = []

    def show_banner(self, name, text):
        self.banner_history.append(name)
        super().show_banner(name, text)


class FakeStore(InMemoryStore):
    def __init__(self):
        super().__init__()
        self.fail_notifications = False
        self.fail_tasks = False
        self.fail_reads = False

    def set_document(self, path, fields):
        if self.fail_notifications and path.startswith("notifications/"):
            raise RemoteWriteError(f"rejected {path}", status=403)
        if self.fail_tasks and path.startswith("tasks/"):
            raise RemoteWriteError(f"rejected {path}", status=500)
        super().set_document(path, fields)

    def get_document(self, path):
        if self.fail_reads:
            raise RemoteWriteError(f"cannot read {path}", status=503)
        return super().get_document(path)


COMPLETED = datetime(2024, 6, 3, tzinfo=timezone.utc)


@pytest.fixture()
def logs(engine, session_factory):
    q = OfflineRecordQueue(session_factory=session_factory, engine=engine, kind=KIND_WORK_LOG)
    q.initialize()
    return q


def _log(field_id="F1", task="weeding", **extra):
    return new_work_log(
        user_id=extra.pop("user_id", "worker-1"),
        field_id=field_id,
        task_name=task,
        description=extra.pop("description", "Cleared rows 1-4"),
        worker_name=extra.pop("worker_name", "Juan"),
        completion_date=extra.pop("completion_date", COMPLETED),
    )


def _store_with_field():
    store = FakeStore()
    store.documents["fields/F1"] = {
        "userId": "handler-7",
        "fieldName": "North block",
        "sugarcane_variety": "PS 2",
    }
    return store


def _engine(logs, store, auth, **kwargs):
    kwargs.setdefault("notifier", LoggingNotifier())
    kwargs.setdefault("is_online", lambda: True)
    return WorkLogSyncEngine(logs, store, auth, device_id="DEV", **kwargs)


def test_task_display_names():
    assert task_display_name("planting") == "Planting (0 DAP)"
    assert task_display_name("custom job") == "custom job"


def test_field_summary_fallbacks():
    assert field_summary(None) == {"handlerId": None, "fieldName": UNKNOWN_FIELD, "variety": None}
    assert field_summary({"handlerId": "h", "field_name": "South", "variety": "PS 1"}) == {
        "handlerId": "h",
        "fieldName": "South",
        "variety": "PS 1",
    }


def test_task_document_shape(logs, auth):
    store = _store_with_field()
    entry_id = logs.enqueue(_log())

    result = asyncio.run(_engine(logs, store, auth).sync_all())

    assert (result.success, result.failed) == (1, 0)
    task = store.get(f"tasks/DEV-{entry_id}")
    assert task["taskType"] == "worker_log"
    assert task["title"] == task["details"] == "Weeding"
    assert task["description"] == task["notes"] == "Cleared rows 1-4"
    assert task["status"] == "done"
    assert task["assignedTo"] == ["worker-1"]
    assert task["createdBy"] == task["created_by"] == "worker-1"
    assert task["workerName"] == "Juan"
    assert task["verified"] is True
    assert task["completionDate"] == COMPLETED
    assert isinstance(task["createdAt"], datetime)
    assert (task["fieldId"], task["fieldName"], task["handlerId"]) == ("F1", "North block", "handler-7")
    assert task["metadata"]["variety"] == "PS 2"
    assert task["metadata"]["synced_from_offline"] is True
    assert isinstance(task["metadata"]["offline_timestamp"], datetime)
    assert logs.count_pending() == 0


def test_task_document_defaults():
    log = {"taskName": "others", "fieldId": "F2", "timestamp": COMPLETED}
    doc = build_task_document(log, field_summary(None), "signed-in")
    assert doc["assignedTo"] == ["signed-in"]
    assert doc["workerName"] == UNKNOWN_WORKER
    assert doc["fieldName"] == UNKNOWN_FIELD
    assert doc["completionDate"] is not None


def test_handler_is_notified(logs, auth):
    store = _store_with_field()
    entry_id = logs.enqueue(_log())

    asyncio.run(_engine(logs, store, auth).sync_all())

    note = store.get(f"notifications/DEV-{entry_id}")
    assert note["userId"] == "handler-7"
    assert note["type"] == "work_log_synced"
    assert note["relatedEntityId"] == "F1"
    assert note["message"] == "New work log synced for North block: Weeding (completed offline)"
    assert note["read"] is False
    assert note["status"] == "unread"


def test_no_notification_without_handler(logs, auth):
    store = FakeStore()
    store.documents["fields/F1"] = {"fieldName": "Orphan"}
    logs.enqueue(_log())

    result = asyncio.run(_engine(logs, store, auth).sync_all())

    assert result.success == 1
    assert store.collection("notifications") == {}


def test_notification_failure_does_not_fail_log(logs, auth):
    store = _store_with_field()
    store.fail_notifications = True
    entry_id = logs.enqueue(_log())

    result = asyncio.run(_engine(logs, store, auth).sync_all())

    assert (result.success, result.failed) == (1, 0)
    assert store.get(f"tasks/DEV-{entry_id}") is not None
    assert logs.count_pending() == 0


def test_unreadable_field_still_uploads_log(logs, auth):
    store = _store_with_field()
    store.fail_reads = True
    entry_id = logs.enqueue(_log())

    result = asyncio.run(_engine(logs, store, auth).sync_all())

    assert result.success == 1
    assert store.get(f"tasks/DEV-{entry_id}")["fieldName"] == UNKNOWN_FIELD
    assert store.collection("notifications") == {}


def test_success_and_failure_toasts(logs, auth):
    store = _store_with_field()
    notifier = LoggingNotifier()
    logs.enqueue(_log())
    asyncio.run(_engine(logs, store, auth, notifier=notifier).sync_all())
    assert notifier.messages == [("success", "Work log synced successfully!")]

    store.fail_tasks = True
    notifier.messages.clear()
    logs.enqueue(_log())
    asyncio.run(_engine(logs, store, auth, notifier=notifier).sync_all())
    assert notifier.messages == [
        ("warning", "1 log(s) failed to sync. Will retry on next connection.")
    ]
    assert logs.list_pending()[0].retry_count == 1


def test_log_without_task_name_fails(logs, auth):
    logs.enqueue({"fieldId": "F1", "userId": "worker-1"})
    result = asyncio.run(_engine(logs, _store_with_field(), auth).sync_all())
    assert (result.success, result.failed) == (0, 1)
    assert logs.count_pending() == 1


def test_work_log_pass_leaves_input_records_alone(queue, logs, auth):
    queue.enqueue({"fieldId": "F1", "status": "Tillering", "operation": "Weeding"})
    logs.enqueue(_log())
    store = _store_with_field()

    asyncio.run(_engine(logs, store, auth).sync_all())

    assert queue.count_pending() == 1
    assert store.collection("records") == {}


def test_reconnect_syncs_work_logs_from_any_page(queue, logs, auth, state_store):
    notifier = RecordingNotifier()
    store = _store_with_field()
    holder = {}
    online = lambda: holder["monitor"].online  # noqa: E731
    records = SyncEngine(
        queue, store, auth, notifier=notifier, state_store=state_store, is_online=online, device_id="DEV"
    )
    work_logs = _engine(logs, store, auth, notifier=notifier, is_online=online)
    monitor = ConnectivityMonitor(
        queue, records, state_store, notifier, is_online=lambda: False, background_engines=[work_logs]
    )
    holder["monitor"] = monitor

    monitor.set_page("sync")
    entry_id = logs.enqueue(_log())
    asyncio.run(monitor.handle_online())

    assert store.get(f"tasks/DEV-{entry_id}") is not None
    assert logs.count_pending() == 0
    assert WORK_LOG_SYNC_BANNER in notifier.banner_history
    assert WORK_LOG_SYNC_BANNER not in notifier.banners


def test_startup_online_syncs_pending_work_logs(queue, logs, auth, state_store):
    store = _store_with_field()
    records = SyncEngine(queue, store, auth, state_store=state_store, is_online=lambda: True, device_id="DEV")
    work_logs = _engine(logs, store, auth)
    monitor = ConnectivityMonitor(
        queue, records, state_store, LoggingNotifier(), is_online=lambda: True, background_engines=[work_logs]
    )
    logs.enqueue(_log())

    asyncio.run(monitor.start("work_logs"))

    assert logs.count_pending() == 0
    assert len(store.collection("tasks")) == 1
