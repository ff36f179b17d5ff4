from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlmodel import select

from core.errors import NotFoundError, StorageError
from models.queue_entry import (
    KIND_WORK_LOG,
    STATUS_ABANDONED,
    STATUS_PENDING,
    STATUS_SYNCED,
    STATUS_SYNCING,
    QueueEntry,
)
from services import payload_codec
from services.offline_queue import OfflineRecordQueue
from storage import migrations


def _record(field_id="F1", **extra):
    data = {"fieldId": field_id, "status": "Germination", "operation": "Weeding"}
    data.update(extra)
    return data


def test_enqueue_assigns_increasing_ids(queue):
    ids = [queue.enqueue(_record(f"F{i}")) for i in range(5)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 5


def test_list_pending_is_fifo(queue):
    first = queue.enqueue(_record("A"))
    second = queue.enqueue(_record("B"))
    third = queue.enqueue(_record("C"))

    pending = queue.list_pending()
    assert [entry.id for entry in pending] == [first, second, third]
    assert [entry.payload["fieldId"] for entry in pending] == ["A", "B", "C"]
    assert all(entry.status == STATUS_PENDING for entry in pending)
    assert pending[0].created_at == first


def test_payload_keeps_timestamp_encoding(queue):
    when = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)
    queue.enqueue(_record(recordDate=when, createdAt=payload_codec.SERVER_TIMESTAMP))

    stored = queue.list_pending()[0].payload
    assert stored["recordDate"]["_type"] == "Timestamp"
    assert stored["createdAt"] == {"_methodName": "serverTimestamp"}
    assert payload_codec.deserialize(stored)["recordDate"] == when


def test_set_status_hides_entry_from_pending(queue):
    entry_id = queue.enqueue(_record())
    queue.set_status(entry_id, STATUS_SYNCING)

    assert queue.list_pending() == []
    assert queue.count_pending() == 0

    queue.set_status(entry_id, STATUS_PENDING)
    assert queue.count_pending() == 1


def test_set_status_sets_last_updated(queue, session_factory):
    entry_id = queue.enqueue(_record())
    queue.set_status(entry_id, STATUS_SYNCED)

    with session_factory() as session:
        row = session.get(QueueEntry, entry_id)
        assert row.status == STATUS_SYNCED
        assert row.last_updated is not None


def test_set_status_missing_entry_raises(queue):
    with pytest.raises(NotFoundError):
        queue.set_status(12345, STATUS_SYNCING)


def test_set_status_rejects_unknown_status(queue):
    entry_id = queue.enqueue(_record())
    with pytest.raises(ValueError):
        queue.set_status(entry_id, "done")


def test_remove_is_idempotent(queue):
    entry_id = queue.enqueue(_record())
    queue.remove(entry_id)
    queue.remove(entry_id)
    queue.remove(999)
    assert queue.count_pending() == 0


def test_count_pending_only_counts_pending(queue):
    a = queue.enqueue(_record("A"))
    queue.enqueue(_record("B"))
    queue.enqueue(_record("C"))
    queue.set_status(a, STATUS_SYNCING)
    assert queue.count_pending() == 2


def test_recover_stale_returns_syncing_to_pending(queue):
    a = queue.enqueue(_record("A"))
    b = queue.enqueue(_record("B"))
    queue.set_status(a, STATUS_SYNCING)
    queue.set_status(b, STATUS_SYNCING)

    assert queue.recover_stale() == 2
    assert [entry.id for entry in queue.list_pending()] == [a, b]
    assert queue.recover_stale() == 0


def test_newer_schema_version_is_left_alone(queue, session_factory):
    current = queue.enqueue(_record("A"))
    with session_factory() as session:
        session.add(
            QueueEntry(
                id=current + 10,
                payload=payload_codec.dumps(_record("B")),
                created_at=current + 10,
                status=STATUS_PENDING,
                schema_version=99,
            )
        )
        session.commit()

    assert [entry.id for entry in queue.list_pending()] == [current]
    assert queue.count_pending() == 1
    with session_factory() as session:
        assert session.get(QueueEntry, current + 10) is not None


@pytest.mark.parametrize("raw", ["not json", "[1, 2]"])
def test_unreadable_payload_is_abandoned(queue, session_factory, raw):
    good = queue.enqueue(_record("A"))
    with session_factory() as session:
        session.add(QueueEntry(id=1, payload=raw, created_at=1, status=STATUS_PENDING))
        session.commit()

    assert [entry.id for entry in queue.list_pending()] == [good]
    assert queue.count_pending() == 1
    assert [entry.id for entry in queue.list_pending()] == [good]
    with session_factory() as session:
        row = session.get(QueueEntry, 1)
        assert row.status == STATUS_ABANDONED
        assert row.last_updated is not None


def test_record_failure_returns_entry_and_counts_attempts(queue):
    entry_id = queue.enqueue(_record())
    queue.set_status(entry_id, STATUS_SYNCING)
    queue.record_failure(entry_id)
    queue.set_status(entry_id, STATUS_SYNCING)
    queue.record_failure(entry_id)

    pending = queue.list_pending()
    assert [entry.id for entry in pending] == [entry_id]
    assert pending[0].retry_count == 2
    assert pending[0].status == STATUS_PENDING


def test_record_failure_missing_entry_raises(queue):
    with pytest.raises(NotFoundError):
        queue.record_failure(404)


def test_abandon_is_terminal(queue):
    entry_id = queue.enqueue(_record())
    queue.abandon(entry_id, "operator request")
    assert queue.count_pending() == 0
    assert queue.recover_stale() == 0
    assert queue.list_pending() == []


@pytest.mark.parametrize("bad_value", [Decimal("1.5"), {"a", "b"}, object()])
def test_enqueue_unserializable_payload_raises_storage_error(queue, bad_value):
    with pytest.raises(StorageError):
        queue.enqueue(_record(data={"quantity": bad_value}))
    assert queue.count_pending() == 0


def test_kinds_share_the_table_but_not_the_queue(engine, session_factory, queue):
    logs = OfflineRecordQueue(session_factory=session_factory, engine=engine, kind=KIND_WORK_LOG)
    record_id = queue.enqueue(_record("A"))
    log_id = logs.enqueue({"fieldId": "A", "taskName": "weeding"})

    assert [entry.id for entry in queue.list_pending()] == [record_id]
    assert [entry.id for entry in logs.list_pending()] == [log_id]
    assert queue.count_pending() == 1
    assert logs.count_pending() == 1

    logs.set_status(log_id, STATUS_SYNCING)
    assert queue.recover_stale() == 0
    assert logs.recover_stale() == 1


def test_queue_survives_reopen(engine, session_factory):
    first = OfflineRecordQueue(session_factory=session_factory, engine=engine)
    entry_id = first.enqueue(_record())

    second = OfflineRecordQueue(session_factory=session_factory, engine=engine)
    assert [entry.id for entry in second.list_pending()] == [entry_id]


def test_migrations_are_idempotent(engine, session_factory):
    migrations.run_all(engine)
    migrations.run_all(engine)
    with session_factory() as session:
        assert list(session.exec(select(QueueEntry))) == []
