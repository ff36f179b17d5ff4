"""Ad-hoc database migrations for the offline queue database."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_queue_columns(conn) -> None:
    # Databases created before entries carried a format version are all v1.
    if not _column_exists(conn, "queueentry", "schema_version"):
        conn.execute(
            text("ALTER TABLE queueentry ADD COLUMN schema_version INTEGER NOT NULL DEFAULT 1")
        )
    if not _column_exists(conn, "queueentry", "last_updated"):
        conn.execute(text("ALTER TABLE queueentry ADD COLUMN last_updated INTEGER"))
    if not _column_exists(conn, "queueentry", "retry_count"):
        conn.execute(
            text("ALTER TABLE queueentry ADD COLUMN retry_count INTEGER NOT NULL DEFAULT 0")
        )
    # Rows from before work logs were queued are all input records.
    if not _column_exists(conn, "queueentry", "kind"):
        conn.execute(
            text("ALTER TABLE queueentry ADD COLUMN kind VARCHAR NOT NULL DEFAULT 'input_record'")
        )


def ensure_queue_indexes(conn) -> None:
    conn.execute(
        text("CREATE INDEX IF NOT EXISTS ix_queueentry_created_at ON queueentry (created_at)")
    )
    conn.execute(
        text("CREATE INDEX IF NOT EXISTS ix_queueentry_status ON queueentry (status)")
    )
    conn.execute(
        text("CREATE INDEX IF NOT EXISTS ix_queueentry_kind ON queueentry (kind)")
    )


def ensure_lease_table(conn) -> None:
    conn.execute(
        text(
            """
            CREATE TABLE IF NOT EXISTS synclease (
                name TEXT PRIMARY KEY,
                owner TEXT NOT NULL,
                expires_at INTEGER NOT NULL DEFAULT 0
            )
            """
        )
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_queue_columns(conn)
        # SQLModel creates both tables, but legacy databases may lack indexes
        ensure_queue_indexes(conn)
        ensure_lease_table(conn)


__all__ = ["run_all"]
