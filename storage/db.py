# canemap/storage/db.py
from pathlib import Path

from sqlmodel import SQLModel, create_engine, Session

from core.settings import DB_PATH

# Ensure SQLModel metadata is populated
import models.queue_entry  # noqa: F401
import models.sync_lease  # noqa: F401
from storage import migrations


def make_engine(path: str | Path = DB_PATH):
    return create_engine(f"sqlite:///{Path(path).as_posix()}", echo=False)


_engine = make_engine(DB_PATH)


def init_db(engine=None):
    target = engine or _engine
    if target is _engine:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(target)
    migrations.run_all(target)


def get_engine():
    return _engine


def get_session() -> Session:
    return Session(_engine)
