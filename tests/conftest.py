from pathlib import Path
import sys

import pytest
from sqlmodel import Session, SQLModel, create_engine

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import models  # noqa: E402,F401
from services.google_auth import LocalAuth  # noqa: E402
from services.offline_queue import OfflineRecordQueue  # noqa: E402
from storage.session_state import SessionStateStore  # noqa: E402


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{(tmp_path / 'queue.db').as_posix()}")
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture()
def session_factory(engine):
    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def queue(engine, session_factory):
    q = OfflineRecordQueue(session_factory=session_factory, engine=engine)
    q.initialize()
    return q


@pytest.fixture()
def state_store(tmp_path):
    return SessionStateStore(tmp_path / "session_state.json")


@pytest.fixture()
def auth(state_store):
    local = LocalAuth(state_store)
    local.sign_in("handler-1")
    return local
