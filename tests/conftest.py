import os
import tempfile

import pytest

# Settings are read at import time: configure the environment before any app import.
os.environ.setdefault("APP_ENV", "test")
_fd, _DB_PATH = tempfile.mkstemp(prefix="safetrack_test_", suffix=".db")
os.close(_fd)
os.environ["SAFETY_DB_URL"] = f"sqlite+pysqlite:///{_DB_PATH}"
os.environ["DEFAULT_BACKEND"] = "mariadb"
os.environ["LOCAL_STATE_PATH"] = os.path.join(
    tempfile.mkdtemp(prefix="safetrack_state_"), "local_state.json"
)


def pytest_configure():
    from apps.safety_backend import models  # noqa: F401
    from common_core.db import Base, safety_engine

    Base.metadata.create_all(bind=safety_engine)


@pytest.fixture()
def clean_db():
    from sqlalchemy import delete

    from apps.safety_backend.models import AreaRow, AuditLog
    from common_core.db import safety_engine

    def _wipe():
        with safety_engine.begin() as conn:
            conn.execute(delete(AuditLog))
            conn.execute(delete(AreaRow))

    _wipe()
    yield
    _wipe()


@pytest.fixture()
def clean_state():
    path = os.environ["LOCAL_STATE_PATH"]
    if os.path.exists(path):
        os.remove(path)
    yield path
    if os.path.exists(path):
        os.remove(path)


@pytest.fixture()
def client(clean_db, clean_state):
    from fastapi.testclient import TestClient

    from apps.safety_backend.main import app

    with TestClient(app) as c:
        yield c
