"""
Test configuration: repo root on sys.path, a throwaway SQLite database and a
fixed clock.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import services  # noqa: E402
from models import Report, WaitBucket  # noqa: E402

NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)


def make_report(bucket, created_at, clinic_id="1", device_id=None):
    """Build an in-memory report without touching the database."""
    if isinstance(bucket, str):
        try:
            bucket = WaitBucket(bucket)
        except ValueError:
            pass
    return Report(clinic_id=clinic_id, wait_bucket=bucket, created_at=created_at, device_id=device_id)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Point the service layer at a fresh SQLite file with Redis disabled."""
    path = tmp_path / "reports.db"
    monkeypatch.setattr(services, "DATABASE_URL", str(path))
    monkeypatch.setattr(services, "REDIS_URL", None)
    monkeypatch.setattr(services, "_redis_client", None)
    return path


@pytest.fixture
def conn(db_path):
    connection = services.get_connection()
    services.init_db(connection)
    yield connection
    connection.close()


@pytest.fixture
def client(db_path, monkeypatch):
    """App client with the service clock pinned to ``clock.now``."""
    from fastapi.testclient import TestClient

    from main import app

    clock = {"now": NOW}
    monkeypatch.setattr(services, "utcnow", lambda: clock["now"])
    with TestClient(app) as test_client:
        test_client.clock = clock
        yield test_client
