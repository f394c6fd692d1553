import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def temp_db(monkeypatch, tmp_path):
    import db

    db_path = tmp_path / "test.db"
    monkeypatch.setattr(db, "DB_PATH", str(db_path))

    # Reset the connection pool for each test
    previous = db._pool
    db._pool = db.SQLiteConnectionPool(str(db_path), max_connections=10)
    db.init()
    yield str(db_path)
    db._pool.close_all()
    db._pool = previous


@pytest.fixture
def legacy_scoring(monkeypatch):
    monkeypatch.setenv("USE_V3_SCORING", "false")


@pytest.fixture
def solo_scoring(monkeypatch):
    monkeypatch.setenv("USE_V3_SCORING", "true")
