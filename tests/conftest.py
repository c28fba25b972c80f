"""Pytest configuration: local modules on sys.path and a throwaway database per test."""
import os
import sys
import tempfile
from datetime import date
from pathlib import Path

import pytest

# Ensure repository root is on sys.path for module resolution
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Settings are read at import time, so point them at a scratch directory first
_SCRATCH = Path(tempfile.mkdtemp(prefix="payables-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_SCRATCH / 'test.db'}"
os.environ["UPLOAD_DIR"] = str(_SCRATCH / "uploads")
os.environ["SECRET_KEY"] = "test-secret"
os.environ.pop("AI_API_KEY", None)

from database import Base, SessionLocal, engine
from schemas import AccountIn
from seed import init_db

ADMIN_PASSWORD = "Admin@123"
USER_PASSWORD = "User@1234"


@pytest.fixture(autouse=True)
def fresh_database():
    """Drop and recreate every table, then seed vocabularies and the administrator."""

    Base.metadata.drop_all(bind=engine)
    init_db()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_account():
    """Factory for account records with sensible defaults."""

    def _make(**overrides) -> AccountIn:
        values = {
            "movement_date": date(2024, 1, 5),
            "due_date": date(2024, 1, 10),
            "supplier": "Acme",
            "title": "Rent",
            "company": "Main Co",
            "amount": "100.00",
        }
        values.update(overrides)
        return AccountIn(**values)

    return _make


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from main import app

    # the session cookie is https-only
    with TestClient(app, base_url="https://testserver") as test_client:
        yield test_client


@pytest.fixture
def admin_client(client):
    response = client.post("/login", data={"username": "admin", "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return client
