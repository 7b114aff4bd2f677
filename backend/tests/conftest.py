import os
import tempfile

# Point the application root at a scratch directory before importing esm
os.environ.setdefault("ESM_APP_DIR", tempfile.mkdtemp(prefix="esm_test_"))

import pytest
from types import SimpleNamespace
from unittest.mock import patch
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from esm.db.base import get_store
from esm.main import app
from esm.services.store import RecordStore

# 1. In-Memory Database Setup
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"


class FakeClock:
    """Millisecond clock that advances by `step` on every reading."""

    def __init__(self, start: int = 1700000000000, step: int = 1000):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def store(clock):
    s = RecordStore(SQLALCHEMY_DATABASE_URL, clock=clock, poolclass=StaticPool)
    s.initialize()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture(scope="function")
def client(store):
    app.dependency_overrides[get_store] = lambda: store

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function", autouse=True)
def app_dirs(tmp_path):
    """
    Automatically patch the application directories used by the API
    to live under a temporary directory.
    """
    dirs = SimpleNamespace(
        videos=tmp_path / "videos",
        temp=tmp_path / "tmp",
        csv=tmp_path / "esm_data.csv",
        shared=tmp_path / "shared",
    )

    patches = [
        patch("esm.api.endpoints.VIDEOS_DIR", dirs.videos),
        patch("esm.api.endpoints.TEMP_DIR", dirs.temp),
        patch("esm.api.endpoints.CSV_EXPORT_PATH", dirs.csv),
        patch("esm.api.endpoints.SHARE_DIR", dirs.shared),
    ]
    for p in patches:
        p.start()

    yield dirs

    for p in patches:
        p.stop()
