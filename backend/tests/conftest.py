"""Shared fixtures for the deaddrop test suite.

Tests run against a file-backed SQLite database in a temporary directory,
so thread based tests see the same data through separate connections.
Object storage is replaced by an in-memory gateway and time by a clock
the tests move by hand.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterator, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from deaddrop.api import deps
from deaddrop.core.rate_limit import InMemoryCounterStore, RateLimiter
from deaddrop.core.security import PasswordHasher
from deaddrop.db.init_db import init_db
from deaddrop.db.session import make_engine
from deaddrop.main import app
from deaddrop.storage import BlobNotFoundError, DeleteResult, StorageGateway


class FakeStorage(StorageGateway):
    """In-memory blobs with switchable failures."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self.configured = True
        self.fail_deletes = False

    def is_configured(self) -> bool:
        return self.configured

    def put(self, key: str, data: bytes, mime_type: str) -> str:
        self.blobs[key] = bytes(data)
        return key

    def get_stream(self, key: str) -> Iterator[bytes]:
        if key not in self.blobs:
            raise BlobNotFoundError(key)
        data = self.blobs[key]
        return iter([data[:4], data[4:]])

    def delete(self, key: str) -> DeleteResult:
        if self.fail_deletes:
            return DeleteResult(success=False, error="simulated outage")
        self.blobs.pop(key, None)
        self.deleted.append(key)
        return DeleteResult(success=True)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FastHasher(PasswordHasher):
    """Plain-text digests so tests do not pay for key stretching."""

    def hash(self, password: str) -> str:
        return f"plain${password}"

    def verify(self, password: str, digest) -> bool:
        return bool(digest) and digest == f"plain${password}"


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'deaddrop-test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 1, 12, 0, 0))


@pytest.fixture
def hasher():
    return FastHasher()


@pytest.fixture
def limiter():
    return RateLimiter(InMemoryCounterStore(), limit=1000, window_ms=60_000)


@pytest.fixture
def client(session_factory, storage, clock, hasher, limiter):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_hasher] = lambda: hasher
    app.dependency_overrides[deps.get_rate_limiter] = lambda: limiter
    yield TestClient(app)
    app.dependency_overrides.clear()
