"""Shared fixtures. Environment is pinned before any app module is imported."""

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["USE_MINIO"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="codedrop-uploads-")
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["ALLOW_LEGACY_PLAINTEXT_PASSWORDS"] = "false"

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

import database
from share_repository import InMemoryShareRepository, SqlShareRepository
from share_service import ShareService
from storage import StorageBackend


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class RecordingBlobStore:
    """Stand-in object store that remembers deletes and can be told to fail."""

    def __init__(self, fail: bool = False):
        self.deleted = []
        self.fail = fail

    def delete(self, key: str) -> None:
        if self.fail:
            raise OSError(f"cannot delete {key}")
        self.deleted.append(key)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def blob_store() -> RecordingBlobStore:
    return RecordingBlobStore()


@pytest.fixture
def sql_session_factory():
    """Fresh in-memory SQLite database per test."""
    eng = database.make_engine("sqlite://")
    database.Base.metadata.create_all(eng)
    yield sessionmaker(bind=eng, autoflush=False, expire_on_commit=False)
    eng.dispose()


@pytest.fixture(params=["memory", "sql"])
def repo(request, blob_store, sql_session_factory):
    if request.param == "memory":
        return InMemoryShareRepository(blob_store=blob_store)
    return SqlShareRepository(sql_session_factory, blob_store=blob_store)


@pytest.fixture
def memory_repo(blob_store) -> InMemoryShareRepository:
    return InMemoryShareRepository(blob_store=blob_store)


@pytest.fixture
def service(memory_repo, clock) -> ShareService:
    return ShareService(memory_repo, clock=clock)


@pytest.fixture
def storage(tmp_path) -> StorageBackend:
    return StorageBackend(use_minio=False, local_dir=str(tmp_path / "uploads"))


@pytest.fixture
def app(storage, clock):
    """The FastAPI app wired to local-disk storage and the fake clock."""
    import main
    import share_routes

    def _service():
        repository = SqlShareRepository(database.SessionLocal, blob_store=storage)
        return ShareService(repository, clock=clock)

    main.app.dependency_overrides[share_routes.get_storage] = lambda: storage
    main.app.dependency_overrides[share_routes.get_share_service] = _service
    yield main.app
    main.app.dependency_overrides.clear()
    database.Base.metadata.drop_all(bind=database.engine)
    database.Base.metadata.create_all(bind=database.engine)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as c:
        yield c
