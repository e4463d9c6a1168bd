from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager

import pytest
from sqlalchemy import text

from cms.common.config import get_settings  # noqa: E402
from tests.services.memory_storage import InMemoryStorageClient

TEST_BUCKET = "test-bucket"
TEST_TOKEN_SECRET = "test-secret"


def _resolve_test_db_url() -> str:
    explicit = os.environ.get("TEST_DB_URL")
    if explicit:
        return explicit
    db_dir = tempfile.mkdtemp(prefix="cms-tests-")
    return f"sqlite:///{os.path.join(db_dir, 'cms.db')}"


test_db_url = _resolve_test_db_url()

os.environ["DB_URL"] = test_db_url
os.environ["APP_ENV"] = "development"
os.environ["AUTO_APPLY_MIGRATIONS"] = "false"
os.environ["STORAGE_VERIFY_ON_STARTUP"] = "false"
os.environ["AUTH_TOKEN_SECRET"] = TEST_TOKEN_SECRET
os.environ["S3_BUCKET"] = TEST_BUCKET
get_settings.cache_clear()  # type: ignore[attr-defined]
from cms.infra.db.alembic_support import upgrade_to_head  # noqa: E402
from cms.infra.db.session import get_session_factory, reset_engine  # noqa: E402
from cms.infra.storage import BucketRegistry  # noqa: E402


@contextmanager
def _session_scope():
    session_factory = get_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@pytest.fixture(scope="session", autouse=True)
def apply_migrations():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    reset_engine()
    upgrade_to_head()
    yield
    reset_engine()


@pytest.fixture(autouse=True)
def cleanup_tables(apply_migrations):
    with _session_scope() as session:
        session.execute(text("DELETE FROM users"))
    yield
    with _session_scope() as session:
        session.execute(text("DELETE FROM users"))
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def db_session():
    session_factory = get_session_factory()
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def memory_storage() -> InMemoryStorageClient:
    return InMemoryStorageClient()


@pytest.fixture
def bucket_registry(memory_storage) -> BucketRegistry:
    settings = get_settings()
    return BucketRegistry(
        settings.S3_BUCKETS,
        default_region="us-east-1",
        prefixes=settings.STORAGE_PREFIXES,
        client_factory=lambda region: memory_storage,
    )
