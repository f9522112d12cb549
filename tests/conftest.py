from __future__ import annotations
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

# Keep the module-level engine and upload dir away from the working tree
_SCRATCH = Path(tempfile.mkdtemp(prefix="linkvault_tests_"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_SCRATCH / 'default.db'}")
os.environ.setdefault("UPLOAD_DIR", str(_SCRATCH / "uploads"))
os.environ.setdefault("SWEEPER_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker

from linkvault import models
from linkvault.auth import register_user
from linkvault.config import get_settings
from linkvault.database import get_db
from linkvault.main import app
from linkvault.migrations import apply_migrations
from linkvault.services import content as lifecycle
from linkvault.services.storage import LocalStorageService, get_storage_service


@pytest.fixture
def engine(tmp_path: Path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'linkvault.db'}",
        connect_args={"check_same_thread": False},
    )
    apply_migrations(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorageService:
    return LocalStorageService(tmp_path / "uploads")


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def client(session_factory, storage):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_service] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_content(db, storage, settings):
    """Create content through the lifecycle service; text defaults to 'hello'."""

    def _make(**kwargs) -> models.Content:
        if "upload" not in kwargs:
            kwargs.setdefault("text", "hello")
        return lifecycle.create_content(db, storage, settings, **kwargs)

    return _make


@pytest.fixture
def user_session(db) -> models.UserSession:
    return register_user(db, "alice@linkvault.io", "correct-horse")


@pytest.fixture
def expire(session_factory):
    """Move a content record's expiry into the past."""

    def _expire(content_id: str) -> None:
        with session_factory() as session:
            session.execute(
                update(models.Content)
                .where(models.Content.id == content_id)
                .values(expires_at=datetime.utcnow() - timedelta(minutes=1))
            )
            session.commit()

    return _expire


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
