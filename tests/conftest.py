import base64
import io
import os
import tempfile
from datetime import timedelta

# Settings are read at import time
_tmp = tempfile.mkdtemp(prefix="sidebyside-tests-")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = os.path.join(_tmp, "logs")
os.environ["DATA_DIR"] = os.path.join(_tmp, "data")
os.environ["AUTH_MODE"] = "magic-links"
os.environ["AUTO_APPROVE_SESSIONS"] = "false"
os.environ["SERVER_MODE"] = "development"
os.environ["CREATE_TABLES_ON_STARTUP"] = "false"
os.environ["MATTERMOST_ENABLED"] = "false"
os.environ["TELEGRAM_ENABLED"] = "false"
os.environ["SMTP_HOST"] = ""

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from sidebyside.config import settings
from sidebyside.core.clock import utcnow
from sidebyside.core.security import create_access_token
from sidebyside.database import Base, get_db
from sidebyside.models import User, Voting, VotingOption, MediaType
from sidebyside.services.rate_limit_service import rate_limiter
from sidebyside.services.storage_service import LocalStorageDriver, get_storage


def png_bytes(width=4, height=3, color=(200, 30, 30)):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def png_data_url(width=4, height=3):
    return "data:image/png;base64," + base64.b64encode(png_bytes(width, height)).decode()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
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
def storage(tmp_path):
    return LocalStorageDriver(str(tmp_path / "media"))


@pytest.fixture
def client(session_factory, storage):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    rate_limiter.reset()

    yield TestClient(app)

    app.dependency_overrides.clear()
    rate_limiter.reset()


@pytest.fixture
def anonymous_mode(monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "anonymous")


@pytest.fixture
def make_user(db):
    def _make_user(email="alice@example.com"):
        user = User(email=email)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}


@pytest.fixture
def make_voting(db, storage):
    """Voting inserted straight into the DB, media written to storage"""
    def _make_voting(owner, options=2, ended=False, is_public=True, title="Which one?"):
        now = utcnow()
        end_at = now - timedelta(minutes=1) if ended else now + timedelta(hours=24)
        voting = Voting(
            title=title,
            created_at=now - timedelta(hours=25) if ended else now,
            end_at=end_at,
            duration_hours=24,
            is_public=is_public,
            user_id=owner.id if owner else None,
        )
        db.add(voting)
        db.flush()

        for index in range(options):
            key = f"{voting.id}_{index}_fixture.png"
            storage.put_object(key, png_bytes(), "image/png")
            voting.options.append(VotingOption(
                file_path=key,
                sort_order=index,
                pixel_ratio=1,
                width=4,
                height=3,
                media_type=MediaType.IMAGE,
            ))

        db.commit()
        db.refresh(voting)
        return voting
    return _make_voting
