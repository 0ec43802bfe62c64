from datetime import datetime, timedelta, timezone
from pathlib import Path
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

os.environ["JWT_SECRET_KEY"] = "leaderboard-test-suite-secret-0123456789abcdef"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_TIMEZONE"] = "UTC"
os.environ.pop("DEFAULT_ADMIN_EMAIL", None)
os.environ.pop("DEFAULT_ADMIN_PASSWORD", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import change_feed  # noqa: F401
from auth import get_password_hash, issue_tokens
from database import Base, create_db_engine, get_db
from models import Profile, UserAccount, UserRole

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'leaderboard.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    from server import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_member(db, full_name, *, email=None, org_unit="Coding Club", created_offset=0, role=UserRole.USER):
    user = None
    if email:
        user = UserAccount(email=email, hashed_password=get_password_hash("password123"), role=role)
        db.add(user)
        db.flush()
    profile = Profile(
        user_id=user.id if user else None,
        full_name=full_name,
        org_unit=org_unit,
        total_participation_count=0,
        created_at=BASE_TIME + timedelta(minutes=created_offset),
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def make_admin(db, email="admin@example.com"):
    admin = UserAccount(email=email, hashed_password=get_password_hash("adminpass123"), role=UserRole.ADMIN)
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


def auth_headers(user):
    return {"Authorization": f"Bearer {issue_tokens(user)['access_token']}"}
