from auth import verify_password
from bootstrap import ensure_default_admin
from models import UserAccount, UserRole


def test_default_admin_is_skipped_without_credentials(db, monkeypatch):
    monkeypatch.delenv("DEFAULT_ADMIN_EMAIL", raising=False)
    monkeypatch.delenv("DEFAULT_ADMIN_PASSWORD", raising=False)
    assert ensure_default_admin(db) is None
    assert db.query(UserAccount).count() == 0


def test_default_admin_is_created_once(db, monkeypatch):
    monkeypatch.setenv("DEFAULT_ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setenv("DEFAULT_ADMIN_PASSWORD", "rootpass123")
    monkeypatch.setenv("DEFAULT_ADMIN_NAME", "Root Admin")

    admin = ensure_default_admin(db)
    assert admin.email == "root@example.com"
    assert admin.role == UserRole.ADMIN
    assert admin.profile.full_name == "Root Admin"
    assert verify_password("rootpass123", admin.hashed_password)

    ensure_default_admin(db)
    assert db.query(UserAccount).count() == 1


def test_default_admin_promotes_existing_user(db, monkeypatch):
    db.add(UserAccount(email="boss@example.com", hashed_password="x", role=UserRole.USER))
    db.commit()
    monkeypatch.setenv("DEFAULT_ADMIN_EMAIL", "boss@example.com")
    monkeypatch.setenv("DEFAULT_ADMIN_PASSWORD", "bosspass123")
    monkeypatch.delenv("DEFAULT_ADMIN_NAME", raising=False)

    admin = ensure_default_admin(db)
    assert admin.role == UserRole.ADMIN
    assert admin.profile is None
