from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from auth import get_password_hash
from database import Base, engine, get_db
from models import Profile, SystemConfig, UserAccount, UserRole
from participation_service import resync_profile_aggregates

logger = logging.getLogger(__name__)

MIGRATION_MARKER_KEY = "migration:leaderboard_bootstrap:v1"


def _marker_table_exists() -> bool:
    return inspect(engine).has_table(SystemConfig.__tablename__)


def has_bootstrap_marker() -> bool:
    if not _marker_table_exists():
        return False
    db = next(get_db())
    try:
        marker = db.query(SystemConfig).filter(SystemConfig.key == MIGRATION_MARKER_KEY).first()
        return marker is not None
    finally:
        db.close()


def set_bootstrap_marker() -> None:
    db = next(get_db())
    try:
        marker = db.query(SystemConfig).filter(SystemConfig.key == MIGRATION_MARKER_KEY).first()
        value = datetime.now(timezone.utc).isoformat()
        if marker:
            marker.value = value
        else:
            db.add(SystemConfig(key=MIGRATION_MARKER_KEY, value=value))
        db.commit()
    finally:
        db.close()


def clear_bootstrap_marker() -> bool:
    if not _marker_table_exists():
        return False
    db = next(get_db())
    try:
        marker = db.query(SystemConfig).filter(SystemConfig.key == MIGRATION_MARKER_KEY).first()
        if not marker:
            return False
        db.delete(marker)
        db.commit()
        return True
    finally:
        db.close()


def ensure_default_admin(db: Session) -> Optional[UserAccount]:
    email = str(os.environ.get("DEFAULT_ADMIN_EMAIL") or "").strip().lower()
    password = os.environ.get("DEFAULT_ADMIN_PASSWORD")
    if not email or not password:
        logger.info("DEFAULT_ADMIN_EMAIL/DEFAULT_ADMIN_PASSWORD not set; skipping default admin.")
        return None

    user = db.query(UserAccount).filter(UserAccount.email == email).first()
    if not user:
        user = UserAccount(
            email=email,
            hashed_password=get_password_hash(password),
            role=UserRole.ADMIN,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Created default admin account %s", email)
    elif user.role != UserRole.ADMIN:
        user.role = UserRole.ADMIN
        db.commit()
        logger.info("Promoted %s to admin", email)

    full_name = str(os.environ.get("DEFAULT_ADMIN_NAME") or "").strip()
    if full_name and not user.profile:
        db.add(Profile(user_id=user.id, full_name=full_name, total_participation_count=0))
        db.commit()
        db.refresh(user)
    return user


def run_bootstrap_migrations(resync_counters: bool = True) -> None:
    Base.metadata.create_all(bind=engine)

    db = next(get_db())
    try:
        ensure_default_admin(db)
        if resync_counters:
            repaired = resync_profile_aggregates(db)
            logger.info("Participation aggregates checked; %s profile(s) repaired.", repaired)
    finally:
        db.close()
