import logging
import re
from collections import Counter
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Competition, ParticipationLog, Profile, UserAccount
from time_utils import now_tz, today_tz

logger = logging.getLogger(__name__)

DEFAULT_COMPETITION_CATEGORY = "General"
ALREADY_REGISTERED_DETAIL = "This member is already registered for this competition"

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_title(value: Optional[str]) -> str:
    return _WHITESPACE_RE.sub(" ", str(value or "")).strip()


def competition_title_key(value: Optional[str]) -> str:
    return normalize_title(value).casefold()


def normalize_category(value: Optional[str]) -> Optional[str]:
    normalized = normalize_title(value)
    return normalized or None


def get_competition_by_title(db: Session, title: str) -> Optional[Competition]:
    return db.query(Competition).filter(Competition.title_key == competition_title_key(title)).first()


def find_or_create_competition(
    db: Session,
    title: str,
    *,
    category: Optional[str] = None,
    competition_date: Optional[date] = None,
    description: Optional[str] = None,
) -> Tuple[Competition, bool]:
    """Resolve a competition by case-insensitive title, creating it when absent.

    The insert is keyed on the unique ``title_key`` column, so two writers racing
    on the same new title cannot both succeed: the loser's flush fails, the
    session is rolled back and the winner's row is returned instead.

    Must run before any other pending writes in ``db``; the conflict path rolls
    the whole session back.
    """
    clean_title = normalize_title(title)
    if not clean_title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Competition title is required")

    existing = get_competition_by_title(db, clean_title)
    if existing:
        return existing, False

    competition = Competition(
        title=clean_title,
        title_key=competition_title_key(clean_title),
        category=normalize_category(category) or DEFAULT_COMPETITION_CATEGORY,
        date=competition_date or today_tz(),
        description=description,
    )
    db.add(competition)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        winner = get_competition_by_title(db, clean_title)
        if winner:
            logger.info("Competition '%s' was created concurrently; reusing id=%s", clean_title, winner.id)
            return winner, False
        logger.error("Failed to create competition '%s': %s", clean_title, exc)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Failed to create competition: {clean_title}",
        ) from exc

    logger.info("Created competition '%s' (category=%s)", competition.title, competition.category)
    return competition, True


def _apply_log_insert(profile: Profile, stamp: datetime) -> None:
    # Evaluated by the database at flush time so concurrent approvals cannot lose an increment.
    profile.total_participation_count = Profile.total_participation_count + 1
    profile.last_activity_at = case(
        (or_(Profile.last_activity_at.is_(None), Profile.last_activity_at < stamp), stamp),
        else_=Profile.last_activity_at,
    )


def _apply_log_removal(profile: Profile, removed: int) -> None:
    profile.total_participation_count = case(
        (Profile.total_participation_count > removed, Profile.total_participation_count - removed),
        else_=0,
    )
    profile.last_activity_at = (
        select(func.max(ParticipationLog.created_at))
        .where(ParticipationLog.profile_id == profile.id)
        .scalar_subquery()
    )


def record_participation(
    db: Session,
    profile: Profile,
    competition: Competition,
    *,
    admin: Optional[UserAccount] = None,
    notes: Optional[str] = None,
    participation_date: Optional[datetime] = None,
) -> ParticipationLog:
    """Insert a participation log and bump the member's cached aggregate.

    The log row is flushed first; a duplicate (member, competition) pair fails
    there, the session is rolled back and a 409 is raised before the aggregate
    is touched. The caller commits.
    """
    log = ParticipationLog(
        profile_id=profile.id,
        competition_id=competition.id,
        admin_id=admin.id if admin else None,
        notes=notes,
        participation_date=participation_date,
        created_at=now_tz(),
    )
    db.add(log)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.info(
            "Duplicate participation rejected: profile_id=%s competition_id=%s",
            profile.id,
            competition.id,
        )
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=ALREADY_REGISTERED_DETAIL) from exc

    _apply_log_insert(profile, log.created_at)
    db.flush()
    return log


def remove_participation(db: Session, log: ParticipationLog) -> None:
    profile = db.query(Profile).filter(Profile.id == log.profile_id).first()
    db.delete(log)
    db.flush()
    if profile:
        _apply_log_removal(profile, 1)
        db.flush()


def remove_competition(db: Session, competition: Competition) -> List[int]:
    """Delete a competition and its logs, keeping every affected aggregate exact.

    Verification requests that pointed at it are detached rather than deleted.
    """
    removed_per_profile = Counter(log.profile_id for log in competition.participations)
    db.delete(competition)
    db.flush()
    if removed_per_profile:
        profiles = db.query(Profile).filter(Profile.id.in_(list(removed_per_profile))).all()
        for profile in profiles:
            _apply_log_removal(profile, removed_per_profile[profile.id])
        db.flush()
    return sorted(removed_per_profile)


def category_participation_counts(db: Session, category: str) -> Dict[int, int]:
    rows = (
        db.query(ParticipationLog.profile_id, func.count(ParticipationLog.id))
        .join(Competition, Competition.id == ParticipationLog.competition_id)
        .filter(Competition.category == normalize_category(category))
        .group_by(ParticipationLog.profile_id)
        .all()
    )
    return {profile_id: int(count) for profile_id, count in rows}


def list_categories(db: Session) -> List[str]:
    rows = db.query(Competition.category).distinct().order_by(Competition.category.asc()).all()
    return [category for (category,) in rows if category]


def get_profile_participations(db: Session, profile_id: int) -> List[ParticipationLog]:
    return (
        db.query(ParticipationLog)
        .filter(ParticipationLog.profile_id == profile_id)
        .order_by(ParticipationLog.created_at.desc(), ParticipationLog.id.desc())
        .all()
    )


def resync_profile_aggregates(db: Session, profile_ids: Optional[Iterable[int]] = None) -> int:
    """Recompute cached counters from the participation log; returns rows repaired."""
    query = db.query(Profile)
    if profile_ids is not None:
        query = query.filter(Profile.id.in_(list(profile_ids)))
    profiles = query.order_by(Profile.id.asc()).all()

    stats = {
        profile_id: (int(count), last_at)
        for profile_id, count, last_at in (
            db.query(
                ParticipationLog.profile_id,
                func.count(ParticipationLog.id),
                func.max(ParticipationLog.created_at),
            )
            .group_by(ParticipationLog.profile_id)
            .all()
        )
    }

    repaired = 0
    for profile in profiles:
        count, last_at = stats.get(profile.id, (0, None))
        if profile.total_participation_count != count or profile.last_activity_at != last_at:
            logger.warning(
                "Repairing aggregate for profile_id=%s: count %s -> %s",
                profile.id,
                profile.total_participation_count,
                count,
            )
            profile.total_participation_count = count
            profile.last_activity_at = last_at
            repaired += 1
    db.commit()
    return repaired
