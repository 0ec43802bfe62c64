from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from change_feed import change_feed
from database import get_db
from models import Competition, Profile
from participation_service import get_profile_participations, list_categories
from ranking import LeaderboardSort, SortDirection, load_leaderboard
from schemas import (
    CompetitionResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    LeaderboardRevisionResponse,
    ParticipationResponse,
)

router = APIRouter()


@router.get("/")
def root():
    return {"message": "Participation Leaderboard API is running"}


@router.get("/health")
def health_check():
    return {"status": "healthy"}


@router.get("/leaderboard", response_model=LeaderboardResponse)
def get_leaderboard(
    search: Optional[str] = Query(None, max_length=255),
    category: Optional[str] = Query(None, max_length=100),
    sort: LeaderboardSort = Query(LeaderboardSort.STANDING),
    direction: SortDirection = Query(SortDirection.ASC),
    db: Session = Depends(get_db),
):
    revision = change_feed.revision
    view = load_leaderboard(db, search=search, category=category, sort=sort, direction=direction)
    return LeaderboardResponse(
        entries=[
            LeaderboardEntry(
                rank=row.rank,
                badge=row.badge.value,
                profile_id=row.profile_id,
                full_name=row.full_name,
                org_unit=row.org_unit,
                avatar_url=row.avatar_url,
                participation_count=row.participation_count,
                total_participation_count=row.total_participation_count,
                last_activity_at=row.last_activity_at,
            )
            for row in view.entries
        ],
        total_matches=view.total_matches,
        truncated=view.truncated,
        is_empty=view.is_empty,
        search=view.search,
        category=view.category,
        revision=revision,
    )


@router.get("/leaderboard/revision", response_model=LeaderboardRevisionResponse)
def get_leaderboard_revision():
    return LeaderboardRevisionResponse(revision=change_feed.revision)


@router.get("/categories", response_model=List[str])
def get_categories(db: Session = Depends(get_db)):
    return list_categories(db)


@router.get("/competitions", response_model=List[CompetitionResponse])
def get_competitions(
    category: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
):
    query = db.query(Competition)
    if category and category.strip():
        query = query.filter(Competition.category == category.strip())
    competitions = query.order_by(Competition.date.desc(), Competition.title.asc()).all()
    return [CompetitionResponse.model_validate(row) for row in competitions]


@router.get("/profiles/{profile_id}/participations", response_model=List[ParticipationResponse])
def get_public_profile_participations(profile_id: int, db: Session = Depends(get_db)):
    profile = db.query(Profile).filter(Profile.id == profile_id).first()
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return [ParticipationResponse.model_validate(row) for row in get_profile_participations(db, profile_id)]
