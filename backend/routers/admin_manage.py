import csv
import io
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional

from auth import get_password_hash
from database import get_db
from models import AdminLog, Competition, Profile, UserAccount, UserRole
from participation_service import competition_title_key, get_competition_by_title, normalize_title, remove_competition
from ranking import TOP_LEADERBOARD_LIMIT, load_leaderboard
from schemas import (
    AccountLinkRequest,
    AdminLogResponse,
    AdminProfileCreate,
    AdminUserResponse,
    CompetitionCreate,
    CompetitionResponse,
    CompetitionUpdate,
    ProfileResponse,
    ProfileUpdate,
    RoleUpdate,
)
from security import require_admin
from utils import log_admin_action

router = APIRouter()

EXPORT_HEADERS = ["Rank", "Full Name", "Org Unit", "Participations", "Total Participations", "Last Activity"]


def _build_admin_user_response(user: UserAccount) -> AdminUserResponse:
    return AdminUserResponse(
        id=user.id,
        email=user.email,
        role=user.role,
        profile_id=user.profile.id if user.profile else None,
        created_at=user.created_at,
    )


def _get_competition_or_404(db: Session, competition_id: int) -> Competition:
    competition = db.query(Competition).filter(Competition.id == competition_id).first()
    if not competition:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Competition not found")
    return competition


def _get_profile_or_404(db: Session, profile_id: int) -> Profile:
    profile = db.query(Profile).filter(Profile.id == profile_id).first()
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return profile


# ==================== COMPETITIONS ====================
@router.get("/admin/competitions", response_model=List[CompetitionResponse])
def list_admin_competitions(
    _: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db)
):
    competitions = db.query(Competition).order_by(Competition.date.desc(), Competition.title.asc()).all()
    return [CompetitionResponse.model_validate(row) for row in competitions]


@router.post("/admin/competitions", response_model=CompetitionResponse, status_code=status.HTTP_201_CREATED)
def create_competition(
    payload: CompetitionCreate,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    title = normalize_title(payload.title)
    if get_competition_by_title(db, title):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Competition with this title already exists")

    competition = Competition(
        title=title,
        title_key=competition_title_key(title),
        date=payload.date,
        description=payload.description,
        category=normalize_title(payload.category),
    )
    db.add(competition)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Competition with this title already exists")

    db.refresh(competition)
    log_admin_action(
        db,
        admin,
        "Create competition",
        request.method if request else None,
        request.url.path if request else None,
        {"competition_id": competition.id, "title": competition.title},
    )
    return CompetitionResponse.model_validate(competition)


@router.put("/admin/competitions/{competition_id}", response_model=CompetitionResponse)
def update_competition(
    competition_id: int,
    payload: CompetitionUpdate,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    competition = _get_competition_or_404(db, competition_id)
    if payload.title is not None:
        competition.title = normalize_title(payload.title)
        competition.title_key = competition_title_key(payload.title)
    if payload.date is not None:
        competition.date = payload.date
    if "description" in payload.model_fields_set:
        competition.description = str(payload.description or "").strip() or None
    if payload.category is not None:
        competition.category = normalize_title(payload.category)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Competition with this title already exists")

    db.refresh(competition)
    log_admin_action(
        db,
        admin,
        "Update competition",
        request.method if request else None,
        request.url.path if request else None,
        {"competition_id": competition.id},
    )
    return CompetitionResponse.model_validate(competition)


@router.delete("/admin/competitions/{competition_id}")
def delete_competition(
    competition_id: int,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    competition = _get_competition_or_404(db, competition_id)
    meta = {"competition_id": competition.id, "title": competition.title}
    affected = remove_competition(db, competition)
    db.commit()
    meta["affected_profile_ids"] = affected
    log_admin_action(
        db,
        admin,
        "Delete competition",
        request.method if request else None,
        request.url.path if request else None,
        meta,
    )
    return {"message": "Competition deleted successfully"}


# ==================== PROFILES ====================
@router.get("/admin/profiles", response_model=List[ProfileResponse])
def list_admin_profiles(
    search: Optional[str] = Query(None, max_length=255),
    _: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db)
):
    query = db.query(Profile)
    if search and search.strip():
        query = query.filter(Profile.full_name.ilike(f"%{search.strip()}%"))
    profiles = query.order_by(Profile.full_name.asc(), Profile.id.asc()).all()
    return [ProfileResponse.model_validate(row) for row in profiles]


@router.post("/admin/profiles", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
def create_profile(
    payload: AdminProfileCreate,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    profile = Profile(
        full_name=payload.full_name,
        org_unit=payload.org_unit,
        avatar_url=payload.avatar_url,
        total_participation_count=0,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    log_admin_action(
        db,
        admin,
        "Create profile",
        request.method if request else None,
        request.url.path if request else None,
        {"profile_id": profile.id},
    )
    return ProfileResponse.model_validate(profile)


@router.put("/admin/profiles/{profile_id}", response_model=ProfileResponse)
def update_profile(
    profile_id: int,
    payload: ProfileUpdate,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    profile = _get_profile_or_404(db, profile_id)
    if payload.full_name is not None:
        profile.full_name = payload.full_name
    if "org_unit" in payload.model_fields_set:
        profile.org_unit = payload.org_unit
    if "avatar_url" in payload.model_fields_set:
        profile.avatar_url = payload.avatar_url
    db.commit()
    db.refresh(profile)
    log_admin_action(
        db,
        admin,
        "Update profile",
        request.method if request else None,
        request.url.path if request else None,
        {"profile_id": profile.id},
    )
    return ProfileResponse.model_validate(profile)


@router.delete("/admin/profiles/{profile_id}")
def delete_profile(
    profile_id: int,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    profile = _get_profile_or_404(db, profile_id)
    meta = {"profile_id": profile.id, "full_name": profile.full_name}
    db.delete(profile)
    db.commit()
    log_admin_action(
        db,
        admin,
        "Delete profile",
        request.method if request else None,
        request.url.path if request else None,
        meta,
    )
    return {"message": "Profile deleted successfully"}


@router.post("/admin/profiles/{profile_id}/account", response_model=AdminUserResponse, status_code=status.HTTP_201_CREATED)
def create_profile_account(
    profile_id: int,
    payload: AccountLinkRequest,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    profile = _get_profile_or_404(db, profile_id)
    if profile.user_id is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Profile already has an account")
    email = str(payload.email).strip().lower()
    if db.query(UserAccount).filter(UserAccount.email == email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

    user = UserAccount(email=email, hashed_password=get_password_hash(payload.password), role=UserRole.USER)
    db.add(user)
    try:
        db.flush()
        profile.user_id = user.id
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

    db.refresh(user)
    log_admin_action(
        db,
        admin,
        "Create profile account",
        request.method if request else None,
        request.url.path if request else None,
        {"profile_id": profile_id, "user_id": user.id},
    )
    return _build_admin_user_response(user)


@router.put("/admin/users/{user_id}/role", response_model=AdminUserResponse)
def update_user_role(
    user_id: int,
    payload: RoleUpdate,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    user = db.query(UserAccount).filter(UserAccount.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot change your own role")

    user.role = UserRole(payload.role.value)
    db.commit()
    db.refresh(user)
    log_admin_action(
        db,
        admin,
        "Update user role",
        request.method if request else None,
        request.url.path if request else None,
        {"user_id": user.id, "role": user.role.value},
    )
    return _build_admin_user_response(user)


@router.get("/admin/logs", response_model=List[AdminLogResponse])
def list_admin_logs(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    _: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db)
):
    logs = db.query(AdminLog).order_by(AdminLog.created_at.desc(), AdminLog.id.desc()).offset(offset).limit(limit).all()
    return [AdminLogResponse.model_validate(row) for row in logs]


# ==================== EXPORT ====================
@router.get("/admin/export/leaderboard")
def export_leaderboard(
    format: str = Query("csv"),
    category: Optional[str] = Query(None, max_length=100),
    _: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db)
):
    if format not in {"csv", "xlsx"}:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported export format")

    limit = db.query(Profile).count() or TOP_LEADERBOARD_LIMIT
    view = load_leaderboard(db, category=category, limit=limit)
    rows = [
        [
            row.rank,
            row.full_name,
            row.org_unit,
            row.participation_count,
            row.total_participation_count,
            row.last_activity_at.isoformat() if row.last_activity_at else None,
        ]
        for row in view.entries
    ]

    if format == "xlsx":
        wb = Workbook()
        ws = wb.active
        ws.append(EXPORT_HEADERS)
        for row in rows:
            ws.append(row)
        stream = io.BytesIO()
        wb.save(stream)
        stream.seek(0)
        headers = {"Content-Disposition": "attachment; filename=leaderboard.xlsx"}
        return StreamingResponse(stream, media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", headers=headers)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADERS)
    writer.writerows(rows)
    headers = {"Content-Disposition": "attachment; filename=leaderboard.csv"}
    return StreamingResponse(iter([output.getvalue()]), media_type="text/csv", headers=headers)
