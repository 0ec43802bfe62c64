import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List

from auth import decode_token, get_password_hash, issue_tokens, verify_password
from database import get_db
from models import Profile, UserAccount, UserRole, VerificationRequest
from schemas import (
    MemberLogin,
    MemberRegister,
    MeResponse,
    PresignRequest,
    PresignResponse,
    ProfileResponse,
    ProfileUpdate,
    RefreshTokenRequest,
    TokenResponse,
    VerificationRequestCreate,
    VerificationRequestResponse,
)
from security import get_current_profile, require_user
from utils import ALLOWED_AVATAR_TYPES, _generate_presigned_put_url
from verification_state import submit_verification_request

router = APIRouter()
logger = logging.getLogger(__name__)


def _build_me_response(user: UserAccount) -> MeResponse:
    return MeResponse(
        user_id=user.id,
        email=user.email,
        role=user.role,
        is_admin=user.is_admin,
        profile=ProfileResponse.model_validate(user.profile) if user.profile else None,
    )


def _token_response(user: UserAccount) -> TokenResponse:
    return TokenResponse(**issue_tokens(user), user=_build_me_response(user))


@router.post("/auth/register", response_model=TokenResponse)
def member_register(user_data: MemberRegister, db: Session = Depends(get_db)):
    email = str(user_data.email).strip().lower()
    existing = db.query(UserAccount).filter(UserAccount.email == email).first()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

    new_user = UserAccount(
        email=email,
        hashed_password=get_password_hash(user_data.password),
        role=UserRole.USER,
    )
    db.add(new_user)
    try:
        db.flush()
        db.add(Profile(
            user_id=new_user.id,
            full_name=user_data.full_name,
            org_unit=user_data.org_unit,
            total_participation_count=0,
        ))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

    db.refresh(new_user)
    logger.info("Registered member account %s", new_user.email)
    return _token_response(new_user)


@router.post("/auth/login", response_model=TokenResponse)
def member_login(login_data: MemberLogin, db: Session = Depends(get_db)):
    email = str(login_data.email).strip().lower()
    user = db.query(UserAccount).filter(UserAccount.email == email).first()
    if not user or not verify_password(login_data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _token_response(user)


@router.post("/auth/refresh", response_model=TokenResponse)
def member_refresh(request: RefreshTokenRequest, db: Session = Depends(get_db)):
    payload = decode_token(request.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    email = payload.get("sub")
    user = db.query(UserAccount).filter(UserAccount.email == email).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return _token_response(user)


@router.get("/me", response_model=MeResponse)
def get_me(user: UserAccount = Depends(require_user)):
    return _build_me_response(user)


@router.put("/me", response_model=MeResponse)
def update_me(
    update_data: ProfileUpdate,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db)
):
    if update_data.full_name is not None:
        profile.full_name = update_data.full_name
    if "org_unit" in update_data.model_fields_set:
        profile.org_unit = update_data.org_unit
    if "avatar_url" in update_data.model_fields_set:
        profile.avatar_url = update_data.avatar_url
    db.commit()
    db.refresh(profile)
    return _build_me_response(profile.user)


@router.post("/me/avatar/presign", response_model=PresignResponse)
def presign_avatar_upload(
    payload: PresignRequest,
    profile: Profile = Depends(get_current_profile),
):
    return _generate_presigned_put_url(
        f"avatars/{profile.id}",
        payload.filename,
        payload.content_type,
        allowed_types=ALLOWED_AVATAR_TYPES
    )


@router.post("/requests", response_model=VerificationRequestResponse, status_code=status.HTTP_201_CREATED)
def submit_request(
    payload: VerificationRequestCreate,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db)
):
    request = submit_verification_request(
        db,
        profile,
        competition_title=payload.competition_title,
        category=payload.category,
        message=payload.message,
        participation_date=payload.participation_date,
    )
    return VerificationRequestResponse.model_validate(request)


@router.get("/me/requests", response_model=List[VerificationRequestResponse])
def list_my_requests(
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db)
):
    requests = (
        db.query(VerificationRequest)
        .filter(VerificationRequest.profile_id == profile.id)
        .order_by(VerificationRequest.created_at.desc(), VerificationRequest.id.desc())
        .all()
    )
    return [VerificationRequestResponse.model_validate(row) for row in requests]
