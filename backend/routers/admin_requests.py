from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from typing import List, Optional

from database import get_db
from models import Competition, ParticipationLog, Profile, RequestStatus, UserAccount, VerificationRequest
from participation_service import find_or_create_competition, record_participation, remove_participation
from schemas import (
    ParticipationCreate,
    ParticipationResponse,
    RequestStatusEnum,
    VerificationRequestResponse,
)
from security import require_admin
from utils import log_admin_action
from verification_state import approve_verification_request, reject_verification_request

router = APIRouter()


@router.get("/admin/requests", response_model=List[VerificationRequestResponse])
def list_verification_requests(
    status_filter: Optional[RequestStatusEnum] = Query(None, alias="status"),
    _: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db)
):
    query = db.query(VerificationRequest)
    if status_filter:
        query = query.filter(VerificationRequest.status == RequestStatus(status_filter.value))
    requests = query.order_by(VerificationRequest.created_at.desc(), VerificationRequest.id.desc()).all()
    return [VerificationRequestResponse.model_validate(row) for row in requests]


@router.post("/admin/requests/{request_id}/approve", response_model=VerificationRequestResponse)
def approve_request(
    request_id: int,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    verification = approve_verification_request(db, request_id, admin)
    log_admin_action(
        db,
        admin,
        "Approve verification request",
        request.method if request else None,
        request.url.path if request else None,
        {"request_id": verification.id, "profile_id": verification.profile_id, "competition_id": verification.competition_id},
    )
    return VerificationRequestResponse.model_validate(verification)


@router.post("/admin/requests/{request_id}/reject", response_model=VerificationRequestResponse)
def reject_request(
    request_id: int,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    verification = reject_verification_request(db, request_id, admin)
    log_admin_action(
        db,
        admin,
        "Reject verification request",
        request.method if request else None,
        request.url.path if request else None,
        {"request_id": verification.id, "profile_id": verification.profile_id},
    )
    return VerificationRequestResponse.model_validate(verification)


@router.get("/admin/participations", response_model=List[ParticipationResponse])
def list_participations(
    profile_id: Optional[int] = None,
    competition_id: Optional[int] = None,
    category: Optional[str] = Query(None, max_length=100),
    _: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db)
):
    query = db.query(ParticipationLog)
    if profile_id is not None:
        query = query.filter(ParticipationLog.profile_id == profile_id)
    if competition_id is not None:
        query = query.filter(ParticipationLog.competition_id == competition_id)
    if category and category.strip():
        query = query.join(Competition, Competition.id == ParticipationLog.competition_id).filter(
            Competition.category == category.strip()
        )
    logs = query.order_by(ParticipationLog.created_at.desc(), ParticipationLog.id.desc()).all()
    return [ParticipationResponse.model_validate(row) for row in logs]


@router.post("/admin/participations", response_model=ParticipationResponse, status_code=status.HTTP_201_CREATED)
def create_participation(
    payload: ParticipationCreate,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    profile = db.query(Profile).filter(Profile.id == payload.profile_id).first()
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")

    competition, _ = find_or_create_competition(db, payload.competition_title, category=payload.category)
    log = record_participation(
        db,
        profile,
        competition,
        admin=admin,
        notes=payload.notes,
        participation_date=payload.participation_date,
    )
    db.commit()
    db.refresh(log)
    log_admin_action(
        db,
        admin,
        "Record participation",
        request.method if request else None,
        request.url.path if request else None,
        {"participation_id": log.id, "profile_id": log.profile_id, "competition_id": log.competition_id},
    )
    return ParticipationResponse.model_validate(log)


@router.delete("/admin/participations/{participation_id}")
def delete_participation(
    participation_id: int,
    admin: UserAccount = Depends(require_admin),
    db: Session = Depends(get_db),
    request: Request = None,
):
    log = db.query(ParticipationLog).filter(ParticipationLog.id == participation_id).first()
    if not log:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Participation not found")
    meta = {"participation_id": log.id, "profile_id": log.profile_id, "competition_id": log.competition_id}
    remove_participation(db, log)
    db.commit()
    log_admin_action(
        db,
        admin,
        "Delete participation",
        request.method if request else None,
        request.url.path if request else None,
        meta,
    )
    return {"message": "Participation deleted successfully"}
