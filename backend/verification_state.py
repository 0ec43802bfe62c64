import logging
from typing import Dict, FrozenSet, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from models import Profile, RequestStatus, UserAccount, VerificationRequest
from participation_service import find_or_create_competition, record_participation
from time_utils import now_tz

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}


def _normalize_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(request: VerificationRequest, target: RequestStatus) -> None:
    if not can_transition(request.status, target):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Request is already {request.status.value}",
        )


def get_request_or_404(db: Session, request_id: int) -> VerificationRequest:
    request = db.query(VerificationRequest).filter(VerificationRequest.id == request_id).first()
    if not request:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Verification request not found")
    return request


def approval_note(request: VerificationRequest) -> str:
    return f"Approved via verification request: {request.message}"


def submit_verification_request(
    db: Session,
    profile: Profile,
    *,
    competition_title: str,
    category: str,
    message: str,
    participation_date=None,
) -> VerificationRequest:
    clean_message = _normalize_text(message)
    if not clean_message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required")
    if not _normalize_text(category):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category is required")

    # Nothing is written for the request until the competition resolves.
    competition, created = find_or_create_competition(db, competition_title, category=category)

    request = VerificationRequest(
        profile_id=profile.id,
        competition_id=competition.id,
        message=clean_message,
        participation_date=participation_date,
        status=RequestStatus.PENDING,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info(
        "Verification request %s submitted by profile_id=%s for competition_id=%s (new competition: %s)",
        request.id,
        profile.id,
        competition.id,
        created,
    )
    return request


def approve_verification_request(db: Session, request_id: int, admin: UserAccount) -> VerificationRequest:
    """Move a pending request to approved.

    Step one writes the participation log (and the member's aggregate); step two
    flips the status. Both ride one transaction in that order, so a failed log
    insert leaves the request pending and the counter unchanged.
    """
    request = get_request_or_404(db, request_id)
    ensure_transition(request, RequestStatus.APPROVED)
    if request.competition_id is None or request.competition is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request has no competition and cannot be approved",
        )

    record_participation(
        db,
        request.profile,
        request.competition,
        admin=admin,
        notes=approval_note(request),
        participation_date=request.participation_date,
    )

    request.status = RequestStatus.APPROVED
    request.reviewed_by = admin.id
    request.reviewed_at = now_tz()
    db.commit()
    db.refresh(request)
    logger.info("Verification request %s approved by admin_id=%s", request.id, admin.id)
    return request


def reject_verification_request(db: Session, request_id: int, admin: UserAccount) -> VerificationRequest:
    request = get_request_or_404(db, request_id)
    ensure_transition(request, RequestStatus.REJECTED)
    request.status = RequestStatus.REJECTED
    request.reviewed_by = admin.id
    request.reviewed_at = now_tz()
    db.commit()
    db.refresh(request)
    logger.info("Verification request %s rejected by admin_id=%s", request.id, admin.id)
    return request
