import pytest
from fastapi import HTTPException

from conftest import make_admin, make_member
from models import Competition, ParticipationLog, RequestStatus, VerificationRequest
from participation_service import ALREADY_REGISTERED_DETAIL
from time_utils import today_tz, to_epoch
from verification_state import (
    approve_verification_request,
    can_transition,
    reject_verification_request,
    submit_verification_request,
)


def _submit(db, profile, title, category="Hackathon", message="I was there"):
    return submit_verification_request(
        db,
        profile,
        competition_title=title,
        category=category,
        message=message,
    )


def test_transition_table():
    assert can_transition(RequestStatus.PENDING, RequestStatus.APPROVED)
    assert can_transition(RequestStatus.PENDING, RequestStatus.REJECTED)
    assert not can_transition(RequestStatus.APPROVED, RequestStatus.REJECTED)
    assert not can_transition(RequestStatus.REJECTED, RequestStatus.APPROVED)
    assert not can_transition(RequestStatus.APPROVED, RequestStatus.PENDING)


def test_submit_creates_pending_request_without_log(db):
    cici = make_member(db, "Cici")
    request = _submit(db, cici, "Hackathon 2024")

    assert request.status == RequestStatus.PENDING
    assert db.query(ParticipationLog).count() == 0
    competition = db.query(Competition).one()
    assert competition.title == "Hackathon 2024"
    assert competition.date == today_tz()
    assert request.competition_id == competition.id


def test_approve_new_competition_request(db):
    admin = make_admin(db)
    cici = make_member(db, "Cici")
    request = _submit(db, cici, "Hackathon 2024")

    approved = approve_verification_request(db, request.id, admin)

    assert approved.status == RequestStatus.APPROVED
    assert approved.reviewed_by == admin.id
    assert approved.reviewed_at is not None
    log = db.query(ParticipationLog).one()
    assert log.profile_id == cici.id
    assert log.admin_id == admin.id
    assert log.notes == "Approved via verification request: I was there"
    db.refresh(cici)
    assert cici.total_participation_count == 1
    assert to_epoch(cici.last_activity_at) == to_epoch(log.created_at)


def test_duplicate_approval_leaves_request_pending(db):
    admin = make_admin(db)
    deni = make_member(db, "Deni")
    first = _submit(db, deni, "Codefest")
    second = _submit(db, deni, "Codefest", message="Second claim")
    first_id, second_id = first.id, second.id

    approve_verification_request(db, first_id, admin)
    with pytest.raises(HTTPException) as exc:
        approve_verification_request(db, second_id, admin)

    assert exc.value.status_code == 409
    assert exc.value.detail == ALREADY_REGISTERED_DETAIL
    db.expire_all()
    assert db.get(VerificationRequest, second_id).status == RequestStatus.PENDING
    assert db.get(VerificationRequest, first_id).status == RequestStatus.APPROVED
    db.refresh(deni)
    assert deni.total_participation_count == 1
    assert db.query(ParticipationLog).count() == 1


def test_counter_tracks_distinct_approvals(db):
    admin = make_admin(db)
    member = make_member(db, "Eka")
    titles = ["Math Cup", "Physics Bowl", "Chess Open"]
    request_ids = [_submit(db, member, title, category="Science").id for title in titles]

    for request_id in request_ids:
        approve_verification_request(db, request_id, admin)

    db.refresh(member)
    assert member.total_participation_count == len(titles)
    latest = (
        db.query(ParticipationLog)
        .filter(ParticipationLog.profile_id == member.id)
        .order_by(ParticipationLog.created_at.desc(), ParticipationLog.id.desc())
        .first()
    )
    assert to_epoch(member.last_activity_at) == to_epoch(latest.created_at)


def test_titles_differing_in_case_share_one_competition(db):
    member = make_member(db, "Fajar")
    first = _submit(db, member, "Math Olympiad", category="Science")
    second = _submit(db, member, "math  olympiad ", category="Science")

    assert first.competition_id == second.competition_id
    assert db.query(Competition).count() == 1


def test_terminal_states_cannot_change(db):
    admin = make_admin(db)
    member = make_member(db, "Gita")
    request = _submit(db, member, "Robo Race")
    reject_verification_request(db, request.id, admin)

    with pytest.raises(HTTPException) as exc:
        approve_verification_request(db, request.id, admin)
    assert exc.value.status_code == 409
    assert "rejected" in exc.value.detail

    db.refresh(member)
    assert member.total_participation_count == 0
    assert db.query(ParticipationLog).count() == 0


def test_missing_request_is_not_found(db):
    admin = make_admin(db)
    with pytest.raises(HTTPException) as exc:
        reject_verification_request(db, 4242, admin)
    assert exc.value.status_code == 404


def test_request_without_competition_cannot_be_approved(db):
    admin = make_admin(db)
    member = make_member(db, "Hadi")
    request = _submit(db, member, "Vanishing Cup")
    request.competition_id = None
    db.commit()

    with pytest.raises(HTTPException) as exc:
        approve_verification_request(db, request.id, admin)
    assert exc.value.status_code == 400


def test_blank_message_is_rejected_before_any_write(db):
    member = make_member(db, "Indah")
    with pytest.raises(HTTPException) as exc:
        _submit(db, member, "Quiz Night", message="   ")
    assert exc.value.status_code == 400
    assert db.query(Competition).count() == 0
    assert db.query(VerificationRequest).count() == 0
