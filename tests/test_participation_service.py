from datetime import date

import pytest
from fastapi import HTTPException

from conftest import make_admin, make_member
from models import Competition, ParticipationLog, Profile, VerificationRequest
from participation_service import (
    ALREADY_REGISTERED_DETAIL,
    DEFAULT_COMPETITION_CATEGORY,
    category_participation_counts,
    competition_title_key,
    find_or_create_competition,
    list_categories,
    record_participation,
    remove_competition,
    remove_participation,
    resync_profile_aggregates,
)
from time_utils import to_epoch
from verification_state import submit_verification_request


def _competition(db, title, category=None):
    competition, _ = find_or_create_competition(db, title, category=category, competition_date=date(2024, 3, 1))
    db.commit()
    return competition


def _record(db, profile, competition, admin=None):
    log = record_participation(db, profile, competition, admin=admin)
    db.commit()
    return log


def test_title_key_ignores_case_and_spacing():
    assert competition_title_key("  Math   Olympiad ") == competition_title_key("math olympiad")


def test_find_or_create_defaults_category_and_reuses_rows(db):
    created, was_created = find_or_create_competition(db, "Hackathon 2024")
    db.commit()
    again, created_again = find_or_create_competition(db, "HACKATHON 2024", category="Other")

    assert was_created is True
    assert created_again is False
    assert again.id == created.id
    assert created.category == DEFAULT_COMPETITION_CATEGORY


def test_direct_entry_duplicate_is_a_conflict(db):
    admin = make_admin(db)
    member = make_member(db, "Joko")
    competition = _competition(db, "Codefest")
    _record(db, member, competition, admin)

    with pytest.raises(HTTPException) as exc:
        record_participation(db, member, competition, admin=admin)
    assert exc.value.status_code == 409
    assert exc.value.detail == ALREADY_REGISTERED_DETAIL

    db.refresh(member)
    assert member.total_participation_count == 1


def test_removing_a_log_decrements_and_recomputes_activity(db):
    member = make_member(db, "Kirana")
    first = _competition(db, "Spring Sprint")
    second = _competition(db, "Summer Sprint")
    first_log = _record(db, member, first)
    second_log = _record(db, member, second)

    remove_participation(db, second_log)
    db.commit()
    db.refresh(member)
    assert member.total_participation_count == 1
    assert to_epoch(member.last_activity_at) == to_epoch(first_log.created_at)

    remove_participation(db, first_log)
    db.commit()
    db.refresh(member)
    assert member.total_participation_count == 0
    assert member.last_activity_at is None


def test_removing_a_competition_adjusts_every_member(db):
    ana = make_member(db, "Ana")
    budi = make_member(db, "Budi", email="budi@example.com")
    doomed = _competition(db, "Cancelled Cup")
    kept = _competition(db, "Kept Cup")
    _record(db, ana, doomed)
    _record(db, ana, kept)
    _record(db, budi, doomed)
    request = submit_verification_request(
        db, budi, competition_title="Cancelled Cup", category="General", message="also there"
    )
    request_id = request.id

    affected = remove_competition(db, doomed)
    db.commit()

    assert affected == sorted([ana.id, budi.id])
    db.refresh(ana)
    db.refresh(budi)
    assert ana.total_participation_count == 1
    assert budi.total_participation_count == 0
    assert budi.last_activity_at is None
    assert db.query(Competition).count() == 1
    assert db.get(VerificationRequest, request_id).competition_id is None


def test_category_counts_come_from_the_log(db):
    ana = make_member(db, "Ana")
    budi = make_member(db, "Budi")
    _record(db, ana, _competition(db, "Physics Bowl", "Science"))
    _record(db, ana, _competition(db, "Chem Quiz", "Science"))
    _record(db, budi, _competition(db, "Fun Run", "Sports"))

    assert category_participation_counts(db, " Science ") == {ana.id: 2}
    assert category_participation_counts(db, "Sports") == {budi.id: 1}
    assert category_participation_counts(db, "Music") == {}
    assert list_categories(db) == ["Science", "Sports"]


def test_resync_repairs_drifted_counters(db):
    ana = make_member(db, "Ana")
    log = _record(db, ana, _competition(db, "Resync Open"))
    db.query(Profile).filter(Profile.id == ana.id).update(
        {Profile.total_participation_count: 5, Profile.last_activity_at: None}
    )
    db.commit()

    repaired = resync_profile_aggregates(db)

    assert repaired == 1
    db.refresh(ana)
    assert ana.total_participation_count == 1
    assert to_epoch(ana.last_activity_at) == to_epoch(log.created_at)
    assert resync_profile_aggregates(db) == 0
    assert db.query(ParticipationLog).count() == 1
