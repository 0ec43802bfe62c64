#!/usr/bin/env python3
import os
from datetime import date, timedelta

from dotenv import load_dotenv
from sqlalchemy.orm import sessionmaker

from auth import get_password_hash
from database import Base, create_db_engine
from models import ParticipationLog, Profile, UserAccount, UserRole
from participation_service import find_or_create_competition, record_participation

MOCK_PASSWORD = 'member123'

MOCK_MEMBERS = [
    ('mock_member_1@example.com', 'Asha Raman', 'Robotics Club'),
    ('mock_member_2@example.com', 'Bilal Khan', 'Coding Club'),
    ('mock_member_3@example.com', 'Chen Wei', 'Coding Club'),
    ('mock_member_4@example.com', 'Divya Nair', 'Design Cell'),
    ('mock_member_5@example.com', 'Elena Petrova', 'Robotics Club'),
    ('mock_member_6@example.com', 'Farid Haddad', 'Quiz Society'),
    ('mock_member_7@example.com', 'Grace Obi', 'Design Cell'),
    ('mock_member_8@example.com', 'Hiro Tanaka', 'Quiz Society'),
]

MOCK_COMPETITIONS = [
    ('Regional Hackathon', 'Hackathon', 40),
    ('Campus Code Sprint', 'Hackathon', 25),
    ('Line Follower Challenge', 'Robotics', 60),
    ('Autonomous Rover Cup', 'Robotics', 18),
    ('Inter-College Quiz', 'Quiz', 32),
    ('Poster Design Jam', 'Design', 12),
]

# member index -> competition indexes
MOCK_PARTICIPATION = {
    0: [0, 2, 3, 4],
    1: [0, 1, 4],
    2: [0, 1],
    3: [5],
    4: [2, 3],
    5: [4],
    6: [5, 1],
    7: [],
}


def load_db_url() -> str:
    load_dotenv('backend/.env')
    db_url = os.environ.get('DATABASE_URL')
    if not db_url:
        raise RuntimeError('DATABASE_URL missing in backend/.env')
    return db_url


def make_session():
    engine = create_db_engine(load_db_url())
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal()


def ensure_member(db, email: str, full_name: str, org_unit: str) -> Profile:
    user = db.query(UserAccount).filter(UserAccount.email == email).first()
    if not user:
        user = UserAccount(email=email, hashed_password=get_password_hash(MOCK_PASSWORD), role=UserRole.USER)
        db.add(user)
        db.flush()
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()
    if not profile:
        profile = Profile(user_id=user.id, full_name=full_name, org_unit=org_unit, total_participation_count=0)
        db.add(profile)
        db.commit()
        db.refresh(profile)
    return profile


def main():
    db = make_session()
    try:
        profiles = [ensure_member(db, *row) for row in MOCK_MEMBERS]

        competitions = []
        for title, category, days_ago in MOCK_COMPETITIONS:
            competition, _ = find_or_create_competition(
                db,
                title,
                category=category,
                competition_date=date.today() - timedelta(days=days_ago),
                description=f'Mock {category.lower()} event.',
            )
            db.commit()
            competitions.append(competition)

        created = 0
        for member_index, competition_indexes in MOCK_PARTICIPATION.items():
            profile = profiles[member_index]
            for competition_index in competition_indexes:
                competition = competitions[competition_index]
                exists = db.query(ParticipationLog).filter(
                    ParticipationLog.profile_id == profile.id,
                    ParticipationLog.competition_id == competition.id,
                ).first()
                if exists:
                    continue
                record_participation(db, profile, competition, notes='Seeded mock participation')
                db.commit()
                created += 1

        print('Seeded/updated leaderboard mock data:')
        print(f'  - members: {len(profiles)}')
        print(f'  - competitions: {len(competitions)}')
        print(f'  - new participation logs: {created}')
        print(f'  - credentials for mock members: password={MOCK_PASSWORD}')
    finally:
        db.close()


if __name__ == '__main__':
    main()
