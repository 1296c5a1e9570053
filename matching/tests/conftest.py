"""
Shared fixtures for matching tests.
"""

import copy
import os

# db.py refuses to import without a DATABASE_URL
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db import Base, init_db
from matching.logic.contracts import Profile, Room
from matching.logic.runner import board, set_engine


BASE_SURVEY = {
    "gender": "female",
    "academic_track": "computer_science",
    "academic_year": 2,
    "home_region": "north",
    "lifestyle": {
        "smoking_tolerance": "none",
        "drinking_tolerance": "low",
        "food_preference": "vegetarian",
        "guests_frequency": "rarely",
        "music_volume": "quiet",
        "temperature_preference": "moderate",
    },
    "study": {
        "study_style": "quiet",
        "study_time": "evening",
        "needs_quiet": True,
        "music_while_studying": False,
        "group_study": False,
    },
    "cleanliness": {
        "cleanliness_level": 5,
        "organization_level": 4,
        "cleaning_frequency": "often",
        "shared_items_comfort": 3,
    },
    "social": {
        "social_level": "ambivert",
        "visitor_frequency": "rarely",
        "party_attitude": "rarely",
        "privacy_needs": 3,
        "interests": ["music", "reading", "hiking", "chess"],
        "languages": ["english", "hindi"],
    },
    "sleep": {
        "bedtime": "22:00",
        "wake_time": "06:30",
        "sleep_sensitivity": "light",
        "naps": False,
    },
    "personality": {
        "introvert_extrovert": 3,
        "conflict_style": "collaborating",
        "communication_style": "direct",
        "adaptability": 4,
    },
    "deal_breakers": [],
}


def survey(profile_id: str, cohort_id: str = "c1", **overrides) -> dict:
    """Survey payload; section overrides are merged into the defaults."""
    data = copy.deepcopy(BASE_SURVEY)
    data["profile_id"] = profile_id
    data["cohort_id"] = cohort_id
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key].update(value)
        else:
            data[key] = value
    return data


def make_profile(profile_id: str, cohort_id: str = "c1", **overrides) -> Profile:
    return Profile.model_validate(survey(profile_id, cohort_id, **overrides))


def make_room(room_id: str, capacity: int = 2, **kwargs) -> Room:
    return Room(room_id=room_id, capacity=capacity, **kwargs)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def reset_runner_state():
    board.clear()
    set_engine(None)
    yield
    board.clear()
    set_engine(None)
