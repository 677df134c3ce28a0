from datetime import datetime, timedelta

import pytest
from mongomock_motor import AsyncMongoMockClient

from app.database import Database, create_indexes
from app.models.auth.user import UserRole
from app.models.contest.contest import ContestCreate
from app.services.auth.auth_service import AuthService
from app.services.contest.contest import ContestService

# Whole seconds: Mongo keeps millisecond precision only
NOW = datetime(2030, 1, 1, 10, 0, 0)
START = NOW + timedelta(hours=1)
END = NOW + timedelta(hours=2)
DURING = START + timedelta(minutes=30)
AFTER = END + timedelta(minutes=5)


@pytest.fixture
async def db():
    Database.client = AsyncMongoMockClient()
    database = Database.get_db()
    await create_indexes(database)
    yield database
    Database.client = None


@pytest.fixture
async def admin(db):
    return await AuthService(db).create_user(
        email="admin@codearena.dev",
        username="admin",
        role=UserRole.ADMIN
    )


@pytest.fixture
def make_user(db):
    async def _make_user(name):
        return await AuthService(db).create_user(email=f"{name}@codearena.dev", username=name)
    return _make_user


@pytest.fixture
async def problem_ids(db):
    result = await db.problems.insert_many([
        {"title": "Two Sum", "difficulty": "easy"},
        {"title": "Merge Intervals", "difficulty": "medium"},
        {"title": "Trapping Rain Water", "difficulty": "hard"},
    ])
    return [str(oid) for oid in result.inserted_ids]


@pytest.fixture
def contest_payload(problem_ids):
    def _payload(**overrides):
        payload = {
            "title": "Weekly Contest 1",
            "description": "Two problems, two hours of fun",
            "start_time": START,
            "end_time": END,
            "difficulty": "mixed",
            "total_problems": 2,
            "problem_ids": problem_ids[:2],
        }
        payload.update(overrides)
        return payload
    return _payload


@pytest.fixture
def make_contest(db, admin, contest_payload):
    async def _make_contest(**overrides):
        contest = await ContestService(db).create_contest(
            ContestCreate(**contest_payload(**overrides)),
            admin,
            now=NOW
        )
        return str(contest["_id"])
    return _make_contest
