from datetime import timedelta

import httpx
import pytest

from app.main import app
from app.models.contest.contest import ContestCreate
from app.routes.auth.dependencies import get_current_user
from app.services.contest.contest import ContestService
from app.services.contest.status import utcnow


@pytest.fixture
def auth():
    return {"user": None}


@pytest.fixture
async def client(db, auth):
    app.dependency_overrides[get_current_user] = lambda: auth["user"]
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


def contest_body(problem_ids, **overrides):
    now = utcnow().replace(microsecond=0)
    body = {
        "title": "Route Contest",
        "description": "Created through the HTTP API",
        "start_time": (now + timedelta(hours=1)).isoformat(),
        "end_time": (now + timedelta(hours=3)).isoformat(),
        "difficulty": "medium",
        "total_problems": 2,
        "problem_ids": problem_ids[:2],
    }
    body.update(overrides)
    return body


async def create_running_contest(db, admin, problem_ids):
    """Contests cannot be created with a past start, so backdate the creation"""
    now = utcnow().replace(microsecond=0)
    contest = await ContestService(db).create_contest(
        ContestCreate(
            title="Live Contest",
            description="Already running contest",
            start_time=now - timedelta(minutes=30),
            end_time=now + timedelta(hours=1),
            difficulty="easy",
            total_problems=2,
            problem_ids=problem_ids[:2],
        ),
        admin,
        now=now - timedelta(hours=1)
    )
    return str(contest["_id"])


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_create_requires_admin(client, auth, admin, make_user, problem_ids):
    response = await client.post("/api/contests", json=contest_body(problem_ids))
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTHORIZATION_ERROR"

    auth["user"] = await make_user("alice")
    response = await client.post("/api/contests", json=contest_body(problem_ids))
    assert response.status_code == 403
    assert response.json()["success"] is False

    auth["user"] = admin
    response = await client.post("/api/contests", json=contest_body(problem_ids))
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["contest"]["status"] == "upcoming"
    assert body["data"]["contest"]["id"]


async def test_create_validation_errors(client, auth, admin, problem_ids):
    auth["user"] = admin

    response = await client.post("/api/contests", json=contest_body(problem_ids, title="ab"))
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    response = await client.post("/api/contests", json=contest_body(problem_ids, total_problems=3))
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_contest_crud(client, auth, admin, make_user, problem_ids):
    auth["user"] = admin
    created = await client.post("/api/contests", json=contest_body(problem_ids, max_participants=1))
    contest_id = created.json()["data"]["contest"]["id"]

    listing = await client.get("/api/contests", params={"status": "upcoming", "limit": 5})
    assert listing.status_code == 200
    assert listing.json()["data"]["pagination"]["total"] == 1

    assert (await client.get("/api/contests", params={"limit": 0})).status_code == 422

    detail = await client.get(f"/api/contests/{contest_id}")
    assert detail.json()["data"]["contest"]["title"] == "Route Contest"

    missing = await client.get("/api/contests/5f0000000000000000000000")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "RESOURCE_NOT_FOUND"

    patched = await client.patch(f"/api/contests/{contest_id}", json={"title": "Renamed Route Contest"})
    assert patched.status_code == 200
    assert patched.json()["data"]["contest"]["title"] == "Renamed Route Contest"

    auth["user"] = await make_user("alice")
    assert (await client.post(f"/api/contests/{contest_id}/register")).status_code == 201

    duplicate = await client.post(f"/api/contests/{contest_id}/register")
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "DUPLICATE_RESOURCE"

    forbidden = await client.patch(f"/api/contests/{contest_id}", json={"title": "Not my contest"})
    assert forbidden.status_code == 403

    auth["user"] = await make_user("bob")
    full = await client.post(f"/api/contests/{contest_id}/register")
    assert full.status_code == 409
    assert full.json()["error"]["code"] == "CAPACITY_EXCEEDED"

    early = await client.post(
        f"/api/contests/{contest_id}/submit",
        json={
            "problem_id": problem_ids[0],
            "code": "print(1)",
            "language": "python",
            "test_cases_passed": 1,
            "total_test_cases": 1,
        }
    )
    assert early.status_code == 409
    assert early.json()["error"]["code"] == "INVALID_STATE"

    auth["user"] = admin
    deleted = await client.delete(f"/api/contests/{contest_id}")
    assert deleted.status_code == 200
    assert deleted.json()["data"]["participations_deleted"] == 1

    history = await client.get(f"/api/contests/{contest_id}/history")
    assert history.status_code == 404


async def test_submit_and_leaderboard(client, auth, db, admin, make_user, problem_ids):
    contest_id = await create_running_contest(db, admin, problem_ids)
    alice = await make_user("alice")
    auth["user"] = alice

    assert (await client.post(f"/api/contests/{contest_id}/register")).status_code == 201

    response = await client.post(
        f"/api/contests/{contest_id}/submit",
        json={
            "problem_id": problem_ids[0],
            "code": "print(sum(map(int, input().split())))",
            "language": "python",
            "test_cases_passed": 2,
            "total_test_cases": 2,
            "execution_time": 0,
        }
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["submission"]["score"] == 100
    assert data["submission"]["status"] == "accepted"
    assert "code" not in data["submission"]
    assert data["participation"]["score"] == 100

    board = await client.get(f"/api/contests/{contest_id}/leaderboard")
    assert board.status_code == 200
    rows = board.json()["data"]["leaderboard"]
    assert rows[0]["rank"] == 1
    assert rows[0]["username"] == "alice"

    results = await client.get(f"/api/contests/{contest_id}/results")
    assert results.json()["data"]["results"]["rank"] == 1

    stats = await client.get("/api/contests/stats/user")
    assert stats.status_code == 200
    assert stats.json()["data"]["stats"]["participated_contests"] == 1

    auth["user"] = await make_user("bob")
    not_registered = await client.post(
        f"/api/contests/{contest_id}/submit",
        json={
            "problem_id": problem_ids[0],
            "code": "print(0)",
            "language": "java",
            "test_cases_passed": 0,
            "total_test_cases": 2,
        }
    )
    assert not_registered.status_code == 403

    assert (await client.get(f"/api/contests/{contest_id}/results")).status_code == 403

    auth["user"] = admin
    history = await client.get(f"/api/contests/{contest_id}/history")
    actions = [entry["action"] for entry in history.json()["data"]["history"]]
    assert sorted(actions) == ["contest_created", "submission_created", "user_registered"]


async def test_contest_documents_are_serialized(client, auth, admin, problem_ids):
    auth["user"] = admin
    body = contest_body(problem_ids)
    created = (await client.post("/api/contests", json=body)).json()["data"]["contest"]

    detail = (await client.get(f"/api/contests/{created['id']}")).json()["data"]["contest"]

    for contest in (created, detail):
        assert "_id" not in contest
        assert len(contest["id"]) == 24
        assert contest["start_time"] == body["start_time"]
        assert contest["problem_ids"] == problem_ids[:2]
        assert contest["status"] == "upcoming"
