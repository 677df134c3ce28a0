from datetime import timedelta

import pytest

from app.core.exceptions import (
    AuthorizationError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationError,
)
from app.models.contest.contest import ContestCreate, ContestUpdate
from app.models.contest.submission import ContestSubmissionCreate
from app.services.contest.contest import ContestService
from app.services.contest.registration import RegistrationService
from app.services.contest.scoring import ScoringService
from tests.conftest import AFTER, DURING, END, NOW, START


class TestCreateContest:
    async def test_create(self, db, admin, contest_payload):
        contest = await ContestService(db).create_contest(
            ContestCreate(**contest_payload(max_participants=50)), admin, now=NOW
        )

        assert contest["status"] == "upcoming"
        assert contest["created_by"] == str(admin["_id"])
        assert contest["current_participants"] == 0
        assert contest["max_participants"] == 50
        assert contest["is_creator"] is True
        assert contest["time_until_start"] == "Starts in 1 hours"

        audit = await db.contest_audit_log.find_one({"action": "contest_created"})
        assert audit["contest_id"] == str(contest["_id"])

    @pytest.mark.parametrize("overrides", [
        {"start_time": END, "end_time": START},
        {"start_time": START, "end_time": START},
        {"start_time": NOW - timedelta(minutes=1)},
        {"total_problems": 3},
    ])
    async def test_invalid_window_or_count(self, db, admin, contest_payload, overrides):
        with pytest.raises(ValidationError):
            await ContestService(db).create_contest(
                ContestCreate(**contest_payload(**overrides)), admin, now=NOW
            )
        assert await db.contests.count_documents({}) == 0

    async def test_unknown_and_duplicate_problems(self, db, admin, contest_payload, problem_ids):
        service = ContestService(db)

        with pytest.raises(ValidationError) as exc_info:
            await service.create_contest(
                ContestCreate(**contest_payload(problem_ids=[problem_ids[0], "5f0000000000000000000000"])),
                admin,
                now=NOW
            )
        assert exc_info.value.details == {"problem_ids": ["5f0000000000000000000000"]}

        with pytest.raises(ValidationError):
            await service.create_contest(
                ContestCreate(**contest_payload(problem_ids=[problem_ids[0], problem_ids[0]])),
                admin,
                now=NOW
            )


async def test_full_contest_scenario(db, make_contest, make_user, problem_ids):
    contest_id = await make_contest()
    user = await make_user("alice")
    contests = ContestService(db)
    scoring = ScoringService(db)
    submission = ContestSubmissionCreate(
        problem_id=problem_ids[0],
        code="def solve(): return 42",
        language="python",
        test_cases_passed=2,
        total_test_cases=2,
        execution_time=0
    )

    await RegistrationService(db).register(contest_id, user, now=NOW)
    assert (await contests.get_contest(contest_id, now=NOW))["status"] == "upcoming"

    with pytest.raises(InvalidStateError):
        await scoring.submit(contest_id, user, submission, now=NOW)

    sub, participation = await scoring.submit(contest_id, user, submission, now=DURING)
    assert sub["score"] == 100
    assert sub["status"] == "accepted"
    assert participation["score"] == 100

    detail = await contests.get_contest(contest_id, user_id=str(user["_id"]), now=AFTER)
    assert detail["status"] == "ended"
    assert detail["is_registered"] is True
    assert detail["can_register"] is False


async def test_status_ignores_stale_cached_field(db, make_contest):
    contest_id = await make_contest()
    await db.contests.update_many({}, {"$set": {"status": "upcoming"}})

    contest = await ContestService(db).get_contest(contest_id, now=DURING)
    assert contest["status"] == "ongoing"
    assert contest["time_remaining"] == "30 minutes"


async def test_get_contest_flags(db, make_contest, make_user):
    contest_id = await make_contest(max_participants=1)
    alice = await make_user("alice")
    bob = await make_user("bob")
    service = ContestService(db)

    before = await service.get_contest(contest_id, user_id=str(bob["_id"]), now=NOW)
    assert before["can_register"] is True
    assert before["is_full"] is False

    await RegistrationService(db).register(contest_id, alice, now=NOW)

    after = await service.get_contest(contest_id, user_id=str(bob["_id"]), now=NOW)
    assert after["current_participants"] == 1
    assert after["is_full"] is True
    assert after["can_register"] is False

    with pytest.raises(ResourceNotFoundError):
        await service.get_contest("5f0000000000000000000000", now=NOW)


async def test_list_contests_filters(db, make_contest):
    await make_contest(title="Early Bird Round", difficulty="easy")
    await make_contest(
        title="Night Owl Round",
        difficulty="hard",
        start_time=END,
        end_time=END + timedelta(hours=1)
    )
    service = ContestService(db)

    contests, total = await service.list_contests(now=NOW)
    assert total == 2
    # Newest start first
    assert [c["title"] for c in contests] == ["Night Owl Round", "Early Bird Round"]
    assert "problem_ids" not in contests[0]

    ongoing, total = await service.list_contests(status="ongoing", now=DURING)
    assert total == 1
    assert ongoing[0]["title"] == "Early Bird Round"
    assert ongoing[0]["status"] == "ongoing"

    hard, _ = await service.list_contests(difficulty="hard", now=NOW)
    assert [c["title"] for c in hard] == ["Night Owl Round"]

    found, _ = await service.list_contests(search="owl", now=NOW)
    assert [c["title"] for c in found] == ["Night Owl Round"]

    page, total = await service.list_contests(limit=1, skip=1, now=NOW)
    assert total == 2
    assert [c["title"] for c in page] == ["Early Bird Round"]

    nothing, total = await service.list_contests(search="(", now=NOW)
    assert (nothing, total) == ([], 0)


class TestUpdateContest:
    async def test_update_upcoming(self, db, make_contest, admin):
        contest_id = await make_contest()

        updated = await ContestService(db).update_contest(
            contest_id,
            ContestUpdate(title="Renamed Contest", max_participants=10, end_time=END + timedelta(hours=1)),
            requester_id=str(admin["_id"]),
            now=NOW
        )

        assert updated["title"] == "Renamed Contest"
        assert updated["max_participants"] == 10
        assert updated["end_time"] == END + timedelta(hours=1)
        assert await db.contest_audit_log.count_documents({"action": "contest_updated"}) == 1

    async def test_only_creator(self, db, make_contest, make_user):
        contest_id = await make_contest()
        other = await make_user("mallory")

        with pytest.raises(AuthorizationError):
            await ContestService(db).update_contest(
                contest_id, ContestUpdate(title="Hijacked"), requester_id=str(other["_id"]), now=NOW
            )

    async def test_only_while_upcoming(self, db, make_contest, admin):
        contest_id = await make_contest()

        with pytest.raises(InvalidStateError):
            await ContestService(db).update_contest(
                contest_id, ContestUpdate(title="Too late"), requester_id=str(admin["_id"]), now=DURING
            )

    async def test_invalid_patches(self, db, make_contest, make_user, admin):
        contest_id = await make_contest()
        service = ContestService(db)
        admin_id = str(admin["_id"])

        with pytest.raises(ValidationError):
            await service.update_contest(contest_id, ContestUpdate(), requester_id=admin_id, now=NOW)

        with pytest.raises(ValidationError):
            await service.update_contest(
                contest_id, ContestUpdate(end_time=START - timedelta(minutes=1)), requester_id=admin_id, now=NOW
            )

        with pytest.raises(ValidationError):
            await service.update_contest(
                contest_id, ContestUpdate(start_time=NOW - timedelta(minutes=1)), requester_id=admin_id, now=NOW
            )

        for name in ("alice", "bob"):
            await RegistrationService(db).register(contest_id, await make_user(name), now=NOW)

        with pytest.raises(ValidationError):
            await service.update_contest(
                contest_id, ContestUpdate(max_participants=1), requester_id=admin_id, now=NOW
            )


async def test_delete_cascades(db, make_contest, make_user, admin, problem_ids):
    contest_id = await make_contest()
    other_contest_id = await make_contest(title="Another Contest")
    users = [await make_user(name) for name in ("alice", "bob")]

    for user in users:
        await RegistrationService(db).register(contest_id, user, now=NOW)
        await RegistrationService(db).register(other_contest_id, user, now=NOW)
        await ScoringService(db).submit(
            contest_id,
            user,
            ContestSubmissionCreate(
                problem_id=problem_ids[1],
                code="print(1)",
                language="cpp",
                test_cases_passed=1,
                total_test_cases=4,
                execution_time=50
            ),
            now=DURING
        )

    service = ContestService(db)
    with pytest.raises(AuthorizationError):
        await service.delete_contest(contest_id, requester_id=str(users[0]["_id"]))

    counts = await service.delete_contest(contest_id, requester_id=str(admin["_id"]))

    assert counts == {"participations_deleted": 2, "submissions_deleted": 2}
    assert await db.contest_participations.count_documents({"contest_id": contest_id}) == 0
    assert await db.contest_submissions.count_documents({"contest_id": contest_id}) == 0
    assert await db.contest_participations.count_documents({"contest_id": other_contest_id}) == 2

    with pytest.raises(ResourceNotFoundError):
        await service.get_contest(contest_id)
    with pytest.raises(ResourceNotFoundError):
        await service.delete_contest(contest_id, requester_id=str(admin["_id"]))
