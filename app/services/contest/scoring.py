"""
Contest Scoring Service

Scores a judged submission from correctness and speed:
- accuracy   = test_cases_passed / total_test_cases * 100
- time_bonus = max(0, 100 - execution_time_ms / 10)
- score      = round((accuracy + time_bonus) / 2), or 0 if nothing passed

Example:
- 2/2 passed in 0 ms    -> (100 + 100) / 2 = 100
- 1/2 passed in 300 ms  -> (50 + 70) / 2 = 60
- 3/4 passed in 2000 ms -> (75 + 0) / 2 = 38 (37.5 rounds half up)

Each submission is appended to the immutable submission log and folded into
the participant's rollup (score, total_score, solutions_submitted,
time_spent) with one atomic update. If the rollup write fails, the log entry
is removed again; reconcile_contest() rebuilds rollups from the log for
anything a crash left behind.
"""
import logging
import math
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional, Dict, Tuple
from datetime import datetime
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError
from app.core.exceptions import (
    AuthorizationError,
    InternalError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationError,
)
from app.models.contest.audit import AuditAction
from app.models.contest.contest import ContestStatus
from app.models.contest.submission import (
    PASS_THROUGH_STATUSES,
    ContestSubmissionCreate,
    ContestSubmissionInDB,
    SubmissionStatus,
)
from app.services.contest.audit import AuditService
from app.services.contest.status import contest_status, utcnow
from app.services.contest.store import ContestStore, display_name, store_errors
from app.services.problem.lookup import ProblemLookupService

logger = logging.getLogger(__name__)


def calculate_score(test_cases_passed: int, total_test_cases: int, execution_time: float) -> int:
    """Score a submission in [0, 100]; halves round up"""
    if test_cases_passed == 0:
        return 0
    accuracy = test_cases_passed / total_test_cases * 100
    time_bonus = max(0.0, 100 - execution_time / 10)
    return int(math.floor((accuracy + time_bonus) / 2 + 0.5))


def determine_outcome(
    test_cases_passed: int,
    total_test_cases: int,
    judge_status: Optional[SubmissionStatus] = None
) -> SubmissionStatus:
    """
    ACCEPTED iff every test case passed, WRONG_ANSWER otherwise. Runtime,
    limit and pending outcomes reported by the judge pass through unchanged.
    """
    all_passed = test_cases_passed == total_test_cases

    if judge_status in PASS_THROUGH_STATUSES:
        if all_passed:
            raise ValidationError(
                f"Judge status '{judge_status.value}' contradicts all test cases passing"
            )
        return judge_status

    derived = SubmissionStatus.ACCEPTED if all_passed else SubmissionStatus.WRONG_ANSWER
    if judge_status is not None and judge_status != derived:
        raise ValidationError(
            f"Judge status '{judge_status.value}' contradicts "
            f"{test_cases_passed}/{total_test_cases} test cases passed"
        )
    return derived


def validate_judge_counts(submission_data: ContestSubmissionCreate) -> None:
    if submission_data.total_test_cases < 1:
        raise ValidationError("total_test_cases must be at least 1")
    if not 0 <= submission_data.test_cases_passed <= submission_data.total_test_cases:
        raise ValidationError("test_cases_passed must be between 0 and total_test_cases")
    if submission_data.execution_time < 0 or submission_data.memory_used < 0:
        raise ValidationError("execution_time and memory_used cannot be negative")
    if not submission_data.code.strip():
        raise ValidationError("Code cannot be empty")


class ScoringService:
    """Service for scored submissions during a contest"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.store = ContestStore(db)
        self.contests = self.store.contests
        self.participations = self.store.participations
        self.submissions = self.store.submissions
        self.problem_lookup = ProblemLookupService(db)
        self.audit_service = AuditService(db)

    async def submit(
        self,
        contest_id: str,
        user: Dict,
        submission_data: ContestSubmissionCreate,
        now: Optional[datetime] = None
    ) -> Tuple[Dict, Dict]:
        """
        Score and record a submission.

        Returns (submission, updated participation).

        Raises:
            ValidationError: inconsistent judge data
            ResourceNotFoundError: contest or problem does not exist
            InvalidStateError: contest not ongoing, or problem not in contest
            AuthorizationError: user not registered
        """
        now = now or utcnow()
        user_id = str(user["_id"])
        validate_judge_counts(submission_data)

        contest = await self.store.get_contest(contest_id)
        contest_id = str(contest["_id"])

        problem = await self.problem_lookup.get_problem(submission_data.problem_id)
        if not problem:
            raise ResourceNotFoundError("Problem not found")
        problem_id = str(problem["_id"])

        if contest_status(contest, now) != ContestStatus.ONGOING:
            raise InvalidStateError("Contest is not ongoing")

        participation = await self.store.find_participation(contest_id, user_id)
        if not participation:
            raise AuthorizationError("Not registered for this contest")

        if problem_id not in contest.get("problem_ids", []):
            raise InvalidStateError("Problem is not part of this contest")

        outcome = determine_outcome(
            submission_data.test_cases_passed,
            submission_data.total_test_cases,
            submission_data.status
        )
        score = calculate_score(
            submission_data.test_cases_passed,
            submission_data.total_test_cases,
            submission_data.execution_time
        )

        submission = ContestSubmissionInDB(
            contest_id=contest_id,
            user_id=user_id,
            problem_id=problem_id,
            code=submission_data.code,
            language=submission_data.language,
            status=outcome,
            score=score,
            test_cases_passed=submission_data.test_cases_passed,
            total_test_cases=submission_data.total_test_cases,
            execution_time=submission_data.execution_time,
            memory_used=submission_data.memory_used,
            submitted_at=now
        ).model_dump()

        with store_errors("record submission"):
            result = await self.submissions.insert_one(submission)
        submission["_id"] = result.inserted_id

        elapsed = max(0, int((now - contest["start_time"]).total_seconds()))
        try:
            updated = await self.participations.find_one_and_update(
                {"_id": participation["_id"]},
                {
                    "$inc": {"score": score, "total_score": score, "solutions_submitted": 1},
                    "$max": {"time_spent": elapsed, "last_submission_at": now},
                    "$set": {"updated_at": now}
                },
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            await self._discard_submission(result.inserted_id)
            logger.error(f"[ERROR] Rollup update failed for {user_id} in contest {contest_id}: {e}")
            raise InternalError("Failed to record submission") from e

        if updated is None:
            # Participation disappeared (contest deleted meanwhile)
            await self._discard_submission(result.inserted_id)
            raise ResourceNotFoundError("Contest not found")

        logger.info(
            f"[OK] Submission {result.inserted_id} in contest {contest_id}: "
            f"{outcome.value}, score {score}, total {updated['score']}"
        )

        await self.audit_service.log_action(
            contest_id=contest_id,
            action=AuditAction.SUBMISSION_CREATED,
            user_id=user_id,
            username=display_name(user),
            entity_type="submission",
            entity_id=str(result.inserted_id),
            metadata={"problem_id": problem_id, "status": outcome.value, "score": score}
        )

        return submission, updated

    async def _discard_submission(self, submission_id) -> None:
        try:
            await self.submissions.delete_one({"_id": submission_id})
        except PyMongoError as e:
            logger.error(f"[ERROR] Failed to discard submission {submission_id}: {e}")

    async def _rollups_from_log(self, match: Dict) -> Dict[str, Dict]:
        pipeline = [
            {"$match": match},
            {"$group": {
                "_id": "$user_id",
                "score": {"$sum": "$score"},
                "solutions_submitted": {"$sum": 1},
                "last_submission_at": {"$max": "$submitted_at"}
            }}
        ]
        with store_errors("aggregate submissions"):
            rows = await self.submissions.aggregate(pipeline).to_list(length=None)
        return {row["_id"]: row for row in rows}

    async def _repair_rollup(self, contest: Dict, participation: Dict, row: Optional[Dict]) -> bool:
        """Overwrite one participation rollup with the values derived from the log"""
        last = row["last_submission_at"] if row else None
        expected = {
            "score": row["score"] if row else 0,
            "total_score": row["score"] if row else 0,
            "solutions_submitted": row["solutions_submitted"] if row else 0,
            "time_spent": max(0, int((last - contest["start_time"]).total_seconds())) if last else 0,
            "last_submission_at": last,
        }

        if all(participation.get(field) == value for field, value in expected.items()):
            return False

        update = {"$set": {**expected, "updated_at": utcnow()}}
        if last is None:
            # Keep the field absent so a later $max starts from scratch
            del update["$set"]["last_submission_at"]
            update["$unset"] = {"last_submission_at": ""}

        with store_errors("reconcile participation"):
            await self.participations.update_one({"_id": participation["_id"]}, update)

        logger.warning(
            f"[WARN] Reconciled rollup for {participation['user_id']} in contest {participation['contest_id']}"
        )
        return True

    async def reconcile_participation(self, contest_id: str, user_id: str) -> bool:
        """
        Rebuild one participant's rollup from the submission log.

        Returns True when the stored rollup was out of date.
        """
        contest = await self.store.get_contest(contest_id)
        contest_id = str(contest["_id"])

        participation = await self.store.find_participation(contest_id, user_id)
        if not participation:
            raise ResourceNotFoundError("Participation not found")

        rows = await self._rollups_from_log({"contest_id": contest_id, "user_id": user_id})
        return await self._repair_rollup(contest, participation, rows.get(user_id))

    async def reconcile_contest(self, contest_id: str) -> int:
        """
        Rebuild every participation rollup of a contest from the submission log.

        Only safe once submissions can no longer arrive: a submission whose
        rollup update is still in flight would otherwise be counted twice.
        Returns the number of participations that were out of date.
        """
        contest = await self.store.get_contest(contest_id)
        contest_id = str(contest["_id"])

        rows = await self._rollups_from_log({"contest_id": contest_id})
        with store_errors("load participations"):
            participations = await self.participations.find(
                {"contest_id": contest_id}
            ).to_list(length=None)

        repaired = 0
        for participation in participations:
            if await self._repair_rollup(contest, participation, rows.get(participation["user_id"])):
                repaired += 1
        return repaired
