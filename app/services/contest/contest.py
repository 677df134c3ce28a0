import logging
import re
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional, List, Dict, Tuple
from datetime import datetime
from pymongo import ReturnDocument
from app.core.exceptions import (
    AuthorizationError,
    InvalidStateError,
    ValidationError,
)
from app.models.contest.audit import AuditAction
from app.models.contest.contest import (
    ContestCreate,
    ContestDifficulty,
    ContestInDB,
    ContestStatus,
    ContestUpdate,
)
from app.services.contest.audit import AuditService
from app.services.contest.status import (
    contest_status,
    resolve_status,
    status_filter,
    time_remaining,
    time_until_start,
    utcnow,
)
from app.services.contest.store import ContestStore, display_name, store_errors
from app.services.problem.lookup import ProblemLookupService
from app.utils.serialization import to_object_id

logger = logging.getLogger(__name__)


class ContestService:
    """
    Contest lifecycle: create, read, update and delete.

    Contests are only editable while UPCOMING and only by their creator.
    Deleting a contest removes its participations and submissions.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.store = ContestStore(db)
        self.contests = self.store.contests
        self.participations = self.store.participations
        self.submissions = self.store.submissions
        self.problem_lookup = ProblemLookupService(db)
        self.audit_service = AuditService(db)

    def _add_calculated_fields(
        self,
        contest: Dict,
        now: datetime,
        participant_count: Optional[int] = None,
        user_id: Optional[str] = None,
        is_registered: bool = False
    ) -> Dict:
        """Attach derived status and display fields to a contest document"""
        status = contest_status(contest, now)
        if participant_count is None:
            participant_count = contest.get("current_participants", 0)
        max_participants = contest.get("max_participants")
        is_full = max_participants is not None and participant_count >= max_participants

        contest["status"] = status.value
        contest["current_participants"] = participant_count
        contest["time_until_start"] = time_until_start(contest["start_time"], now)
        contest["time_remaining"] = time_remaining(contest["start_time"], contest["end_time"], now)
        contest["is_full"] = is_full
        contest["is_creator"] = user_id is not None and contest["created_by"] == user_id
        contest["is_registered"] = is_registered
        contest["can_register"] = (
            user_id is not None
            and not is_registered
            and status != ContestStatus.ENDED
            and not is_full
        )
        return contest

    async def _validate_problem_ids(self, problem_ids: List[str], total_problems: int) -> List[str]:
        """Check the problem list against totals and the catalog, returning normalized IDs"""
        if len(problem_ids) != total_problems:
            raise ValidationError("Number of problem IDs must match total_problems")

        normalized = []
        for problem_id in problem_ids:
            oid = to_object_id(problem_id)
            normalized.append(str(oid) if oid is not None else problem_id)

        if len(set(normalized)) != len(normalized):
            raise ValidationError("Problem IDs must be unique")

        missing = await self.problem_lookup.find_missing(normalized)
        if missing:
            raise ValidationError(
                "Some problem IDs do not exist",
                details={"problem_ids": missing}
            )

        return normalized

    async def create_contest(
        self,
        contest_data: ContestCreate,
        creator: Dict,
        now: Optional[datetime] = None
    ) -> Dict:
        """Create a new contest (admins only, enforced by the route)"""
        now = now or utcnow()

        if contest_data.start_time >= contest_data.end_time:
            raise ValidationError("Start time must be before end time")

        if contest_data.start_time < now:
            raise ValidationError("Start time cannot be in the past")

        problem_ids = await self._validate_problem_ids(
            contest_data.problem_ids,
            contest_data.total_problems
        )

        creator_id = str(creator["_id"])
        contest = ContestInDB(
            title=contest_data.title,
            description=contest_data.description,
            created_by=creator_id,
            start_time=contest_data.start_time,
            end_time=contest_data.end_time,
            status=resolve_status(now, contest_data.start_time, contest_data.end_time),
            difficulty=contest_data.difficulty,
            problem_ids=problem_ids,
            total_problems=contest_data.total_problems,
            max_participants=contest_data.max_participants,
            current_participants=0,
            rules=contest_data.rules,
            rewards=contest_data.rewards,
            created_at=now,
            updated_at=now
        ).model_dump()

        with store_errors("create contest"):
            result = await self.contests.insert_one(contest)

        contest["_id"] = result.inserted_id
        contest_id = str(result.inserted_id)
        logger.info(f"[OK] Contest created: {contest_id} ({contest['title']}) by {creator_id}")

        await self.audit_service.log_action(
            contest_id=contest_id,
            action=AuditAction.CONTEST_CREATED,
            user_id=creator_id,
            username=display_name(creator),
            entity_type="contest",
            entity_id=contest_id,
            metadata={
                "title": contest["title"],
                "total_problems": contest["total_problems"],
                "max_participants": contest["max_participants"]
            }
        )

        return self._add_calculated_fields(contest, now, participant_count=0, user_id=creator_id)

    async def get_contest(
        self,
        contest_id: str,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict:
        """Get contest by ID with resolved status and live participant count"""
        now = now or utcnow()
        contest = await self.store.get_contest(contest_id)
        contest_id = str(contest["_id"])

        participant_count = await self.store.count_participants(contest_id)

        is_registered = False
        if user_id:
            is_registered = await self.store.find_participation(contest_id, user_id) is not None

        return self._add_calculated_fields(
            contest,
            now,
            participant_count=participant_count,
            user_id=user_id,
            is_registered=is_registered
        )

    async def list_contests(
        self,
        status: Optional[ContestStatus] = None,
        difficulty: Optional[ContestDifficulty] = None,
        search: Optional[str] = None,
        limit: int = 10,
        skip: int = 0,
        now: Optional[datetime] = None
    ) -> Tuple[List[Dict], int]:
        """
        List contests, newest start first.

        The status filter is translated to a time-window query so it never
        depends on the cached status field.
        """
        now = now or utcnow()
        query = {}

        if status:
            query.update(status_filter(ContestStatus(status), now))

        if difficulty:
            query["difficulty"] = ContestDifficulty(difficulty).value

        if search and search.strip():
            query["title"] = {"$regex": re.escape(search.strip()), "$options": "i"}

        with store_errors("list contests"):
            contests = await self.contests.find(
                query,
                {"problem_ids": 0, "rules": 0, "rewards": 0}
            ).sort("start_time", -1).skip(skip).limit(limit).to_list(length=limit)
            total = await self.contests.count_documents(query)

        return [self._add_calculated_fields(contest, now) for contest in contests], total

    async def update_contest(
        self,
        contest_id: str,
        update_data: ContestUpdate,
        requester_id: str,
        now: Optional[datetime] = None,
        requester_name: Optional[str] = None
    ) -> Dict:
        """Update contest (only creator, only while UPCOMING)"""
        now = now or utcnow()
        contest = await self.store.get_contest(contest_id)
        contest_id = str(contest["_id"])

        if contest["created_by"] != requester_id:
            raise AuthorizationError("Only the contest creator can update it")

        if contest_status(contest, now) != ContestStatus.UPCOMING:
            raise InvalidStateError("Cannot update ongoing or ended contests")

        update_dict = update_data.model_dump(exclude_none=True)
        if not update_dict:
            raise ValidationError("No fields to update")

        if "difficulty" in update_dict:
            update_dict["difficulty"] = ContestDifficulty(update_dict["difficulty"]).value

        start_time = update_dict.get("start_time", contest["start_time"])
        end_time = update_dict.get("end_time", contest["end_time"])

        if start_time >= end_time:
            raise ValidationError("Start time must be before end time")

        if "start_time" in update_dict and start_time < now:
            raise ValidationError("Start time cannot be in the past")

        # The write only applies if the contest is still upcoming and the
        # counter still fits a new cap
        query = {"_id": contest["_id"], "start_time": {"$gt": now}}

        if "max_participants" in update_dict:
            new_max = update_dict["max_participants"]
            if contest.get("current_participants", 0) > new_max:
                raise ValidationError(
                    "max_participants cannot be lower than the current participant count"
                )
            query["current_participants"] = {"$lte": new_max}

        changes = dict(update_dict)
        update_dict["status"] = resolve_status(now, start_time, end_time).value
        update_dict["updated_at"] = now

        with store_errors("update contest"):
            updated = await self.contests.find_one_and_update(
                query,
                {"$set": update_dict},
                return_document=ReturnDocument.AFTER
            )

        if updated is None:
            current = await self.store.get_contest(contest_id)
            if contest_status(current, now) != ContestStatus.UPCOMING:
                raise InvalidStateError("Cannot update ongoing or ended contests")
            raise ValidationError(
                "max_participants cannot be lower than the current participant count"
            )

        await self.audit_service.log_action(
            contest_id=contest_id,
            action=AuditAction.CONTEST_UPDATED,
            user_id=requester_id,
            username=requester_name or requester_id,
            entity_type="contest",
            entity_id=contest_id,
            changes=changes
        )

        return self._add_calculated_fields(updated, now, user_id=requester_id)

    async def delete_contest(
        self,
        contest_id: str,
        requester_id: str,
        requester_name: Optional[str] = None
    ) -> Dict[str, int]:
        """Delete a contest with its participations and submissions (only creator)"""
        contest = await self.store.get_contest(contest_id)
        contest_id = str(contest["_id"])

        if contest["created_by"] != requester_id:
            raise AuthorizationError("Only the contest creator can delete it")

        # Contest first, so no new registration can reserve a seat meanwhile
        with store_errors("delete contest"):
            await self.contests.delete_one({"_id": contest["_id"]})
            participations = await self.participations.delete_many({"contest_id": contest_id})
            submissions = await self.submissions.delete_many({"contest_id": contest_id})

        logger.info(
            f"[OK] Contest deleted: {contest_id} "
            f"({participations.deleted_count} participations, {submissions.deleted_count} submissions)"
        )

        await self.audit_service.log_action(
            contest_id=contest_id,
            action=AuditAction.CONTEST_DELETED,
            user_id=requester_id,
            username=requester_name or requester_id,
            entity_type="contest",
            entity_id=contest_id,
            metadata={
                "title": contest.get("title"),
                "participations_deleted": participations.deleted_count,
                "submissions_deleted": submissions.deleted_count
            }
        )

        return {
            "participations_deleted": participations.deleted_count,
            "submissions_deleted": submissions.deleted_count
        }
