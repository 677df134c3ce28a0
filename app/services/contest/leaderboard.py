import logging
import math
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List, Dict, Optional, Tuple
from datetime import datetime
from pymongo import UpdateOne
from app.core.exceptions import AuthorizationError, InvalidStateError, ValidationError
from app.models.contest.audit import AuditAction
from app.models.contest.contest import ContestStatus
from app.services.contest.audit import AuditService
from app.services.contest.status import contest_status, utcnow
from app.services.contest.store import ContestStore, store_errors
from app.utils.serialization import to_object_id

logger = logging.getLogger(__name__)

# Higher score first, then less time spent. joined_at and _id only make the
# order total, so equal participants still get stable, distinct ranks.
LEADERBOARD_SORT = [
    ("score", -1),
    ("time_spent", 1),
    ("joined_at", 1),
    ("_id", 1),
]


class LeaderboardService:
    """Service for contest leaderboards, per-user results and contest stats"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.store = ContestStore(db)
        self.contests = self.store.contests
        self.participations = self.store.participations
        self.submissions = self.store.submissions
        self.users = db.users
        self.audit_service = AuditService(db)

    async def _lookup_usernames(self, user_ids: List[str]) -> Dict[str, str]:
        """Current display names from the users collection"""
        oids = [oid for oid in (to_object_id(uid) for uid in user_ids) if oid is not None]
        if not oids:
            return {}

        with store_errors("load users"):
            users = await self.users.find(
                {"_id": {"$in": oids}},
                {"username": 1, "full_name": 1, "email": 1}
            ).to_list(length=None)

        return {
            str(user["_id"]): user.get("username") or user.get("full_name") or user.get("email")
            for user in users
        }

    async def get_leaderboard(
        self,
        contest_id: str,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Dict], Dict]:
        """
        Get one page of a contest leaderboard.

        Rank is the position in the full ordering: row i of a page starting
        at `offset` has rank offset + i + 1, whatever the page size.
        """
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        if offset < 0:
            raise ValidationError("skip cannot be negative")

        contest = await self.store.get_contest(contest_id)
        contest_id = str(contest["_id"])

        with store_errors("load leaderboard"):
            participants = await self.participations.find(
                {"contest_id": contest_id}
            ).sort(LEADERBOARD_SORT).skip(offset).limit(limit).to_list(length=limit)
            total = await self.participations.count_documents({"contest_id": contest_id})

        usernames = await self._lookup_usernames([p["user_id"] for p in participants])

        leaderboard = []
        for index, participant in enumerate(participants):
            leaderboard.append({
                "rank": offset + index + 1,
                "user_id": participant["user_id"],
                "username": usernames.get(participant["user_id"], participant.get("username")),
                "score": participant.get("score", 0),
                "solutions_submitted": participant.get("solutions_submitted", 0),
                "time_spent": participant.get("time_spent", 0),
                "joined_at": participant.get("joined_at"),
                "last_submission_at": participant.get("last_submission_at")
            })

        pagination = {
            "total": total,
            "limit": limit,
            "skip": offset,
            "pages": math.ceil(total / limit)
        }

        return leaderboard, pagination

    async def get_participant_rank(self, participation: Dict) -> int:
        """Positional rank of one participant, using the leaderboard ordering"""
        score = participation.get("score", 0)
        time_spent = participation.get("time_spent", 0)
        joined_at = participation["joined_at"]

        ahead = {
            "contest_id": participation["contest_id"],
            "$or": [
                {"score": {"$gt": score}},
                {"score": score, "time_spent": {"$lt": time_spent}},
                {"score": score, "time_spent": time_spent, "joined_at": {"$lt": joined_at}},
                {
                    "score": score,
                    "time_spent": time_spent,
                    "joined_at": joined_at,
                    "_id": {"$lt": participation["_id"]}
                }
            ]
        }

        with store_errors("compute rank"):
            return await self.participations.count_documents(ahead) + 1

    async def get_contest_results(
        self,
        contest_id: str,
        user_id: str,
        now: Optional[datetime] = None
    ) -> Dict:
        """Caller's own score, rank and submissions in a contest"""
        contest = await self.store.get_contest(contest_id)
        contest_id = str(contest["_id"])

        participation = await self.store.find_participation(contest_id, user_id)
        if not participation:
            raise AuthorizationError("Not registered for this contest")

        with store_errors("load submissions"):
            submissions = await self.submissions.find(
                {"contest_id": contest_id, "user_id": user_id},
                {"code": 0}
            ).sort("submitted_at", -1).to_list(length=None)

        rank = await self.get_participant_rank(participation)

        return {
            "contest_id": contest_id,
            "user_id": user_id,
            "contest_title": contest["title"],
            "start_time": contest["start_time"],
            "end_time": contest["end_time"],
            "status": contest_status(contest, now).value,
            "score": participation.get("score", 0),
            "total_score": participation.get("total_score", 0),
            "rank": rank,
            "solutions_submitted": participation.get("solutions_submitted", 0),
            "time_spent": participation.get("time_spent", 0),
            "total_problems": contest["total_problems"],
            "submissions": [
                {
                    "id": str(sub["_id"]),
                    "problem_id": sub["problem_id"],
                    "language": sub["language"],
                    "status": sub["status"],
                    "score": sub["score"],
                    "test_cases_passed": sub["test_cases_passed"],
                    "total_test_cases": sub["total_test_cases"],
                    "submitted_at": sub["submitted_at"]
                }
                for sub in submissions
            ]
        }

    async def get_user_stats(self, user_id: str, now: Optional[datetime] = None) -> Dict:
        """Aggregate contest history for a user"""
        now = now or utcnow()

        with store_errors("load user stats"):
            participations = await self.participations.find({"user_id": user_id}).to_list(length=None)
            total_contests = await self.contests.count_documents({})

            contest_oids = [oid for oid in (to_object_id(p["contest_id"]) for p in participations) if oid]
            contests = await self.contests.find(
                {"_id": {"$in": contest_oids}},
                {"start_time": 1, "end_time": 1}
            ).to_list(length=None)

        contests_by_id = {str(c["_id"]): c for c in contests}
        participations = [p for p in participations if p["contest_id"] in contests_by_id]

        if not participations:
            return {
                "total_contests": total_contests,
                "participated_contests": 0,
                "won_contests": 0,
                "average_rank": 0,
                "best_rank": 0,
                "total_score": 0,
                "average_score": 0
            }

        ranks = []
        won_contests = 0
        for participation in participations:
            rank = await self.get_participant_rank(participation)
            ranks.append(rank)
            contest = contests_by_id[participation["contest_id"]]
            if rank == 1 and contest_status(contest, now) == ContestStatus.ENDED:
                won_contests += 1

        total_score = sum(p.get("score", 0) for p in participations)

        return {
            "total_contests": total_contests,
            "participated_contests": len(participations),
            "won_contests": won_contests,
            "average_rank": round(sum(ranks) / len(ranks), 2),
            "best_rank": min(ranks),
            "total_score": total_score,
            "average_score": round(total_score / len(participations), 2)
        }

    async def finalize_ranks(self, contest_id: str, now: Optional[datetime] = None) -> int:
        """
        Persist positional ranks into the participations of an ended contest.

        Returns the number of participations whose stored rank changed.
        """
        now = now or utcnow()
        contest = await self.store.get_contest(contest_id)
        contest_id = str(contest["_id"])

        if contest_status(contest, now) != ContestStatus.ENDED:
            raise InvalidStateError("Ranks can only be finalized after the contest has ended")

        with store_errors("finalize ranks"):
            participants = await self.participations.find(
                {"contest_id": contest_id}
            ).sort(LEADERBOARD_SORT).to_list(length=None)

            operations = [
                UpdateOne({"_id": p["_id"]}, {"$set": {"rank": position, "updated_at": now}})
                for position, p in enumerate(participants, 1)
                if p.get("rank") != position
            ]
            if operations:
                await self.participations.bulk_write(operations, ordered=False)

            await self.contests.update_one(
                {"_id": contest["_id"]},
                {"$set": {"ranks_finalized": True, "status": ContestStatus.ENDED.value, "updated_at": now}}
            )

        logger.info(f"[OK] Finalized ranks for contest {contest_id}: {len(participants)} participants")

        await self.audit_service.log_action(
            contest_id=contest_id,
            action=AuditAction.RANKS_FINALIZED,
            user_id="system",
            username="System Scheduler",
            entity_type="contest",
            entity_id=contest_id,
            metadata={"participants": len(participants), "updated": len(operations)}
        )

        return len(operations)
