"""
Contest registration (admission control).

A registration is accepted only while the contest has not ended, the user is
not yet registered, and a seat is free. The seat is reserved with a single
conditional $inc on the contest document, so concurrent registrations can
never push current_participants past max_participants. The participation
insert is guarded by the unique (contest_id, user_id) index; if it fails the
reserved seat is handed back, and if the contest was deleted meanwhile the
new participation is removed again.
"""
import logging
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional, Dict
from datetime import datetime
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from app.core.exceptions import (
    CapacityExceededError,
    DuplicateResourceError,
    InternalError,
    InvalidStateError,
    ResourceNotFoundError,
)
from app.models.contest.audit import AuditAction
from app.models.contest.contest import ContestStatus, ParticipationInDB
from app.services.contest.audit import AuditService
from app.services.contest.status import contest_status, resolve_status, utcnow
from app.services.contest.store import ContestStore, display_name, store_errors

logger = logging.getLogger(__name__)

# Reservations retried when the contest changed between read and reserve
RESERVE_ATTEMPTS = 3


class RegistrationService:
    """Service for registering users into contests"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.store = ContestStore(db)
        self.contests = self.store.contests
        self.participations = self.store.participations
        self.audit_service = AuditService(db)

    async def _reserve_seat(self, contest: Dict, now: datetime) -> Optional[Dict]:
        """
        Atomically take one seat. Returns the updated contest, or None when the
        contest ended, vanished or filled up since it was read.
        """
        query = {"_id": contest["_id"], "end_time": {"$gt": now}}

        max_participants = contest.get("max_participants")
        if max_participants is not None:
            query["max_participants"] = max_participants
            query["current_participants"] = {"$lt": max_participants}

        with store_errors("reserve contest seat"):
            return await self.contests.find_one_and_update(
                query,
                {
                    "$inc": {"current_participants": 1},
                    "$set": {
                        "status": resolve_status(now, contest["start_time"], contest["end_time"]).value,
                        "updated_at": now
                    }
                },
                return_document=ReturnDocument.AFTER
            )

    async def _release_seat(self, contest_id) -> None:
        try:
            await self.contests.update_one(
                {"_id": contest_id, "current_participants": {"$gt": 0}},
                {"$inc": {"current_participants": -1}}
            )
        except PyMongoError as e:
            # The counter is repaired by the reconciliation job
            logger.error(f"[ERROR] Failed to release seat on contest {contest_id}: {e}")

    async def _discard_participation(self, participation_id) -> None:
        try:
            await self.participations.delete_one({"_id": participation_id})
        except PyMongoError as e:
            logger.error(f"[ERROR] Failed to discard participation {participation_id}: {e}")

    async def register(
        self,
        contest_id: str,
        user: Dict,
        now: Optional[datetime] = None
    ) -> Dict:
        """
        Register a user for a contest.

        Raises:
            ResourceNotFoundError: contest does not exist
            InvalidStateError: contest has ended
            DuplicateResourceError: user already registered
            CapacityExceededError: contest is full
        """
        now = now or utcnow()
        user_id = str(user["_id"])

        contest = await self.store.get_contest(contest_id)
        contest_id = str(contest["_id"])

        if contest_status(contest, now) == ContestStatus.ENDED:
            raise InvalidStateError("Cannot register for an ended contest")

        if await self.store.find_participation(contest_id, user_id):
            raise DuplicateResourceError("Already registered for this contest")

        max_participants = contest.get("max_participants")
        if max_participants is not None and contest.get("current_participants", 0) >= max_participants:
            raise CapacityExceededError("Contest is full")

        reserved = await self._reserve_seat(contest, now)
        attempts = 1
        while reserved is None:
            # Re-diagnose against the current document; the cap may have moved
            current = await self.store.get_contest(contest_id)
            if contest_status(current, now) == ContestStatus.ENDED:
                raise InvalidStateError("Cannot register for an ended contest")
            current_max = current.get("max_participants")
            has_seat = current_max is None or current.get("current_participants", 0) < current_max
            if not has_seat or attempts >= RESERVE_ATTEMPTS:
                raise CapacityExceededError("Contest is full")
            contest = current
            max_participants = current_max
            reserved = await self._reserve_seat(contest, now)
            attempts += 1

        participation = ParticipationInDB(
            contest_id=contest_id,
            user_id=user_id,
            username=display_name(user),
            joined_at=now,
            created_at=now,
            updated_at=now
        ).model_dump(exclude_none=True)

        try:
            result = await self.participations.insert_one(participation)
        except DuplicateKeyError as e:
            await self._release_seat(contest["_id"])
            raise DuplicateResourceError("Already registered for this contest") from e
        except PyMongoError as e:
            await self._release_seat(contest["_id"])
            logger.error(f"[ERROR] Failed to register {user_id} for contest {contest_id}: {e}")
            raise InternalError("Failed to register for contest") from e

        # A cascade delete may have run between the reservation and the insert
        with store_errors("verify contest"):
            still_there = await self.contests.find_one({"_id": contest["_id"]}, {"_id": 1})
        if not still_there:
            await self._discard_participation(result.inserted_id)
            raise ResourceNotFoundError("Contest not found")

        participation["_id"] = result.inserted_id
        logger.info(
            f"[OK] User {user_id} registered for contest {contest_id} "
            f"({reserved['current_participants']}/{max_participants or 'unlimited'})"
        )

        await self.audit_service.log_action(
            contest_id=contest_id,
            action=AuditAction.USER_REGISTERED,
            user_id=user_id,
            username=participation["username"],
            entity_type="participation",
            entity_id=str(result.inserted_id),
            metadata={"current_participants": reserved["current_participants"]}
        )

        return participation
