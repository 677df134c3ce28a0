"""
Contest store: the three contest collections plus the lookups and error
translation every contest service shares.

Index definitions live in app.database and are created at startup.
"""
import logging
from contextlib import contextmanager
from typing import Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.exceptions import (
    DuplicateResourceError,
    InternalError,
    ResourceNotFoundError,
)
from app.utils.serialization import to_object_id

logger = logging.getLogger(__name__)


@contextmanager
def store_errors(action: str, duplicate_message: str = "Resource already exists"):
    """Translate driver errors raised inside the block into the error taxonomy"""
    try:
        yield
    except DuplicateKeyError as e:
        raise DuplicateResourceError(duplicate_message) from e
    except PyMongoError as e:
        logger.error(f"[ERROR] Failed to {action}: {e}")
        raise InternalError(f"Failed to {action}") from e


def display_name(user: Dict) -> str:
    """Name shown on leaderboards for a user document"""
    return user.get("username") or user.get("full_name") or user.get("email") or str(user["_id"])


class ContestStore:
    """Collections and shared lookups for contests, participations and submissions"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.contests = db.contests
        self.participations = db.contest_participations
        self.submissions = db.contest_submissions

    async def get_contest(self, contest_id: str) -> Dict:
        """Get contest by ID, raising ResourceNotFoundError for unknown or malformed IDs"""
        oid = to_object_id(contest_id)
        if oid is None:
            raise ResourceNotFoundError("Contest not found")

        with store_errors("load contest"):
            contest = await self.contests.find_one({"_id": oid})

        if not contest:
            raise ResourceNotFoundError("Contest not found")
        return contest

    async def find_participation(self, contest_id: str, user_id: str) -> Optional[Dict]:
        with store_errors("load participation"):
            return await self.participations.find_one({
                "contest_id": contest_id,
                "user_id": user_id
            })

    async def count_participants(self, contest_id: str) -> int:
        with store_errors("count participants"):
            return await self.participations.count_documents({"contest_id": contest_id})
