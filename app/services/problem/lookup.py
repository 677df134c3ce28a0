from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List, Dict, Optional
from app.utils.serialization import to_object_id


class ProblemLookupService:
    """Read-only view of the problem catalog (owned by the problems module)"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.problems = db.problems

    async def get_problem(self, problem_id: str) -> Optional[Dict]:
        """Get a problem by ID, returns None for unknown or malformed IDs"""
        oid = to_object_id(problem_id)
        if oid is None:
            return None
        return await self.problems.find_one({"_id": oid}, {"title": 1, "difficulty": 1})

    async def find_missing(self, problem_ids: List[str]) -> List[str]:
        """Return the IDs (in input order) that do not resolve to a problem"""
        parsed = {pid: to_object_id(pid) for pid in problem_ids}
        valid_oids = [oid for oid in parsed.values() if oid is not None]

        found = set()
        if valid_oids:
            docs = await self.problems.find(
                {"_id": {"$in": valid_oids}}, {"_id": 1}
            ).to_list(length=None)
            found = {str(doc["_id"]) for doc in docs}

        return [pid for pid, oid in parsed.items() if oid is None or str(oid) not in found]
