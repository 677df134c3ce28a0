"""
Contest Scheduler Service

Keeps denormalized contest fields in line with their sources of truth:
- Status refresh: cached `status` follows the contest window
- Rollup reconciliation: participation rollups and participant counters are
  rebuilt from the submission log and the participation collection
- Rank finalization: positional ranks are persisted once a contest has ended

Status is always derived from time when a decision is made, so these jobs
only affect what is stored, never what is allowed.
"""
import logging
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Dict, Any, Optional
from datetime import datetime, timedelta

from app.core.exceptions import ContestEngineError
from app.models.contest.contest import ContestStatus
from app.services.contest.leaderboard import LeaderboardService
from app.services.contest.scoring import ScoringService
from app.services.contest.status import status_filter, utcnow
from app.services.contest.store import ContestStore, store_errors

logger = logging.getLogger(__name__)

# A submission validated just before end_time may still be writing its rollup
GRACE_PERIOD = timedelta(minutes=1)
# Ended contests are re-checked for this long after their end
RECONCILE_WINDOW = timedelta(hours=24)
BATCH_SIZE = 100


class ContestScheduler:
    """
    Background job handler for contest bookkeeping.

    Jobs:
    1. refresh_statuses: Run every minute
    2. finalize_ended_contests: Run every 5 minutes
    3. reconcile_rollups: Run every 10 minutes
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.store = ContestStore(db)
        self.contests = self.store.contests
        self.participations = self.store.participations
        self.scoring_service = ScoringService(db)
        self.leaderboard_service = LeaderboardService(db)

    async def refresh_statuses(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Rewrite the cached status of every contest whose window moved on"""
        now = now or utcnow()
        results = {"updated": 0}

        for status in ContestStatus:
            query = status_filter(status, now)
            query["status"] = {"$ne": status.value}
            with store_errors("refresh contest statuses"):
                result = await self.contests.update_many(
                    query,
                    {"$set": {"status": status.value, "updated_at": now}}
                )
            results[status.value] = result.modified_count
            results["updated"] += result.modified_count

        if results["updated"]:
            logger.info(f"[SCHEDULER] Refreshed status of {results['updated']} contests")

        return results

    async def _sync_participant_count(self, contest: Dict) -> bool:
        contest_id = str(contest["_id"])
        actual = await self.store.count_participants(contest_id)
        if contest.get("current_participants", 0) == actual:
            return False

        with store_errors("sync participant count"):
            await self.contests.update_one(
                {"_id": contest["_id"]},
                {"$set": {"current_participants": actual}}
            )
        logger.warning(
            f"[WARN] Participant counter of contest {contest_id} was "
            f"{contest.get('current_participants', 0)}, reset to {actual}"
        )
        return True

    async def finalize_ended_contests(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Reconcile and finalize contests that ended more than GRACE_PERIOD ago
        and have no persisted ranks yet.
        """
        now = now or utcnow()
        results = {
            "processed": 0,
            "finalized": [],
            "errors": []
        }

        contests = await self.contests.find({
            "end_time": {"$lte": now - GRACE_PERIOD},
            "ranks_finalized": {"$ne": True}
        }).to_list(length=BATCH_SIZE)

        for contest in contests:
            contest_id = str(contest["_id"])
            try:
                repaired = await self.scoring_service.reconcile_contest(contest_id)
                await self._sync_participant_count(contest)
                await self.leaderboard_service.finalize_ranks(contest_id, now)

                results["finalized"].append({
                    "contest_id": contest_id,
                    "title": contest.get("title", "Unknown"),
                    "rollups_repaired": repaired
                })
                results["processed"] += 1

                logger.info(f"[SCHEDULER] Finalized contest: {contest_id} ({contest.get('title', 'Unknown')})")

            except ContestEngineError as e:
                results["errors"].append({"contest_id": contest_id, "error": e.message})
                logger.error(f"[ERROR] Failed to finalize contest {contest_id}: {e.message}")

        return results

    async def reconcile_rollups(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Re-check recently ended contests against the submission log and the
        participation collection. Contests whose rollups had to be repaired
        get their ranks finalized again.
        """
        now = now or utcnow()
        results = {
            "checked": 0,
            "rollups_repaired": 0,
            "counters_repaired": 0,
            "errors": []
        }

        contests = await self.contests.find({
            "end_time": {"$gt": now - RECONCILE_WINDOW, "$lte": now - GRACE_PERIOD}
        }).to_list(length=BATCH_SIZE)

        for contest in contests:
            contest_id = str(contest["_id"])
            try:
                repaired = await self.scoring_service.reconcile_contest(contest_id)
                if await self._sync_participant_count(contest):
                    results["counters_repaired"] += 1
                if repaired and contest.get("ranks_finalized"):
                    await self.leaderboard_service.finalize_ranks(contest_id, now)

                results["rollups_repaired"] += repaired
                results["checked"] += 1

            except ContestEngineError as e:
                results["errors"].append({"contest_id": contest_id, "error": e.message})
                logger.error(f"[ERROR] Failed to reconcile contest {contest_id}: {e.message}")

        if results["rollups_repaired"] or results["counters_repaired"]:
            logger.info(
                f"[SCHEDULER] reconcile_rollups: {results['rollups_repaired']} rollups and "
                f"{results['counters_repaired']} counters repaired"
            )

        return results
