import os
from fastapi import APIRouter, Query
from app.database import Database
from app.services.contest.leaderboard import LeaderboardService
from app.utils.response import success_response
from app.utils.serialization import convert_document_to_json

LEADERBOARD_DEFAULT_LIMIT = int(os.getenv("LEADERBOARD_DEFAULT_LIMIT", "50"))

router = APIRouter(prefix="/contests", tags=["Leaderboard"])


@router.get("/{contest_id}/leaderboard")
async def get_contest_leaderboard(
    contest_id: str,
    limit: int = Query(LEADERBOARD_DEFAULT_LIMIT, ge=1, le=100),
    skip: int = Query(0, ge=0)
):
    """
    Get contest leaderboard.

    Ordered by score (highest first), then time spent (lowest first).
    Ranks are positions in the full ordering, so they stay the same
    whatever page size is used.
    """
    db = Database.get_db()
    leaderboard_service = LeaderboardService(db)

    leaderboard, pagination = await leaderboard_service.get_leaderboard(
        contest_id,
        limit=limit,
        offset=skip
    )

    return success_response(
        message="Leaderboard retrieved successfully",
        data={
            "leaderboard": [convert_document_to_json(row) for row in leaderboard],
            "pagination": pagination
        }
    )
