from fastapi import APIRouter, Depends, Query
from typing import Optional
from app.core.exceptions import AuthorizationError
from app.core.scheduler import get_scheduler_status
from app.database import Database
from app.services.auth.auth_service import is_admin
from app.services.contest.audit import AuditService
from app.services.contest.contest import ContestService
from app.services.contest.leaderboard import LeaderboardService
from app.services.contest.registration import RegistrationService
from app.services.contest.store import ContestStore, display_name
from app.routes.auth.dependencies import get_current_user
from app.models.contest.contest import (
    ContestCreate,
    ContestUpdate,
    ContestStatus,
    ContestDifficulty,
)
from app.utils.response import success_response, unauthorized_response
from app.utils.serialization import convert_document_to_json

router = APIRouter(prefix="/contests", tags=["Contests"])


@router.post("", status_code=201)
async def create_contest(
    contest_data: ContestCreate,
    current_user: Optional[dict] = Depends(get_current_user)
):
    """
    Create a new contest (admins only).

    - Start time must be in the future and before end time
    - problem_ids must list exactly total_problems existing problems
    """
    if not current_user:
        return unauthorized_response()

    if not is_admin(current_user):
        raise AuthorizationError("Only admins can create contests")

    db = Database.get_db()
    contest_service = ContestService(db)

    contest = await contest_service.create_contest(contest_data, current_user)

    return success_response(
        message="Contest created successfully",
        data={"contest": convert_document_to_json(contest)},
        status_code=201
    )


@router.get("")
async def get_contests(
    status: Optional[ContestStatus] = Query(None),
    difficulty: Optional[ContestDifficulty] = Query(None),
    search: Optional[str] = Query(None, max_length=100, description="Case-insensitive title search"),
    limit: int = Query(10, ge=1, le=100),
    skip: int = Query(0, ge=0)
):
    """
    List contests, newest start first.

    The status filter is evaluated against the current time, not the
    stored status field.
    """
    db = Database.get_db()
    contest_service = ContestService(db)

    contests, total = await contest_service.list_contests(
        status=status,
        difficulty=difficulty,
        search=search,
        limit=limit,
        skip=skip
    )

    return success_response(
        message="Contests retrieved successfully",
        data={
            "contests": [convert_document_to_json(c) for c in contests],
            "pagination": {
                "total": total,
                "limit": limit,
                "skip": skip,
                "pages": (total + limit - 1) // limit
            }
        }
    )


@router.get("/stats/user")
async def get_user_contest_stats(current_user: Optional[dict] = Depends(get_current_user)):
    """Aggregate contest history of the current user."""
    if not current_user:
        return unauthorized_response()

    db = Database.get_db()
    leaderboard_service = LeaderboardService(db)

    stats = await leaderboard_service.get_user_stats(str(current_user["_id"]))

    return success_response(
        message="User contest stats retrieved successfully",
        data={"stats": stats}
    )


@router.get("/system/scheduler-status")
async def scheduler_status(current_user: Optional[dict] = Depends(get_current_user)):
    """Background job status (admins only)."""
    if not current_user:
        return unauthorized_response()

    if not is_admin(current_user):
        raise AuthorizationError("Only admins can view scheduler status")

    return success_response(
        message="Scheduler status retrieved successfully",
        data=convert_document_to_json(get_scheduler_status())
    )


@router.get("/{contest_id}")
async def get_contest(
    contest_id: str,
    current_user: Optional[dict] = Depends(get_current_user)
):
    """
    Get contest details.

    Registration flags are filled in when the caller is authenticated.
    """
    db = Database.get_db()
    contest_service = ContestService(db)

    user_id = str(current_user["_id"]) if current_user else None
    contest = await contest_service.get_contest(contest_id, user_id)

    return success_response(
        message="Contest retrieved successfully",
        data={"contest": convert_document_to_json(contest)}
    )


@router.patch("/{contest_id}")
async def update_contest(
    contest_id: str,
    update_data: ContestUpdate,
    current_user: Optional[dict] = Depends(get_current_user)
):
    """
    Update a contest (only creator, only before it starts).
    """
    if not current_user:
        return unauthorized_response()

    db = Database.get_db()
    contest_service = ContestService(db)

    contest = await contest_service.update_contest(
        contest_id=contest_id,
        update_data=update_data,
        requester_id=str(current_user["_id"]),
        requester_name=display_name(current_user)
    )

    return success_response(
        message="Contest updated successfully",
        data={"contest": convert_document_to_json(contest)}
    )


@router.delete("/{contest_id}")
async def delete_contest(
    contest_id: str,
    current_user: Optional[dict] = Depends(get_current_user)
):
    """
    Delete a contest (only creator).

    - Removes all participations and submissions of the contest
    """
    if not current_user:
        return unauthorized_response()

    db = Database.get_db()
    contest_service = ContestService(db)

    counts = await contest_service.delete_contest(
        contest_id=contest_id,
        requester_id=str(current_user["_id"]),
        requester_name=display_name(current_user)
    )

    return success_response(
        message="Contest deleted successfully",
        data={"deleted": True, **counts}
    )


@router.post("/{contest_id}/register", status_code=201)
async def register_for_contest(
    contest_id: str,
    current_user: Optional[dict] = Depends(get_current_user)
):
    """
    Register the current user for a contest.

    - Allowed until the contest ends
    - Fails when the user is already registered or the contest is full
    """
    if not current_user:
        return unauthorized_response()

    db = Database.get_db()
    registration_service = RegistrationService(db)

    participation = await registration_service.register(contest_id, current_user)

    return success_response(
        message="Successfully registered for contest",
        data={"participation": convert_document_to_json(participation)},
        status_code=201
    )


@router.get("/{contest_id}/results")
async def get_contest_results(
    contest_id: str,
    current_user: Optional[dict] = Depends(get_current_user)
):
    """
    Current user's score, rank and submissions in a contest.
    """
    if not current_user:
        return unauthorized_response()

    db = Database.get_db()
    leaderboard_service = LeaderboardService(db)

    results = await leaderboard_service.get_contest_results(contest_id, str(current_user["_id"]))

    return success_response(
        message="Contest results retrieved successfully",
        data={"results": convert_document_to_json(results)}
    )


@router.get("/{contest_id}/history")
async def get_contest_history(
    contest_id: str,
    limit: int = Query(50, ge=1, le=200),
    current_user: Optional[dict] = Depends(get_current_user)
):
    """Audit trail of a contest (creator or admin)."""
    if not current_user:
        return unauthorized_response()

    db = Database.get_db()
    contest = await ContestStore(db).get_contest(contest_id)

    if contest["created_by"] != str(current_user["_id"]) and not is_admin(current_user):
        raise AuthorizationError("Only the contest creator can view its history")

    entries = await AuditService(db).get_contest_history(str(contest["_id"]), limit=limit)

    return success_response(
        message="Contest history retrieved successfully",
        data={"history": [convert_document_to_json(entry) for entry in entries]}
    )
