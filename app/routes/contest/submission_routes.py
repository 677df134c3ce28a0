from fastapi import APIRouter, Depends
from typing import Optional
from app.database import Database
from app.services.contest.scoring import ScoringService
from app.routes.auth.dependencies import get_current_user
from app.models.contest.submission import ContestSubmissionCreate
from app.utils.response import success_response, unauthorized_response
from app.utils.serialization import convert_document_to_json

router = APIRouter(prefix="/contests", tags=["Contest Submissions"])


def convert_submission_to_json(submission: dict) -> dict:
    """Convert submission document to JSON, leaving out the source code"""
    submission = convert_document_to_json(submission)
    submission.pop("code", None)
    return submission


@router.post("/{contest_id}/submit", status_code=201)
async def submit_solution(
    contest_id: str,
    submission_data: ContestSubmissionCreate,
    current_user: Optional[dict] = Depends(get_current_user)
):
    """
    Submit a judged solution to a contest problem.

    - Only registered users, only while the contest is ongoing
    - The problem must belong to the contest
    - Score = round((accuracy + time bonus) / 2), 0 when no test case passed
    """
    if not current_user:
        return unauthorized_response()

    db = Database.get_db()
    scoring_service = ScoringService(db)

    submission, participation = await scoring_service.submit(contest_id, current_user, submission_data)

    return success_response(
        message="Solution submitted successfully",
        data={
            "submission": convert_submission_to_json(submission),
            "participation": {
                "score": participation.get("score", 0),
                "total_score": participation.get("total_score", 0),
                "solutions_submitted": participation.get("solutions_submitted", 0),
                "time_spent": participation.get("time_spent", 0)
            }
        },
        status_code=201
    )
