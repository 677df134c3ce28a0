from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from enum import Enum


class SubmissionStatus(str, Enum):
    """Judge outcome of a contest submission"""
    ACCEPTED = "accepted"
    WRONG_ANSWER = "wrong_answer"
    RUNTIME_ERROR = "runtime_error"
    TIME_LIMIT_EXCEEDED = "time_limit_exceeded"
    MEMORY_LIMIT_EXCEEDED = "memory_limit_exceeded"
    PENDING = "pending"


# Outcomes the upstream judge may report that are kept as-is
PASS_THROUGH_STATUSES = {
    SubmissionStatus.RUNTIME_ERROR,
    SubmissionStatus.TIME_LIMIT_EXCEEDED,
    SubmissionStatus.MEMORY_LIMIT_EXCEEDED,
    SubmissionStatus.PENDING,
}


class SubmissionLanguage(str, Enum):
    JAVASCRIPT = "javascript"
    PYTHON = "python"
    JAVA = "java"
    CPP = "cpp"


class ContestSubmissionCreate(BaseModel):
    """
    Schema for submitting a solution during a contest.

    Test case counts and timings come pre-computed from the external judge.
    `status` is optional and only needed when the judge reports something
    other than a plain pass/fail (runtime error, limits exceeded, pending).
    """
    problem_id: str
    code: str = Field(..., min_length=1)
    language: SubmissionLanguage
    test_cases_passed: int = Field(..., ge=0)
    total_test_cases: int = Field(..., ge=1)
    execution_time: float = Field(0, ge=0, description="Milliseconds")
    memory_used: float = Field(0, ge=0)
    status: Optional[SubmissionStatus] = None


class ContestSubmissionInDB(BaseModel):
    """Schema for an (immutable) contest submission stored in database"""
    model_config = ConfigDict(use_enum_values=True)

    contest_id: str
    user_id: str
    problem_id: str
    code: str
    language: SubmissionLanguage
    status: SubmissionStatus
    score: int
    test_cases_passed: int
    total_test_cases: int
    execution_time: float
    memory_used: float
    submitted_at: datetime
