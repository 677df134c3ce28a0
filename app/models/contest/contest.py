from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from typing import Annotated, Optional, List
from datetime import datetime, timezone
from enum import Enum


class ContestStatus(str, Enum):
    """
    Contest lifecycle states, always derived from the time window.

    - UPCOMING: now < start_time (registration open, editable)
    - ONGOING: start_time <= now < end_time (submissions accepted)
    - ENDED: now >= end_time
    """
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    ENDED = "ended"


class ContestDifficulty(str, Enum):
    """Contest difficulty levels"""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    MIXED = "mixed"


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Mongo stores naive UTC datetimes; drop offsets after converting"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]


class ContestCreate(BaseModel):
    """Schema for creating a contest"""
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=2000)
    start_time: UtcDatetime
    end_time: UtcDatetime
    difficulty: ContestDifficulty
    total_problems: int = Field(..., ge=1, le=50)
    problem_ids: List[str] = Field(..., min_length=1)
    max_participants: Optional[int] = Field(None, ge=1)
    rules: Optional[str] = Field(None, max_length=5000)
    rewards: Optional[str] = Field(None, max_length=2000)

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 3:
            raise ValueError("Title must be at least 3 characters")
        return value


class ContestUpdate(BaseModel):
    """Schema for updating a contest (only allowed while UPCOMING)"""
    title: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=2000)
    difficulty: Optional[ContestDifficulty] = None
    max_participants: Optional[int] = Field(None, ge=1)
    start_time: Optional[UtcDatetime] = None
    end_time: Optional[UtcDatetime] = None
    rules: Optional[str] = Field(None, max_length=5000)
    rewards: Optional[str] = Field(None, max_length=2000)


class ContestInDB(BaseModel):
    """Schema for contest stored in database"""
    model_config = ConfigDict(use_enum_values=True)

    title: str
    description: str
    created_by: str
    start_time: datetime
    end_time: datetime
    # Display hint only, refreshed on write and by the scheduler
    status: ContestStatus = ContestStatus.UPCOMING
    difficulty: ContestDifficulty
    problem_ids: List[str]
    total_problems: int
    max_participants: Optional[int] = None
    current_participants: int = 0
    rules: Optional[str] = None
    rewards: Optional[str] = None
    ranks_finalized: bool = False

    # Timestamps
    created_at: datetime
    updated_at: datetime


class ParticipationInDB(BaseModel):
    """Schema for a contest participation stored in database"""
    contest_id: str
    user_id: str
    username: str
    joined_at: datetime

    # Rollup of the submission log
    score: int = 0
    total_score: int = 0
    solutions_submitted: int = 0
    time_spent: int = 0  # seconds from contest start to latest submission
    last_submission_at: Optional[datetime] = None

    # Positional rank, persisted once the contest has ended
    rank: int = 0

    created_at: datetime
    updated_at: datetime
