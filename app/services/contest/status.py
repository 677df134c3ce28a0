"""
Contest lifecycle status.

Status is a pure function of the clock and the contest window. The `status`
field persisted on contest documents is only a display hint; anything that
makes a decision calls resolve_status() again.
"""
from datetime import datetime, timezone
from typing import Dict, Optional

from app.models.contest.contest import ContestStatus


def utcnow() -> datetime:
    """Current time as naive UTC, the form Mongo stores and returns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def resolve_status(now: datetime, start_time: datetime, end_time: datetime) -> ContestStatus:
    """
    Derive lifecycle status:
    - now < start_time               -> UPCOMING
    - start_time <= now < end_time   -> ONGOING
    - now >= end_time                -> ENDED
    """
    if now < start_time:
        return ContestStatus.UPCOMING
    if now < end_time:
        return ContestStatus.ONGOING
    return ContestStatus.ENDED


def contest_status(contest: Dict, now: Optional[datetime] = None) -> ContestStatus:
    """Resolve status for a contest document"""
    return resolve_status(now or utcnow(), contest["start_time"], contest["end_time"])


def status_filter(status: ContestStatus, now: datetime) -> Dict:
    """Mongo filter matching contests whose resolved status is `status` at `now`"""
    if status == ContestStatus.UPCOMING:
        return {"start_time": {"$gt": now}}
    if status == ContestStatus.ONGOING:
        return {"start_time": {"$lte": now}, "end_time": {"$gt": now}}
    return {"end_time": {"$lte": now}}


def time_until_start(start_time: datetime, now: Optional[datetime] = None) -> Optional[str]:
    """Human readable time until the contest starts"""
    now = now or utcnow()

    if now >= start_time:
        return None

    delta = start_time - now
    days = delta.days
    hours = delta.seconds // 3600

    if days > 0:
        return f"Starts in {days} days"
    elif hours > 0:
        return f"Starts in {hours} hours"
    else:
        minutes = delta.seconds // 60
        return f"Starts in {minutes} minutes"


def time_remaining(start_time: datetime, end_time: datetime, now: Optional[datetime] = None) -> Optional[str]:
    """Human readable time left in a running contest"""
    now = now or utcnow()

    if now < start_time or now >= end_time:
        return None

    delta = end_time - now
    days = delta.days
    hours = delta.seconds // 3600

    if days > 0:
        return f"{days} days {hours} hours"
    elif hours > 0:
        minutes = (delta.seconds % 3600) // 60
        return f"{hours} hours {minutes} minutes"
    else:
        minutes = delta.seconds // 60
        return f"{minutes} minutes"
