from datetime import datetime, timedelta, timezone

import pytest

from app.models.contest.contest import ContestCreate, ContestStatus, to_naive_utc
from app.services.contest.status import (
    resolve_status,
    status_filter,
    time_remaining,
    time_until_start,
)

START = datetime(2030, 1, 1, 12, 0, 0)
END = START + timedelta(hours=2)


@pytest.mark.parametrize("now, expected", [
    (START - timedelta(seconds=1), ContestStatus.UPCOMING),
    (START, ContestStatus.ONGOING),
    (END - timedelta(seconds=1), ContestStatus.ONGOING),
    (END, ContestStatus.ENDED),
    (END + timedelta(days=3), ContestStatus.ENDED),
])
def test_resolve_status_boundaries(now, expected):
    assert resolve_status(now, START, END) == expected


def test_never_upcoming_once_started():
    for minutes in range(0, 300, 7):
        now = START + timedelta(minutes=minutes)
        assert resolve_status(now, START, END) != ContestStatus.UPCOMING


def test_status_filter_matches_resolved_status():
    now = START + timedelta(minutes=10)
    assert status_filter(ContestStatus.UPCOMING, now) == {"start_time": {"$gt": now}}
    assert status_filter(ContestStatus.ONGOING, now) == {
        "start_time": {"$lte": now},
        "end_time": {"$gt": now},
    }
    assert status_filter(ContestStatus.ENDED, now) == {"end_time": {"$lte": now}}


def test_time_helpers():
    assert time_until_start(START, START - timedelta(days=2)) == "Starts in 2 days"
    assert time_until_start(START, START - timedelta(minutes=5)) == "Starts in 5 minutes"
    assert time_until_start(START, START) is None

    assert time_remaining(START, END, START + timedelta(minutes=30)) == "1 hours 30 minutes"
    assert time_remaining(START, END, START - timedelta(minutes=1)) is None
    assert time_remaining(START, END, END) is None


def test_aware_datetimes_are_stored_as_naive_utc():
    aware = datetime(2030, 1, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_naive_utc(aware) == datetime(2030, 1, 1, 12, 0, 0)

    contest = ContestCreate(
        title="Tz contest",
        description="Contest created with offsets",
        start_time="2030-01-01T14:00:00+02:00",
        end_time="2030-01-01T16:00:00+02:00",
        difficulty="easy",
        total_problems=1,
        problem_ids=["x"],
    )
    assert contest.start_time == datetime(2030, 1, 1, 12, 0, 0)
    assert contest.start_time.tzinfo is None
