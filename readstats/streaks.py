from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Any

from .clock import LOCAL_TZ
from .models import Session
from .normalizer import as_session


def reference_time(now: datetime | None) -> datetime:
    ref = now or datetime.now(LOCAL_TZ)
    if ref.tzinfo is None:
        ref = ref.replace(tzinfo=LOCAL_TZ)
    return ref


def local_day(value: datetime, ref: datetime) -> date:
    return value.astimezone(ref.tzinfo).date()


def reading_days(sessions: Iterable[Session | Mapping[str, Any]], now: datetime | None = None) -> set[date]:
    ref = reference_time(now)
    return {local_day(as_session(item).created_at, ref) for item in sessions}


def compute_streak(sessions: Iterable[Session | Mapping[str, Any]], now: datetime | None = None) -> int:
    """Count consecutive reading days ending on ``now``'s local date.

    A day without any session breaks the streak, so a user who has not read
    yet today has a streak of 0 regardless of earlier history.
    """
    ref = reference_time(now)
    days = reading_days(sessions, ref)
    today = ref.date()

    streak = 0
    while today - timedelta(days=streak) in days:
        streak += 1
    return streak
