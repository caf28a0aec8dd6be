"""Derived reading statistics.

``compute_snapshot`` is a pure function of the session log, the book
collection and a reference time. It never reads the clock itself when
``now`` is given, so the same inputs always produce the same snapshot.
"""

from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
import math
from typing import Any, Iterable, Mapping

from .models import INTENTS, Book, Session
from .normalizer import as_book, as_session, parse_timestamp
from .streaks import compute_streak, local_day, reference_time

WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
TIME_OF_DAY_BUCKETS = ("morning", "afternoon", "evening")
HISTOGRAM_DAYS = 7
DEFAULT_WEEKLY_GOAL_MINUTES = 420


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def months_before(ref: datetime, months: int = 1) -> datetime:
    year = ref.year
    month = ref.month - months
    while month < 1:
        month += 12
        year -= 1
    day = min(ref.day, calendar.monthrange(year, month)[1])
    return ref.replace(year=year, month=month, day=day)


def time_of_day(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    return "evening"


@dataclass(frozen=True)
class TimeWindows:
    today_sec: int = 0
    week_sec: int = 0
    month_sec: int = 0
    lifetime_sec: int = 0


@dataclass(frozen=True)
class TagStat:
    time_sec: int = 0
    pages: int = 0
    sessions: int = 0
    percentage: int = 0


@dataclass(frozen=True)
class IntentStat:
    time_sec: int = 0
    sessions: int = 0
    percentage: int = 0


@dataclass(frozen=True)
class BookCounts:
    finished: int = 0
    reading: int = 0
    abandoned: int = 0


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, Mapping):
        raise ValueError(f"{key} must be a mapping, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class AggregateSnapshot:
    computed_at: datetime
    windows: TimeWindows = field(default_factory=TimeWindows)
    session_count: int = 0
    sessions_this_week: int = 0
    today_sessions: int = 0
    today_pages: int = 0
    avg_session_sec: int = 0
    longest_session_sec: int = 0
    total_pages: int = 0
    pages_per_day: int = 0
    pages_per_hour: int = 0
    books: BookCounts = field(default_factory=BookCounts)
    avg_time_per_book_sec: int = 0
    tags: dict[str, TagStat] = field(default_factory=dict)
    intents: dict[str, IntentStat] = field(default_factory=dict)
    streak: int = 0
    best_day: str | None = None
    best_time_of_day: str | None = None
    weekly_minutes: tuple[int, ...] = (0,) * HISTOGRAM_DAYS
    weekly_goal_minutes: int = DEFAULT_WEEKLY_GOAL_MINUTES
    weekly_goal_percent: int = 0

    def top_tags(self, limit: int = 5) -> list[tuple[str, TagStat]]:
        ordered = sorted(self.tags.items(), key=lambda item: (-item[1].time_sec, item[0]))
        return ordered[: max(0, limit)]

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["computed_at"] = self.computed_at.isoformat()
        payload["weekly_minutes"] = list(self.weekly_minutes)
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AggregateSnapshot:
        if not isinstance(data, Mapping):
            raise ValueError("snapshot must be a mapping")
        computed_at = parse_timestamp(data["computed_at"])
        if computed_at is None:
            raise ValueError(f"invalid computed_at: {data['computed_at']!r}")
        weekly = tuple(int(x) for x in data.get("weekly_minutes", ()))
        if len(weekly) != HISTOGRAM_DAYS:
            raise ValueError("weekly_minutes must have 7 entries")
        return cls(
            computed_at=computed_at,
            windows=TimeWindows(**_section(data, "windows")),
            session_count=int(data.get("session_count", 0)),
            sessions_this_week=int(data.get("sessions_this_week", 0)),
            today_sessions=int(data.get("today_sessions", 0)),
            today_pages=int(data.get("today_pages", 0)),
            avg_session_sec=int(data.get("avg_session_sec", 0)),
            longest_session_sec=int(data.get("longest_session_sec", 0)),
            total_pages=int(data.get("total_pages", 0)),
            pages_per_day=int(data.get("pages_per_day", 0)),
            pages_per_hour=int(data.get("pages_per_hour", 0)),
            books=BookCounts(**_section(data, "books")),
            avg_time_per_book_sec=int(data.get("avg_time_per_book_sec", 0)),
            tags={str(k): TagStat(**v) for k, v in _section(data, "tags").items()},
            intents={str(k): IntentStat(**v) for k, v in _section(data, "intents").items()},
            streak=int(data.get("streak", 0)),
            best_day=data.get("best_day"),
            best_time_of_day=data.get("best_time_of_day"),
            weekly_minutes=weekly,
            weekly_goal_minutes=int(data.get("weekly_goal_minutes", DEFAULT_WEEKLY_GOAL_MINUTES)),
            weekly_goal_percent=int(data.get("weekly_goal_percent", 0)),
        )


def compute_snapshot(
    sessions: Iterable[Session | Mapping[str, Any]],
    books: Iterable[Book | Mapping[str, Any]],
    now: datetime | None = None,
    weekly_goal_minutes: int = DEFAULT_WEEKLY_GOAL_MINUTES,
) -> AggregateSnapshot:
    ref = reference_time(now)
    items = sorted((as_session(x) for x in sessions), key=lambda s: (s.created_at, s.id))
    book_list = [as_book(x) for x in books]

    windows = _collect_windows(items, ref)
    lifetime = windows.lifetime_sec
    total_pages = sum(s.pages_read for s in items)

    today_start = ref.replace(hour=0, minute=0, second=0, microsecond=0)
    today_items = [s for s in items if today_start <= s.created_at <= ref]
    week_start = ref - timedelta(days=7)

    return AggregateSnapshot(
        computed_at=ref,
        windows=windows,
        session_count=len(items),
        sessions_this_week=sum(1 for s in items if week_start <= s.created_at <= ref),
        today_sessions=len(today_items),
        today_pages=sum(s.pages_read for s in today_items),
        avg_session_sec=round_half_up(lifetime / len(items)) if items else 0,
        longest_session_sec=max((s.duration_seconds for s in items), default=0),
        total_pages=total_pages,
        pages_per_day=_pages_per_day(items, total_pages, ref),
        pages_per_hour=round_half_up(total_pages / (lifetime / 3600)) if lifetime > 0 else 0,
        books=BookCounts(
            finished=sum(1 for b in book_list if b.is_finished),
            reading=sum(1 for b in book_list if b.is_reading),
            abandoned=sum(1 for b in book_list if b.is_abandoned),
        ),
        avg_time_per_book_sec=_avg_time_per_book(items, book_list),
        tags=_tag_breakdown(items, book_list, lifetime),
        intents=_intent_breakdown(items, lifetime),
        streak=compute_streak(items, ref),
        best_day=_best_day(items, ref),
        best_time_of_day=_best_time_of_day(items, ref),
        weekly_minutes=_weekly_minutes(items, ref),
        weekly_goal_minutes=weekly_goal_minutes,
        weekly_goal_percent=_goal_percent(windows.week_sec, weekly_goal_minutes),
    )


def _collect_windows(items: list[Session], ref: datetime) -> TimeWindows:
    today_start = ref.replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = ref - timedelta(days=7)
    month_start = months_before(ref, 1)

    def _within(start: datetime) -> int:
        return sum(s.duration_seconds for s in items if start <= s.created_at <= ref)

    return TimeWindows(
        today_sec=_within(today_start),
        week_sec=_within(week_start),
        month_sec=_within(month_start),
        lifetime_sec=sum(s.duration_seconds for s in items),
    )


def _pages_per_day(items: list[Session], total_pages: int, ref: datetime) -> int:
    if not items:
        return 0
    first = items[0].created_at
    days_since = max(1, math.ceil((ref - first).total_seconds() / 86400))
    return round_half_up(total_pages / days_since)


def _avg_time_per_book(items: list[Session], books: list[Book]) -> int:
    finished = [b for b in books if b.is_finished]
    if not finished:
        return 0
    finished_ids = {b.id for b in finished}
    total = sum(s.duration_seconds for s in items if s.book_id in finished_ids)
    return round_half_up(total / len(finished))


def _percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return max(0, round_half_up(part / whole * 100))


def _tag_breakdown(items: list[Session], books: list[Book], lifetime: int) -> dict[str, TagStat]:
    books_by_id = {b.id: b for b in books}
    totals: dict[str, list[int]] = {}

    for item in items:
        book = books_by_id.get(item.book_id) if item.book_id else None
        if book is None:
            continue
        for tag in book.content_tags:
            bucket = totals.setdefault(tag, [0, 0, 0])
            bucket[0] += item.duration_seconds
            bucket[1] += item.pages_read
            bucket[2] += 1

    return {
        tag: TagStat(time_sec=t, pages=p, sessions=n, percentage=_percentage(t, lifetime))
        for tag, (t, p, n) in totals.items()
    }


def _intent_breakdown(items: list[Session], lifetime: int) -> dict[str, IntentStat]:
    totals = {intent: [0, 0] for intent in INTENTS}
    for item in items:
        if item.intent in totals:
            totals[item.intent][0] += item.duration_seconds
            totals[item.intent][1] += 1

    return {
        intent: IntentStat(time_sec=t, sessions=n, percentage=_percentage(t, lifetime))
        for intent, (t, n) in totals.items()
    }


def _best_day(items: list[Session], ref: datetime) -> str | None:
    totals = [0] * 7
    for item in items:
        weekday = item.created_at.astimezone(ref.tzinfo).isoweekday() % 7
        totals[weekday] += item.duration_seconds

    if not any(totals):
        return None
    best = max(range(7), key=lambda idx: (totals[idx], -idx))
    return WEEKDAY_NAMES[best]


def _best_time_of_day(items: list[Session], ref: datetime) -> str | None:
    totals = {bucket: 0 for bucket in TIME_OF_DAY_BUCKETS}
    for item in items:
        hour = item.created_at.astimezone(ref.tzinfo).hour
        totals[time_of_day(hour)] += item.duration_seconds

    if not any(totals.values()):
        return None

    # Later buckets win ties: morning -> afternoon -> evening.
    best = TIME_OF_DAY_BUCKETS[0]
    for bucket in TIME_OF_DAY_BUCKETS[1:]:
        if totals[bucket] >= totals[best]:
            best = bucket
    return best


def _weekly_minutes(items: list[Session], ref: datetime) -> tuple[int, ...]:
    buckets = [0] * HISTOGRAM_DAYS
    today = ref.date()
    for item in items:
        if item.created_at > ref:
            continue
        days_ago = (today - local_day(item.created_at, ref)).days
        if 0 <= days_ago < HISTOGRAM_DAYS:
            buckets[days_ago] += round_half_up(item.duration_seconds / 60)
    return tuple(buckets)


def _goal_percent(week_sec: int, goal_minutes: int) -> int:
    if goal_minutes <= 0:
        return 0
    return min(100, round_half_up(week_sec / 60 / goal_minutes * 100))
