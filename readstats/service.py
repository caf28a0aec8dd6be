"""Application wiring around the pure statistics functions.

The service owns the moving parts the metrics engine knows
nothing about: where sessions come from, the cache, milestone bookkeeping
and reacting to domain events.
"""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from threading import Event, Thread
from typing import Any, Callable, Mapping

from .cache import StatsCache
from .clock import Clock, RealClock
from .config import Settings, resolve_zone
from .db import Activity, ReadingDB
from .events import BOOK_UPDATED, EVENTS, SESSION_COMPLETED, STATS_REFRESH, EventBus
from .metrics import DEFAULT_WEEKLY_GOAL_MINUTES, AggregateSnapshot, compute_snapshot
from .milestones import MilestoneEvent, MilestoneTracker
from .models import Book, Session
from .normalizer import active_session_row, merge_active_session, normalize_book, normalize_session
from .reporting import format_duration
from .storage import FileStore
from .streaks import compute_streak

logger = logging.getLogger(__name__)

ACTIVITY_MILESTONE = "MILESTONE"
ACTIVITY_READING_SESSION = "READING_SESSION"
ACTIVITY_FINISHED_BOOK = "FINISHED_BOOK"

# An ended session is recorded as at least one minute.
MIN_ENDED_SESSION_SEC = 60


class StatsService:
    def __init__(
        self,
        db: ReadingDB,
        user_id: str,
        cache: StatsCache,
        tracker: MilestoneTracker,
        bus: EventBus | None = None,
        clock: Clock | None = None,
        weekly_goal_minutes: int = DEFAULT_WEEKLY_GOAL_MINUTES,
        cache_max_age_sec: float = 300,
    ) -> None:
        if not user_id.strip():
            raise ValueError("user_id must not be empty")
        self.db = db
        self.user_id = user_id.strip()
        self.cache = cache
        self.tracker = tracker
        self.bus = bus or EventBus()
        self.clock = clock or RealClock()
        self.weekly_goal_minutes = weekly_goal_minutes
        self.cache_max_age_sec = cache_max_age_sec
        self._attached = False

    def load(self, force: bool = False) -> AggregateSnapshot:
        now = self.clock.now()
        if not force and not self.cache.is_stale(now, self.cache_max_age_sec):
            cached = self.cache.get_cached()
            if cached is not None:
                logger.debug("serving cached stats for %s", self.user_id)
                return cached

        sessions = self._sessions(now)
        books = self.db.list_books(self.user_id)
        snapshot = compute_snapshot(sessions, books, now, weekly_goal_minutes=self.weekly_goal_minutes)
        self.cache.save(snapshot, sessions, books, now)
        logger.info("computed stats for %s from %d sessions", self.user_id, len(sessions))

        self.tracker.check(snapshot, books, self._log_milestone, now)
        return snapshot

    def refresh(self) -> AggregateSnapshot:
        return self.load(force=True)

    def invalidate(self) -> None:
        self.cache.invalidate()

    def streak(self) -> int:
        now = self.clock.now()
        return compute_streak(self._sessions(now), now)

    def attach(self) -> None:
        if self._attached:
            return
        for event in EVENTS:
            self.bus.on(event, self._on_domain_event)
        self._attached = True

    def detach(self) -> None:
        for event in EVENTS:
            self.bus.off(event, self._on_domain_event)
        self._attached = False

    def record_session(self, raw: Mapping[str, Any]) -> Session:
        payload = {**raw, "user_id": self.user_id}
        payload.setdefault("created_at", self.clock.now())
        session_id = self.db.add_session(payload)
        session = normalize_session({**payload, "id": str(session_id)})

        book = self.db.get_book(session.book_id) if session.book_id else None
        title = f'"{book.title}"' if book is not None and book.title else "a book"
        self.db.log_activity(
            ACTIVITY_READING_SESSION,
            self.user_id,
            content=f"Read {title} for {format_duration(session.duration_seconds)}",
            metadata={
                "duration_seconds": session.duration_seconds,
                "pages_read": session.pages_read,
            },
            book_id=session.book_id,
            created_at=session.created_at,
        )
        self.bus.emit(SESSION_COMPLETED, {"session_id": session.id, "book_id": session.book_id})
        return session

    def save_book(self, raw: Mapping[str, Any]) -> Book:
        payload = {**raw, "user_id": self.user_id}
        book_id = str(payload.get("id") or "").strip()
        previous = self.db.get_book(book_id) if book_id else None
        if previous is not None and previous.user_id != self.user_id:
            raise ValueError(f"book {book_id} belongs to another user")

        candidate = normalize_book(payload)
        newly_finished = candidate.is_finished and (previous is None or not previous.is_finished)
        if newly_finished and candidate.finished_at is None:
            payload["finished_at"] = self.clock.now()
        elif previous is not None and previous.finished_at is not None and not payload.get("finished_at"):
            payload["finished_at"] = previous.finished_at

        book = self.db.upsert_book(payload)
        if newly_finished:
            label = f'"{book.title}"' if book.title else "a book"
            self.db.log_activity(
                ACTIVITY_FINISHED_BOOK,
                self.user_id,
                content=f"Finished reading {label}!",
                metadata={"achievement": "completed"},
                book_id=book.id,
                created_at=self.clock.now(),
            )
        self.bus.emit(BOOK_UPDATED, {"book_id": book.id})
        return book

    def active_session(self) -> dict[str, Any] | None:
        active = self.cache.get_active_session()
        if active is None or active.get("user_id", self.user_id) != self.user_id:
            return None
        return active

    def update_active_session(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        now = self.clock.now()
        record: dict[str, Any] = dict(self.active_session() or {})
        record.update({key: value for key, value in raw.items() if value is not None})
        record.setdefault("started_at", now)
        record["last_saved"] = now
        record["user_id"] = self.user_id
        saved = self.cache.save_active_session(record)
        self.bus.emit(STATS_REFRESH, {"active_session": "updated"})
        return saved

    def end_active_session(self) -> Session | None:
        active = self.active_session()
        if active is None:
            return None
        progress = normalize_session(active_session_row(active, self.clock.now()))
        self.cache.clear_active_session()
        try:
            return self.record_session(
                {
                    "book_id": progress.book_id,
                    "duration_seconds": max(MIN_ENDED_SESSION_SEC, progress.duration_seconds),
                    "pages_read": progress.pages_read,
                    "intent": progress.intent,
                }
            )
        except Exception:
            self.cache.save_active_session(active)
            raise

    def cancel_active_session(self) -> bool:
        if self.active_session() is None:
            return False
        self.cache.clear_active_session()
        self.bus.emit(STATS_REFRESH, {"active_session": "cancelled"})
        return True

    def activities(self, limit: int = 20) -> list[Activity]:
        return self.db.list_activities(self.user_id, limit=limit)

    def _sessions(self, now: datetime) -> list[Session]:
        return merge_active_session(self.db.list_sessions(self.user_id), self.active_session(), now)

    def _log_milestone(self, event: MilestoneEvent) -> Activity:
        return self.db.log_activity(
            ACTIVITY_MILESTONE,
            self.user_id,
            content=event.text,
            metadata={"key": event.key, **event.payload},
            created_at=self.clock.now(),
        )

    def _on_domain_event(self, payload: Any) -> None:
        logger.debug("domain event received: %s", payload)
        self.invalidate()
        # New data gets one milestone check of its own.
        self.tracker.reset()
        self.load(force=True)


class AutoRefresher:
    """Periodically force-refresh a service's stats.

    Best effort: a failed refresh is logged and the loop keeps going. Whichever
    refresh finishes last owns the cache.
    """

    def __init__(
        self,
        service: StatsService,
        clock: Clock | None = None,
        interval_sec: float = 30,
        on_refresh: Callable[[AggregateSnapshot], None] | None = None,
    ) -> None:
        self.service = service
        self.clock = clock or service.clock
        self.interval_sec = max(0.0, float(interval_sec))
        self.on_refresh = on_refresh
        self._stop = Event()
        self._worker: Thread | None = None

    def request_stop(self) -> None:
        self._stop.set()

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def run(self, max_ticks: int | None = None) -> int:
        ticks = 0
        while not self._stop.is_set():
            self.clock.sleep(self.interval_sec)
            if self._stop.is_set():
                break
            try:
                snapshot = self.service.refresh()
            except Exception:
                logger.exception("background stats refresh failed")
            else:
                if self.on_refresh is not None:
                    self.on_refresh(snapshot)
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
        return ticks

    def start(self) -> Thread:
        if self._worker is not None and self._worker.is_alive():
            return self._worker
        self._stop.clear()
        self._worker = Thread(target=self.run, daemon=True)
        self._worker.start()
        return self._worker

    def stop(self, timeout: float = 2.0) -> None:
        self.request_stop()
        if self._worker is not None:
            self._worker.join(timeout=timeout)
            self._worker = None


def create_service(
    settings: Settings,
    clock: Clock | None = None,
    bus: EventBus | None = None,
) -> StatsService:
    store = FileStore(Path(settings.state_path))
    return StatsService(
        db=ReadingDB(Path(settings.db_path)),
        user_id=settings.user_id,
        cache=StatsCache(store),
        tracker=MilestoneTracker(store),
        bus=bus,
        clock=clock or RealClock(resolve_zone(settings.timezone)),
        weekly_goal_minutes=settings.weekly_goal_minutes,
        cache_max_age_sec=settings.cache_max_age_sec,
    )
