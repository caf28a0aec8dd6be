from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
import json
import logging
from typing import Any, Iterable, Mapping

from .metrics import AggregateSnapshot
from .models import Book, Session
from .normalizer import parse_timestamp
from .storage import KeyValueStore
from .streaks import reference_time

logger = logging.getLogger(__name__)

CACHE_KEY = "stats_cache"
ACTIVE_SESSION_KEY = "active_session"


@dataclass(frozen=True)
class CacheEntry:
    snapshot: AggregateSnapshot
    last_updated_at: datetime
    raw_sessions: list[dict[str, Any]] = field(default_factory=list)
    raw_books: list[dict[str, Any]] = field(default_factory=list)


def _to_raw(item: Session | Book | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(item, (Session, Book)):
        data = asdict(item)
    else:
        data = dict(item)
    return {key: (value.isoformat() if isinstance(value, datetime) else value) for key, value in data.items()}


class StatsCache:
    """Last computed snapshot plus the inputs it was computed from.

    Entries never expire on their own; callers that care about age use
    ``is_stale``. Anything unreadable in the store counts as a miss. The
    in-progress session lives next to the entry and survives ``invalidate``.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def get_entry(self) -> CacheEntry | None:
        raw = self.store.get(CACHE_KEY)
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            last_updated = parse_timestamp(payload["last_updated_at"])
            if last_updated is None:
                raise ValueError("missing last_updated_at")
            return CacheEntry(
                snapshot=AggregateSnapshot.from_dict(payload["snapshot"]),
                last_updated_at=last_updated,
                raw_sessions=list(payload.get("raw_sessions", [])),
                raw_books=list(payload.get("raw_books", [])),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("discarding unreadable stats cache: %s", exc)
            return None

    def get_cached(self) -> AggregateSnapshot | None:
        entry = self.get_entry()
        return entry.snapshot if entry is not None else None

    def get_last_update(self) -> datetime | None:
        entry = self.get_entry()
        return entry.last_updated_at if entry is not None else None

    def save(
        self,
        snapshot: AggregateSnapshot,
        sessions: Iterable[Session | Mapping[str, Any]] = (),
        books: Iterable[Book | Mapping[str, Any]] = (),
        now: datetime | None = None,
    ) -> CacheEntry:
        entry = CacheEntry(
            snapshot=snapshot,
            last_updated_at=reference_time(now),
            raw_sessions=[_to_raw(x) for x in sessions],
            raw_books=[_to_raw(x) for x in books],
        )
        payload = {
            "snapshot": snapshot.to_dict(),
            "last_updated_at": entry.last_updated_at.isoformat(),
            "raw_sessions": entry.raw_sessions,
            "raw_books": entry.raw_books,
        }
        self.store.set(CACHE_KEY, json.dumps(payload, ensure_ascii=False, default=str))
        return entry

    def invalidate(self) -> None:
        self.store.clear(CACHE_KEY)
        logger.debug("stats cache invalidated")

    def is_stale(self, now: datetime | None = None, max_age_sec: float = 300) -> bool:
        last = self.get_last_update()
        if last is None:
            return True
        return (reference_time(now) - last).total_seconds() >= max_age_sec

    def get_active_session(self) -> dict[str, Any] | None:
        raw = self.store.get(ACTIVE_SESSION_KEY)
        if not raw:
            return None
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            logger.warning("discarding unreadable active session: %s", exc)
            return None
        if not isinstance(payload, dict):
            logger.warning("discarding active session that is not an object")
            return None
        return payload

    def save_active_session(self, record: Mapping[str, Any]) -> dict[str, Any]:
        data = _to_raw(record)
        self.store.set(ACTIVE_SESSION_KEY, json.dumps(data, ensure_ascii=False, default=str))
        return data

    def clear_active_session(self) -> None:
        self.store.clear(ACTIVE_SESSION_KEY)
