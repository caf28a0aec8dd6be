"""One-time achievements for cumulative reading metrics.

Detection is a pure decision over a snapshot; ``MilestoneTracker`` adds the
persisted record of what has already been announced and the hand-off to the
activity log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import json
import logging
from threading import Lock
from typing import Any, Callable, Iterable, Mapping

from .metrics import AggregateSnapshot
from .models import Book
from .normalizer import as_book
from .storage import KeyValueStore
from .streaks import reference_time

logger = logging.getLogger(__name__)

PAGE_THRESHOLDS = (100, 500, 1000, 5000, 10000)
BOOK_THRESHOLDS = (1, 5, 10, 25, 50, 100)
YEARLY_BOOK_THRESHOLDS = (5, 10, 20, 52)

ACHIEVED_KEY = "achieved_milestones"


@dataclass(frozen=True)
class MilestoneEvent:
    key: str
    text: str
    payload: dict[str, Any] = field(default_factory=dict)


LogActivity = Callable[[MilestoneEvent], object]


def books_completed_in_year(books: Iterable[Book | Mapping[str, Any]], year: int) -> int:
    count = 0
    for item in books:
        book = as_book(item)
        completed_on = book.completed_on
        if book.is_finished and completed_on is not None and completed_on.year == year:
            count += 1
    return count


def detect_milestones(
    snapshot: AggregateSnapshot,
    books: Iterable[Book | Mapping[str, Any]],
    achieved: Iterable[str],
    now: datetime | None = None,
) -> list[MilestoneEvent]:
    ref = reference_time(now)
    done = set(achieved)
    book_list = [as_book(x) for x in books]
    year = ref.year
    yearly = books_completed_in_year(book_list, year)
    events: list[MilestoneEvent] = []

    for value in PAGE_THRESHOLDS:
        key = f"pages_{value}"
        if key not in done and snapshot.total_pages >= value:
            events.append(
                MilestoneEvent(key, f"Read {value:,} pages total!", {"type": "pages", "value": value})
            )

    for value in BOOK_THRESHOLDS:
        key = f"books_completed_{value}"
        if key not in done and snapshot.books.finished >= value:
            plural = "s" if value > 1 else ""
            events.append(
                MilestoneEvent(
                    key,
                    f"Completed {value} book{plural}!",
                    {"type": "books_completed", "value": value},
                )
            )

    for value in YEARLY_BOOK_THRESHOLDS:
        key = f"yearly_books_{year}_{value}"
        if key not in done and yearly >= value:
            events.append(
                MilestoneEvent(
                    key,
                    f"Completed {value} books in {year}!",
                    {"type": "yearly_books", "value": value, "year": year},
                )
            )

    return events


class MilestoneTracker:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._checked = False
        self._lock = Lock()

    def achieved(self) -> dict[str, str]:
        raw = self.store.get(ACHIEVED_KEY)
        if not raw:
            return {}
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("achieved milestone record is corrupt, treating as empty")
            return {}
        if not isinstance(payload, dict):
            return {}
        return {str(k): str(v) for k, v in payload.items()}

    def mark(self, key: str, when: datetime | None = None) -> None:
        achieved = self.achieved()
        if key in achieved:
            return
        achieved[key] = reference_time(when).isoformat()
        self.store.set(ACHIEVED_KEY, json.dumps(achieved, sort_keys=True))

    def reset(self) -> None:
        with self._lock:
            self._checked = False

    def check(
        self,
        snapshot: AggregateSnapshot,
        books: Iterable[Book | Mapping[str, Any]],
        log_activity: LogActivity,
        now: datetime | None = None,
    ) -> list[MilestoneEvent]:
        """Announce newly reached milestones, once until ``reset()`` is called.

        A key is only marked after ``log_activity`` returned; a failed write
        leaves it unmarked so a later check can offer it again.
        """
        with self._lock:
            if self._checked:
                return []
            self._checked = True

            ref = reference_time(now)
            announced: list[MilestoneEvent] = []
            for event in detect_milestones(snapshot, books, self.achieved(), ref):
                try:
                    log_activity(event)
                except Exception:
                    logger.exception("failed to log milestone %s", event.key)
                    continue
                self.mark(event.key, ref)
                announced.append(event)
                logger.info("milestone reached: %s", event.key)
            return announced
