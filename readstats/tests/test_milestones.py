from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
import threading
import time
import unittest

from readstats.metrics import compute_snapshot
from readstats.milestones import (
    ACHIEVED_KEY,
    MilestoneEvent,
    MilestoneTracker,
    books_completed_in_year,
    detect_milestones,
)
from readstats.storage import MemoryStore
from readstats.tests.test_helpers import NOW, raw_session


def _finished_books(count: int, finished_at: datetime) -> list[dict[str, object]]:
    return [
        {"id": f"b{i}", "user_id": "u1", "status": "Completed", "finished_at": finished_at.isoformat()}
        for i in range(count)
    ]


class TestDetectMilestones(unittest.TestCase):
    def test_crossing_two_page_thresholds_emits_two_events(self) -> None:
        snapshot = compute_snapshot([raw_session(NOW, seconds=60, pages=600)], [], NOW)
        events = detect_milestones(snapshot, [], set(), NOW)
        self.assertEqual([e.key for e in events], ["pages_100", "pages_500"])
        self.assertEqual(events[1].payload, {"type": "pages", "value": 500})
        self.assertEqual(events[0].text, "Read 100 pages total!")

    def test_achieved_keys_are_skipped(self) -> None:
        snapshot = compute_snapshot([raw_session(NOW, seconds=60, pages=1200)], [], NOW)
        events = detect_milestones(snapshot, [], {"pages_100", "pages_500"}, NOW)
        self.assertEqual([e.key for e in events], ["pages_1000"])

    def test_book_ladders_include_year(self) -> None:
        books = _finished_books(5, NOW - timedelta(days=3))
        snapshot = compute_snapshot([], books, NOW)
        events = detect_milestones(snapshot, books, (), NOW)
        keys = [e.key for e in events]
        self.assertEqual(keys, ["books_completed_1", "books_completed_5", "yearly_books_2026_5"])
        self.assertEqual(events[0].text, "Completed 1 book!")
        self.assertEqual(events[2].payload, {"type": "yearly_books", "value": 5, "year": 2026})

    def test_books_finished_last_year_do_not_count_for_this_year(self) -> None:
        books = _finished_books(6, datetime(2025, 12, 30, tzinfo=timezone.utc))
        self.assertEqual(books_completed_in_year(books, 2026), 0)
        snapshot = compute_snapshot([], books, NOW)
        keys = [e.key for e in detect_milestones(snapshot, books, (), NOW)]
        self.assertNotIn("yearly_books_2026_5", keys)

    def test_updated_at_used_when_finished_at_missing(self) -> None:
        books = [{"id": "x", "user_id": "u1", "tags": ["finished"], "updated_at": "2026-01-05T10:00:00Z"}]
        self.assertEqual(books_completed_in_year(books, 2026), 1)


class TestMilestoneTracker(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryStore()
        self.tracker = MilestoneTracker(self.store)
        self.snapshot = compute_snapshot([raw_session(NOW, seconds=60, pages=150)], [], NOW)
        self.logged: list[MilestoneEvent] = []

    def test_same_snapshot_twice_never_repeats(self) -> None:
        first = self.tracker.check(self.snapshot, [], self.logged.append, NOW)
        self.tracker.reset()
        second = self.tracker.check(self.snapshot, [], self.logged.append, NOW)
        self.assertEqual([e.key for e in first], ["pages_100"])
        self.assertEqual(second, [])
        self.assertEqual(len(self.logged), 1)
        self.assertIn("pages_100", self.tracker.achieved())

    def test_check_is_one_shot_until_reset(self) -> None:
        self.tracker.check(compute_snapshot([], [], NOW), [], self.logged.append, NOW)
        self.assertEqual(self.tracker.check(self.snapshot, [], self.logged.append, NOW), [])
        self.tracker.reset()
        self.assertEqual(len(self.tracker.check(self.snapshot, [], self.logged.append, NOW)), 1)

    def test_failed_log_leaves_milestone_unmarked(self) -> None:
        def _broken(event: MilestoneEvent) -> None:
            raise RuntimeError("activity log offline")

        with self.assertLogs("readstats.milestones", level="ERROR"):
            announced = self.tracker.check(self.snapshot, [], _broken, NOW)
        self.assertEqual(announced, [])
        self.assertEqual(self.tracker.achieved(), {})

        self.tracker.reset()
        retried = self.tracker.check(self.snapshot, [], self.logged.append, NOW)
        self.assertEqual([e.key for e in retried], ["pages_100"])

    def test_mark_is_idempotent(self) -> None:
        self.tracker.mark("pages_100", NOW)
        self.tracker.mark("pages_100", NOW + timedelta(days=1))
        self.assertEqual(self.tracker.achieved(), {"pages_100": NOW.isoformat()})

    def test_corrupt_record_reads_as_empty(self) -> None:
        self.store.set(ACHIEVED_KEY, "{oops")
        with self.assertLogs("readstats.milestones", level="WARNING"):
            self.assertEqual(self.tracker.achieved(), {})
        self.store.set(ACHIEVED_KEY, json.dumps(["not", "a", "dict"]))
        self.assertEqual(self.tracker.achieved(), {})


class TestConcurrentChecks(unittest.TestCase):
    def test_parallel_checks_log_each_milestone_once(self) -> None:
        tracker = MilestoneTracker(MemoryStore())
        snapshot = compute_snapshot([raw_session(NOW, seconds=60, pages=150)], [], NOW)
        logged: list[str] = []
        start = threading.Barrier(4)

        def _slow_log(event: MilestoneEvent) -> None:
            time.sleep(0.01)
            logged.append(event.key)

        def _worker() -> None:
            start.wait()
            tracker.reset()
            tracker.check(snapshot, [], _slow_log, NOW)

        workers = [threading.Thread(target=_worker) for _ in range(4)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=5)

        self.assertEqual(logged, ["pages_100"])


if __name__ == "__main__":
    unittest.main()
