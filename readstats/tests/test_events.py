from __future__ import annotations

import unittest

from readstats.events import BOOK_UPDATED, SESSION_COMPLETED, STATS_REFRESH, EventBus


class TestEventBus(unittest.TestCase):
    def test_handlers_run_in_registration_order(self) -> None:
        bus = EventBus()
        calls: list[tuple[str, object]] = []
        bus.on(SESSION_COMPLETED, lambda payload: calls.append(("first", payload)))
        bus.on(SESSION_COMPLETED, lambda payload: calls.append(("second", payload)))

        bus.emit(SESSION_COMPLETED, {"session_id": "1"})
        self.assertEqual(calls, [("first", {"session_id": "1"}), ("second", {"session_id": "1"})])

    def test_off_removes_handler(self) -> None:
        bus = EventBus()
        calls: list[object] = []
        bus.on(BOOK_UPDATED, calls.append)
        bus.off(BOOK_UPDATED, calls.append)
        bus.emit(BOOK_UPDATED, "x")
        self.assertEqual(calls, [])
        self.assertEqual(bus.subscriber_count(BOOK_UPDATED), 0)

    def test_late_subscribers_miss_earlier_events(self) -> None:
        bus = EventBus()
        calls: list[object] = []
        bus.emit(STATS_REFRESH)
        bus.on(STATS_REFRESH, calls.append)
        self.assertEqual(calls, [])
        bus.emit(STATS_REFRESH)
        self.assertEqual(calls, [None])

    def test_once_fires_a_single_time(self) -> None:
        bus = EventBus()
        calls: list[object] = []
        bus.once(SESSION_COMPLETED, calls.append)
        bus.emit(SESSION_COMPLETED, 1)
        bus.emit(SESSION_COMPLETED, 2)
        self.assertEqual(calls, [1])

    def test_unsubscribing_during_emit_does_not_skip_others(self) -> None:
        bus = EventBus()
        calls: list[str] = []

        def first(payload: object) -> None:
            calls.append("first")
            bus.off(SESSION_COMPLETED, first)

        bus.on(SESSION_COMPLETED, first)
        bus.on(SESSION_COMPLETED, lambda payload: calls.append("second"))
        bus.emit(SESSION_COMPLETED)
        bus.emit(SESSION_COMPLETED)
        self.assertEqual(calls, ["first", "second", "second"])

    def test_events_are_isolated(self) -> None:
        bus = EventBus()
        calls: list[object] = []
        bus.on(BOOK_UPDATED, calls.append)
        bus.emit(SESSION_COMPLETED, "ignored")
        self.assertEqual(calls, [])


if __name__ == "__main__":
    unittest.main()
