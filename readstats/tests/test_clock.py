from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
import os
import time
import unittest

from readstats.clock import LOCAL_TZ, FakeClock, RealClock
from readstats.metrics import compute_snapshot
from readstats.streaks import local_day, reference_time
from readstats.tests.test_helpers import NOW, raw_session

# Central European time with its DST rule, spelled out so no tz database is needed.
CENTRAL_EUROPE = "CET-1CEST,M3.5.0,M10.5.0/3"


class TestClocks(unittest.TestCase):
    def test_real_clock_is_timezone_aware(self) -> None:
        self.assertIs(RealClock().now().tzinfo, LOCAL_TZ)
        self.assertEqual(RealClock(timezone.utc).now().utcoffset(), timedelta(0))

    def test_fake_clock_sleep_advances_time(self) -> None:
        clock = FakeClock(NOW)
        clock.sleep(30)
        clock.sleep(-5)
        self.assertEqual(clock.now(), NOW + timedelta(seconds=30))
        self.assertEqual(clock.sleep_calls, 2)

    def test_fake_clock_assumes_utc_for_naive_start(self) -> None:
        clock = FakeClock(datetime(2026, 2, 13, 12, 0))
        self.assertEqual(clock.now(), NOW)


class TestLocalTimezone(unittest.TestCase):
    def setUp(self) -> None:
        if not hasattr(time, "tzset"):
            self.skipTest("time.tzset unavailable on this platform")
        saved = os.environ.get("TZ")
        os.environ["TZ"] = CENTRAL_EUROPE
        time.tzset()
        self.addCleanup(self._restore, saved)

    @staticmethod
    def _restore(saved: str | None) -> None:
        if saved is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = saved
        time.tzset()

    def test_offset_follows_the_date(self) -> None:
        winter = datetime(2026, 1, 10, 10, 30, tzinfo=timezone.utc).astimezone(LOCAL_TZ)
        summer = datetime(2026, 7, 10, 10, 30, tzinfo=timezone.utc).astimezone(LOCAL_TZ)
        self.assertEqual((winter.hour, winter.utcoffset()), (11, timedelta(hours=1)))
        self.assertEqual((summer.hour, summer.utcoffset()), (12, timedelta(hours=2)))

    def test_naive_reference_is_local(self) -> None:
        ref = reference_time(datetime(2026, 7, 1, 12, 0))
        self.assertEqual(ref.utcoffset(), timedelta(hours=2))

    def test_winter_session_bucketed_with_winter_offset(self) -> None:
        now = datetime(2026, 10, 18, 6, 53, tzinfo=LOCAL_TZ)
        sessions = [raw_session(datetime(2026, 1, 10, 10, 30, tzinfo=timezone.utc), seconds=600)]
        snapshot = compute_snapshot(sessions, [], now)
        self.assertEqual(snapshot.best_time_of_day, "morning")
        self.assertEqual(snapshot.best_day, "Saturday")

    def test_summer_session_lands_on_its_local_date(self) -> None:
        ref = datetime(2026, 1, 5, 12, 0, tzinfo=LOCAL_TZ)
        late = datetime(2026, 7, 10, 22, 30, tzinfo=timezone.utc)
        self.assertEqual(local_day(late, ref), date(2026, 7, 11))


if __name__ == "__main__":
    unittest.main()
