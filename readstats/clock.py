from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
import time
from typing import Protocol

_EPOCH = datetime(1970, 1, 1)


class LocalTimezone(tzinfo):
    """The machine's zone, with the UTC offset in force at each instant."""

    def _local(self, dt: datetime) -> time.struct_time | None:
        fields = (dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second, dt.weekday(), 0, -1)
        try:
            return time.localtime(time.mktime(fields))
        except (OverflowError, OSError, ValueError):
            return None

    def utcoffset(self, dt: datetime | None) -> timedelta:
        local = self._local(dt) if dt is not None else None
        if local is None:
            return timedelta(seconds=-time.timezone)
        return timedelta(seconds=local.tm_gmtoff)

    def dst(self, dt: datetime | None) -> timedelta:
        local = self._local(dt) if dt is not None else None
        if local is None or local.tm_isdst <= 0:
            return timedelta(0)
        return timedelta(seconds=local.tm_gmtoff + time.timezone)

    def tzname(self, dt: datetime | None) -> str:
        local = self._local(dt) if dt is not None else None
        if local is None:
            return time.tzname[0]
        return local.tm_zone

    def fromutc(self, dt: datetime) -> datetime:
        naive = dt.replace(tzinfo=None)
        try:
            offset = time.localtime((naive - _EPOCH).total_seconds()).tm_gmtoff
        except (OverflowError, OSError, ValueError):
            offset = -time.timezone
        return (naive + timedelta(seconds=offset)).replace(tzinfo=self)

    def __repr__(self) -> str:
        return "LocalTimezone()"


LOCAL_TZ = LocalTimezone()


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    def sleep(self, seconds: float) -> None:
        ...


class RealClock:
    """Wall clock; ``tz=None`` means the machine's local zone."""

    def __init__(self, tz: tzinfo | None = None) -> None:
        self.tz = tz or LOCAL_TZ

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def sleep(self, seconds: float) -> None:
        time.sleep(max(0.0, seconds))


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        current = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current
        self.sleep_calls = 0

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float) -> None:
        self._current += timedelta(seconds=seconds)

    def sleep(self, seconds: float) -> None:
        self.sleep_calls += 1
        self.advance(max(0.0, seconds))
