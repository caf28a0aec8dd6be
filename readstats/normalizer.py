"""Turn stored session and book rows into canonical values.

Rows come from different writers over time: some store durations in
seconds, older ones only in minutes, and optional fields may be missing or
hold junk. Nothing in here raises on bad input; a malformed field simply
contributes nothing to the aggregates.
"""

from __future__ import annotations

from datetime import datetime, timezone
import math
from typing import Any, Iterable, Mapping

from .models import INTENTS, STATUS_WANT_TO_READ, Book, Session

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ACTIVE_SESSION_ID = "active-session"


def _positive_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def _non_negative_int(value: Any) -> int:
    number = _positive_number(value)
    if number is None:
        return 0
    return int(number)


def session_seconds(raw: Mapping[str, Any]) -> int:
    seconds = _positive_number(raw.get("duration_seconds"))
    if seconds is not None:
        return int(round(seconds))

    minutes = _positive_number(raw.get("duration_minutes"))
    if minutes is not None:
        return int(round(minutes * 60))

    return 0


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_tags(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        pieces: Iterable[Any] = raw.split(",")
    elif isinstance(raw, Iterable):
        pieces = raw
    else:
        return ()

    clean: list[str] = []
    seen: set[str] = set()
    for piece in pieces:
        tag = str(piece).strip()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        clean.append(tag)
    return tuple(clean)


def normalize_intent(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    intent = value.strip().lower()
    return intent if intent in INTENTS else None


def _optional_id(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_session(raw: Mapping[str, Any]) -> Session:
    return Session(
        id=str(raw.get("id", "")),
        user_id=str(raw.get("user_id", "")),
        book_id=_optional_id(raw.get("book_id")),
        created_at=parse_timestamp(raw.get("created_at")) or EPOCH,
        duration_seconds=session_seconds(raw),
        pages_read=_non_negative_int(raw.get("pages_read")),
        intent=normalize_intent(raw.get("intent")),
    )


def normalize_book(raw: Mapping[str, Any]) -> Book:
    status = raw.get("status")
    return Book(
        id=str(raw.get("id", "")),
        user_id=str(raw.get("user_id", "")),
        title=str(raw.get("title") or ""),
        status=str(status).strip() if status else STATUS_WANT_TO_READ,
        tags=normalize_tags(raw.get("tags")),
        current_page=_non_negative_int(raw.get("current_page")),
        total_pages=_non_negative_int(raw.get("total_pages")),
        finished_at=parse_timestamp(raw.get("finished_at")),
        updated_at=parse_timestamp(raw.get("updated_at")),
    )


def as_session(item: Session | Mapping[str, Any]) -> Session:
    if isinstance(item, Session):
        return item
    return normalize_session(item)


def as_book(item: Book | Mapping[str, Any]) -> Book:
    if isinstance(item, Book):
        return item
    return normalize_book(item)


def active_session_row(active: Mapping[str, Any], now: datetime) -> dict[str, Any]:
    """Shape an in-progress session record like a stored session row.

    The row is dated at its last save, else its start, else ``now``. Elapsed
    seconds win over whole minutes the same way stored rows do.
    """
    row: dict[str, Any] = {
        "id": ACTIVE_SESSION_ID,
        "user_id": active.get("user_id", ""),
        "book_id": active.get("book_id"),
        "created_at": active.get("last_saved") or active.get("started_at") or now,
        "duration_minutes": active.get("duration_minutes"),
        "pages_read": active.get("pages_read"),
        "intent": active.get("intent"),
    }
    if active.get("elapsed_seconds") is not None:
        row["duration_seconds"] = active.get("elapsed_seconds")
    return row


def merge_active_session(
    sessions: Iterable[Session | Mapping[str, Any]],
    active: Mapping[str, Any] | None,
    now: datetime,
) -> list[Session]:
    merged = [as_session(item) for item in sessions]
    if active:
        merged.insert(0, normalize_session(active_session_row(active, now)))
    return merged
