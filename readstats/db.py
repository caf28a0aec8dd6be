from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import os
from pathlib import Path
import sqlite3
from typing import Any, Mapping
import uuid

from .models import Book, Session
from .normalizer import normalize_book, normalize_session, normalize_tags, parse_timestamp


def _to_utc_text(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S")


def _from_utc_text(text: str) -> datetime:
    return datetime.strptime(text, "%Y-%m-%dT%H:%M:%S").replace(tzinfo=timezone.utc)


def _optional_utc_text(value: Any) -> str | None:
    parsed = parse_timestamp(value)
    return _to_utc_text(parsed) if parsed is not None else None


def _numeric_or_none(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


@dataclass(frozen=True)
class Activity:
    id: int
    user_id: str
    type: str
    book_id: str | None
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


class ReadingDB:
    def __init__(self, db_path: Path, journal_mode: str | None = None) -> None:
        self.db_path = Path(db_path)
        raw_mode = (journal_mode or os.getenv("READSTATS_JOURNAL_MODE") or "MEMORY").strip()
        self.journal_mode = raw_mode.upper() if raw_mode else "MEMORY"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        self._apply_journal_mode(conn)
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _apply_journal_mode(self, conn: sqlite3.Connection) -> None:
        try:
            conn.execute(f"PRAGMA journal_mode={self.journal_mode}")
        except sqlite3.OperationalError:
            conn.execute("PRAGMA journal_mode=MEMORY")

    def init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    book_id TEXT,
                    created_at TEXT NOT NULL,
                    duration_seconds REAL,
                    duration_minutes REAL,
                    pages_read INTEGER NOT NULL DEFAULT 0 CHECK (pages_read >= 0),
                    intent TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS books (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'Want to Read',
                    tags TEXT NOT NULL DEFAULT '',
                    current_page INTEGER NOT NULL DEFAULT 0,
                    total_pages INTEGER NOT NULL DEFAULT 0,
                    finished_at TEXT,
                    updated_at TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS activities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    book_id TEXT,
                    content TEXT NOT NULL DEFAULT '',
                    metadata TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_sessions_user_created
                ON sessions(user_id, created_at)
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_books_user
                ON books(user_id)
                """
            )
            conn.commit()

    def add_session(self, raw: Mapping[str, Any]) -> int:
        user_id = str(raw.get("user_id") or "").strip()
        if not user_id:
            raise ValueError("session requires a user_id")
        created_at = parse_timestamp(raw.get("created_at")) or datetime.now(tz=timezone.utc)
        pages = raw.get("pages_read") or 0
        if isinstance(pages, bool) or not isinstance(pages, int) or pages < 0:
            raise ValueError(f"pages_read must be a non-negative integer: {pages!r}")
        book_id = raw.get("book_id")

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sessions (
                    user_id,
                    book_id,
                    created_at,
                    duration_seconds,
                    duration_minutes,
                    pages_read,
                    intent
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    str(book_id).strip() or None if book_id is not None else None,
                    _to_utc_text(created_at),
                    _numeric_or_none(raw.get("duration_seconds")),
                    _numeric_or_none(raw.get("duration_minutes")),
                    pages,
                    (str(raw.get("intent") or "").strip().lower() or None),
                ),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def list_session_rows(self, user_id: str) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, user_id, book_id, created_at, duration_seconds, duration_minutes, pages_read, intent "
                "FROM sessions "
                "WHERE user_id = ? "
                "ORDER BY created_at DESC, id DESC",
                (user_id,),
            ).fetchall()

        items: list[dict[str, Any]] = []
        for row in rows:
            item = dict(row)
            item["id"] = str(item["id"])
            item["created_at"] = _from_utc_text(row["created_at"]).isoformat()
            items.append(item)
        return items

    def list_sessions(self, user_id: str) -> list[Session]:
        return [normalize_session(row) for row in self.list_session_rows(user_id)]

    def upsert_book(self, raw: Mapping[str, Any]) -> Book:
        user_id = str(raw.get("user_id") or "").strip()
        if not user_id:
            raise ValueError("book requires a user_id")
        book_id = str(raw.get("id") or "").strip() or uuid.uuid4().hex
        updated_at = parse_timestamp(raw.get("updated_at")) or datetime.now(tz=timezone.utc)
        book = normalize_book({**raw, "id": book_id, "user_id": user_id, "updated_at": updated_at})

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO books (
                    id, user_id, title, status, tags, current_page, total_pages, finished_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    user_id = excluded.user_id,
                    title = excluded.title,
                    status = excluded.status,
                    tags = excluded.tags,
                    current_page = excluded.current_page,
                    total_pages = excluded.total_pages,
                    finished_at = excluded.finished_at,
                    updated_at = excluded.updated_at
                """,
                (
                    book.id,
                    book.user_id,
                    book.title,
                    book.status,
                    ",".join(book.tags),
                    book.current_page,
                    book.total_pages,
                    _optional_utc_text(book.finished_at),
                    _optional_utc_text(book.updated_at),
                ),
            )
            conn.commit()

        loaded = self.get_book(book.id)
        if loaded is None:
            raise RuntimeError(f"book {book.id} vanished after upsert")
        return loaded

    def get_book(self, book_id: str) -> Book | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        return self._row_to_book(row) if row is not None else None

    def list_books(self, user_id: str) -> list[Book]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM books WHERE user_id = ? ORDER BY title ASC, id ASC",
                (user_id,),
            ).fetchall()
        return [self._row_to_book(row) for row in rows]

    def log_activity(
        self,
        type: str,
        user_id: str,
        content: str = "",
        metadata: Mapping[str, Any] | None = None,
        book_id: str | None = None,
        created_at: datetime | None = None,
    ) -> Activity:
        stamp = created_at or datetime.now(tz=timezone.utc)
        meta = dict(metadata or {})
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO activities (user_id, type, book_id, content, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    type,
                    book_id,
                    content,
                    json.dumps(meta, ensure_ascii=False, sort_keys=True),
                    _to_utc_text(stamp),
                ),
            )
            conn.commit()
            activity_id = int(cursor.lastrowid)
        return Activity(
            id=activity_id,
            user_id=user_id,
            type=type,
            book_id=book_id,
            content=content,
            metadata=meta,
            created_at=_from_utc_text(_to_utc_text(stamp)),
        )

    def list_activities(self, user_id: str, limit: int = 20) -> list[Activity]:
        safe_limit = max(1, min(500, int(limit)))
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, user_id, type, book_id, content, metadata, created_at "
                "FROM activities "
                "WHERE user_id = ? "
                "ORDER BY created_at DESC, id DESC "
                "LIMIT ?",
                (user_id, safe_limit),
            ).fetchall()

        return [
            Activity(
                id=int(row["id"]),
                user_id=row["user_id"],
                type=row["type"],
                book_id=row["book_id"],
                content=row["content"] or "",
                metadata=json.loads(row["metadata"] or "{}"),
                created_at=_from_utc_text(row["created_at"]),
            )
            for row in rows
        ]

    @staticmethod
    def _row_to_book(row: sqlite3.Row) -> Book:
        data = dict(row)
        data["tags"] = normalize_tags(data.get("tags") or "")
        for key in ("finished_at", "updated_at"):
            if data.get(key):
                data[key] = _from_utc_text(data[key])
        return normalize_book(data)


def default_db_path() -> Path:
    return Path(__file__).resolve().parent / "data" / "readstats.sqlite"
