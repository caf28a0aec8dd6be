from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

INTENTS = ("study", "relax", "research", "habit")

# Tags that mirror a book's status rather than describe its content.
STATUS_TAGS = frozenset({"reading_now", "want_to_read", "finished", "abandoned", "re_reading"})

STATUS_COMPLETED = "Completed"
STATUS_READING = "Reading"
STATUS_ABANDONED = "Abandoned"
STATUS_WANT_TO_READ = "Want to Read"


@dataclass(frozen=True)
class Session:
    id: str
    user_id: str
    book_id: str | None
    created_at: datetime
    duration_seconds: int
    pages_read: int = 0
    intent: str | None = None


@dataclass(frozen=True)
class Book:
    id: str
    user_id: str
    title: str = ""
    status: str = STATUS_WANT_TO_READ
    tags: tuple[str, ...] = field(default_factory=tuple)
    current_page: int = 0
    total_pages: int = 0
    finished_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_finished(self) -> bool:
        return self.status == STATUS_COMPLETED or "finished" in self.tags

    @property
    def is_reading(self) -> bool:
        return self.status == STATUS_READING or "reading_now" in self.tags

    @property
    def is_abandoned(self) -> bool:
        return self.status == STATUS_ABANDONED or "abandoned" in self.tags

    @property
    def content_tags(self) -> tuple[str, ...]:
        return tuple(tag for tag in self.tags if tag not in STATUS_TAGS)

    @property
    def completed_on(self) -> datetime | None:
        return self.finished_at or self.updated_at
