from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

Intent = Literal["study", "relax", "research", "habit"]


class HealthOut(BaseModel):
    status: str = Field(default="ok")
    user_id: str
    cache_age_sec: float | None = None


class MetaOut(BaseModel):
    app: str
    version: str
    db_path: str
    state_path: str
    user_id: str
    platform: str


class SessionIn(BaseModel):
    book_id: str | None = None
    duration_seconds: int | None = Field(default=None, ge=0)
    duration_minutes: float | None = Field(default=None, ge=0)
    pages_read: int = Field(default=0, ge=0)
    intent: Intent | None = None
    created_at: datetime | None = None


class SessionOut(BaseModel):
    id: str
    user_id: str
    book_id: str | None = None
    created_at: datetime
    duration_seconds: int
    pages_read: int
    intent: str | None = None


class ActiveSessionIn(BaseModel):
    book_id: str | None = None
    elapsed_seconds: int | None = Field(default=None, ge=0)
    duration_minutes: float | None = Field(default=None, ge=0)
    pages_read: int | None = Field(default=None, ge=0)
    intent: Intent | None = None


class ActiveSessionOut(BaseModel):
    book_id: str | None = None
    elapsed_seconds: int | None = None
    duration_minutes: float | None = None
    pages_read: int | None = None
    intent: str | None = None
    started_at: datetime | None = None
    last_saved: datetime | None = None


class BookIn(BaseModel):
    title: str = ""
    status: str = "Want to Read"
    tags: list[str] = Field(default_factory=list)
    current_page: int = Field(default=0, ge=0)
    total_pages: int = Field(default=0, ge=0)
    finished_at: datetime | None = None


class BookOut(BaseModel):
    id: str
    user_id: str
    title: str
    status: str
    tags: list[str] = Field(default_factory=list)
    current_page: int
    total_pages: int
    finished_at: datetime | None = None
    updated_at: datetime | None = None


class TimeWindowsOut(BaseModel):
    today_sec: int
    week_sec: int
    month_sec: int
    lifetime_sec: int


class TagStatOut(BaseModel):
    time_sec: int
    pages: int
    sessions: int
    percentage: int


class IntentStatOut(BaseModel):
    time_sec: int
    sessions: int
    percentage: int


class BookCountsOut(BaseModel):
    finished: int
    reading: int
    abandoned: int


class SnapshotOut(BaseModel):
    computed_at: datetime
    windows: TimeWindowsOut
    session_count: int
    sessions_this_week: int
    today_sessions: int
    today_pages: int
    avg_session_sec: int
    longest_session_sec: int
    total_pages: int
    pages_per_day: int
    pages_per_hour: int
    books: BookCountsOut
    avg_time_per_book_sec: int
    tags: dict[str, TagStatOut]
    intents: dict[str, IntentStatOut]
    streak: int
    best_day: str | None = None
    best_time_of_day: str | None = None
    weekly_minutes: list[int]
    weekly_goal_minutes: int
    weekly_goal_percent: int


class StreakOut(BaseModel):
    streak: int


class MilestoneOut(BaseModel):
    key: str
    achieved_at: str


class ActivityOut(BaseModel):
    id: int
    type: str
    book_id: str | None = None
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class FileResult(BaseModel):
    path: str


class OutDirRequest(BaseModel):
    out_dir: str | None = None
