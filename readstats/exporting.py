from __future__ import annotations

import csv
from pathlib import Path

from .db import ReadingDB
from .normalizer import session_seconds

COLUMNS = [
    "id",
    "created_at",
    "book_id",
    "duration_seconds",
    "duration_minutes",
    "normalized_seconds",
    "pages_read",
    "intent",
]


def export_sessions_csv(db: ReadingDB, user_id: str, out_dir: Path) -> Path:
    out_path = Path(out_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    csv_path = out_path / "readstats-sessions.csv"

    rows = db.list_session_rows(user_id)

    with csv_path.open("w", encoding="utf-8", newline="") as fp:
        writer = csv.writer(fp)
        writer.writerow(COLUMNS)
        for row in reversed(rows):
            writer.writerow(
                [
                    row["id"],
                    row["created_at"],
                    row["book_id"] or "",
                    "" if row["duration_seconds"] is None else row["duration_seconds"],
                    "" if row["duration_minutes"] is None else row["duration_minutes"],
                    session_seconds(row),
                    row["pages_read"],
                    row["intent"] or "",
                ]
            )

    return csv_path
