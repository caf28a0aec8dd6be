from __future__ import annotations

from datetime import timedelta
import unittest

from readstats.metrics import compute_snapshot
from readstats.reporting import format_duration, format_duration_detailed, generate_report, render_report
from readstats.tests.test_helpers import NOW, local_tmp_dir, raw_session


class TestFormatting(unittest.TestCase):
    def test_format_duration(self) -> None:
        self.assertEqual(format_duration(5400), "1h 30m")
        self.assertEqual(format_duration(2700), "45m")
        self.assertEqual(format_duration(-10), "0m")

    def test_format_duration_detailed(self) -> None:
        self.assertEqual(format_duration_detailed(86400 + 2 * 3600 + 3 * 60), "1d 2h 3m")
        self.assertEqual(format_duration_detailed(7200), "2h")
        self.assertEqual(format_duration_detailed(0), "0m")


class TestReport(unittest.TestCase):
    def test_report_sections(self) -> None:
        sessions = [
            raw_session(NOW - timedelta(hours=2), seconds=1800, pages=30, book_id="b1", intent="study"),
        ]
        books = [{"id": "b1", "user_id": "u1", "title": "SICP", "status": "Reading", "tags": ["cs"]}]
        snapshot = compute_snapshot(sessions, books, NOW)

        text = render_report(snapshot)
        self.assertTrue(text.startswith("# Reading stats 2026-02-13"))
        for heading in ("## Time", "## Pages", "## Books", "## Tags", "## Intent", "## Habits"):
            self.assertIn(heading, text)
        self.assertIn("| cs | 30m | 30 | 1 | 100% |", text)
        self.assertIn("| today | 30 |", text)

    def test_empty_report(self) -> None:
        text = render_report(compute_snapshot([], [], NOW))
        self.assertIn("No tagged reading yet.", text)
        self.assertIn("- Best day: -", text)

    def test_generate_report_writes_file(self) -> None:
        with local_tmp_dir() as tmp:
            path = generate_report(compute_snapshot([], [], NOW), tmp / "out")
            self.assertEqual(path.name, "reading-stats-2026-02-13.md")
            self.assertTrue(path.read_text(encoding="utf-8").startswith("# Reading stats"))


if __name__ == "__main__":
    unittest.main()
