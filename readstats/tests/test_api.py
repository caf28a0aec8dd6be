from __future__ import annotations

from pathlib import Path
import unittest

from readstats.clock import FakeClock
from readstats.config import Settings
from readstats.tests.test_helpers import NOW, local_tmp_dir


class TestAPI(unittest.TestCase):
    def setUp(self) -> None:
        try:
            from fastapi.testclient import TestClient  # noqa: F401
            from readstats.api.app import create_app  # noqa: F401
        except Exception as exc:  # pragma: no cover
            self.skipTest(f"fastapi test client unavailable: {exc}")

    def _client(self, tmp: Path):
        from fastapi.testclient import TestClient

        from readstats.api.app import create_app

        settings = Settings(
            db_path=str(tmp / "data" / "readstats.sqlite"),
            state_path=str(tmp / "data" / "state.json"),
            user_id="u1",
        )
        return TestClient(create_app(settings=settings, clock=FakeClock(NOW)))

    def test_health_meta_and_openapi(self) -> None:
        with local_tmp_dir() as tmp:
            client = self._client(tmp)

            health = client.get("/api/v1/health")
            self.assertEqual(health.status_code, 200)
            self.assertEqual(health.json().get("status"), "ok")
            self.assertIsNone(health.json().get("cache_age_sec"))

            client.get("/api/v1/stats")
            self.assertEqual(client.get("/api/v1/health").json().get("cache_age_sec"), 0.0)

            meta = client.get("/api/v1/meta")
            self.assertEqual(meta.status_code, 200)
            self.assertEqual(meta.json().get("db_path"), str(tmp / "data" / "readstats.sqlite"))
            self.assertEqual(meta.json().get("user_id"), "u1")

            openapi = client.get("/openapi.json")
            self.assertEqual(openapi.status_code, 200)
            paths = openapi.json().get("paths", {})
            self.assertIn("/api/v1/stats", paths)
            self.assertIn("/api/v1/milestones", paths)

    def test_sessions_books_and_stats(self) -> None:
        with local_tmp_dir() as tmp:
            client = self._client(tmp)

            created = client.post(
                "/api/v1/sessions",
                json={"duration_minutes": 10, "pages_read": 120, "book_id": "b1", "intent": "relax"},
            )
            self.assertEqual(created.status_code, 201)
            self.assertEqual(created.json()["duration_seconds"], 600)

            listed = client.get("/api/v1/sessions")
            self.assertEqual(len(listed.json()), 1)

            stats = client.get("/api/v1/stats", params={"refresh": "true"})
            self.assertEqual(stats.status_code, 200)
            body = stats.json()
            self.assertEqual(body["total_pages"], 120)
            self.assertEqual(body["windows"]["today_sec"], 600)
            self.assertEqual(body["weekly_minutes"][0], 10)

            milestones = client.get("/api/v1/milestones")
            self.assertIn("pages_100", [item["key"] for item in milestones.json()])

            book = client.put(
                "/api/v1/books/b1",
                json={"title": "Dune", "status": "Completed", "tags": ["scifi"], "total_pages": 412},
            )
            self.assertEqual(book.status_code, 200)
            self.assertIsNotNone(book.json()["finished_at"])

            after = client.get("/api/v1/stats").json()
            self.assertEqual(after["books"]["finished"], 1)
            self.assertEqual(after["tags"]["scifi"]["time_sec"], 600)

            activities = client.get("/api/v1/activities").json()
            self.assertIn("FINISHED_BOOK", [item["type"] for item in activities])

            streak = client.get("/api/v1/stats/streak")
            self.assertEqual(streak.json(), {"streak": 1})

    def test_rejects_bad_input(self) -> None:
        with local_tmp_dir() as tmp:
            client = self._client(tmp)

            self.assertEqual(client.post("/api/v1/sessions", json={"pages_read": -1}).status_code, 422)
            self.assertEqual(client.post("/api/v1/sessions", json={"intent": "bored"}).status_code, 422)
            self.assertEqual(client.put("/api/v1/books/b1", json={"total_pages": -5}).status_code, 422)

    def test_active_session_lifecycle(self) -> None:
        with local_tmp_dir() as tmp:
            client = self._client(tmp)
            self.assertEqual(client.get("/api/v1/sessions/active").status_code, 404)

            put = client.put("/api/v1/sessions/active", json={"book_id": "b1", "elapsed_seconds": 240})
            self.assertEqual(put.status_code, 200)
            self.assertEqual(put.json()["book_id"], "b1")
            self.assertEqual(client.get("/api/v1/stats").json()["windows"]["today_sec"], 240)

            ended = client.post("/api/v1/sessions/active/end")
            self.assertEqual(ended.status_code, 200)
            self.assertEqual(ended.json()["duration_seconds"], 240)
            self.assertEqual(client.get("/api/v1/stats").json()["session_count"], 1)

            client.put("/api/v1/sessions/active", json={"elapsed_seconds": 30})
            self.assertEqual(client.delete("/api/v1/sessions/active").status_code, 204)
            self.assertEqual(client.delete("/api/v1/sessions/active").status_code, 404)
            self.assertEqual(client.put("/api/v1/sessions/active", json={"elapsed_seconds": -1}).status_code, 422)

    def test_report_written(self) -> None:
        with local_tmp_dir() as tmp:
            client = self._client(tmp)
            client.post("/api/v1/sessions", json={"duration_seconds": 1800, "pages_read": 20})

            res = client.post("/api/v1/report", json={"out_dir": str(tmp / "out")})
            self.assertEqual(res.status_code, 200)
            self.assertTrue(Path(res.json()["path"]).exists())


if __name__ == "__main__":
    unittest.main()
