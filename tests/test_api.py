"""Tests for quizparse.api endpoints."""

from __future__ import annotations

import io
import unittest
from unittest.mock import MagicMock, patch

import docx
from fastapi.testclient import TestClient

from quizparse.api import app, get_pipeline
from quizparse.config import load_settings
from quizparse.pipeline import QuestionPipeline

STANDARD = "1. What is 2+2?\nA. 3\nB. 4\nC. 5\nD. 6\n答案：B"


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.pipeline = QuestionPipeline(
            load_settings(cache_file=None, ai_api_key=""),
            optical=MagicMock(),
        )
        app.dependency_overrides[get_pipeline] = lambda: self.pipeline
        self.addCleanup(app.dependency_overrides.clear)
        self.client = TestClient(app, raise_server_exceptions=False)


class TestHealthAndConfig(ApiTestCase):
    def test_health(self) -> None:
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"status": "ok"})

    def test_api_config(self) -> None:
        r = self.client.get("/api/config")
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertIn("ocr_confidence_threshold", data)
        self.assertIsInstance(data["max_upload_bytes"], int)
        self.assertFalse(data["ai_available"])
        self.assertIn("rule_based", data["strategies"])


class TestParseEndpoint(ApiTestCase):
    def test_parse_text(self) -> None:
        r = self.client.post("/api/parse", json={"text": STANDARD})
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["questions"][0]["correct_answer"], 1)
        self.assertEqual(data["metadata"]["parser"], "RuleBased")

    def test_quality_requested(self) -> None:
        r = self.client.post("/api/parse", json={"text": STANDARD, "evaluate_quality": True})
        self.assertEqual(r.status_code, 200)
        self.assertIn(r.json()["metadata"]["quality"]["grade"], {"A", "B", "C", "D", "F"})

    def test_blank_text_returns_400(self) -> None:
        r = self.client.post("/api/parse", json={"text": "   "})
        self.assertEqual(r.status_code, 400)
        self.assertIn("empty", r.json()["detail"].lower())

    def test_bad_preference_returns_422(self) -> None:
        r = self.client.post("/api/parse", json={"text": STANDARD, "preference": "fastest"})
        self.assertEqual(r.status_code, 422)

    def test_unparseable_text_reports_failure(self) -> None:
        r = self.client.post("/api/parse", json={"text": "No questions in here"})
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertFalse(data["success"])
        self.assertTrue(data["errors"])


class TestUpload(ApiTestCase):
    def test_text_upload(self) -> None:
        r = self.client.post(
            "/api/parse/upload",
            files={"file": ("q.txt", io.BytesIO(STANDARD.encode("utf-8")), "text/plain")},
            params={"use_cache": "false"},
        )
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["questions"][0]["title"], "What is 2+2?")

    def test_word_upload(self) -> None:
        document = docx.Document()
        for line in STANDARD.splitlines():
            document.add_paragraph(line)
        buf = io.BytesIO()
        document.save(buf)
        r = self.client.post(
            "/api/parse/upload",
            files={"file": ("quiz.docx", io.BytesIO(buf.getvalue()), "application/octet-stream")},
        )
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["metadata"]["strategy"], "document_text")

    def test_unsupported_upload_returns_400(self) -> None:
        r = self.client.post(
            "/api/parse/upload",
            files={"file": ("quiz.zip", io.BytesIO(b"PK\x03\x04"), "application/zip")},
        )
        self.assertEqual(r.status_code, 400)
        self.assertIn("unsupported file type", r.json()["detail"].lower())

    @patch("quizparse.api.MAX_UPLOAD_BYTES", 10)
    def test_oversized_upload_returns_413(self) -> None:
        r = self.client.post(
            "/api/parse/upload",
            files={"file": ("big.txt", io.BytesIO(b"x" * 200), "text/plain")},
        )
        self.assertEqual(r.status_code, 413)
        self.assertIn("too large", r.json()["detail"].lower())

    def test_empty_upload_returns_400(self) -> None:
        r = self.client.post(
            "/api/parse/upload",
            files={"file": ("empty.txt", io.BytesIO(b""), "text/plain")},
        )
        self.assertEqual(r.status_code, 400)
        self.assertIn("empty", r.json()["detail"].lower())


class TestAnalysisEndpoints(ApiTestCase):
    def test_detect_format(self) -> None:
        r = self.client.post("/api/detect-format", json={"text": STANDARD})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["format_id"], "standard_choice")

    def test_validate(self) -> None:
        body = {"questions": [{"title": "Q?", "options": ["a", "b"], "correct_answer": "A"}]}
        r = self.client.post("/api/validate", json=body)
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertTrue(data["is_valid"])
        self.assertEqual(data["fixed_questions"][0]["correct_answer"], 0)
        self.assertTrue(data["summary"].startswith("Validated 1 question(s)"))

    def test_quality(self) -> None:
        body = {"questions": [{
            "title": "Which planet is the largest?",
            "options": ["Mars", "Jupiter", "Venus"],
            "correct_answer": 1,
        }]}
        r = self.client.post("/api/quality", json=body)
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertIn("overall", data)
        self.assertIn("Question quality report", data["report"])


class TestServe(unittest.TestCase):
    @patch("uvicorn.run")
    def test_serve_runs_uvicorn(self, run: MagicMock) -> None:
        from quizparse.api import serve
        from quizparse.config import API_HOST, API_PORT

        serve()
        run.assert_called_once_with(app, host=API_HOST, port=API_PORT)


class TestCacheAndTelemetry(ApiTestCase):
    def test_cache_stats_and_clear(self) -> None:
        self.client.post("/api/parse", json={"text": STANDARD})
        self.client.post("/api/parse", json={"text": STANDARD})
        stats = self.client.get("/api/cache/stats").json()
        self.assertEqual(stats["size"], 1)
        self.assertEqual(stats["hits"], 1)

        r = self.client.delete("/api/cache")
        self.assertEqual(r.json(), {"cleared": True})
        self.assertEqual(self.client.get("/api/cache/stats").json()["size"], 0)

    def test_telemetry(self) -> None:
        self.client.post("/api/parse", json={"text": STANDARD, "use_cache": False})
        data = self.client.get("/api/telemetry", params={"limit": 5}).json()
        self.assertEqual(data["summary"]["total_calls"], 1)
        self.assertEqual(data["events"][0]["strategy"], "rule_based")


if __name__ == "__main__":
    unittest.main()
