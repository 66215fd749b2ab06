"""Tests for quizparse.config."""

from __future__ import annotations

import os
import unittest
from unittest.mock import patch


class TestEnvHelpers(unittest.TestCase):
    def test_env_int_clamps_and_falls_back(self) -> None:
        from quizparse.config import _env_int

        with patch.dict(os.environ, {"QP_TEST_INT": "5000"}):
            self.assertEqual(_env_int("QP_TEST_INT", 10, lo=1, hi=100), 100)
        with patch.dict(os.environ, {"QP_TEST_INT": "not_a_number"}):
            self.assertEqual(_env_int("QP_TEST_INT", 10), 10)
        os.environ.pop("QP_TEST_INT", None)
        self.assertEqual(_env_int("QP_TEST_INT", 7), 7)

    def test_env_bool(self) -> None:
        from quizparse.config import _env_bool

        with patch.dict(os.environ, {"QP_TEST_BOOL": "yes"}):
            self.assertTrue(_env_bool("QP_TEST_BOOL"))
        with patch.dict(os.environ, {"QP_TEST_BOOL": "0"}):
            self.assertFalse(_env_bool("QP_TEST_BOOL", default=True))
        with patch.dict(os.environ, {"QP_TEST_BOOL": "  "}):
            self.assertTrue(_env_bool("QP_TEST_BOOL", default=True))

    def test_env_float(self) -> None:
        from quizparse.config import _env_float

        with patch.dict(os.environ, {"QP_TEST_FLOAT": "0.5"}):
            self.assertEqual(_env_float("QP_TEST_FLOAT", 0.1, hi=2.0), 0.5)
        with patch.dict(os.environ, {"QP_TEST_FLOAT": "-3"}):
            self.assertEqual(_env_float("QP_TEST_FLOAT", 0.1), 0.0)


class TestSettings(unittest.TestCase):
    def test_defaults_make_sense(self) -> None:
        from quizparse.config import (
            CACHE_MAX_ENTRIES,
            CACHE_TTL_SECONDS,
            DOCUMENT_MAX_PAGES,
            MAX_UPLOAD_BYTES,
            OCR_CONFIDENCE_THRESHOLD,
        )
        self.assertTrue(0 <= OCR_CONFIDENCE_THRESHOLD <= 100)
        self.assertGreater(DOCUMENT_MAX_PAGES, 0)
        self.assertGreater(CACHE_MAX_ENTRIES, 0)
        self.assertGreater(CACHE_TTL_SECONDS, 0)
        self.assertGreater(MAX_UPLOAD_BYTES, 0)

    def test_overrides_do_not_mutate_original(self) -> None:
        from quizparse.config import load_settings

        base = load_settings()
        changed = base.with_overrides(ocr_confidence_threshold=50, ai_enabled=False)
        self.assertEqual(changed.ocr_confidence_threshold, 50)
        self.assertFalse(changed.ai_enabled)
        self.assertNotEqual(base, changed)

    def test_load_settings_with_overrides(self) -> None:
        from quizparse.config import load_settings

        s = load_settings(cache_max_entries=3)
        self.assertEqual(s.cache_max_entries, 3)

    def test_log_startup_config_runs(self) -> None:
        from quizparse.config import log_startup_config

        with self.assertLogs("quizparse.config", level="INFO") as logs:
            log_startup_config()
        self.assertIn("OCR_CONFIDENCE_THRESHOLD", logs.output[0])


if __name__ == "__main__":
    unittest.main()
