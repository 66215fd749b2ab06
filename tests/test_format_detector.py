"""Tests for quizparse.format_detector."""

from __future__ import annotations

import unittest

from quizparse.format_detector import (
    assess_text_quality,
    count_options,
    count_questions,
    detect_format,
    marker_consistency,
    preprocess_text,
    quick_detect,
)

STANDARD = "1. What is 2+2?\nA. 3\nB. 4\nC. 5\nD. 6\n答案：B"
NUMERIC = "1. Which is a programming language?\n1. JavaScript\n2. HTML\n3. CSS\n4. XML\n答案：1"
PARENTHESIS = (
    "1. What is CSS?\n(A) Style sheets\n(B) A database\n(C) A script\n(D) A protocol\n答案：A"
)


class TestTextFeatures(unittest.TestCase):
    def test_preprocess_collapses_blank_runs(self) -> None:
        self.assertEqual(preprocess_text("  a\r\n\r\n\r\n\r\nb  "), "a\n\nb")

    def test_counts(self) -> None:
        self.assertEqual(count_questions(STANDARD), 1)
        self.assertEqual(count_options(STANDARD), 4)
        self.assertEqual(count_questions("第1题 x\n第2题 y"), 2)

    def test_marker_consistency(self) -> None:
        self.assertEqual(marker_consistency("no markers here"), 0.5)
        self.assertEqual(marker_consistency("A. x B. y"), 1.0)
        self.assertAlmostEqual(marker_consistency(STANDARD), 0.9)

    def test_quality_penalties(self) -> None:
        self.assertEqual(assess_text_quality(""), 0.0)
        self.assertEqual(assess_text_quality("clean text."), 1.0)
        self.assertAlmostEqual(assess_text_quality("a    b    c"), 0.9)
        self.assertAlmostEqual(assess_text_quality("aaaaa b"), 0.9)


class TestDetectFormat(unittest.TestCase):
    def test_standard_choice(self) -> None:
        result = detect_format(STANDARD)
        self.assertEqual(result.format_id, "standard_choice")
        self.assertGreaterEqual(result.confidence, 0.8)
        self.assertTrue(result.metadata.has_answer_markers)
        self.assertEqual(result.metadata.detected_question_count, 1)
        self.assertLessEqual(len(result.alternatives), 3)
        self.assertNotIn("standard_choice", [a.format_id for a in result.alternatives])

    def test_numeric_choice(self) -> None:
        self.assertEqual(detect_format(NUMERIC).format_id, "numeric_choice")

    def test_parenthesis_choice(self) -> None:
        self.assertEqual(detect_format(PARENTHESIS).format_id, "parenthesis_choice")

    def test_missing_answer_is_recommended(self) -> None:
        result = detect_format("1. What is 2+2?\nA. 3\nB. 4\nC. 5\nD. 6")
        self.assertFalse(result.metadata.has_answer_markers)
        self.assertTrue(any("answer marker" in r for r in result.recommendations))

    def test_no_questions(self) -> None:
        result = detect_format("just some prose without any structure")
        self.assertEqual(result.metadata.detected_question_count, 0)
        self.assertLess(result.confidence, 0.1)

    def test_empty_text_does_not_raise(self) -> None:
        result = detect_format("")
        self.assertEqual(result.metadata.length, 0)

    def test_deterministic(self) -> None:
        self.assertEqual(detect_format(STANDARD), detect_format(STANDARD))


class TestQuickDetect(unittest.TestCase):
    def test_short_text_is_unknown(self) -> None:
        self.assertEqual(quick_detect("1. A."), "unknown")

    def test_guesses(self) -> None:
        self.assertEqual(quick_detect(STANDARD), "standard_choice")
        self.assertEqual(quick_detect("What is CSS?\n(A) x\n(B) y"), "parenthesis_choice")


if __name__ == "__main__":
    unittest.main()
