"""Tests for quizparse.prompt_builder."""

from __future__ import annotations

import unittest

from quizparse.prompt_builder import (
    analyze_input,
    build_prompt,
    build_recovery_prompt,
    detect_language,
    has_ocr_errors,
)
from quizparse.schema import FormatAssessment

SINGLE = "1. What is 2+2?\nA. 3\nB. 4\nC. 5\nD. 6\n答案：B"
BATCH = "1. First?\nA. x\nB. y\n2. Second?\nA. x\nB. y"


def _assessment(format_id: str = "standard_choice", confidence: float = 0.9) -> FormatAssessment:
    return FormatAssessment(format_id=format_id, confidence=confidence)


class TestAnalysis(unittest.TestCase):
    def test_language(self) -> None:
        self.assertEqual(detect_language("Which of these is a mammal"), "en")
        self.assertEqual(detect_language("下列哪个选项是正确的"), "zh")
        self.assertEqual(detect_language(""), "mixed")

    def test_ocr_errors(self) -> None:
        self.assertTrue(has_ocr_errors("High Tech M0dern Language"))
        self.assertTrue(has_ocr_errors("1O5 apples"))
        self.assertFalse(has_ocr_errors("What is 2+2?"))

    def test_analyze_counts_numbering(self) -> None:
        analysis = analyze_input(BATCH)
        self.assertTrue(analysis.is_multi_question)
        self.assertEqual(analysis.estimated_questions, 2)
        self.assertEqual(analysis.format_confidence, 1.0)
        self.assertFalse(analyze_input(SINGLE).is_multi_question)


class TestBuildPrompt(unittest.TestCase):
    def test_single_question(self) -> None:
        prompt = build_prompt(SINGLE, _assessment())
        self.assertEqual(prompt.template, "standard_question")
        self.assertEqual(prompt.temperature, 0.1)
        self.assertEqual(prompt.max_tokens, 1000)
        self.assertIn(SINGLE, prompt.user_prompt)
        self.assertIn("Example 1 input", prompt.user_prompt)
        self.assertNotIn("Hints:", prompt.user_prompt)
        self.assertIn("JSON array", prompt.system_prompt)

    def test_batch(self) -> None:
        prompt = build_prompt(BATCH)
        self.assertEqual(prompt.template, "batch_question")
        self.assertEqual(prompt.temperature, 0.05)
        self.assertEqual(prompt.max_tokens, 1300)
        self.assertIn("batch2", prompt.strategy)

    def test_ocr_noise_selects_repair(self) -> None:
        prompt = build_prompt(SINGLE, _assessment(), ocr_noise=True)
        self.assertEqual(prompt.template, "ocr_repair")
        self.assertEqual(prompt.temperature, 0.15)
        self.assertIn("ocr", prompt.strategy)

    def test_ocr_format_selects_repair(self) -> None:
        prompt = build_prompt(SINGLE, _assessment("ocr_format", 0.9))
        self.assertEqual(prompt.template, "ocr_repair")

    def test_low_confidence_adds_hints(self) -> None:
        prompt = build_prompt(SINGLE, _assessment(confidence=0.5))
        self.assertIn("Hints:", prompt.user_prompt)
        self.assertIn("irregular", prompt.system_prompt)
        self.assertEqual(prompt.temperature, 0.2)

    def test_long_single_question_gets_one_example(self) -> None:
        text = "1. " + "word " * 250 + "\nA. x\nB. y"
        prompt = build_prompt(text, _assessment())
        self.assertIn("examples1", prompt.strategy)
        self.assertNotIn("Example 2 input", prompt.user_prompt)

    def test_deterministic(self) -> None:
        self.assertEqual(build_prompt(BATCH), build_prompt(BATCH))


class TestRecoveryPrompt(unittest.TestCase):
    def test_recovery_settings(self) -> None:
        prompt = build_recovery_prompt(SINGLE, "Sure! Here you go", "No JSON array found")
        self.assertEqual(prompt.template, "error_recovery")
        self.assertEqual(prompt.temperature, 0.05)
        self.assertEqual(prompt.max_tokens, 1000)
        self.assertIn("Sure! Here you go", prompt.user_prompt)
        self.assertIn("No JSON array found", prompt.user_prompt)

    def test_long_failed_reply_is_truncated(self) -> None:
        prompt = build_recovery_prompt(SINGLE, "x" * 3000, "bad")
        self.assertIn("x" * 2000 + "...", prompt.user_prompt)
        self.assertNotIn("x" * 2001, prompt.user_prompt)


if __name__ == "__main__":
    unittest.main()
