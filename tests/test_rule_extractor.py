"""Tests for quizparse.rule_extractor."""

from __future__ import annotations

import re
import unittest

from quizparse.format_detector import detect_format
from quizparse.rule_extractor import ExtractionRule, RuleExtractor, is_plausible
from quizparse.schema import DraftQuestion, RawInput

STANDARD = "1. What is 2+2?\nA. 3\nB. 4\nC. 5\nD. 6\n答案：B"
TWO_QUESTIONS = (
    "1. Which is a prime?\nA. 4\nB. 6\nC. 7\nD. 9\n正确答案：C\n解析：7 has no divisors.\n"
    "2. Which colour is the sky?\nA. Blue\nB. Green\nAnswer: A"
)


class TestRuleExtractor(unittest.TestCase):
    def setUp(self) -> None:
        self.extractor = RuleExtractor()

    def test_standard_question(self) -> None:
        questions = self.extractor.extract(STANDARD)
        self.assertEqual(len(questions), 1)
        q = questions[0]
        self.assertEqual(q.title, "What is 2+2?")
        self.assertEqual(q.options, ["3", "4", "5", "6"])
        self.assertEqual(q.correct_answer, 1)
        self.assertEqual(q.difficulty, "medium")

    def test_answer_and_explanation_markers(self) -> None:
        questions = self.extractor.extract(TWO_QUESTIONS)
        self.assertEqual(len(questions), 2)
        self.assertEqual(questions[0].correct_answer, 2)
        self.assertEqual(questions[0].explanation, "7 has no divisors.")
        self.assertEqual(questions[1].title, "Which colour is the sky?")
        self.assertEqual(questions[1].correct_answer, 0)
        self.assertIsNone(questions[1].explanation)

    def test_missing_answer_stays_none(self) -> None:
        questions = self.extractor.extract("1. Pick one\nA. x\nB. y")
        self.assertEqual(len(questions), 1)
        self.assertIsNone(questions[0].correct_answer)

    def test_numeral_answer_maps_to_index(self) -> None:
        text = "1. Which is a programming language?\n1. JavaScript\n2. HTML\n3. CSS\n4. XML\n答案：2"
        questions = self.extractor.extract(text)
        self.assertEqual(len(questions), 1)
        self.assertEqual(questions[0].options, ["JavaScript", "HTML", "CSS", "XML"])
        self.assertEqual(questions[0].correct_answer, 1)

    def test_parenthesised_options(self) -> None:
        text = "What is CSS?\n(A) Style sheets\n(B) A database\n(C) A script\n参考答案：A"
        questions = self.extractor.extract(text)
        self.assertEqual(len(questions), 1)
        self.assertEqual(questions[0].options, ["Style sheets", "A database", "A script"])
        self.assertEqual(questions[0].correct_answer, 0)

    def test_other_rules_run_when_selected_ones_find_nothing(self) -> None:
        text = "What is CSS?\n(A) Style sheets\n(B) A database"
        assessment = detect_format("1. placeholder\nA. x\nB. y\n答案：A")
        self.assertEqual(assessment.format_id, "standard_choice")
        questions = self.extractor.extract(text, assessment)
        self.assertEqual(len(questions), 1)

    def test_blank_lines_between_options(self) -> None:
        text = "1. Copied question?\n\nA. one\n\nB. two\n\n答案：B"
        questions = self.extractor.extract(text)
        self.assertEqual(len(questions), 1)
        self.assertEqual(questions[0].options, ["one", "two"])
        self.assertEqual(questions[0].correct_answer, 1)

    def test_max_questions_cap(self) -> None:
        text = "\n".join(f"{i}. Question {i}?\nA. x\nB. y" for i in range(1, 6))
        self.assertEqual(len(RuleExtractor(max_questions=3).extract(text)), 3)

    def test_no_match(self) -> None:
        self.assertEqual(self.extractor.extract("nothing to see here"), [])

    def test_add_rule_rejects_duplicates(self) -> None:
        rule = self.extractor.rules[0]
        with self.assertRaises(ValueError):
            self.extractor.add_rule(rule)

    def test_custom_rule(self) -> None:
        pattern = re.compile(r"^Q: (?P<title>[^\n]+)\nOPTS: (?P<options>[^\n]+)$", re.MULTILINE)

        def extractor(match: re.Match) -> DraftQuestion:
            return DraftQuestion(
                title=match.group("title"),
                options=[o.strip() for o in match.group("options").split("|")],
            )

        custom = RuleExtractor(rules=())
        custom.add_rule(ExtractionRule("pipe", pattern, extractor, priority=1, formats=("pipe",)))
        questions = custom.extract("Q: Best editor?\nOPTS: vim | emacs")
        self.assertEqual(questions[0].options, ["vim", "emacs"])

    def test_is_plausible(self) -> None:
        self.assertFalse(is_plausible(DraftQuestion(title=" ", options=["a", "b"])))
        self.assertFalse(is_plausible(DraftQuestion(title="t", options=["a"])))
        self.assertTrue(is_plausible(DraftQuestion(title="t", options=["a", "b"])))


class TestRuleExtractorParse(unittest.TestCase):
    def test_parse_text(self) -> None:
        result = RuleExtractor().parse(RawInput.from_text(STANDARD))
        self.assertTrue(result.success)
        self.assertEqual(result.metadata.parser, "RuleBased")
        self.assertEqual(result.metadata.strategy, "rule_based")
        self.assertEqual(result.metadata.detected_format, "standard_choice")
        self.assertIn("standard_choice", result.metadata.rules_used)
        self.assertGreaterEqual(result.confidence, 0.8)

    def test_parse_no_match_reports_error(self) -> None:
        result = RuleExtractor().parse(RawInput.from_text("free prose"))
        self.assertFalse(result.success)
        self.assertEqual(result.confidence, 0.0)
        self.assertTrue(result.errors)

    def test_parse_rejects_binary_input(self) -> None:
        result = RuleExtractor().parse(RawInput.from_bytes(b"\x89PNG", "image"))
        self.assertFalse(result.success)
        self.assertIn("image", result.errors[0])


if __name__ == "__main__":
    unittest.main()
