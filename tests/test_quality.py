"""Tests for quizparse.quality (QualityScorer)."""

from __future__ import annotations

import unittest

from quizparse.quality import QualityScorer, grade_for
from quizparse.schema import DraftQuestion


def _complete(**overrides) -> DraftQuestion:
    fields = {
        "title": "What is the capital of France?",
        "options": ["Berlin", "Madrid", "Paris", "Rome"],
        "correct_answer": 2,
        "explanation": "Paris.",
        "difficulty": "easy",
        "tags": ["geography"],
    }
    fields.update(overrides)
    return DraftQuestion(**fields)


class TestGrades(unittest.TestCase):
    def test_bounds(self) -> None:
        self.assertEqual(grade_for(90), "A")
        self.assertEqual(grade_for(89.99), "B")
        self.assertEqual(grade_for(70), "C")
        self.assertEqual(grade_for(60), "D")
        self.assertEqual(grade_for(59.9), "F")


class TestQualityScorer(unittest.TestCase):
    def setUp(self) -> None:
        self.scorer = QualityScorer()

    def test_empty_batch(self) -> None:
        score = self.scorer.evaluate([])
        self.assertEqual(score.overall, 0.0)
        self.assertEqual(score.grade, "F")
        self.assertEqual(score.issues, ["No questions found"])

    def test_complete_question(self) -> None:
        score = self.scorer.evaluate([_complete()])
        self.assertEqual(score.breakdown.completeness, 100.0)
        self.assertEqual(score.breakdown.accuracy, 80.0)
        self.assertEqual(score.breakdown.consistency, 100.0)
        self.assertEqual(score.breakdown.clarity, 90.0)
        self.assertEqual(score.overall, 92.5)
        self.assertEqual(score.grade, "A")
        self.assertEqual(score.issues, [])
        self.assertTrue(any("small" in s for s in score.suggestions))

    def test_broken_question(self) -> None:
        q = DraftQuestion(title="Hi", options=["a"], correct_answer=5)
        score = self.scorer.evaluate([q])
        self.assertEqual(score.breakdown.completeness, 30.0)
        self.assertEqual(score.breakdown.accuracy, 30.0)
        self.assertEqual(score.breakdown.clarity, 55.0)
        self.assertEqual(score.overall, 53.75)
        self.assertEqual(score.grade, "F")
        self.assertIn("Question 1: title is very short", score.issues)
        self.assertIn("Question 1: fewer than 2 options", score.issues)
        self.assertIn("Check the correct answers and option lists.", score.suggestions)

    def test_consistency_penalties(self) -> None:
        batch = [
            _complete(options=["a", "b"], correct_answer=0),
            _complete(options=["a", "b", "c"], correct_answer=0, explanation=None),
            _complete(options=["a", "b", "c", "d"], correct_answer=0),
        ]
        issues: list[str] = []
        self.assertEqual(QualityScorer.consistency(batch, issues), 65.0)
        self.assertEqual(len(issues), 3)

    def test_consistency_varied_batch(self) -> None:
        batch = [_complete(difficulty="easy"), _complete(difficulty="hard")]
        self.assertEqual(QualityScorer.consistency(batch), 100.0)
        self.assertEqual(QualityScorer.consistency(batch[:1]), 100.0)

    def test_report(self) -> None:
        text = self.scorer.report(self.scorer.evaluate([_complete()]))
        self.assertTrue(text.startswith("Question quality report"))
        self.assertIn("grade A", text)
        self.assertIn("Suggestions:", text)


if __name__ == "__main__":
    unittest.main()
