"""Score a batch of questions on completeness, accuracy, consistency and clarity.

Scores are 0..100 and purely informational; nothing in the pipeline gates
on them.
"""

from __future__ import annotations

from typing import Sequence

from .schema import DraftQuestion, QualityBreakdown, QualityScore

GRADE_BOUNDS = (("A", 90.0), ("B", 80.0), ("C", 70.0), ("D", 60.0))
SMALL_BATCH = 5


def _answer_valid(q: DraftQuestion) -> bool:
    answer = q.correct_answer
    return (
        isinstance(answer, int)
        and not isinstance(answer, bool)
        and 0 <= answer < len(q.options or [])
    )


def _has_explanation(q: DraftQuestion) -> bool:
    return isinstance(q.explanation, str) and bool(q.explanation.strip())


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def grade_for(score: float) -> str:
    for grade, bound in GRADE_BOUNDS:
        if score >= bound:
            return grade
    return "F"


class QualityScorer:
    """Batch quality scoring with human-readable suggestions."""

    def _score_question(self, index: int, q: DraftQuestion, issues: list[str]) -> tuple[float, float, float]:
        title = q.title.strip() if isinstance(q.title, str) else ""
        option_count = len(q.options or [])
        answer_ok = _answer_valid(q)
        explained = _has_explanation(q)
        label = f"Question {index + 1}"

        completeness = 0.0
        if title:
            completeness += 30
        if option_count >= 2:
            completeness += 25
        if answer_ok:
            completeness += 25
        if explained:
            completeness += 10
        if q.difficulty:
            completeness += 5
        if q.tags:
            completeness += 5

        accuracy = 80.0
        if not answer_ok:
            accuracy -= 30
            issues.append(f"{label}: answer index invalid or out of range")
        if option_count < 2:
            accuracy -= 20
            issues.append(f"{label}: fewer than 2 options")

        clarity = 70.0
        if len(title) < 10:
            clarity -= 15
            issues.append(f"{label}: title is very short")
        elif len(title) > 500:
            clarity -= 10
            issues.append(f"{label}: title is very long")
        if explained:
            clarity += 20
            if len(q.explanation) > 1000:
                clarity -= 5
                issues.append(f"{label}: explanation is very long")

        return _clamp(completeness), _clamp(accuracy), _clamp(clarity)

    @staticmethod
    def consistency(questions: Sequence[DraftQuestion], issues: list[str] | None = None) -> float:
        if len(questions) <= 1:
            return 100.0
        score = 100.0
        if len({len(q.options or []) for q in questions}) > 2:
            score -= 15
            if issues is not None:
                issues.append("Option counts vary widely across the batch")
        if len({q.difficulty or "unknown" for q in questions}) == 1:
            score -= 10
            if issues is not None:
                issues.append("Every question has the same difficulty")
        ratio = sum(1 for q in questions if _has_explanation(q)) / len(questions)
        if 0.1 < ratio < 0.9:
            score -= 10
            if issues is not None:
                issues.append("Only some questions have explanations")
        return _clamp(score)

    @staticmethod
    def _suggestions(questions: Sequence[DraftQuestion], breakdown: QualityBreakdown) -> list[str]:
        suggestions: list[str] = []
        if breakdown.completeness < 100:
            suggestions.append("Fill in missing explanations, difficulty levels or tags.")
        if breakdown.accuracy < 80:
            suggestions.append("Check the correct answers and option lists.")
        if breakdown.consistency < 100:
            suggestions.append("Keep option counts and explanation style uniform across the batch.")
        if breakdown.clarity < 70:
            suggestions.append("Rewrite very short or very long question stems.")
        if len(questions) < SMALL_BATCH:
            suggestions.append("The batch is small; add more questions for better practice coverage.")
        return suggestions

    def evaluate(self, questions: Sequence[DraftQuestion]) -> QualityScore:
        if not questions:
            return QualityScore(
                overall=0.0,
                issues=["No questions found"],
                suggestions=["Check that the input contains recognisable questions."],
                grade="F",
            )
        issues: list[str] = []
        per_question = [self._score_question(i, q, issues) for i, q in enumerate(questions)]
        count = len(per_question)
        breakdown = QualityBreakdown(
            completeness=round(sum(s[0] for s in per_question) / count, 2),
            accuracy=round(sum(s[1] for s in per_question) / count, 2),
            consistency=self.consistency(questions, issues),
            clarity=round(sum(s[2] for s in per_question) / count, 2),
        )
        overall = round(
            (breakdown.completeness + breakdown.accuracy + breakdown.consistency + breakdown.clarity) / 4,
            2,
        )
        return QualityScore(
            overall=overall,
            breakdown=breakdown,
            issues=issues,
            suggestions=self._suggestions(questions, breakdown),
            grade=grade_for(overall),
        )

    @staticmethod
    def report(score: QualityScore) -> str:
        lines = [
            "Question quality report",
            "=======================",
            f"Overall: {score.overall:.1f}/100 (grade {score.grade})",
            f"- completeness: {score.breakdown.completeness:.1f}",
            f"- accuracy:     {score.breakdown.accuracy:.1f}",
            f"- consistency:  {score.breakdown.consistency:.1f}",
            f"- clarity:      {score.breakdown.clarity:.1f}",
        ]
        if score.issues:
            lines.append("")
            lines.append(f"Issues ({len(score.issues)}):")
            lines.extend(f"{n}. {issue}" for n, issue in enumerate(score.issues, start=1))
        if score.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            lines.extend(f"{n}. {s}" for n, s in enumerate(score.suggestions, start=1))
        return "\n".join(lines)
