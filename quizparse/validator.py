"""Validate extracted question drafts and repair what can be repaired.

Each question goes through five rule groups in order (title, options,
answer, content, metadata). Repairs are recorded as issues with
``auto_fixed=True``. A question that still has an error afterwards is
irreparable: it is left out of ``fixed_questions`` and counted as invalid.

Validated output is a fixed point: running it through again yields no
further repairs.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from .schema import (
    DraftQuestion,
    ValidationIssue,
    ValidationOutcome,
    ValidationStatistics,
)

logger = logging.getLogger(__name__)

MIN_TITLE_CHARS = 5
MAX_TITLE_CHARS = 500
MIN_OPTIONS = 2
MAX_OPTIONS = 6
MAX_OPTION_CHARS = 200
MAX_EXPLANATION_CHARS = 1000
DIFFICULTIES = ("easy", "medium", "hard")
DEFAULT_DIFFICULTY = "medium"

ERROR_PENALTY = 0.3
WARNING_PENALTY = 0.1

# "1.", "12)", "Q3.", "(4)", "第5题", optionally preceded by OCR debris
_TITLE_NUMBERING_RE = re.compile(
    r"^[\s|~*_#>•·]*(?:(?:Q\.?\s*)?\d{1,3}\s*[.)、．）](?!\d)|[(（]\d{1,3}[)）]|第\s*\d{1,3}\s*题[.、：:]?)\s*"
)
_TITLE_GARBLE_RE = re.compile(r"^[|~*_#>•·]+\s*")
_OPTION_PREFIX_RE = re.compile(r"^\s*(?:([A-Ha-h])\s*[.、．:：)）]|[(（]([A-Ha-h])[)）])\s*")
_NUMERAL_RE = re.compile(r"^\d{1,2}$")


class _QuestionCheck:
    """Working state for one question while the rules run."""

    def __init__(self, index: int, question: DraftQuestion):
        self.index = index
        self.question = question.model_copy(deep=True)
        self.issues: list[ValidationIssue] = []
        self.irreparable = False

    def add(self, code: str, severity: str, field: str, message: str, fixed: bool = False) -> None:
        self.issues.append(ValidationIssue(
            type=code,
            severity=severity,
            field=field,
            message=message,
            auto_fixed=fixed,
            question_index=self.index,
        ))

    def fail(self, code: str, field: str, message: str) -> None:
        self.add(code, "error", field, message)
        self.irreparable = True

    @property
    def fixed(self) -> bool:
        return any(issue.auto_fixed for issue in self.issues)

    def confidence(self) -> float:
        errors = sum(1 for i in self.issues if i.severity == "error")
        warnings = sum(1 for i in self.issues if i.severity == "warning")
        return max(0.0, 1.0 - ERROR_PENALTY * errors - WARNING_PENALTY * warnings)


def _as_option_text(option: Any) -> str:
    if option is None:
        return ""
    if isinstance(option, dict):
        option = option.get("text", option.get("content", ""))
    return str(option).strip()


def _strip_positional_prefixes(options: list[str]) -> tuple[list[str], int]:
    """Drop "A." / "(B)" prefixes whose letter matches the option position."""
    stripped = 0
    result: list[str] = []
    for position, option in enumerate(options):
        text = option
        # repeated: "A. A. x" becomes "x"
        while True:
            match = _OPTION_PREFIX_RE.match(text)
            letter = (match.group(1) or match.group(2)).upper() if match else None
            if letter is None or ord(letter) - ord("A") != position or not text[match.end():].strip():
                break
            text = text[match.end():].strip()
        result.append(text)
        stripped += text != option
    return result, stripped


def _strip_title_prefixes(title: str) -> str:
    """Remove stacked numbering ("1. 2. Q") and debris until nothing changes."""
    while True:
        cleaned = _TITLE_NUMBERING_RE.sub("", title, count=1)
        cleaned = _TITLE_GARBLE_RE.sub("", cleaned).strip()
        if cleaned == title:
            return cleaned
        title = cleaned


def answer_from_string(value: str, option_count: int) -> int | None:
    """Letter ("C") or one-based numeral ("3") to a zero-based index."""
    token = value.strip().upper()
    if len(token) == 1 and "A" <= token <= "Z":
        index = ord(token) - ord("A")
    elif _NUMERAL_RE.match(token):
        index = int(token) - 1
    else:
        return None
    return index if 0 <= index < option_count else None


class ResultValidator:
    """Rule-driven validator with auto-repair for question drafts."""

    # ------------------------------------------------------------------
    # Rule groups
    # ------------------------------------------------------------------
    def _check_title(self, check: _QuestionCheck) -> None:
        q = check.question
        if not isinstance(q.title, str) or not q.title.strip():
            check.fail("TITLE_EMPTY", "title", "Question title is empty.")
            return
        title = q.title.strip()
        cleaned = _strip_title_prefixes(title)
        if cleaned != title:
            if not cleaned:
                check.fail("TITLE_EMPTY", "title", "Question title is only numbering.")
                return
            check.add("TITLE_NUMBERING", "info", "title",
                      f"Removed leading numbering '{title[:len(title) - len(cleaned)].strip()}'.",
                      fixed=True)
        q.title = cleaned
        if len(cleaned) < MIN_TITLE_CHARS:
            check.add("TITLE_TOO_SHORT", "warning", "title",
                      f"Title shorter than {MIN_TITLE_CHARS} characters.")
        elif len(cleaned) > MAX_TITLE_CHARS:
            check.add("TITLE_TOO_LONG", "warning", "title",
                      f"Title longer than {MAX_TITLE_CHARS} characters.")

    def _check_options(self, check: _QuestionCheck) -> None:
        q = check.question
        if not isinstance(q.options, list):
            check.fail("OPTIONS_MISSING", "options", "Options are missing.")
            return
        texts = [_as_option_text(o) for o in q.options]
        non_empty = [t for t in texts if t]
        if len(non_empty) < len(texts) and non_empty:
            check.add("OPTIONS_EMPTY", "warning", "options",
                      f"Dropped {len(texts) - len(non_empty)} empty option(s).", fixed=True)
        options, stripped = _strip_positional_prefixes(non_empty)
        if stripped:
            check.add("OPTIONS_PREFIX", "info", "options",
                      f"Removed letter prefixes from {stripped} option(s).", fixed=True)
        q.options = options

        if not options:
            check.fail("OPTIONS_MISSING", "options", "Question has no options.")
            return
        if len(options) < MIN_OPTIONS:
            check.fail("OPTIONS_TOO_FEW", "options",
                       f"Only {len(options)} option(s); at least {MIN_OPTIONS} required.")
            return
        if len(options) > MAX_OPTIONS:
            check.add("OPTIONS_TOO_MANY", "warning", "options",
                      f"{len(options)} options; more than {MAX_OPTIONS} is unusual.")
        if len({o.lower() for o in options}) < len(options):
            check.add("OPTIONS_DUPLICATE", "warning", "options", "Duplicate options present.")
        long_count = sum(1 for o in options if len(o) > MAX_OPTION_CHARS)
        if long_count:
            check.add("OPTIONS_TOO_LONG", "info", "options",
                      f"{long_count} option(s) longer than {MAX_OPTION_CHARS} characters.")

    def _check_answer(self, check: _QuestionCheck) -> None:
        q = check.question
        count = len(q.options)
        answer = q.correct_answer
        if answer is None:
            q.correct_answer = 0
            check.add("ANSWER_MISSING", "warning", "correct_answer",
                      "No correct answer given; defaulted to the first option.", fixed=True)
            return
        if isinstance(answer, bool):
            check.fail("ANSWER_INVALID_TYPE", "correct_answer", "Correct answer must be an index.")
            return
        if isinstance(answer, str):
            index = answer_from_string(answer, count)
            if index is None:
                check.fail("ANSWER_INVALID_TYPE", "correct_answer",
                           f"Cannot map answer '{answer}' to one of {count} options.")
                return
            q.correct_answer = index
            check.add("ANSWER_LETTER", "info", "correct_answer",
                      f"Converted answer '{answer.strip()}' to index {index}.", fixed=True)
            return
        if not isinstance(answer, int):
            check.fail("ANSWER_INVALID_TYPE", "correct_answer", "Correct answer must be an index.")
            return
        if not 0 <= answer < count:
            q.correct_answer = 0
            check.add("ANSWER_OUT_OF_RANGE", "warning", "correct_answer",
                      f"Answer index {answer} outside 0..{count - 1}; reset to 0.", fixed=True)

    def _check_content(self, check: _QuestionCheck) -> None:
        q = check.question
        explanation = q.explanation
        if explanation is not None and not isinstance(explanation, str):
            if isinstance(explanation, (int, float)):
                q.explanation = str(explanation)
            elif isinstance(explanation, list) and all(isinstance(e, str) for e in explanation):
                q.explanation = "\n".join(explanation)
            else:
                q.explanation = None
            check.add("EXPLANATION_INVALID_TYPE", "info", "explanation",
                      "Explanation was not text; converted.", fixed=True)
        if isinstance(q.explanation, str) and len(q.explanation) > MAX_EXPLANATION_CHARS:
            check.add("EXPLANATION_LONG", "info", "explanation",
                      f"Explanation longer than {MAX_EXPLANATION_CHARS} characters.")

    def _check_metadata(self, check: _QuestionCheck) -> None:
        q = check.question
        if q.difficulty not in DIFFICULTIES:
            lowered = q.difficulty.strip().lower() if isinstance(q.difficulty, str) else None
            q.difficulty = lowered if lowered in DIFFICULTIES else DEFAULT_DIFFICULTY
            check.add("DIFFICULTY_DEFAULTED", "info", "difficulty",
                      f"Difficulty set to '{q.difficulty}'.", fixed=True)
        tags = q.tags if isinstance(q.tags, list) else []
        cleaned = [t.strip() for t in tags if isinstance(t, str) and t.strip()]
        if cleaned != q.tags:
            q.tags = cleaned
            check.add("TAGS_INVALID", "info", "tags", "Dropped non-text or empty tags.", fixed=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def check(self, index: int, question: DraftQuestion) -> _QuestionCheck:
        state = _QuestionCheck(index, question)
        for rule in (
            self._check_title,
            self._check_options,
            self._check_answer,
            self._check_content,
            self._check_metadata,
        ):
            if state.irreparable:
                break
            rule(state)
        return state

    def validate(self, questions: Iterable[DraftQuestion]) -> ValidationOutcome:
        """Validate and repair a batch; irreparable questions are dropped."""
        fixed_questions: list[DraftQuestion] = []
        issues: list[ValidationIssue] = []
        stats = ValidationStatistics()
        confidences: list[float] = []

        for index, question in enumerate(questions):
            state = self.check(index, question)
            stats.total += 1
            issues.extend(state.issues)
            confidences.append(state.confidence())
            if state.irreparable:
                stats.invalid += 1
                logger.debug("Question %d dropped: %s", index,
                             "; ".join(i.message for i in state.issues if i.severity == "error"))
                continue
            stats.valid += 1
            if state.fixed:
                stats.fixed += 1
            fixed_questions.append(state.question)

        outcome = ValidationOutcome(
            is_valid=stats.invalid == 0,
            fixed_questions=fixed_questions,
            issues=issues,
            statistics=stats,
            confidence=round(sum(confidences) / len(confidences), 4) if confidences else 0.0,
        )
        if stats.fixed or stats.invalid:
            logger.info(self.summarize(outcome))
        return outcome

    @staticmethod
    def validate_single(question: DraftQuestion) -> bool:
        """Quick structural check with no repair."""
        answer = question.correct_answer
        return (
            isinstance(question.title, str)
            and bool(question.title.strip())
            and isinstance(question.options, list)
            and len(question.options) >= MIN_OPTIONS
            and isinstance(answer, int)
            and not isinstance(answer, bool)
            and 0 <= answer < len(question.options)
        )

    @staticmethod
    def summarize(outcome: ValidationOutcome) -> str:
        stats = outcome.statistics
        if stats.total == 0:
            return "No questions to validate."
        errors = sum(1 for i in outcome.issues if i.severity == "error")
        warnings = sum(1 for i in outcome.issues if i.severity == "warning")
        parts = [
            f"Validated {stats.total} question(s): {stats.valid} valid "
            f"({stats.valid / stats.total:.0%})",
        ]
        if stats.fixed:
            parts.append(f"{stats.fixed} auto-fixed")
        if stats.invalid:
            parts.append(f"{stats.invalid} dropped")
        parts.append(f"confidence {outcome.confidence:.0%}")
        if errors:
            parts.append(f"{errors} error(s)")
        if warnings:
            parts.append(f"{warnings} warning(s)")
        return ", ".join(parts)
