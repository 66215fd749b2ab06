"""Deterministic, regex-anchored question extraction.

Each :class:`ExtractionRule` pairs a pattern with a field extractor. Rules are
tried in priority order; character ranges claimed by one match are never
reused by another, and extraction stops after the first rule that yields a
question unless ``strict_mode`` is on.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Pattern

from .format_catalog import ANSWER_MARKER
from .format_detector import detect_format, preprocess_text
from .schema import (
    DraftQuestion,
    ExtractionMetadata,
    ExtractionResult,
    FormatAssessment,
    RawInput,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUESTIONS = 100

# ---------------------------------------------------------------------------
# Regex building blocks
# ---------------------------------------------------------------------------

_BLANKS = r"(?:[ \t]*\n)*"
_LETTER_OPTION_LINE = r"[ \t]*[A-D][.、．][^\n]*(?:\n|$)" + _BLANKS
_NUMERAL_OPTION_LINE = r"[ \t]*[1-4][.、．][^\n]*(?:\n|$)" + _BLANKS
_PAREN_OPTION_LINE = r"[ \t]*[(（][A-D][)）][^\n]*(?:\n|$)" + _BLANKS


def _answer_line(symbols: str) -> str:
    return (
        r"(?:[ \t]*" + ANSWER_MARKER + r"[ \t]*(?P<answer>[" + symbols + r"])[^\n]*(?:\n|$)"
        + _BLANKS + r")?"
    )


_EXPLANATION_LINE = (
    r"(?:[ \t]*(?:解析|[Ee]xplanation)[ \t]*[：:][ \t]*(?P<explanation>[^\n]*)(?:\n|$))?"
)

# Numbered stem, possibly wrapped over several lines, then lettered options.
_STANDARD_RE = re.compile(
    r"^[ \t]*(?P<number>\d+)[.、．][ \t]*"
    r"(?P<title>[^\n]+(?:\n(?![ \t]*(?:[A-D][.、．]|\d+[.、．]))[^\n]+)*)\n" + _BLANKS
    + r"(?P<options>(?:" + _LETTER_OPTION_LINE + r"){2,6})"
    + _answer_line("A-D") + _EXPLANATION_LINE,
    re.MULTILINE,
)

# Any single-line stem followed by lettered options.
_SIMPLE_RE = re.compile(
    r"^(?![ \t]*(?:[A-D][.、．]|" + ANSWER_MARKER + r"))(?P<title>[^\n]*\S[^\n]*)\n" + _BLANKS
    + r"(?P<options>(?:" + _LETTER_OPTION_LINE + r"){2,6})"
    + _answer_line("A-D") + _EXPLANATION_LINE,
    re.MULTILINE,
)

# Numbered stem followed by numeral options; the answer is a numeral.
_NUMERIC_RE = re.compile(
    r"^[ \t]*(?P<number>\d+)[.、．][ \t]*(?P<title>[^\n]+)\n" + _BLANKS
    + r"(?P<options>(?:" + _NUMERAL_OPTION_LINE + r"){2,4})"
    + _answer_line("1-4") + _EXPLANATION_LINE,
    re.MULTILINE,
)

# Stem followed by parenthesised letters: (A) ... (B) ...
_PAREN_RE = re.compile(
    r"^(?![ \t]*[(（][A-D][)）])(?P<title>[^\n]*\S[^\n]*)\n" + _BLANKS
    + r"(?P<options>(?:" + _PAREN_OPTION_LINE + r"){2,6})"
    + _answer_line("A-D") + _EXPLANATION_LINE,
    re.MULTILINE,
)

_LETTER_OPTION_RE = re.compile(r"^\s*[A-D][.、．]\s*(.*)$")
_NUMERAL_OPTION_RE = re.compile(r"^\s*[1-4][.、．]\s*(.*)$")
_PAREN_OPTION_RE = re.compile(r"^\s*[(（][A-D][)）]\s*(.*)$")


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExtractionRule:
    """Pattern plus the function turning one match into a draft question."""

    name: str
    pattern: Pattern[str]
    extractor: Callable[[re.Match], DraftQuestion | None]
    priority: int
    formats: tuple[str, ...]
    description: str = ""


def _option_texts(block: str, option_re: Pattern[str]) -> list[str]:
    options: list[str] = []
    for line in block.split("\n"):
        m = option_re.match(line)
        if m:
            options.append(m.group(1).strip())
    return options


def _explanation(match: re.Match) -> str | None:
    text = match.group("explanation")
    return text.strip() if text and text.strip() else None


def _letter_index(letter: str | None) -> int | None:
    if not letter:
        return None
    return ord(letter.upper()) - ord("A")


def _build(
    match: re.Match, option_re: Pattern[str], answer: int | None,
) -> DraftQuestion:
    title = " ".join(part.strip() for part in match.group("title").split("\n"))
    return DraftQuestion(
        title=title.strip(),
        options=_option_texts(match.group("options"), option_re),
        correct_answer=answer,
        explanation=_explanation(match),
        difficulty="medium",
        tags=[],
    )


def _extract_lettered(match: re.Match) -> DraftQuestion | None:
    return _build(match, _LETTER_OPTION_RE, _letter_index(match.group("answer")))


def _extract_numeral(match: re.Match) -> DraftQuestion | None:
    answer = match.group("answer")
    return _build(match, _NUMERAL_OPTION_RE, int(answer) - 1 if answer else None)


def _extract_parenthesised(match: re.Match) -> DraftQuestion | None:
    return _build(match, _PAREN_OPTION_RE, _letter_index(match.group("answer")))


DEFAULT_RULES: tuple[ExtractionRule, ...] = (
    ExtractionRule(
        name="standard_choice",
        pattern=_STANDARD_RE,
        extractor=_extract_lettered,
        priority=1,
        formats=("standard_choice", "word_copy"),
        description="numbered stem, A-D options, optional answer/explanation lines",
    ),
    ExtractionRule(
        name="simple_choice",
        pattern=_SIMPLE_RE,
        extractor=_extract_lettered,
        priority=2,
        formats=("simple_choice",),
        description="unnumbered stem with A-D options",
    ),
    ExtractionRule(
        name="numeric_choice",
        pattern=_NUMERIC_RE,
        extractor=_extract_numeral,
        priority=3,
        formats=("numeric_choice",),
        description="numbered stem with 1-4 options",
    ),
    ExtractionRule(
        name="parenthesis_choice",
        pattern=_PAREN_RE,
        extractor=_extract_parenthesised,
        priority=4,
        formats=("parenthesis_choice",),
        description="stem with (A)-(D) options",
    ),
)


def is_plausible(question: DraftQuestion) -> bool:
    """Minimum shape a rule match must have to be kept."""
    return bool(question.title.strip()) and len(question.options) >= 2


def _overlaps(claimed: list[tuple[int, int]], start: int, end: int) -> bool:
    return any(start < c_end and end > c_start for c_start, c_end in claimed)


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class RuleExtractor:
    """Zero-cost extractor running regex rules over plain text."""

    name = "RuleBased"

    def __init__(
        self,
        strict_mode: bool = False,
        max_questions: int = DEFAULT_MAX_QUESTIONS,
        rules: tuple[ExtractionRule, ...] = DEFAULT_RULES,
    ) -> None:
        self.strict_mode = strict_mode
        self.max_questions = max_questions
        self._rules: list[ExtractionRule] = sorted(rules, key=lambda r: r.priority)

    @property
    def rules(self) -> tuple[ExtractionRule, ...]:
        return tuple(self._rules)

    def add_rule(self, rule: ExtractionRule) -> None:
        if any(existing.name == rule.name for existing in self._rules):
            raise ValueError(f"Rule '{rule.name}' is already registered.")
        self._rules.append(rule)
        self._rules.sort(key=lambda r: r.priority)

    def select_rules(self, format_id: str | None) -> list[ExtractionRule]:
        """Rules declared for *format_id*, or every rule when none match."""
        if format_id:
            matching = [rule for rule in self._rules if format_id in rule.formats]
            if matching:
                return matching
        return list(self._rules)

    def _run(self, text: str, format_id: str | None) -> tuple[list[DraftQuestion], list[str]]:
        cleaned = preprocess_text(text)
        found: list[tuple[int, DraftQuestion]] = []
        claimed: list[tuple[int, int]] = []
        rules_used: list[str] = []

        # Rules of other formats only run when the selected ones found nothing.
        selected = self.select_rules(format_id)
        remaining = [rule for rule in self._rules if rule not in selected]
        for rule in selected + remaining:
            if rule in remaining and found:
                break
            yielded = 0
            for match in rule.pattern.finditer(cleaned):
                if len(found) >= self.max_questions:
                    break
                start, end = match.span()
                if _overlaps(claimed, start, end):
                    continue
                try:
                    draft = rule.extractor(match)
                except (ValueError, IndexError) as exc:
                    logger.warning("Rule %s failed on match at %d: %s", rule.name, start, exc)
                    continue
                if draft is None or not is_plausible(draft):
                    continue
                found.append((start, draft))
                claimed.append((start, end))
                yielded += 1
            if yielded:
                rules_used.append(rule.name)
                logger.debug("Rule %s yielded %d question(s)", rule.name, yielded)
            if found and not self.strict_mode:
                break

        found.sort(key=lambda item: item[0])
        return [draft for _, draft in found], rules_used

    def extract(
        self, text: str, assessment: FormatAssessment | None = None,
    ) -> list[DraftQuestion]:
        """Return draft questions found in *text*."""
        questions, _ = self._run(text, assessment.format_id if assessment else None)
        return questions

    def parse(
        self, raw: RawInput, assessment: FormatAssessment | None = None,
    ) -> ExtractionResult:
        """Run the rules over a text input and wrap the outcome."""
        started = time.perf_counter()
        if raw.kind != "text":
            return ExtractionResult(
                success=False,
                errors=[f"Rule extraction does not support '{raw.kind}' input."],
                metadata=ExtractionMetadata(parser=self.name, strategy="rule_based"),
            )
        text = raw.text
        assessment = assessment or detect_format(text)
        questions, rules_used = self._run(text, assessment.format_id)
        errors: list[str] = []
        if not questions:
            errors.append(f"No extraction rule matched (detected format: {assessment.format_id}).")
        return ExtractionResult(
            success=bool(questions),
            questions=questions,
            confidence=assessment.confidence if questions else 0.0,
            errors=errors,
            metadata=ExtractionMetadata(
                strategy="rule_based",
                parser=self.name,
                processing_time_ms=(time.perf_counter() - started) * 1000,
                detected_format=assessment.format_id,
                format_confidence=assessment.confidence,
                rules_used=rules_used,
                text_source="text",
            ),
        )
