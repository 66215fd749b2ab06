"""Score raw question text against the format catalog.

``detect_format`` is a pure function of its input: no I/O, no clock, no
randomness. The same text always yields the same format and confidence.
"""

from __future__ import annotations

import logging
import re

from .format_catalog import (
    ANOMALOUS_CHAR_RE,
    ANSWER_MARKER,
    FormatCatalog,
    FormatPattern,
    default_catalog,
)
from .schema import AlternativeFormat, FormatAssessment, FormatMetadata

logger = logging.getLogger(__name__)

# Scores within this margin of the best are considered tied; priority decides.
TIE_MARGIN = 0.1
MAX_ALTERNATIVES = 3

_QUESTION_COUNT_RES = (
    re.compile(r"^\s*\d+[.、]", re.MULTILINE),
    re.compile(r"^\s*第\d+题", re.MULTILINE),
    re.compile(r"^\s*[(（]\d+[)）]", re.MULTILINE),
)
_OPTION_COUNT_RES = (
    re.compile(r"[A-D][.、]"),
    re.compile(r"[1-4][.、]"),
    re.compile(r"\([A-D]\)"),
    re.compile(r"\([1-4]\)"),
)
_ANSWER_RE = re.compile(ANSWER_MARKER + r"\s*[A-D1-4]", re.IGNORECASE)
_EXPLANATION_RE = re.compile(r"(?:解析|[Ee]xplanation)\s*[：:]")
_MARKER_RE = re.compile(r"[A-D1-4][.、()]")
_WIDE_SPACE_RE = re.compile(r"\s{3,}")
_REPEAT_RE = re.compile(r"(.)\1{3,}")
_NEWLINE_RUN_RE = re.compile(r"\n{3,}")

_QUICK_STANDARD_RE = re.compile(r"^\d+[.、]\s*.+[A-D][.、]", re.DOTALL)
_QUICK_PAREN_RE = re.compile(r"\([A-D]\)")
_QUICK_NUMERIC_RE = re.compile(r"[1-4][.、]")
_QUICK_OCR_RE = re.compile(r"[0O1Il|]{2,}")


# ---------------------------------------------------------------------------
# Text features
# ---------------------------------------------------------------------------

def preprocess_text(text: str) -> str:
    """Trim, unify line endings and collapse runs of blank lines."""
    cleaned = text.strip().replace("\r\n", "\n").replace("\r", "\n")
    return _NEWLINE_RUN_RE.sub("\n\n", cleaned)


def count_questions(text: str) -> int:
    return max(len(pattern.findall(text)) for pattern in _QUESTION_COUNT_RES)


def count_options(text: str) -> int:
    return max(len(pattern.findall(text)) for pattern in _OPTION_COUNT_RES)


def has_answer_markers(text: str) -> bool:
    return _ANSWER_RE.search(text) is not None


def has_explanation_markers(text: str) -> bool:
    return _EXPLANATION_RE.search(text) is not None


def marker_consistency(text: str) -> float:
    """How uniformly option markers are styled, in [0.5, 1.0].

    Averages letter-vs-numeral dominance with dot-vs-parenthesis dominance.
    Text without any marker scores 0.5.
    """
    markers = _MARKER_RE.findall(text)
    if not markers:
        return 0.5
    total = len(markers)
    letters = sum(1 for m in markers if m[0].isalpha())
    dots = sum(1 for m in markers if m[1] in ".、")
    type_consistency = max(letters, total - letters) / total
    style_consistency = max(dots, total - dots) / total
    return (type_consistency + style_consistency) / 2


def assess_text_quality(text: str) -> float:
    """Heuristic 0..1 score penalising anomalous glyphs, wide gaps and repeats."""
    if not text:
        return 0.0
    score = 1.0
    anomalous = len(ANOMALOUS_CHAR_RE.findall(text))
    if anomalous:
        score -= min(0.3, anomalous / len(text))
    wide = len(_WIDE_SPACE_RE.findall(text))
    if wide:
        score -= min(0.2, wide * 0.05)
    repeats = sum(1 for _ in _REPEAT_RE.finditer(text))
    if repeats:
        score -= min(0.2, repeats * 0.1)
    return max(0.0, score)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

class _Analysis:
    __slots__ = ("pattern", "matched", "confidence", "issues")

    def __init__(self, pattern: FormatPattern, matched: int, confidence: float, issues: list[str]):
        self.pattern = pattern
        self.matched = matched
        self.confidence = confidence
        self.issues = issues


def _analyze(
    text: str,
    fmt: FormatPattern,
    question_count: int,
    option_count: int,
    answers: bool,
    consistency: float,
    quality: float,
) -> _Analysis:
    matched = sum(1 for pattern in fmt.patterns if pattern.search(text))
    confidence = fmt.confidence * (matched / len(fmt.patterns))
    issues: list[str] = []

    if question_count == 0:
        confidence *= 0.1
        issues.append("no questions detected")
    elif question_count > 1 and "simple" in fmt.name:
        confidence *= 0.8

    if option_count < question_count * 4 * 0.5:
        confidence *= 0.7
        issues.append("options incomplete")

    if not answers and fmt.name == "standard_choice":
        confidence *= 0.8
        issues.append("answer marker missing")

    confidence *= consistency
    if consistency < 0.8:
        issues.append("inconsistent option markers")

    if quality < 0.5 and fmt.name != "ocr_format":
        confidence *= 0.6
        issues.append("low text quality")

    return _Analysis(fmt, matched, max(0.0, min(1.0, confidence)), issues)


def _select_best(analyses: list[_Analysis]) -> _Analysis:
    top = max(a.confidence for a in analyses)
    contenders = [a for a in analyses if top - a.confidence <= TIE_MARGIN]
    return min(contenders, key=lambda a: (a.pattern.priority, -a.confidence))


def _recommendations(best: _Analysis, metadata: FormatMetadata) -> list[str]:
    recs: list[str] = []
    if best.confidence < 0.5:
        recs.append("Format confidence is low; check the layout manually.")
    if metadata.quality_score < 0.7:
        recs.append("Text quality is low; clean it up or run OCR repair first.")
    if not metadata.has_answer_markers:
        recs.append("No answer marker found; add answers (e.g. '答案：A').")
    if metadata.detected_question_count == 0:
        recs.append("No numbered questions found; check the text format.")
    if best.issues:
        recs.append("Format issues: " + ", ".join(best.issues))
    return recs


def detect_format(text: str, catalog: FormatCatalog | None = None) -> FormatAssessment:
    """Classify *text* against the catalog.

    Returns the best format with its confidence, up to three runner-up
    formats, recommendations and text metadata.
    """
    catalog = catalog or default_catalog()
    catalog.freeze()
    cleaned = preprocess_text(text)

    question_count = count_questions(cleaned)
    option_count = count_options(cleaned)
    answers = has_answer_markers(cleaned)
    consistency = marker_consistency(cleaned)
    quality = assess_text_quality(cleaned)

    analyses = [
        _analyze(cleaned, fmt, question_count, option_count, answers, consistency, quality)
        for fmt in catalog
    ]
    best = _select_best(analyses)

    metadata = FormatMetadata(
        length=len(cleaned),
        detected_question_count=question_count,
        has_answer_markers=answers,
        has_explanation_markers=has_explanation_markers(cleaned),
        quality_score=quality,
    )
    runners_up = sorted(
        (a for a in analyses if a.pattern.name != best.pattern.name),
        key=lambda a: (-a.confidence, a.pattern.priority),
    )[:MAX_ALTERNATIVES]

    assessment = FormatAssessment(
        format_id=best.pattern.name,
        confidence=best.confidence,
        characteristics=list(best.pattern.characteristics),
        alternatives=[
            AlternativeFormat(format_id=a.pattern.name, confidence=a.confidence)
            for a in runners_up
        ],
        recommendations=_recommendations(best, metadata),
        metadata=metadata,
    )
    logger.debug(
        "Detected format %s (confidence %.3f, %d questions)",
        assessment.format_id, assessment.confidence, question_count,
    )
    return assessment


def quick_detect(text: str) -> str:
    """Cheap layout guess for live preview; ``unknown`` for very short input."""
    if len(text) < 10:
        return "unknown"
    if _QUICK_STANDARD_RE.search(text):
        return "standard_choice"
    if _QUICK_PAREN_RE.search(text):
        return "parenthesis_choice"
    if _QUICK_NUMERIC_RE.search(text):
        return "numeric_choice"
    if _QUICK_OCR_RE.search(text):
        return "ocr_format"
    return "simple_choice"
