"""Pydantic models for inputs, draft questions and extraction results."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field

from .utils import kind_for_suffix, validate_input_path

InputKind = Literal["text", "image", "document"]
Preference = Literal["speed", "accuracy", "cost", "balanced"]
QualityRequirement = Literal["low", "medium", "high"]
Severity = Literal["error", "warning", "info"]


class RawInput(BaseModel):
    """One unit of content handed to the pipeline."""

    model_config = ConfigDict(frozen=True)

    kind: InputKind
    payload: str | bytes
    size_bytes: int = 0
    filename: str | None = None

    @classmethod
    def from_text(cls, text: str) -> "RawInput":
        return cls(kind="text", payload=text, size_bytes=len(text.encode("utf-8")))

    @classmethod
    def from_bytes(
        cls, data: bytes, kind: InputKind, filename: str | None = None,
    ) -> "RawInput":
        if kind == "text":
            text = data.decode("utf-8", errors="replace")
            return cls(kind="text", payload=text, size_bytes=len(data), filename=filename)
        return cls(kind=kind, payload=data, size_bytes=len(data), filename=filename)

    @classmethod
    def from_path(cls, path: str | Path, kind: InputKind | None = None) -> "RawInput":
        """Read a file, inferring the kind from its suffix when not given."""
        file_path = validate_input_path(path)
        resolved = kind or kind_for_suffix(file_path.suffix)
        return cls.from_bytes(file_path.read_bytes(), resolved, filename=file_path.name)

    @property
    def text(self) -> str:
        if isinstance(self.payload, bytes):
            return self.payload.decode("utf-8", errors="replace")
        return self.payload


# ---------------------------------------------------------------------------
# Format detection
# ---------------------------------------------------------------------------
class FormatMetadata(BaseModel):
    length: int = 0
    detected_question_count: int = 0
    has_answer_markers: bool = False
    has_explanation_markers: bool = False
    quality_score: float = 0.0


class AlternativeFormat(BaseModel):
    format_id: str
    confidence: float


class FormatAssessment(BaseModel):
    """Best-matching textual layout plus runners-up and quality metadata."""

    format_id: str
    confidence: float = Field(ge=0.0, le=1.0)
    characteristics: List[str] = Field(default_factory=list)
    alternatives: List[AlternativeFormat] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    metadata: FormatMetadata = Field(default_factory=FormatMetadata)


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------
class DraftQuestion(BaseModel):
    """Extracted question record, not yet guaranteed valid.

    ``correct_answer`` may still be a letter ("C") or numeral ("3") string
    straight out of an extractor; validation turns it into a zero-based index.
    """

    title: str = ""
    options: List[Any] = Field(default_factory=list)
    correct_answer: int | str | None = None
    explanation: Any = None
    difficulty: Any = None
    tags: List[Any] = Field(default_factory=list)


class ValidationIssue(BaseModel):
    type: str
    severity: Severity
    field: str
    message: str
    auto_fixed: bool = False
    question_index: int | None = None


class ValidationStatistics(BaseModel):
    total: int = 0
    valid: int = 0
    fixed: int = 0
    invalid: int = 0


class ValidationOutcome(BaseModel):
    is_valid: bool
    fixed_questions: List[DraftQuestion] = Field(default_factory=list)
    issues: List[ValidationIssue] = Field(default_factory=list)
    statistics: ValidationStatistics = Field(default_factory=ValidationStatistics)
    confidence: float = 0.0


class QualityBreakdown(BaseModel):
    completeness: float = 0.0
    accuracy: float = 0.0
    consistency: float = 0.0
    clarity: float = 0.0


class QualityScore(BaseModel):
    overall: float = 0.0
    breakdown: QualityBreakdown = Field(default_factory=QualityBreakdown)
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    grade: Literal["A", "B", "C", "D", "F"] = "F"


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------
class RoutingContext(BaseModel):
    """Caller preferences plus facts derived from the input during routing."""

    preference: Preference = "accuracy"
    quality_requirement: QualityRequirement = "medium"
    text_length: int | None = None
    file_size: int | None = None
    detected_format: str | None = None
    format_confidence: float | None = None
    use_cache: bool = True
    evaluate_quality: bool = False
    allow_fallback: bool = True


class StrategyAlternative(BaseModel):
    strategy: str
    score: float
    reason: str


class RoutingDecision(BaseModel):
    selected_strategy: str
    confidence: float
    reasoning: List[str] = Field(default_factory=list)
    alternatives: List[StrategyAlternative] = Field(default_factory=list)
    estimated_cost: float = 0.0
    estimated_latency_ms: int = 0


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
class ExtractionMetadata(BaseModel):
    strategy: str | None = None
    parser: str | None = None
    processing_time_ms: float = 0.0
    cache_hit: bool = False
    fallback_used: bool = False
    detected_format: str | None = None
    format_confidence: float | None = None
    ocr_confidence: float | None = None
    text_source: str | None = None
    routing: RoutingDecision | None = None
    attempted_strategies: List[str] = Field(default_factory=list)
    rules_used: List[str] = Field(default_factory=list)
    validation: ValidationStatistics | None = None
    quality: QualityScore | None = None


class ExtractionResult(BaseModel):
    """Outcome of one parse call: the (possibly partial) batch and its issues."""

    success: bool
    questions: List[DraftQuestion] = Field(default_factory=list)
    confidence: float = 0.0
    errors: List[str] = Field(default_factory=list)
    issues: List[ValidationIssue] = Field(default_factory=list)
    metadata: ExtractionMetadata = Field(default_factory=ExtractionMetadata)


class TelemetryEvent(BaseModel):
    id: str
    timestamp: float
    strategy: str
    input_kind: InputKind
    input_size: int
    processing_time_ms: float
    success: bool
    questions_count: int
    confidence: float
    estimated_cost: float
    errors: List[str] = Field(default_factory=list)
