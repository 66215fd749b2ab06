"""Composition root: builds every service and runs one parse call end to end.

parse() flow: analyze context -> cache lookup (keyed by the top-ranked
strategy) -> route and execute -> validate -> optional quality score ->
cache a successful result.
"""

from __future__ import annotations

import io
import logging
import time
from typing import Iterable, Sequence

from PIL import Image, UnidentifiedImageError

from . import format_detector
from .ai_config import AIConfig
from .ai_extractor import AIExtractionAdapter
from .cache import ResultCache
from .config import Settings, load_settings
from .image_preprocess import preprocess_image
from .ocr import OpticalAdapter
from .pdf_text import DocumentExtractor
from .quality import QualityScorer
from .router import StrategyRouter
from .rule_extractor import RuleExtractor
from .schema import (
    DraftQuestion,
    ExtractionMetadata,
    ExtractionResult,
    FormatAssessment,
    QualityScore,
    RawInput,
    RoutingContext,
    ValidationOutcome,
)
from .strategies import DEFAULT_STRATEGIES, ExtractionStrategy, StrategyKind
from .telemetry import PerformanceMonitor
from .utils import (
    DocumentValidationError,
    EmptyContentError,
    ResourceUnavailableError,
    UnsupportedInputError,
)
from .validator import ResultValidator

logger = logging.getLogger(__name__)

AI_CONFIDENCE = 0.85
AI_RECOVERED_CONFIDENCE = 0.7


def _assessment_from_context(context: RoutingContext) -> FormatAssessment | None:
    if context.detected_format is None:
        return None
    return FormatAssessment(
        format_id=context.detected_format,
        confidence=context.format_confidence or 0.0,
    )


def _open_image(payload: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(payload))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise DocumentValidationError(f"Unreadable image: {exc}") from exc
    return image


class QuestionPipeline:
    """Owns the extractors, router, validator, scorer, cache and telemetry."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        cache: ResultCache | None = None,
        optical: OpticalAdapter | None = None,
        documents: DocumentExtractor | None = None,
        ai: AIExtractionAdapter | None = None,
        telemetry: PerformanceMonitor | None = None,
        rule_extractor: RuleExtractor | None = None,
        validator: ResultValidator | None = None,
        scorer: QualityScorer | None = None,
        strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES,
        start_sweeper: bool = False,
    ) -> None:
        self.settings = settings or load_settings()
        s = self.settings
        self.cache = cache or ResultCache(max_size=s.cache_max_entries, ttl_seconds=s.cache_ttl_seconds)
        self.optical = optical or OpticalAdapter(language=s.ocr_language)
        self.documents = documents or DocumentExtractor(
            self.optical,
            max_pages=s.document_max_pages,
            min_text_chars=s.document_text_min_chars,
            dpi=s.ocr_dpi,
        )
        self.ai = ai or AIExtractionAdapter(AIConfig.from_settings(s))
        self.telemetry = telemetry or PerformanceMonitor(max_events=s.telemetry_max_events)
        self.rule_extractor = rule_extractor or RuleExtractor(max_questions=s.rule_max_questions)
        self.validator = validator or ResultValidator()
        self.scorer = scorer or QualityScorer()
        self.router = StrategyRouter(
            executors={
                StrategyKind.RULE_BASED: self._run_rules,
                StrategyKind.OPTICAL: self._run_optical,
                StrategyKind.DOCUMENT_TEXT: self._run_document,
                StrategyKind.AI_ASSISTED: self._run_ai,
            },
            strategies=strategies,
            prerequisites={
                "ocr_engine": self._ocr_problem,
                "ai_service": self._ai_problem,
            },
            # parse() records one event per call once validation has run
            telemetry=None,
        )
        if s.cache_file:
            loaded = self.cache.load(s.cache_file)
            logger.info("Loaded %d cached result(s) from %s", loaded, s.cache_file)
        if start_sweeper:
            self.cache.start_sweeper(s.cache_sweep_seconds)

    # ------------------------------------------------------------------
    # Prerequisites
    # ------------------------------------------------------------------
    def _ocr_problem(self) -> str | None:
        try:
            self.optical.initialize()
        except ResourceUnavailableError as exc:
            return str(exc)
        return None

    def _ai_problem(self) -> str | None:
        problems = self.ai.problems()
        return "; ".join(problems) if problems else None

    # ------------------------------------------------------------------
    # Executors
    # ------------------------------------------------------------------
    def _run_rules(self, raw: RawInput, context: RoutingContext) -> ExtractionResult:
        return self.rule_extractor.parse(raw, _assessment_from_context(context))

    def _ai_result(
        self,
        text: str,
        assessment: FormatAssessment | None,
        *,
        strategy: str,
        parser: str,
        ocr_noise: bool = False,
        fallback_used: bool = False,
        base_confidence: float | None = None,
    ) -> ExtractionResult:
        started = time.perf_counter()
        extraction = self.ai.extract(text, assessment, ocr_noise=ocr_noise)
        confidence = AI_RECOVERED_CONFIDENCE if extraction.recovered else AI_CONFIDENCE
        if base_confidence is not None:
            confidence = min(confidence, max(base_confidence, AI_RECOVERED_CONFIDENCE))
        return ExtractionResult(
            success=True,
            questions=extraction.questions,
            confidence=round(confidence, 4),
            errors=list(extraction.warnings),
            metadata=ExtractionMetadata(
                strategy=strategy,
                parser=parser,
                processing_time_ms=(time.perf_counter() - started) * 1000,
                fallback_used=fallback_used,
                detected_format=assessment.format_id if assessment else None,
                format_confidence=assessment.confidence if assessment else None,
            ),
        )

    def _run_ai(self, raw: RawInput, context: RoutingContext) -> ExtractionResult:
        text = raw.text
        if not text.strip():
            raise EmptyContentError("No text to send to the AI service.")
        return self._ai_result(
            text, _assessment_from_context(context),
            strategy=StrategyKind.AI_ASSISTED.value, parser=self.ai.name,
        )

    def _extract_recognized(
        self,
        text: str,
        *,
        strategy: str,
        parser: str,
        source_confidence: float,
        text_source: str,
        prefer_ai: bool,
    ) -> ExtractionResult:
        """Rules (or AI) over text produced by OCR or a document text layer."""
        if not text.strip():
            raise EmptyContentError(f"{parser} produced no text.")
        assessment = format_detector.detect_format(text)
        ai_allowed = self.ai.is_available()

        if prefer_ai and ai_allowed:
            logger.info("%s confidence %.2f is low; extracting with AI", parser, source_confidence)
            result = self._ai_result(
                text, assessment, strategy=strategy, parser=f"{parser}+AI",
                ocr_noise=text_source == "ocr", fallback_used=True,
                base_confidence=source_confidence,
            )
        else:
            result = self.rule_extractor.parse(RawInput.from_text(text), assessment)
            result.metadata.strategy = strategy
            result.metadata.parser = parser
            if result.questions:
                result.confidence = round(min(result.confidence, source_confidence), 4)
            elif ai_allowed:
                logger.info("Rules found nothing in %s text; extracting with AI", parser)
                result = self._ai_result(
                    text, assessment, strategy=strategy, parser=f"{parser}+AI",
                    ocr_noise=text_source == "ocr", fallback_used=True,
                    base_confidence=source_confidence,
                )
            elif prefer_ai:
                result.errors.append(f"{parser} confidence is low and the AI service is unavailable.")
        result.metadata.text_source = text_source
        return result

    def _run_optical(self, raw: RawInput, context: RoutingContext) -> ExtractionResult:
        if not isinstance(raw.payload, bytes) or not raw.payload:
            raise EmptyContentError("Image input is empty.")
        image = _open_image(raw.payload)
        prepared = preprocess_image(image)
        ocr = self.optical.recognize(prepared)
        threshold = self.settings.ocr_confidence_threshold
        low = ocr.confidence < threshold
        if low:
            logger.info("OCR confidence %.1f below threshold %d", ocr.confidence, threshold)
        result = self._extract_recognized(
            ocr.text,
            strategy=StrategyKind.OPTICAL.value,
            parser="OCR",
            source_confidence=ocr.confidence / 100.0,
            text_source="ocr",
            prefer_ai=low and self.settings.ocr_ai_fallback,
        )
        result.metadata.ocr_confidence = ocr.confidence
        return result

    def _run_document(self, raw: RawInput, context: RoutingContext) -> ExtractionResult:
        if not isinstance(raw.payload, bytes) or not raw.payload:
            raise EmptyContentError("Document input is empty.")
        doc = self.documents.extract(raw.payload)
        low = doc.method == "ocr" and doc.confidence * 100 < self.settings.ocr_confidence_threshold
        result = self._extract_recognized(
            doc.text,
            strategy=StrategyKind.DOCUMENT_TEXT.value,
            parser="Document",
            source_confidence=doc.confidence,
            text_source=doc.method,
            prefer_ai=low and self.settings.ocr_ai_fallback,
        )
        if doc.method == "ocr":
            result.metadata.ocr_confidence = round(doc.confidence * 100, 2)
        if doc.truncated:
            result.errors.append(
                f"Only the first {doc.pages_processed} of {doc.page_count} pages were processed."
            )
        return result

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @staticmethod
    def cache_variant(context: RoutingContext) -> str:
        variant = f"{context.preference}-{context.quality_requirement}"
        return variant + "-q" if context.evaluate_quality else variant

    def _empty_input(self, raw: RawInput) -> bool:
        if raw.kind == "text":
            return not raw.text.strip()
        return not raw.payload

    def parse(self, raw: RawInput, context: RoutingContext | None = None) -> ExtractionResult:
        """Extract, validate and (optionally) score questions from *raw*."""
        started = time.perf_counter()
        if self._empty_input(raw):
            error = EmptyContentError(f"Empty {raw.kind} input.")
            result = ExtractionResult(success=False, errors=[str(error)],
                                      metadata=ExtractionMetadata(parser="Pipeline"))
            return self._record(raw, result, started, "none")

        context = self.router.analyze_context(raw, context)
        variant = self.cache_variant(context)
        try:
            top_strategy: str | None = self.router.decide(raw, context).selected_strategy
        except UnsupportedInputError:
            top_strategy = None

        if context.use_cache and top_strategy:
            cached = self.cache.get(raw, top_strategy, variant)
            if cached is not None:
                logger.info("Cache hit for %s input (%s)", raw.kind, top_strategy)
                cached.metadata.cache_hit = True
                return self._record(raw, cached, started, cached.metadata.strategy or top_strategy)

        result = self.router.route(raw, context)

        if result.questions:
            outcome = self.validator.validate(result.questions)
            result.questions = outcome.fixed_questions
            result.issues = outcome.issues
            result.metadata.validation = outcome.statistics
            result.confidence = round(min(result.confidence, outcome.confidence), 4)
            if not outcome.fixed_questions:
                result.success = False
                result.confidence = 0.0
                result.errors.append("Every extracted question failed validation.")

        if context.evaluate_quality:
            result.metadata.quality = self.scorer.evaluate(result.questions)

        routing = result.metadata.routing
        self._record(raw, result, started, result.metadata.strategy or "none",
                     routing.estimated_cost if routing else 0.0)
        if result.success and context.use_cache and top_strategy:
            self.cache.set(raw, top_strategy, result, variant)
        return result

    def _record(
        self, raw: RawInput, result: ExtractionResult, started: float, strategy: str,
        estimated_cost: float = 0.0,
    ) -> ExtractionResult:
        """One telemetry event matching the result handed back to the caller."""
        elapsed = (time.perf_counter() - started) * 1000
        result.metadata.processing_time_ms = round(elapsed, 3)
        self.telemetry.record(
            strategy=strategy,
            input_kind=raw.kind,
            input_size=raw.size_bytes,
            processing_time_ms=elapsed,
            success=result.success,
            questions_count=len(result.questions),
            confidence=result.confidence,
            estimated_cost=estimated_cost,
            errors=result.errors,
        )
        return result

    def detect_format(self, text: str) -> FormatAssessment:
        return format_detector.detect_format(text)

    def validate(self, questions: Iterable[DraftQuestion]) -> ValidationOutcome:
        return self.validator.validate(questions)

    def evaluate_quality(self, questions: Sequence[DraftQuestion]) -> QualityScore:
        return self.scorer.evaluate(questions)

    def shutdown(self) -> None:
        """Stop the cache sweeper, persist the cache and release OCR."""
        self.cache.shutdown()
        if self.settings.cache_file:
            self.cache.save(self.settings.cache_file)
        self.optical.terminate()


# ---------------------------------------------------------------------------
# Standalone helpers
# ---------------------------------------------------------------------------

def detect_format(text: str) -> FormatAssessment:
    return format_detector.detect_format(text)


def validate(questions: Iterable[DraftQuestion]) -> ValidationOutcome:
    return ResultValidator().validate(questions)


def evaluate_quality(questions: Sequence[DraftQuestion]) -> QualityScore:
    return QualityScorer().evaluate(questions)
