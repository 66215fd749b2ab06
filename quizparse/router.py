"""Choose and run an extraction strategy for one input.

route() runs these stages in order:

1. analyze the context (text length, file size, detected format);
2. filter out strategies that cannot take the input or whose
   prerequisites are unavailable;
3. score the rest by the caller's preference and rank them;
4. execute the top strategy, falling through the ranking on failure;
5. record one telemetry event.

Executors are plain callables keyed by :class:`StrategyKind`; the router
knows nothing about OCR or the AI service beyond what they return.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Mapping, Sequence

from .format_detector import detect_format
from .schema import (
    ExtractionMetadata,
    ExtractionResult,
    FormatAssessment,
    RawInput,
    RoutingContext,
    RoutingDecision,
    StrategyAlternative,
)
from .strategies import DEFAULT_STRATEGIES, ExtractionStrategy, StrategyKind
from .telemetry import PerformanceMonitor
from .utils import ExtractionError, UnsupportedInputError

logger = logging.getLogger(__name__)

Executor = Callable[[RawInput, RoutingContext], ExtractionResult]
# Returns None when the prerequisite is met, else a human-readable reason.
PrerequisiteCheck = Callable[[], "str | None"]

MB = 1024 * 1024
LARGE_TEXT_CHARS = 5000
LARGE_FILE_BYTES = 10 * MB
FORMAT_MATCH_BONUS = 2.0
HIGH_QUALITY_PENALTY = 3.0
HIGH_QUALITY_MIN_ACCURACY = 8


def preference_score(strategy: ExtractionStrategy, preference: str) -> float:
    s, a, r, c = (
        strategy.speed_score, strategy.accuracy_score,
        strategy.reliability_score, strategy.cost_score,
    )
    if preference == "speed":
        return 0.4 * s + 0.3 * r + 0.2 * a - 0.1 * c
    if preference == "accuracy":
        return 0.4 * a + 0.3 * r + 0.2 * s - 0.1 * c
    if preference == "cost":
        return 0.4 * (10 - c) + 0.3 * r + 0.2 * s + 0.1 * a
    return 0.3 * a + 0.3 * r + 0.2 * s + 0.2 * (10 - c)


class StrategyRouter:
    """Ranks registered strategies and executes them with fallback."""

    def __init__(
        self,
        executors: Mapping[StrategyKind, Executor],
        strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES,
        prerequisites: Mapping[str, PrerequisiteCheck] | None = None,
        telemetry: PerformanceMonitor | None = None,
        detector: Callable[[str], FormatAssessment] = detect_format,
    ) -> None:
        self.strategies = tuple(strategies)
        self.executors = dict(executors)
        self.prerequisites = dict(prerequisites or {})
        self.telemetry = telemetry
        self._detector = detector

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def analyze_context(self, raw: RawInput, context: RoutingContext | None = None) -> RoutingContext:
        context = context or RoutingContext()
        updates: dict = {}
        if raw.kind == "text":
            text = raw.text
            if context.text_length is None:
                updates["text_length"] = len(text)
            if context.detected_format is None and text.strip():
                assessment = self._detector(text)
                updates["detected_format"] = assessment.format_id
                updates["format_confidence"] = assessment.confidence
        elif context.file_size is None:
            updates["file_size"] = raw.size_bytes
        return context.model_copy(update=updates) if updates else context

    def _prerequisite_problem(self, strategy: ExtractionStrategy) -> str | None:
        for name in strategy.prerequisites:
            check = self.prerequisites.get(name)
            if check is None:
                return f"prerequisite '{name}' has no availability check"
            problem = check()
            if problem:
                return problem
        if strategy.kind not in self.executors:
            return "no executor registered"
        return None

    def filter_available(
        self, input_kind: str, context: RoutingContext,
    ) -> tuple[list[ExtractionStrategy], list[str]]:
        """Return usable strategies plus one note per excluded strategy."""
        available: list[ExtractionStrategy] = []
        excluded: list[str] = []
        for strategy in self.strategies:
            if not strategy.supports_kind(input_kind):
                continue
            if not strategy.supports_format(context.detected_format):
                excluded.append(f"{strategy.name}: format {context.detected_format} not supported")
                continue
            problem = self._prerequisite_problem(strategy)
            if problem:
                excluded.append(f"{strategy.name}: {problem}")
                continue
            available.append(strategy)
        return available, excluded

    def score(self, strategy: ExtractionStrategy, context: RoutingContext) -> float:
        value = preference_score(strategy, context.preference)
        if strategy.lists_format(context.detected_format):
            value += FORMAT_MATCH_BONUS
        if (context.quality_requirement == "high"
                and strategy.accuracy_score < HIGH_QUALITY_MIN_ACCURACY):
            value -= HIGH_QUALITY_PENALTY
        return round(value, 4)

    def rank(
        self, strategies: Sequence[ExtractionStrategy], context: RoutingContext,
    ) -> list[tuple[ExtractionStrategy, float]]:
        scored = [(s, self.score(s, context)) for s in strategies]
        # sorted() is stable, so equal scores keep registry order
        return sorted(scored, key=lambda item: item[1], reverse=True)

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------
    @staticmethod
    def _confidence(strategy: ExtractionStrategy, context: RoutingContext) -> float:
        confidence = 0.7
        if context.format_confidence:
            confidence += context.format_confidence * 0.2
        confidence += strategy.reliability_score / 10 * 0.1
        return round(min(1.0, max(0.0, confidence)), 4)

    @staticmethod
    def _estimated_cost(strategy: ExtractionStrategy, context: RoutingContext) -> float:
        cost = float(strategy.cost_score)
        if context.text_length and context.text_length > LARGE_TEXT_CHARS:
            cost += 1
        if context.file_size and context.file_size > LARGE_FILE_BYTES:
            cost += 2
        return cost

    @staticmethod
    def _estimated_latency(strategy: ExtractionStrategy, context: RoutingContext) -> int:
        latency = (10 - strategy.speed_score) * 1000
        if context.text_length:
            latency += context.text_length // 1000 * 100
        if context.file_size:
            latency += context.file_size // MB * 2000
        return int(latency)

    @staticmethod
    def _reasoning(
        strategy: ExtractionStrategy, score: float, context: RoutingContext, excluded: list[str],
    ) -> list[str]:
        reasons = [f"selected {strategy.name} (score {score:.2f})"]
        if strategy.lists_format(context.detected_format):
            reasons.append(f"handles detected format {context.detected_format}")
        reasons.append(f"matches {context.preference} preference")
        if strategy.cost_score == 0:
            reasons.append("no extra cost")
        elif strategy.cost_score <= 3:
            reasons.append("low cost")
        if strategy.speed_score >= 8:
            reasons.append("fast")
        if strategy.accuracy_score >= 8:
            reasons.append("high accuracy")
        reasons.extend(f"excluded {note}" for note in excluded)
        return reasons

    def _decide(
        self, raw: RawInput, context: RoutingContext,
    ) -> tuple[RoutingDecision, list[tuple[ExtractionStrategy, float]]]:
        available, excluded = self.filter_available(raw.kind, context)
        if not available:
            detail = "; ".join(excluded) if excluded else "no strategy accepts this input kind"
            raise UnsupportedInputError(
                f"No extraction strategy available for {raw.kind} input: {detail}"
            )
        ranked = self.rank(available, context)
        best, best_score = ranked[0]
        decision = RoutingDecision(
            selected_strategy=best.name,
            confidence=self._confidence(best, context),
            reasoning=self._reasoning(best, best_score, context, excluded),
            alternatives=[
                StrategyAlternative(strategy=s.name, score=sc, reason=s.description)
                for s, sc in ranked[1:3]
            ],
            estimated_cost=self._estimated_cost(best, context),
            estimated_latency_ms=self._estimated_latency(best, context),
        )
        return decision, ranked

    def decide(self, raw: RawInput, context: RoutingContext | None = None) -> RoutingDecision:
        """Preview the routing decision without executing anything."""
        decision, _ = self._decide(raw, self.analyze_context(raw, context))
        return decision

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def route(self, raw: RawInput, context: RoutingContext | None = None) -> ExtractionResult:
        """Execute the best strategy, falling back down the ranking.

        Expected failures (no strategy, every strategy failing) come back as
        ``success=False`` with the reasons in ``errors``.
        """
        start = time.perf_counter()
        context = self.analyze_context(raw, context)
        try:
            decision, ranked = self._decide(raw, context)
        except UnsupportedInputError as exc:
            logger.warning("Routing failed: %s", exc)
            result = ExtractionResult(
                success=False,
                errors=[str(exc)],
                metadata=ExtractionMetadata(
                    parser="Router",
                    detected_format=context.detected_format,
                    format_confidence=context.format_confidence,
                ),
            )
            return self._finish(raw, result, start, "none", 0.0)

        logger.info("Routing %s input to %s: %s",
                    raw.kind, decision.selected_strategy, ", ".join(decision.reasoning))

        candidates = ranked if context.allow_fallback else ranked[:1]
        attempted: list[str] = []
        errors: list[str] = []
        result: ExtractionResult | None = None
        for position, (strategy, _score) in enumerate(candidates):
            attempted.append(strategy.name)
            try:
                outcome = self.executors[strategy.kind](raw, context)
            except ExtractionError as exc:
                logger.warning("Strategy %s failed: %s", strategy.name, exc)
                errors.append(f"{strategy.name}: {exc}")
                continue
            except Exception as exc:
                logger.exception("Strategy %s raised unexpectedly", strategy.name)
                errors.append(f"{strategy.name}: {type(exc).__name__}: {exc}")
                continue
            if outcome.success and outcome.questions:
                outcome.metadata.fallback_used = outcome.metadata.fallback_used or position > 0
                result = outcome
                break
            reason = "; ".join(outcome.errors) or "no questions extracted"
            logger.warning("Strategy %s produced nothing usable: %s", strategy.name, reason)
            errors.append(f"{strategy.name}: {reason}")

        if result is None:
            result = ExtractionResult(
                success=False,
                errors=errors or ["No strategy produced questions."],
                metadata=ExtractionMetadata(parser="Router", fallback_used=len(attempted) > 1),
            )
            used = decision.selected_strategy
        else:
            used = result.metadata.strategy or attempted[-1]
            if errors:
                logger.info("Recovered via %s after: %s", used, "; ".join(errors))

        meta = result.metadata
        meta.strategy = meta.strategy or used
        meta.routing = decision
        meta.attempted_strategies = attempted
        meta.detected_format = meta.detected_format or context.detected_format
        if meta.format_confidence is None:
            meta.format_confidence = context.format_confidence
        return self._finish(raw, result, start, used, decision.estimated_cost)

    def _finish(
        self, raw: RawInput, result: ExtractionResult, start: float, strategy: str, cost: float,
    ) -> ExtractionResult:
        elapsed = (time.perf_counter() - start) * 1000
        result.metadata.processing_time_ms = round(elapsed, 3)
        if self.telemetry is not None:
            self.telemetry.record(
                strategy=strategy,
                input_kind=raw.kind,
                input_size=raw.size_bytes,
                processing_time_ms=elapsed,
                success=result.success,
                questions_count=len(result.questions),
                confidence=result.confidence,
                estimated_cost=cost,
                errors=result.errors,
            )
        return result
