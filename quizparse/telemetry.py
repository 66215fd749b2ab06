"""In-memory telemetry for parse calls.

Thread-safe. Keeps the most recent ``max_events`` events and derives
per-strategy summaries and simple alerts from them.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from typing import Any

from .schema import TelemetryEvent

logger = logging.getLogger(__name__)

SLOW_CALL_MS = 10_000
MIN_SUCCESS_RATE = 0.8
LOW_CONFIDENCE = 0.5


class PerformanceMonitor:
    """Bounded buffer of :class:`TelemetryEvent` records."""

    def __init__(self, max_events: int = 1000) -> None:
        self._lock = threading.Lock()
        self._events: deque[TelemetryEvent] = deque(maxlen=max_events)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def record(
        self,
        strategy: str,
        input_kind: str,
        input_size: int,
        processing_time_ms: float,
        success: bool,
        questions_count: int,
        confidence: float,
        estimated_cost: float,
        errors: list[str] | None = None,
    ) -> TelemetryEvent:
        event = TelemetryEvent(
            id=uuid.uuid4().hex,
            timestamp=time.time(),
            strategy=strategy,
            input_kind=input_kind,
            input_size=input_size,
            processing_time_ms=round(processing_time_ms, 3),
            success=success,
            questions_count=questions_count,
            confidence=confidence,
            estimated_cost=estimated_cost,
            errors=list(errors or []),
        )
        with self._lock:
            self._events.append(event)
        logger.info(
            "parse strategy=%s kind=%s size=%d time_ms=%.1f success=%s questions=%d "
            "confidence=%.2f cost=%.1f",
            strategy, input_kind, input_size, processing_time_ms, success,
            questions_count, confidence, estimated_cost,
        )
        return event

    def events(self, limit: int | None = None) -> list[TelemetryEvent]:
        with self._lock:
            items = list(self._events)
        return items[-limit:] if limit else items

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def summary(self) -> dict[str, Any]:
        """Totals plus per-strategy averages."""
        events = self.events()
        by_strategy: dict[str, dict[str, Any]] = {}
        for event in events:
            bucket = by_strategy.setdefault(event.strategy, {
                "calls": 0, "successes": 0, "total_time_ms": 0.0,
                "total_confidence": 0.0, "questions": 0,
            })
            bucket["calls"] += 1
            bucket["successes"] += int(event.success)
            bucket["total_time_ms"] += event.processing_time_ms
            bucket["total_confidence"] += event.confidence
            bucket["questions"] += event.questions_count

        strategies = {
            name: {
                "calls": b["calls"],
                "success_rate": round(b["successes"] / b["calls"], 4),
                "avg_time_ms": round(b["total_time_ms"] / b["calls"], 3),
                "avg_confidence": round(b["total_confidence"] / b["calls"], 4),
                "questions": b["questions"],
            }
            for name, b in by_strategy.items()
        }
        total = len(events)
        successes = sum(1 for e in events if e.success)
        return {
            "total_calls": total,
            "success_rate": round(successes / total, 4) if total else 0.0,
            "avg_time_ms": round(sum(e.processing_time_ms for e in events) / total, 3) if total else 0.0,
            "strategies": strategies,
            "alerts": self.alerts(strategies),
        }

    @staticmethod
    def alerts(strategies: dict[str, dict[str, Any]]) -> list[str]:
        found: list[str] = []
        for name, stats in strategies.items():
            if stats["avg_time_ms"] > SLOW_CALL_MS:
                found.append(f"{name}: average processing time {stats['avg_time_ms']:.0f} ms")
            if stats["success_rate"] < MIN_SUCCESS_RATE:
                found.append(f"{name}: success rate {stats['success_rate']:.0%}")
            if stats["avg_confidence"] < LOW_CONFIDENCE:
                found.append(f"{name}: average confidence {stats['avg_confidence']:.2f}")
        return found
