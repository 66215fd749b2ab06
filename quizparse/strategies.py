"""Registry of extraction strategies.

A strategy is one variant of :class:`StrategyKind` plus a static profile of
cost/speed/accuracy/reliability scores (0..10) and what it accepts. The
router scores every variant with the same function; only the executor bound
to each kind differs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

WILDCARD = "*"


class StrategyKind(str, Enum):
    RULE_BASED = "rule_based"
    OPTICAL = "optical"
    DOCUMENT_TEXT = "document_text"
    AI_ASSISTED = "ai_assisted"


@dataclass(frozen=True)
class ExtractionStrategy:
    kind: StrategyKind
    cost_score: float
    speed_score: float
    accuracy_score: float
    reliability_score: float
    supported_kinds: tuple[str, ...]
    supported_formats: tuple[str, ...]
    prerequisites: tuple[str, ...] = ()
    description: str = ""

    @property
    def name(self) -> str:
        return self.kind.value

    def supports_kind(self, input_kind: str) -> bool:
        return input_kind in self.supported_kinds

    def supports_format(self, format_id: str | None) -> bool:
        """Unknown formats (non-text input) never exclude a strategy."""
        if format_id is None:
            return True
        return WILDCARD in self.supported_formats or format_id in self.supported_formats

    def lists_format(self, format_id: str | None) -> bool:
        """True only for an explicit (non-wildcard) listing."""
        return format_id is not None and format_id in self.supported_formats


RULE_BASED = ExtractionStrategy(
    kind=StrategyKind.RULE_BASED,
    cost_score=0,
    speed_score=10,
    accuracy_score=7,
    reliability_score=9,
    supported_kinds=("text",),
    supported_formats=("standard_choice", "simple_choice", "numeric_choice", "parenthesis_choice"),
    description="regex rules over well-formed text",
)

OPTICAL = ExtractionStrategy(
    kind=StrategyKind.OPTICAL,
    cost_score=2,
    speed_score=4,
    accuracy_score=6,
    reliability_score=7,
    supported_kinds=("image",),
    supported_formats=(WILDCARD,),
    prerequisites=("ocr_engine",),
    description="image preprocessing + OCR, then rules or AI over the text",
)

DOCUMENT_TEXT = ExtractionStrategy(
    kind=StrategyKind.DOCUMENT_TEXT,
    cost_score=1,
    speed_score=6,
    accuracy_score=7,
    reliability_score=8,
    supported_kinds=("document",),
    supported_formats=(WILDCARD,),
    description="document text layer with per-page OCR fallback",
)

AI_ASSISTED = ExtractionStrategy(
    kind=StrategyKind.AI_ASSISTED,
    cost_score=8,
    speed_score=6,
    accuracy_score=9,
    reliability_score=8,
    supported_kinds=("text",),
    supported_formats=(WILDCARD,),
    prerequisites=("ai_service",),
    description="generative model with synthesized prompt",
)

DEFAULT_STRATEGIES: tuple[ExtractionStrategy, ...] = (
    RULE_BASED,
    OPTICAL,
    DOCUMENT_TEXT,
    AI_ASSISTED,
)
