"""Synthesize model prompts tailored to the input.

The builder looks at length, numbering density, OCR noise, language and the
detected format, then picks a template, few-shot examples, a temperature and
a token budget.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Literal

from .format_catalog import ANOMALOUS_CHAR_RE
from .prompt_templates import (
    BATCH_TEMPLATE,
    ERROR_RECOVERY_PROMPTS,
    OCR_REPAIR_TEMPLATE,
    RECOVERY_HINTS,
    STANDARD_TEMPLATE,
    FewShotExample,
    PromptTemplate,
)
from .schema import FormatAssessment

BASE_TEMPERATURE = 0.1
MAX_TEMPERATURE = 0.3
RECOVERY_TEMPERATURE = 0.05
RECOVERY_MAX_TOKENS = 1000
LONG_INPUT_CHARS = 1000
VERY_LONG_INPUT_CHARS = 2000

_NUMBERING_RE = re.compile(r"\d+[.、]")
_GLYPH_CONFUSION_RE = re.compile(
    r"(?<=[A-Za-z])[01](?=[A-Za-z])|(?<=\d)[OoIl](?=\d)|\|"
)
_WIDE_GAP_RE = re.compile(r"\S\s{3,}\S")
_CJK_RE = re.compile(r"[一-鿿]")
_LATIN_RE = re.compile(r"[A-Za-z]")

Language = Literal["zh", "en", "mixed"]


@dataclass(frozen=True)
class InputAnalysis:
    length: int
    is_multi_question: bool
    estimated_questions: int
    has_ocr_errors: bool
    language: Language
    format_id: str | None
    format_confidence: float


@dataclass(frozen=True)
class SynthesizedPrompt:
    system_prompt: str
    user_prompt: str
    temperature: float
    max_tokens: int
    template: str
    strategy: str


def detect_language(text: str) -> Language:
    if not text:
        return "mixed"
    cjk = len(_CJK_RE.findall(text)) / len(text)
    latin = len(_LATIN_RE.findall(text)) / len(text)
    if cjk > 0.3:
        return "mixed" if latin > 0.2 else "zh"
    if latin > 0.3:
        return "en"
    return "mixed"


def has_ocr_errors(text: str) -> bool:
    """Glyph confusion alone, or wide gaps together with stray symbols."""
    if _GLYPH_CONFUSION_RE.search(text):
        return True
    return bool(_WIDE_GAP_RE.search(text) and ANOMALOUS_CHAR_RE.search(text))


def analyze_input(
    text: str,
    assessment: FormatAssessment | None = None,
    ocr_noise: bool = False,
) -> InputAnalysis:
    numbering = len(_NUMBERING_RE.findall(text))
    return InputAnalysis(
        length=len(text),
        is_multi_question=numbering > 1,
        estimated_questions=max(1, numbering),
        has_ocr_errors=ocr_noise or has_ocr_errors(text),
        language=detect_language(text),
        format_id=assessment.format_id if assessment else None,
        format_confidence=assessment.confidence if assessment else 1.0,
    )


def _choose_template(analysis: InputAnalysis) -> PromptTemplate:
    if analysis.format_id == "ocr_format" or analysis.has_ocr_errors:
        return OCR_REPAIR_TEMPLATE
    if analysis.is_multi_question:
        return BATCH_TEMPLATE
    return STANDARD_TEMPLATE


def _system_prompt(template: PromptTemplate, analysis: InputAnalysis) -> str:
    parts = [template.system_prompt]
    if analysis.has_ocr_errors and template is not OCR_REPAIR_TEMPLATE:
        parts.append("The text may contain OCR errors; correct obvious glyph confusions.")
    if analysis.language == "zh":
        parts.append("The content is Chinese; keep stems and options in Chinese.")
    elif analysis.language == "mixed":
        parts.append("The content mixes Chinese and English; keep each part in its original language.")
    if analysis.format_confidence < 0.7:
        parts.append("The layout is irregular; infer question and option boundaries carefully.")
    return "\n\n".join(parts)


def _select_examples(
    template: PromptTemplate, analysis: InputAnalysis,
) -> list[FewShotExample]:
    limit = 1 if analysis.length > LONG_INPUT_CHARS else 2
    examples = list(template.examples)
    if analysis.is_multi_question:
        preferred = [e for e in examples if "batch" in e.description]
        examples = preferred + [e for e in examples if e not in preferred]
    if analysis.has_ocr_errors:
        preferred = [e for e in examples if "ocr" in e.description]
        examples = preferred + [e for e in examples if e not in preferred]
    return examples[:limit]


def _user_prompt(
    template: PromptTemplate, analysis: InputAnalysis, text: str,
    examples: list[FewShotExample],
) -> str:
    parts: list[str] = []
    for index, example in enumerate(examples, start=1):
        parts.append(f"Example {index} input:\n{example.input_text}\nExample {index} output:\n{example.output}")
    if analysis.format_confidence < 0.8:
        parts.append("Hints:\n" + "\n".join(f"- {hint}" for hint in RECOVERY_HINTS))
    parts.append(template.user_template.format(input_text=text))
    return "\n\n".join(parts)


def _temperature(analysis: InputAnalysis) -> float:
    temperature = BASE_TEMPERATURE
    if analysis.format_confidence < 0.7:
        temperature += 0.1
    if analysis.has_ocr_errors:
        temperature += 0.05
    if analysis.is_multi_question:
        temperature -= 0.05
    return round(max(0.0, min(MAX_TEMPERATURE, temperature)), 3)


def _max_tokens(analysis: InputAnalysis) -> int:
    if analysis.is_multi_question:
        return 1000 + math.ceil(analysis.length / 200) * 300
    if analysis.length > VERY_LONG_INPUT_CHARS:
        return 1500
    return 1000


def build_prompt(
    text: str,
    assessment: FormatAssessment | None = None,
    ocr_noise: bool = False,
) -> SynthesizedPrompt:
    """Build system/user prompts plus sampling settings for *text*."""
    analysis = analyze_input(text, assessment, ocr_noise)
    template = _choose_template(analysis)
    examples = _select_examples(template, analysis)

    strategy = [template.name, analysis.language]
    if analysis.has_ocr_errors:
        strategy.append("ocr")
    if analysis.is_multi_question:
        strategy.append(f"batch{analysis.estimated_questions}")
    strategy.append(f"examples{len(examples)}")

    return SynthesizedPrompt(
        system_prompt=_system_prompt(template, analysis),
        user_prompt=_user_prompt(template, analysis, text, examples),
        temperature=_temperature(analysis),
        max_tokens=_max_tokens(analysis),
        template=template.name,
        strategy="+".join(strategy),
    )


def build_recovery_prompt(
    original_text: str, failed_response: str, error: str,
) -> SynthesizedPrompt:
    """Stricter JSON-only prompt used for the single retry."""
    snippet = failed_response if len(failed_response) <= 2000 else failed_response[:2000] + "..."
    return SynthesizedPrompt(
        system_prompt=ERROR_RECOVERY_PROMPTS["system"],
        user_prompt=ERROR_RECOVERY_PROMPTS["user"].format(
            input_text=original_text, failed_response=snippet, error=error,
        ),
        temperature=RECOVERY_TEMPERATURE,
        max_tokens=RECOVERY_MAX_TOKENS,
        template="error_recovery",
        strategy="error_recovery",
    )
