"""AI-assisted question extraction over an OpenAI-compatible chat API.

The reply is free-form text; the first balanced top-level JSON array in it is
taken as the answer. A reply without a usable array gets exactly one retry
with a stricter recovery prompt before the call fails.
"""

from __future__ import annotations

import json
import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

import openai

from .ai_config import AIConfig, is_configured, validate_ai_config
from .prompt_builder import SynthesizedPrompt, build_prompt, build_recovery_prompt
from .schema import DraftQuestion, FormatAssessment
from .utils import MalformedModelResponseError, ResourceUnavailableError
from .validator import answer_from_string

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
_DIFFICULTIES = ("easy", "medium", "hard")


# ---------------------------------------------------------------------------
# Reply scanning
# ---------------------------------------------------------------------------

def iter_array_candidates(text: str) -> Iterator[str]:
    """Yield balanced top-level ``[...]`` spans in order of appearance.

    Brackets inside JSON strings (with escapes) do not count. Prose outside
    an array is ignored entirely, so stray quotes there cannot confuse it.
    """
    length = len(text)
    start = text.find("[")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for index in range(start, length):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "[":
                depth += 1
            elif char == "]":
                depth -= 1
                if depth == 0:
                    end = index
                    break
        if end == -1:
            return
        yield text[start:end + 1]
        start = text.find("[", end + 1)


def find_first_array(text: str) -> str | None:
    """Return the first balanced top-level array literal, or None."""
    return next(iter_array_candidates(text), None)


def _decode_array(reply: str) -> list:
    found_any = False
    last_error: Exception | None = None
    for candidate in iter_array_candidates(reply):
        found_any = True
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError as exc:
            last_error = exc
            continue
        if isinstance(value, list):
            return value
    if not found_any:
        raise MalformedModelResponseError("No JSON array found in the model reply.")
    raise MalformedModelResponseError(f"Model reply array is not valid JSON: {last_error}")


# ---------------------------------------------------------------------------
# Element coercion
# ---------------------------------------------------------------------------

def _option_text(option: Any) -> str:
    if isinstance(option, dict):
        option = option.get("text", option.get("content", ""))
    return str(option).strip() if option is not None else ""


def _answer_index(value: Any, option_count: int) -> int | None:
    # Integers are zero-based indexes; strings follow the validator ("C", "3").
    if isinstance(value, str):
        return answer_from_string(value, option_count)
    if isinstance(value, int) and not isinstance(value, bool):
        return value if 0 <= value < option_count else None
    return None


def coerce_question(element: Any) -> DraftQuestion | None:
    """Map one reply element to a draft, or None when it is unusable."""
    if not isinstance(element, dict):
        return None
    title = element.get("title") or element.get("question") or ""
    if not isinstance(title, str) or not title.strip():
        return None
    raw_options = element.get("options")
    if not isinstance(raw_options, list):
        return None
    options = [text for text in (_option_text(o) for o in raw_options) if text]
    if len(options) < 2:
        return None
    answer = element.get("correct_answer", element.get("correctAnswer", element.get("answer")))
    index = _answer_index(answer, len(options))
    if index is None:
        return None
    explanation = element.get("explanation")
    difficulty = element.get("difficulty")
    tags = element.get("tags")
    return DraftQuestion(
        title=title.strip(),
        options=options,
        correct_answer=index,
        explanation=explanation.strip() if isinstance(explanation, str) else None,
        difficulty=difficulty if difficulty in _DIFFICULTIES else "medium",
        tags=[t for t in tags if isinstance(t, str)] if isinstance(tags, list) else [],
    )


def parse_reply(reply: str) -> tuple[list[DraftQuestion], int]:
    """Return accepted drafts and the number of rejected elements."""
    elements = _decode_array(reply)
    questions: list[DraftQuestion] = []
    rejected = 0
    for element in elements:
        draft = coerce_question(element)
        if draft is None:
            rejected += 1
        else:
            questions.append(draft)
    if not questions:
        raise MalformedModelResponseError(
            f"Model reply contained {len(elements)} element(s) but no usable question."
        )
    return questions, rejected


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

@dataclass
class AIExtraction:
    questions: list[DraftQuestion]
    template: str
    prompt_strategy: str
    attempts: int
    recovered: bool
    rejected_elements: int = 0
    warnings: list[str] = field(default_factory=list)


def _default_client(config: AIConfig) -> Any:
    return openai.OpenAI(
        api_key=config.api_key,
        base_url=config.resolved_base_url,
        timeout=config.timeout,
        max_retries=0,
    )


class AIExtractionAdapter:
    """Calls the chat API and turns its reply into draft questions."""

    name = "AI"

    def __init__(
        self,
        config: AIConfig,
        client_factory: Callable[[AIConfig], Any] | None = None,
    ) -> None:
        self.config = config
        self._client_factory = client_factory or _default_client
        self._client: Any | None = None
        self._client_lock = threading.Lock()

    def is_available(self) -> bool:
        return is_configured(self.config)

    def problems(self) -> list[str]:
        return validate_ai_config(self.config)

    def _get_client(self) -> Any:
        with self._client_lock:
            if self._client is None:
                self._client = self._client_factory(self.config)
            return self._client

    def _complete(self, prompt: SynthesizedPrompt) -> str:
        client = self._get_client()
        try:
            resp = client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": prompt.system_prompt},
                    {"role": "user", "content": prompt.user_prompt},
                ],
                temperature=prompt.temperature,
                max_tokens=min(prompt.max_tokens, self.config.max_tokens),
            )
        except openai.OpenAIError as exc:
            raise ResourceUnavailableError(f"AI endpoint call failed: {exc}") from exc
        if not resp.choices:
            return ""
        return (resp.choices[0].message.content or "").strip()

    def extract(
        self,
        text: str,
        assessment: FormatAssessment | None = None,
        ocr_noise: bool = False,
    ) -> AIExtraction:
        """Extract questions from *text*; one recovery retry on a bad reply."""
        if not self.is_available():
            raise ResourceUnavailableError("; ".join(self.problems()))

        prompt = build_prompt(text, assessment, ocr_noise=ocr_noise)
        logger.debug("AI prompt strategy %s (temperature %.2f)", prompt.strategy, prompt.temperature)
        reply = self._complete(prompt)
        try:
            questions, rejected = parse_reply(reply)
            return AIExtraction(
                questions=questions,
                template=prompt.template,
                prompt_strategy=prompt.strategy,
                attempts=1,
                recovered=False,
                rejected_elements=rejected,
            )
        except MalformedModelResponseError as exc:
            logger.warning("AI reply malformed (%s); retrying once with recovery prompt", exc)
            first_error = str(exc)

        recovery = build_recovery_prompt(text, reply, first_error)
        second = self._complete(recovery)
        questions, rejected = parse_reply(second)
        return AIExtraction(
            questions=questions,
            template=prompt.template,
            prompt_strategy=prompt.strategy,
            attempts=2,
            recovered=True,
            rejected_elements=rejected,
            warnings=[f"First reply unusable: {first_error}"],
        )

    def estimate_cost(self, text: str) -> float:
        """Rough spend for one call: prompt tokens plus the output budget."""
        prompt = build_prompt(text)
        input_tokens = math.ceil((len(prompt.system_prompt) + len(prompt.user_prompt)) / CHARS_PER_TOKEN)
        total = input_tokens + prompt.max_tokens
        return round(total / 1000 * self.config.resolved_cost_per_1k, 6)
