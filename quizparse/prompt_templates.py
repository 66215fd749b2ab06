"""Prompt templates for AI-assisted question extraction.

Every template asks for a single JSON array of question objects with the keys
``title``, ``options``, ``correct_answer`` (zero-based index), ``explanation``,
``difficulty`` and ``tags``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

OUTPUT_CONTRACT = """\
Return ONLY a JSON array. Each element must be:
{
  "title": "<question stem without its number>",
  "options": ["<option text without its A./B./1. marker>", ...],
  "correct_answer": <zero-based index of the correct option>,
  "explanation": "<explanation or empty string>",
  "difficulty": "<easy|medium|hard>",
  "tags": ["<short topic tag>", ...]
}
Every question needs at least two options. Do not wrap the array in markdown
fences and do not add commentary."""


@dataclass(frozen=True)
class FewShotExample:
    description: str
    input_text: str
    output: str


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    system_prompt: str
    user_template: str  # contains {input_text}
    examples: tuple[FewShotExample, ...] = field(default=())


_SINGLE_EXAMPLE = FewShotExample(
    description="standard single question with answer line",
    input_text="1. Which planet is closest to the sun?\nA. Venus\nB. Mercury\nC. Mars\nD. Earth\n答案：B",
    output=(
        '[{"title": "Which planet is closest to the sun?", '
        '"options": ["Venus", "Mercury", "Mars", "Earth"], "correct_answer": 1, '
        '"explanation": "", "difficulty": "easy", "tags": ["astronomy"]}]'
    ),
)

_CHINESE_EXAMPLE = FewShotExample(
    description="chinese question with explanation",
    input_text="下列哪个是HTML的全称？\nA. 超文本标记语言\nB. 高级文本语言\nC. 超链接语言\nD. 主页工具语言\n答案：A\n解析：HTML即HyperText Markup Language。",
    output=(
        '[{"title": "下列哪个是HTML的全称？", '
        '"options": ["超文本标记语言", "高级文本语言", "超链接语言", "主页工具语言"], '
        '"correct_answer": 0, "explanation": "HTML即HyperText Markup Language。", '
        '"difficulty": "easy", "tags": ["HTML"]}]'
    ),
)

_BATCH_EXAMPLE = FewShotExample(
    description="batch of numbered questions",
    input_text=(
        "1. 2 + 3 = ?\nA. 4\nB. 5\nC. 6\nD. 7\n答案：B\n"
        "2. Which is a prime number?\nA. 4\nB. 6\nC. 7\nD. 9\n答案：C"
    ),
    output=(
        '[{"title": "2 + 3 = ?", "options": ["4", "5", "6", "7"], "correct_answer": 1, '
        '"explanation": "", "difficulty": "easy", "tags": ["arithmetic"]}, '
        '{"title": "Which is a prime number?", "options": ["4", "6", "7", "9"], '
        '"correct_answer": 2, "explanation": "", "difficulty": "easy", "tags": ["primes"]}]'
    ),
)

_OCR_EXAMPLE = FewShotExample(
    description="ocr noise with confused glyphs",
    input_text="l. What d0es CPU stand f0r?\nA.Central Pr0cessing Unit\nB. Central Pr|nting Unit\nC.Computer Power Unit\nD. C0re Process Utility\nAnswer: A",
    output=(
        '[{"title": "What does CPU stand for?", '
        '"options": ["Central Processing Unit", "Central Printing Unit", '
        '"Computer Power Unit", "Core Process Utility"], "correct_answer": 0, '
        '"explanation": "", "difficulty": "easy", "tags": ["hardware"]}]'
    ),
)


STANDARD_TEMPLATE = PromptTemplate(
    name="standard_question",
    system_prompt=(
        "You convert exam text into structured multiple-choice questions. "
        "Keep the wording of stems and options; remove numbering and option "
        "markers. If no answer is given, pick the option the text marks as "
        "correct, otherwise use 0.\n\n" + OUTPUT_CONTRACT
    ),
    user_template="Extract the question(s) from the following text:\n\n{input_text}",
    examples=(_SINGLE_EXAMPLE, _CHINESE_EXAMPLE),
)

BATCH_TEMPLATE = PromptTemplate(
    name="batch_question",
    system_prompt=(
        "You convert a batch of exam questions into structured records. "
        "Extract every question in order, one array element per question, "
        "and never merge or skip questions. Keep the field layout identical "
        "across all elements.\n\n" + OUTPUT_CONTRACT
    ),
    user_template=(
        "The text below contains several questions. Extract all of them:\n\n{input_text}"
    ),
    examples=(_BATCH_EXAMPLE, _SINGLE_EXAMPLE),
)

OCR_REPAIR_TEMPLATE = PromptTemplate(
    name="ocr_repair",
    system_prompt=(
        "You repair optical-recognition output of exam questions and convert it "
        "into structured records. Fix confused glyphs (0/O, 1/l/I, |), rejoin "
        "broken lines, drop stray symbols, and restore option markers before "
        "extracting.\n\n" + OUTPUT_CONTRACT
    ),
    user_template=(
        "The text below came from OCR and may contain recognition errors. "
        "Repair it and extract the questions:\n\n{input_text}"
    ),
    examples=(_OCR_EXAMPLE, _SINGLE_EXAMPLE),
)

TEMPLATES: dict[str, PromptTemplate] = {
    STANDARD_TEMPLATE.name: STANDARD_TEMPLATE,
    BATCH_TEMPLATE.name: BATCH_TEMPLATE,
    OCR_REPAIR_TEMPLATE.name: OCR_REPAIR_TEMPLATE,
}

RECOVERY_HINTS = (
    "If the layout is irregular, infer option boundaries from A/B/C/D or 1/2/3/4 markers.",
    "If an answer line is missing, set correct_answer to 0 rather than omitting it.",
)

ERROR_RECOVERY_PROMPTS: dict[str, str] = {
    "system": (
        "Your previous reply could not be parsed. Reply with a single JSON array "
        "and nothing else: no prose, no markdown fences, no trailing commas.\n\n"
        + OUTPUT_CONTRACT
    ),
    "user": (
        "Original text:\n{input_text}\n\n"
        "Your previous reply:\n{failed_response}\n\n"
        "Parse error: {error}\n\n"
        "Reply again with ONLY the JSON array."
    ),
}
