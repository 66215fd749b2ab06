"""Catalog of known question layouts.

Each entry is declarative data: diagnostic regexes plus a base confidence and
a priority (lower wins ties). New layouts are added with
:meth:`FormatCatalog.register` at startup; once a detector has used a catalog
it is frozen and further registration raises :class:`CatalogFrozenError`.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from typing import Iterator, Pattern

from .utils import CatalogFrozenError


@dataclass(frozen=True)
class FormatPattern:
    """One recognizable textual layout."""

    name: str
    description: str
    patterns: tuple[Pattern[str], ...]
    confidence: float
    priority: int
    characteristics: tuple[str, ...] = ()
    examples: tuple[str, ...] = field(default=(), repr=False)


# Shared fragments
ANSWER_MARKER = r"(?:(?:正确|参考)?答案|[Aa]nswer)\s*[：:]"
ANOMALOUS_CHAR_RE = re.compile(r"[^\w\s.,;:!?()\[\]{}\"'“”‘’，。：；？！、（）《》\-+=/%]")


STANDARD_CHOICE = FormatPattern(
    name="standard_choice",
    description="Numbered stem, lettered options (A. B. C. D.) and an answer line",
    patterns=(
        re.compile(r"^\d+[.、]\s*.+\??\s*\n?[A-D][.、]\s*.+", re.MULTILINE),
        re.compile(ANSWER_MARKER + r"\s*[A-D]"),
    ),
    confidence=0.9,
    priority=1,
    characteristics=(
        "question starts with a number",
        "options marked A/B/C/D",
        "explicit answer marker",
    ),
    examples=("1. Which is a prime?\nA. 4\nB. 6\nC. 7\nD. 9\n答案：C",),
)

SIMPLE_CHOICE = FormatPattern(
    name="simple_choice",
    description="Unnumbered stem followed by lettered options",
    patterns=(
        re.compile(r"^.+\??\s*\n?[A-D][.、]\s*.+", re.MULTILINE),
        re.compile(r"[A-D][.、]\s*.+"),
    ),
    confidence=0.7,
    priority=2,
    characteristics=(
        "stem may be unnumbered",
        "options marked A/B/C/D",
        "answer may be missing",
    ),
    examples=("What is HTML?\nA. A markup language\nB. A database\nC. A protocol\nD. A compiler",),
)

NUMERIC_CHOICE = FormatPattern(
    name="numeric_choice",
    description="Numbered stem with numeral options (1. 2. 3. 4.)",
    patterns=(
        re.compile(r"^\d+[.、]\s*.+\??\s*\n?[1-4][.、]\s*.+", re.MULTILINE),
        re.compile(r"[1-4][.、]\s*.+"),
    ),
    confidence=0.8,
    priority=3,
    characteristics=(
        "options marked 1/2/3/4",
        "stem usually numbered",
        "answer may be present",
    ),
    examples=("1. Which is a programming language?\n1. JavaScript\n2. HTML\n3. CSS\n4. XML\n答案：1",),
)

PARENTHESIS_CHOICE = FormatPattern(
    name="parenthesis_choice",
    description="Options wrapped in parentheses: (A) (B) (C) (D)",
    patterns=(
        re.compile(r"^\d*[.、]?\s*.+\??\s*\n?\([A-D]\)\s*.+", re.MULTILINE),
        re.compile(r"\([A-D]\)\s*.+"),
    ),
    confidence=0.8,
    priority=4,
    characteristics=(
        "options wrapped in parentheses",
        "formal exam layout",
    ),
    examples=("What is CSS?\n(A) Style sheets\n(B) A database\n(C) A script\n(D) A protocol",),
)

WORD_COPY = FormatPattern(
    name="word_copy",
    description="Pasted from a word processor: blank lines and stray spacing",
    patterns=(
        re.compile(r"^\d+[.、]\s*.+[\r\n]+[A-D][.、]\s*.+", re.MULTILINE),
        re.compile(r"\r\n|\r|\n"),
        re.compile(r"[ \t]{2,}|\n\s*\n"),
    ),
    confidence=0.6,
    priority=5,
    characteristics=(
        "extra blank lines",
        "irregular spacing",
    ),
    examples=("1. Copied question?\n\nA. one\n\nB. two\n\nC. three\n\nD. four\n\n答案：A",),
)

PDF_COPY = FormatPattern(
    name="pdf_copy",
    description="Pasted from a PDF viewer: run-together text and page breaks",
    patterns=(
        re.compile(r"^\d+[.、]\s*.+", re.MULTILINE),
        re.compile(r"[A-D][.、]\s*.+"),
        re.compile(r"\f"),
        re.compile(r"\S[A-D][.、]\S"),
    ),
    confidence=0.5,
    priority=6,
    characteristics=(
        "missing spaces and line breaks",
        "text runs together",
        "page-break characters",
    ),
    examples=("1.What is JavaScript?A.Script B.Markup C.Style D.Database答案:A",),
)

OCR_FORMAT = FormatPattern(
    name="ocr_format",
    description="Optical recognition output with glyph confusion",
    patterns=(
        re.compile(r"[0O1Il|]{2,}"),
        ANOMALOUS_CHAR_RE,
        re.compile(r"\s{3,}"),
    ),
    confidence=0.4,
    priority=7,
    characteristics=(
        "may contain recognition errors",
        "0/O confusion",
        "I/1 confusion",
    ),
    examples=("1.What is HTML?\nA.HyperText Markup Language\nB.High Tech M0dern Language\n答案:A",),
)

MIXED_FORMAT = FormatPattern(
    name="mixed_format",
    description="Mixture of several marker styles",
    patterns=(
        re.compile(r"^\d+[.、]\s*.+", re.MULTILINE),
        re.compile(r"[A-D1-4][.、()]\s*.+"),
    ),
    confidence=0.3,
    priority=8,
    characteristics=(
        "mixed option markers",
        "inconsistent layout",
    ),
    examples=("1. First?\nA. a\nB. b\n2. Second?\n(1) x\n(2) y",),
)

BUILTIN_FORMATS: tuple[FormatPattern, ...] = (
    STANDARD_CHOICE,
    SIMPLE_CHOICE,
    NUMERIC_CHOICE,
    PARENTHESIS_CHOICE,
    WORD_COPY,
    PDF_COPY,
    OCR_FORMAT,
    MIXED_FORMAT,
)


class FormatCatalog:
    """Ordered, append-only registry of :class:`FormatPattern` entries."""

    def __init__(self, formats: tuple[FormatPattern, ...] = BUILTIN_FORMATS) -> None:
        self._lock = threading.Lock()
        self._formats: list[FormatPattern] = []
        self._frozen = False
        for fmt in formats:
            self.register(fmt)

    def register(self, fmt: FormatPattern) -> None:
        with self._lock:
            if self._frozen:
                raise CatalogFrozenError(
                    f"Cannot register format '{fmt.name}': catalog already in use."
                )
            if any(existing.name == fmt.name for existing in self._formats):
                raise ValueError(f"Format '{fmt.name}' is already registered.")
            if not fmt.patterns:
                raise ValueError(f"Format '{fmt.name}' has no diagnostic patterns.")
            self._formats.append(fmt)

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> FormatPattern | None:
        for fmt in self._formats:
            if fmt.name == name:
                return fmt
        return None

    def names(self) -> list[str]:
        return [fmt.name for fmt in self._formats]

    def __iter__(self) -> Iterator[FormatPattern]:
        return iter(tuple(self._formats))

    def __len__(self) -> int:
        return len(self._formats)


_default_catalog: FormatCatalog | None = None
_default_lock = threading.Lock()


def default_catalog() -> FormatCatalog:
    """Return the process-wide catalog of built-in formats."""
    global _default_catalog
    with _default_lock:
        if _default_catalog is None:
            _default_catalog = FormatCatalog()
        return _default_catalog
