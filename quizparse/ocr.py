"""Tesseract-backed optical recognition.

:class:`OpticalAdapter` owns one lazily-initialized engine configuration.
``initialize`` is idempotent and safe to race; ``recognize`` calls are
serialized so a single engine is never driven by two threads at once.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass

import pytesseract
from PIL import Image

from .ocr_router import ResolvedOCRConfig, resolve_ocr_config
from .utils import MissingDependencyError, ResourceUnavailableError

logger = logging.getLogger(__name__)

_INSTALL_HINT = (
    "Install tesseract-ocr (and the tesseract-ocr-chi-sim language pack for "
    "Chinese), or set OCR_LANGUAGE=english."
)

_CJK_GAP_RE = re.compile(r"(?<=[一-鿿])[ \t]+(?=[一-鿿])")
_O_BETWEEN_DIGITS_RE = re.compile(r"(?<=\d)[Oo](?=\d)|(?<=\d)[Oo](?=[.,%])|(?<=[.,])[Oo](?=\d)")
_ZERO_IN_WORD_RE = re.compile(r"(?<=[A-Za-z])0(?=[A-Za-z])")
_L_BETWEEN_DIGITS_RE = re.compile(r"(?<=\d)[lI](?=\d)")


@dataclass(frozen=True)
class OCRResult:
    """Recognized text and mean word confidence on a 0..100 scale."""

    text: str
    confidence: float
    word_count: int


def postprocess_text(text: str) -> str:
    """Undo common glyph confusions in recognized text."""

    fixed = text.replace("|", "I")
    fixed = _O_BETWEEN_DIGITS_RE.sub("0", fixed)
    fixed = _L_BETWEEN_DIGITS_RE.sub("1", fixed)
    fixed = _ZERO_IN_WORD_RE.sub("O", fixed)
    fixed = _CJK_GAP_RE.sub("", fixed)
    return fixed


def _assemble(data: dict) -> tuple[str, list[float]]:
    """Rebuild line-structured text and collect word confidences."""

    lines: dict[tuple[int, int, int], list[str]] = {}
    order: list[tuple[int, int, int]] = []
    confidences: list[float] = []
    texts = data.get("text", [])
    for index in range(len(texts)):
        word = (texts[index] or "").strip()
        if not word:
            continue
        try:
            confidence = float(data["conf"][index])
        except (KeyError, IndexError, TypeError, ValueError):
            confidence = -1.0
        if confidence < 0:
            continue
        key = (
            int(data.get("block_num", [0] * len(texts))[index]),
            int(data.get("par_num", [0] * len(texts))[index]),
            int(data.get("line_num", [0] * len(texts))[index]),
        )
        if key not in lines:
            lines[key] = []
            order.append(key)
        lines[key].append(word)
        confidences.append(confidence)
    text = "\n".join(" ".join(lines[key]) for key in order)
    return text, confidences


class OpticalAdapter:
    """Serialized access to a single Tesseract engine configuration."""

    def __init__(
        self,
        language: str | None = None,
        tessdata_path: str | None = None,
        config: ResolvedOCRConfig | None = None,
    ) -> None:
        self._init_lock = threading.Lock()
        self._recognize_lock = threading.Lock()
        self._config = config or resolve_ocr_config(language)
        self._tessdata_path = tessdata_path
        self._engine_config: str | None = None
        self._ready = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def config(self) -> ResolvedOCRConfig:
        return self._config

    def is_ready(self) -> bool:
        return self._ready

    def initialize(self) -> None:
        """Verify the engine and language data; no-op when already ready."""
        if self._ready:
            return
        with self._init_lock:
            if self._ready:
                return
            lang_config = f'--tessdata-dir "{self._tessdata_path}"' if self._tessdata_path else ""
            try:
                version = pytesseract.get_tesseract_version()
                available = set(pytesseract.get_languages(config=lang_config))
            except pytesseract.TesseractNotFoundError as exc:
                raise MissingDependencyError(
                    f"Tesseract binary not found on PATH. {_INSTALL_HINT}"
                ) from exc
            except (pytesseract.TesseractError, OSError) as exc:
                raise ResourceUnavailableError(
                    f"OCR engine failed to start: {exc}. {_INSTALL_HINT}"
                ) from exc
            missing = [lang for lang in self._config.languages if lang not in available]
            if missing:
                raise ResourceUnavailableError(
                    f"Tesseract language data missing: {', '.join(missing)}. {_INSTALL_HINT}"
                )
            self._engine_config = self._config.to_tesseract_config(self._tessdata_path)
            self._ready = True
            logger.info(
                "OCR engine ready: tesseract %s lang=%s (%s)",
                version, self._config.tesseract_lang, self._engine_config,
            )

    def terminate(self) -> None:
        with self._init_lock:
            self._ready = False
            self._engine_config = None

    def update_config(
        self,
        language: str | None = None,
        psm: int | None = None,
        whitelist: str | None = None,
        tessdata_path: str | None = None,
    ) -> None:
        """Swap engine settings; the next recognize() re-initializes."""
        with self._init_lock:
            self._config = resolve_ocr_config(
                language or self._config.language_id,
                psm=psm if psm is not None else self._config.psm,
                whitelist=whitelist,
            )
            if tessdata_path is not None:
                self._tessdata_path = tessdata_path
            self._ready = False
            self._engine_config = None

    # ------------------------------------------------------------------
    # Recognition
    # ------------------------------------------------------------------
    def recognize(self, image: Image.Image) -> OCRResult:
        """Recognize *image*; confidence is the mean word confidence (0..100)."""
        self.initialize()
        with self._recognize_lock:
            try:
                data = pytesseract.image_to_data(
                    image,
                    lang=self._config.tesseract_lang,
                    config=self._engine_config or "",
                    output_type=pytesseract.Output.DICT,
                )
            except pytesseract.TesseractError as exc:
                raise ResourceUnavailableError(f"OCR recognition failed: {exc}") from exc
        text, confidences = _assemble(data)
        confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return OCRResult(
            text=postprocess_text(text),
            confidence=round(confidence, 2),
            word_count=len(confidences),
        )
