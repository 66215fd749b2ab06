"""Document text extraction: PyMuPDF text layer first, per-page OCR fallback.

Word files (.docx) have no scanned pages; their paragraphs and table cells are
read with python-docx and reported as a text layer.

Pages are handled strictly one after another and never beyond ``max_pages``
so peak memory stays bounded to a single rasterized page.
"""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import docx
import fitz  # PyMuPDF
from docx.opc.exceptions import PackageNotFoundError
from pdf2image import convert_from_bytes, convert_from_path
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError

from .config import DOCUMENT_MAX_PAGES, DOCUMENT_TEXT_MIN_CHARS, OCR_DPI
from .image_preprocess import PreprocessOptions, preprocess_image
from .ocr import OpticalAdapter
from .utils import (
    DocumentValidationError,
    MissingDependencyError,
    ResourceUnavailableError,
)

logger = logging.getLogger(__name__)

TEXT_LAYER_CONFIDENCE = 0.9

DocumentSource = str | Path | bytes


@dataclass
class DocumentText:
    """Text pulled from a document plus how it was obtained."""

    text: str
    method: Literal["text_layer", "ocr"]
    confidence: float
    page_count: int
    pages_processed: int
    page_confidences: list[float] = field(default_factory=list)
    truncated: bool = False


def _open(source: DocumentSource) -> fitz.Document:
    try:
        if isinstance(source, bytes):
            return fitz.open(stream=source, filetype="pdf")
        return fitz.open(str(source))
    except (RuntimeError, ValueError) as exc:
        raise DocumentValidationError(f"Cannot open document: {exc}") from exc


def extract_native_text(
    source: DocumentSource, max_pages: int | None = None,
) -> tuple[list[dict], int]:
    """Read the embedded text layer.

    Returns:
        (pages, page_count) where pages is a list of
        ``{"page_number": int, "text": str, "char_count": int}`` for at most
        *max_pages* pages and page_count is the document's full length.
    """
    doc = _open(source)
    pages: list[dict] = []
    try:
        page_count = doc.page_count
        limit = page_count if max_pages is None else min(page_count, max_pages)
        for index in range(limit):
            text = doc[index].get_text()
            pages.append({
                "page_number": index + 1,
                "text": text,
                "char_count": len(text.strip()),
            })
    finally:
        doc.close()
    return pages, page_count


def is_docx(source: DocumentSource) -> bool:
    if isinstance(source, bytes):
        return source.startswith(b"PK\x03\x04")
    return Path(source).suffix.lower() == ".docx"


def extract_docx_text(source: DocumentSource) -> str:
    """Paragraph text followed by table cell text, one block per line."""
    try:
        document = docx.Document(io.BytesIO(source) if isinstance(source, bytes) else str(source))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
        raise DocumentValidationError(f"Cannot open Word document: {exc}") from exc
    lines = [p.text.strip() for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            lines.extend(cell.text.strip() for cell in row.cells)
    return "\n".join(line for line in lines if line)


def render_page(source: DocumentSource, page_number: int, dpi: int = OCR_DPI):
    """Rasterize one page with pdf2image; returns a PIL image."""
    try:
        if isinstance(source, bytes):
            images = convert_from_bytes(
                source, dpi=dpi, first_page=page_number, last_page=page_number,
            )
        else:
            images = convert_from_path(
                str(source), dpi=dpi, first_page=page_number, last_page=page_number,
            )
    except PDFInfoNotInstalledError as exc:
        raise MissingDependencyError(
            "poppler (pdftoppm/pdfinfo) is required to rasterize scanned documents."
        ) from exc
    except (PDFPageCountError, PDFSyntaxError) as exc:
        raise DocumentValidationError(f"Failed to rasterize page {page_number}: {exc}") from exc
    if not images:
        raise ResourceUnavailableError(f"Rasterizer returned no image for page {page_number}.")
    return images[0]


class DocumentExtractor:
    """Text-layer extraction with a rasterize-and-recognize fallback."""

    def __init__(
        self,
        optical: OpticalAdapter,
        max_pages: int = DOCUMENT_MAX_PAGES,
        min_text_chars: int = DOCUMENT_TEXT_MIN_CHARS,
        dpi: int = OCR_DPI,
        use_ocr_for_scanned: bool = True,
        preprocess_options: PreprocessOptions | None = None,
    ) -> None:
        self.optical = optical
        self.max_pages = max_pages
        self.min_text_chars = min_text_chars
        self.dpi = dpi
        self.use_ocr_for_scanned = use_ocr_for_scanned
        self.preprocess_options = preprocess_options

    def extract(self, source: DocumentSource) -> DocumentText:
        if is_docx(source):
            text = extract_docx_text(source)
            return DocumentText(
                text=text,
                method="text_layer",
                confidence=TEXT_LAYER_CONFIDENCE if text else 0.0,
                page_count=1,
                pages_processed=1,
            )
        pages, page_count = extract_native_text(source, max_pages=self.max_pages)
        truncated = page_count > self.max_pages
        if truncated:
            logger.warning(
                "Document has %d pages; only the first %d are processed.",
                page_count, self.max_pages,
            )

        text = "\n".join(p["text"].strip() for p in pages if p["text"].strip())
        if len(text) >= self.min_text_chars or not self.use_ocr_for_scanned:
            return DocumentText(
                text=text,
                method="text_layer",
                confidence=TEXT_LAYER_CONFIDENCE if text else 0.0,
                page_count=page_count,
                pages_processed=len(pages),
                truncated=truncated,
            )

        logger.info(
            "Text layer yielded %d chars (< %d); falling back to OCR on %d page(s).",
            len(text), self.min_text_chars, len(pages),
        )
        return self._recognize_pages(source, len(pages), page_count, truncated)

    def _recognize_pages(
        self,
        source: DocumentSource,
        pages_to_process: int,
        page_count: int,
        truncated: bool,
    ) -> DocumentText:
        parts: list[str] = []
        confidences: list[float] = []
        for page_number in range(1, pages_to_process + 1):
            image = render_page(source, page_number, dpi=self.dpi)
            prepared = preprocess_image(image, self.preprocess_options)
            result = self.optical.recognize(prepared)
            del image, prepared
            confidences.append(result.confidence)
            if result.text.strip():
                parts.append(result.text.strip())
            logger.debug(
                "OCR page %d: %d words, confidence %.1f",
                page_number, result.word_count, result.confidence,
            )
        average = sum(confidences) / len(confidences) if confidences else 0.0
        return DocumentText(
            text="\n".join(parts),
            method="ocr",
            confidence=round(average / 100.0, 4),
            page_count=page_count,
            pages_processed=len(confidences),
            page_confidences=confidences,
            truncated=truncated,
        )
