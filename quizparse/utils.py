"""Errors and small helpers shared across the extraction pipeline."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path


class ExtractionError(Exception):
    """Base exception for extraction errors."""


class UnsupportedInputError(ExtractionError):
    """Raised when no strategy supports the input kind or detected format."""


class ResourceUnavailableError(ExtractionError):
    """Raised when an external engine (OCR, AI endpoint) cannot be used."""


class MissingDependencyError(ResourceUnavailableError):
    """Raised when required system dependencies are missing."""


class MalformedModelResponseError(ExtractionError):
    """Raised when the AI reply cannot be turned into questions after the retry."""


class DocumentValidationError(ExtractionError):
    """Raised when a document file is missing or unreadable."""


class EmptyContentError(ExtractionError):
    """Raised when extracted content is empty."""


class CatalogFrozenError(ExtractionError):
    """Raised when a format is registered after the catalog is in use."""


IMAGE_SUFFIXES = frozenset({".png", ".jpg", ".jpeg", ".bmp", ".gif", ".tif", ".tiff", ".webp"})
DOCUMENT_SUFFIXES = frozenset({".pdf", ".docx"})
TEXT_SUFFIXES = frozenset({"", ".txt", ".text", ".md"})


def normalize_text(text: str) -> str:
    """Normalize text for cache keys: ligatures, line endings and runs of blanks."""

    normalized = (
        text.replace("ﬁ", "fi")
        .replace("ﬂ", "fl")
        .replace("\r\n", "\n")
        .replace("\r", "\n")
    )
    lines = [" ".join(line.split()) for line in normalized.split("\n")]
    return "\n".join(line for line in lines if line).strip()


def content_hash(payload: str | bytes) -> str:
    """Return a stable sha256 hex digest for text or binary payloads."""

    if isinstance(payload, str):
        data = normalize_text(payload).encode("utf-8")
    else:
        data = payload
    return hashlib.sha256(data).hexdigest()


def validate_input_path(path: str | Path) -> Path:
    """Validate that an input file exists and is readable."""

    file_path = Path(path).expanduser().resolve()
    if not file_path.exists():
        raise DocumentValidationError(f"File not found: {file_path}")
    if not file_path.is_file():
        raise DocumentValidationError(f"Path is not a file: {file_path}")
    if not os.access(file_path, os.R_OK):
        raise DocumentValidationError(f"File is not readable: {file_path}")
    return file_path


def kind_for_suffix(suffix: str) -> str:
    """Map a file suffix to an input kind (text, image or document)."""

    suffix = suffix.lower()
    if suffix in DOCUMENT_SUFFIXES:
        return "document"
    if suffix in IMAGE_SUFFIXES:
        return "image"
    if suffix in TEXT_SUFFIXES:
        return "text"
    raise UnsupportedInputError(f"Unsupported file type '{suffix}'.")
