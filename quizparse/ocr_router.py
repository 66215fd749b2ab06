"""OCR language routing: resolve a language name to Tesseract settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Characters exam content is expected to use; CJK is passed through by
# leaving the whitelist empty for profiles that include Chinese.
LATIN_WHITELIST = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
    "0123456789.,;:!?()[]{}+-=*/%<> "
)

# Canonical profile id -> Tesseract settings
LANGUAGE_PROFILES: dict[str, dict[str, Any]] = {
    "mixed": {
        "id": "mixed",
        "tesseract_lang": "chi_sim+eng",
        "oem": 1,
        "psm": 6,
        "whitelist": "",
    },
    "chinese": {
        "id": "chinese",
        "tesseract_lang": "chi_sim",
        "oem": 1,
        "psm": 6,
        "whitelist": "",
    },
    "english": {
        "id": "english",
        "tesseract_lang": "eng",
        "oem": 1,
        "psm": 6,
        "whitelist": LATIN_WHITELIST,
    },
}

# Alias -> canonical profile id
LANGUAGE_ALIASES: dict[str, str] = {
    "zh": "chinese",
    "chi_sim": "chinese",
    "cn": "chinese",
    "en": "english",
    "eng": "english",
    "chi_sim+eng": "mixed",
    "auto": "mixed",
}

DEFAULT_LANGUAGE = "mixed"


@dataclass(frozen=True)
class ResolvedOCRConfig:
    """Engine settings for one recognition language profile."""

    tesseract_lang: str
    oem: int
    psm: int
    whitelist: str
    preserve_interword_spaces: bool
    language_id: str

    def to_tesseract_config(self, tessdata_path: str | None = None) -> str:
        """Render the ``config`` string passed to pytesseract."""
        parts = [f"--oem {self.oem}", f"--psm {self.psm}"]
        if self.whitelist:
            parts.append(f"-c tessedit_char_whitelist={self.whitelist.replace(' ', '')}")
        if self.preserve_interword_spaces:
            parts.append("-c preserve_interword_spaces=1")
        if tessdata_path:
            parts.append(f'--tessdata-dir "{tessdata_path}"')
        return " ".join(parts)

    @property
    def languages(self) -> list[str]:
        return self.tesseract_lang.split("+")


def resolve_ocr_config(
    language: str | None = None,
    psm: int | None = None,
    whitelist: str | None = None,
) -> ResolvedOCRConfig:
    """Resolve a language name or alias to engine settings.

    Unknown names are treated as raw Tesseract codes (e.g. ``"deu"``) with the
    mixed profile's engine defaults.
    """
    key = (language or DEFAULT_LANGUAGE).strip().lower()
    profile_id = LANGUAGE_ALIASES.get(key, key)
    profile = LANGUAGE_PROFILES.get(profile_id)
    if profile is None:
        base = LANGUAGE_PROFILES[DEFAULT_LANGUAGE]
        profile = {**base, "id": key, "tesseract_lang": key, "whitelist": ""}
    return ResolvedOCRConfig(
        tesseract_lang=profile["tesseract_lang"],
        oem=profile["oem"],
        psm=psm if psm is not None else profile["psm"],
        whitelist=profile["whitelist"] if whitelist is None else whitelist,
        preserve_interword_spaces=True,
        language_id=profile["id"],
    )
