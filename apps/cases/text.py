"""Small text helpers shared by the NLU and SQL passes."""
from __future__ import annotations

import re
import unicodedata

_WS_RE = re.compile(r"\s+")
_INVISIBLE_RE = re.compile("[\u200B-\u200F\u202A-\u202E\uFEFF]")


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value or "")
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_text(value: str) -> str:
    """Lowercase, strip accents and collapse whitespace."""

    return _WS_RE.sub(" ", strip_accents(str(value or "")).lower()).strip()


def clean_spaces(value: str) -> str:
    return _WS_RE.sub(" ", str(value or "")).strip()


def strip_invisible(value: str) -> str:
    return _INVISIBLE_RE.sub("", value or "")


def same_text(a: str, b: str) -> bool:
    return normalize_text(a) == normalize_text(b)


def like_pattern(*parts: str) -> str:
    """``%a%b%`` bind value for a case-insensitive ``LOWER(...) LIKE`` match."""

    cleaned = [clean_spaces(p).lower() for p in parts if clean_spaces(p)]
    return "%" + "%".join(cleaned) + "%" if cleaned else "%"


def pick_lang(lang: str | None, message: str = "") -> str:
    """Return ``"es"`` or ``"en"`` from an explicit tag, else a cheap guess from the message."""

    raw = (lang or "").strip().lower()
    if raw.startswith("es"):
        return "es"
    if raw.startswith("en"):
        return "en"
    if re.search(r"\b(dame|casos|ultimos|este mes|semana|por favor|hola|buenas|quiero)\b", normalize_text(message)):
        return "es"
    return "en"


__all__ = [
    "clean_spaces",
    "like_pattern",
    "normalize_text",
    "pick_lang",
    "same_text",
    "strip_accents",
    "strip_invisible",
]
