"""Detect when a message asks to change or drop a locked filter."""
from __future__ import annotations

import re
from typing import Dict, Tuple

from apps.cases.dimensions.registry import get_dimension
from apps.cases.text import normalize_text

CHANGE_WORDS: Tuple[str, ...] = (
    "cambia", "cambiar", "cambialo", "otra", "otro", "distinto", "diferente",
    "switch", "change", "different", "another",
)
CLEAR_WORDS: Tuple[str, ...] = (
    "sin", "quita", "quitar", "remueve", "remover", "elimina", "eliminar", "clear", "remove", "without",
)

_KEY_WORDS: Dict[str, Tuple[str, ...]] = {
    "person": ("rep", "representante", "submitter", "agent", "entered by", "persona", "usuario"),
    "office": ("oficina", "office"),
    "team": ("equipo", "team"),
    "pod": ("pod",),
}

_SAYS_NOT_RE = re.compile(r"\bno\s+es\b|\bnot\b")


def _has_word(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}\b", text) is not None


def _key_words(key: str) -> Tuple[str, ...]:
    if key in _KEY_WORDS:
        return _KEY_WORDS[key]
    dim = get_dimension(key)
    if dim is None:
        return (key.lower(),)
    return tuple(normalize_text(w) for w in (*dim.synonyms_en, *dim.synonyms_es))


def wants_to_change(message: str, key: str = "") -> bool:
    m = normalize_text(message)
    has_change = any(_has_word(m, w) for w in CHANGE_WORDS)
    if not key:
        return has_change
    has_key = any(_has_word(m, w) for w in _key_words(key))
    return has_key and (has_change or bool(_SAYS_NOT_RE.search(m)))


def wants_to_clear(message: str, key: str) -> bool:
    m = normalize_text(message)
    has_key = any(_has_word(m, w) for w in _key_words(key))
    return has_key and any(_has_word(m, w) for w in CLEAR_WORDS)


__all__ = ["CHANGE_WORDS", "CLEAR_WORDS", "wants_to_change", "wants_to_clear"]
