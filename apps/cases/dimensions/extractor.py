from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

from apps.cases.dimensions.registry import PERSON_KEY
from apps.cases.text import normalize_text

EXPLICIT = "explicit"
FALLBACK_CASES = "fallback_cases"
FALLBACK = "fallback"

_VAL = r"([^\n,.;!?]{2,60})"
_EMAIL_VAL = r"([^\s,;!?]{2,80})"


@dataclass(frozen=True)
class ExtractedDimension:
    key: str
    value: str
    match_type: str = EXPLICIT

    def as_dict(self) -> dict:
        return {"key": self.key, "value": self.value, "matchType": self.match_type}


def _rx(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def _email_patterns(word_en: str, word_es: str) -> Tuple[List[Pattern[str]], List[Pattern[str]]]:
    en = [_rx(rf"\b{word_en}\s*email\s+{_EMAIL_VAL}")]
    es = [
        _rx(rf"\b{word_en}\s*email\s+{_EMAIL_VAL}"),
        _rx(rf"\b(?:email|correo)\s+(?:de\s+(?:la\s+|el\s+)?)?{word_es}\s+{_EMAIL_VAL}"),
    ]
    return en, es


_DIRECTOR_EMAIL = _email_patterns("director", "director")
_REGION_EMAIL = _email_patterns("region", r"regi[oó]n")
_OFFICE_EMAIL = _email_patterns("office", "oficina")
_POD_EMAIL = _email_patterns("pod", "pod")
_TEAM_EMAIL = _email_patterns("team", "equipo")

# Registry order; the first matching pattern wins.
_EXPLICIT_EN: List[Tuple[str, List[Pattern[str]]]] = [
    ("office", [
        _rx(rf"\b(?:the\s+)?office\s+of\s+{_VAL}"),
        _rx(rf"\boffice(?!\s*email)\s+{_VAL}"),
    ]),
    ("team", [_rx(rf"\bteam(?!\s*email)\s+{_VAL}")]),
    ("pod", [_rx(rf"\bpod(?!\s*email)\s+{_VAL}")]),
    ("region", [_rx(rf"\bregion(?!\s*email)\s+{_VAL}")]),
    ("director", [_rx(rf"\bdirector(?!\s*email)\s+{_VAL}")]),
    ("attorney", [_rx(rf"\battorney\s+{_VAL}"), _rx(rf"\blawyer\s+{_VAL}")]),
    ("intake", [
        _rx(rf"\bintake\s+specialist\s+{_VAL}"),
        _rx(rf"\bintake\s+{_VAL}"),
        _rx(rf"\blocked\s+down\s+by\s+{_VAL}"),
    ]),
    ("txLocation", [_rx(rf"\btx\s+location\s+{_VAL}")]),
    ("directorEmail", _DIRECTOR_EMAIL[0]),
    ("regionEmail", _REGION_EMAIL[0]),
    ("officeEmail", _OFFICE_EMAIL[0]),
    ("podEmail", _POD_EMAIL[0]),
    ("teamEmail", _TEAM_EMAIL[0]),
]

_EXPLICIT_ES: List[Tuple[str, List[Pattern[str]]]] = [
    ("office", [
        _rx(rf"\b(?:la\s+)?oficina\s+de\s+{_VAL}"),
        _rx(rf"\boficina\s+{_VAL}"),
        _rx(rf"\boffice(?!\s*email)\s+{_VAL}"),
    ]),
    ("team", [_rx(rf"\bequipo\s+{_VAL}"), _rx(rf"\bteam(?!\s*email)\s+{_VAL}")]),
    ("pod", [_rx(rf"\bpod(?!\s*email)\s+{_VAL}")]),
    ("region", [_rx(rf"\bregi[oó]n(?!\s*email)\s+{_VAL}")]),
    ("director", [_rx(rf"\bdirector(?!\s*email)\s+{_VAL}")]),
    ("attorney", [_rx(rf"\babogad[oa]\s+{_VAL}"), _rx(rf"\battorney\s+{_VAL}")]),
    ("intake", [
        _rx(rf"\bintake\s+specialist\s+{_VAL}"),
        _rx(rf"\bespecialista\s+de\s+intake\s+{_VAL}"),
        _rx(rf"\bintake\s+{_VAL}"),
        _rx(rf"\blocked\s+down\s+by\s+{_VAL}"),
        _rx(rf"\bcerrado\s+por\s+{_VAL}"),
        _rx(rf"\bbloqueado\s+por\s+{_VAL}"),
    ]),
    ("txLocation", [_rx(rf"\blocaci[oó]n\s+tx\s+{_VAL}"), _rx(rf"\btx\s+location\s+{_VAL}")]),
    ("directorEmail", _DIRECTOR_EMAIL[1]),
    ("regionEmail", _REGION_EMAIL[1]),
    ("officeEmail", _OFFICE_EMAIL[1]),
    ("podEmail", _POD_EMAIL[1]),
    ("teamEmail", _TEAM_EMAIL[1]),
]

_CASES_OF_EN = _rx(rf"\b(?:give\s+me|show\s+me|see|list|cases|logs)\b[\s\S]{{0,25}}?\b(?:of|for)\s+{_VAL}")
_CASES_OF_ES = _rx(
    rf"\b(?:dame|mu[eé]strame|ver|lista|listado|casos|logs)\b[\s\S]{{0,25}}?\b(?:de|del)\s+{_VAL}"
)
_BARE_OF_EN = _rx(rf"\b(?:of|for)\s+{_VAL}")
_BARE_OF_ES = _rx(rf"\b(?:de|del)\s+{_VAL}")

_NOISE_EN = _rx(
    r"\b(this\s+(?:month|week|year)|last\s+(?:month|week|year)|today|yesterday|tomorrow|"
    r"(?:last|past)\s+\d+\s+(?:days?|weeks?|months?)|by\s+\w+|please|pls)\b"
)
_NOISE_ES = _rx(
    r"\b(este\s+(?:mes|año|ano)|mes\s+pasado|esta\s+semana|semana\s+pasada|hoy|ayer|mañana|"
    r"[uú]ltim[oa]s?\s+\d+\s+(?:d[ií]as?|semanas?|mes(?:es)?)|por\s+(?:oficina|equipo|team|pod|regi[oó]n|"
    r"director|abogado|mes|d[ií]a|semana)|por\s+favor|pls|porfa)\b"
)
_TRAILING_CONJ = _rx(r"\b(y|and|con|with)\s*$")

_PERIOD_EN = _rx(
    r"(this\s+(?:month|week|year)|last\s+(?:month|week|year)|today|yesterday|tomorrow|"
    r"(?:last|past)\s+\d+\s+(?:days?|weeks?|months?))"
)
_PERIOD_ES = _rx(
    r"(este\s+(?:mes|año|ano)|mes\s+pasado|esta\s+semana|semana\s+pasada|hoy|ayer|mañana|"
    r"[uú]ltim[oa]s?\s+\d+\s+(?:d[ií]as?|semanas?|mes(?:es)?))"
)
_MONTH_OR_YEAR_ONLY = re.compile(
    r"^(?:(?:january|february|march|april|may|june|july|august|september|october|november|december|"
    r"enero|febrero|marzo|abril|mayo|junio|julio|agosto|septiembre|setiembre|octubre|noviembre|diciembre)"
    r"(?:\s+(?:de\s+)?(?:19|20)\d{2})?|(?:19|20)\d{2}|q[1-4]\s*(?:19|20)\d{2})$"
)


def clean_value(value: str) -> str:
    s = str(value or "").strip()
    s = re.sub(r"[?.!,;:]+$", "", s).strip()
    s = re.sub(r"\s{2,}", " ", s).strip()
    s = re.sub(r"^['\"“”‘’]+|['\"“”‘’]+$", "", s).strip()
    return s


def strip_trailing_noise(value: str, lang: str = "en") -> str:
    """Cut period/politeness tails off a captured value, then dangling conjunctions."""

    v = clean_value(value)
    rx = _NOISE_ES if lang == "es" else _NOISE_EN
    m = rx.search(v)
    if m and m.start() >= 2:
        v = v[: m.start()].strip()
    v = _TRAILING_CONJ.sub("", v).strip()
    return v


def looks_like_period(value: str, lang: str = "en") -> bool:
    v = str(value or "").strip().lower()
    if not v:
        return True
    rx = _PERIOD_ES if lang == "es" else _PERIOD_EN
    if rx.search(v):
        return True
    return bool(_MONTH_OR_YEAR_ONLY.match(normalize_text(v)))


def _accept(value: str, lang: str) -> Optional[str]:
    v = strip_trailing_noise(value, lang)
    if len(v) < 2 or looks_like_period(v, lang):
        return None
    return v


def extract_dimension(message: str, lang: str = "en") -> Optional[ExtractedDimension]:
    """Find the strongest dimension mention in ``message``.

    Explicit keyword patterns win over the "cases of X" person fallback, which
    wins over a bare "of/for X".
    """

    raw = str(message or "").strip()
    if not raw:
        return None
    es = lang == "es"

    for key, patterns in (_EXPLICIT_ES if es else _EXPLICIT_EN):
        for rx in patterns:
            m = rx.search(raw)
            if not m:
                continue
            value = _accept(m.group(1), lang)
            if value:
                return ExtractedDimension(key=key, value=value, match_type=EXPLICIT)

    m = (_CASES_OF_ES if es else _CASES_OF_EN).search(raw)
    if m:
        value = _accept(m.group(1), lang)
        if value:
            return ExtractedDimension(key=PERSON_KEY, value=value, match_type=FALLBACK_CASES)

    m = (_BARE_OF_ES if es else _BARE_OF_EN).search(raw)
    if m:
        value = _accept(m.group(1), lang)
        if value:
            return ExtractedDimension(key=PERSON_KEY, value=value, match_type=FALLBACK)

    return None


# ----------------------------------------------------------------------------
# Person mentions outside the dimension grammar
# ----------------------------------------------------------------------------

_QUOTED_RE = re.compile(r"[\"“”'‘’]([^\"“”'‘’]{2,50})[\"“”'‘’]")
_PERSON_CUE_RE = re.compile(r"\b(?:de|para|of|for|submitter|submittername)\s+([\w.\- ]{2,50})", re.IGNORECASE)
_LEADING_WORD_RE = re.compile(r"^([A-Z][A-Za-z.\-_]{1,40})\b")
_MENTIONS_PERSON_RE = re.compile(
    r"(submittername|submitter|representante|\brep\b|\bde\s+\w+|\bfor\s+\w+)", re.IGNORECASE
)
_NOT_A_NAME = {
    "give", "show", "get", "see", "list", "logs", "cases", "case",
    "dame", "muestrame", "mostrar", "ver", "lista", "casos",
    "this", "last", "month", "week", "today", "yesterday",
    "este", "esta", "mes", "semana", "hoy", "ayer",
}


def extract_person_name(message: str) -> Optional[str]:
    """Best-effort person name: quoted text, then a ``de/for X`` cue, then a leading capitalised word."""

    raw = str(message or "").strip()
    if not raw:
        return None

    m = _QUOTED_RE.search(raw)
    if m:
        return m.group(1).strip()

    m = _PERSON_CUE_RE.search(raw)
    if m:
        cue_lang = "es" if m.group(0).lower().startswith(("de", "para")) else "en"
        value = strip_trailing_noise(m.group(1), cue_lang)
        return value or None

    m = _LEADING_WORD_RE.match(raw)
    if m:
        return m.group(1).strip()
    return None


def mentions_person_explicitly(message: str) -> bool:
    return bool(_MENTIONS_PERSON_RE.search(str(message or "")))


def safe_explicit_person(message: str, lang: str = "en") -> Optional[str]:
    """A person name the user clearly typed, or None when it is likely noise."""

    if not mentions_person_explicitly(message):
        return None
    value = extract_person_name(message)
    if not value:
        return None
    value = value.strip()
    if value.lower() in _NOT_A_NAME or len(value) < 3 or looks_like_period(value, lang):
        return None
    return value


__all__ = [
    "EXPLICIT",
    "ExtractedDimension",
    "FALLBACK",
    "FALLBACK_CASES",
    "clean_value",
    "extract_dimension",
    "extract_person_name",
    "looks_like_period",
    "mentions_person_explicitly",
    "safe_explicit_person",
    "strip_trailing_noise",
]
