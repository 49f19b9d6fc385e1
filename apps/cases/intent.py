from __future__ import annotations

import re

from apps.cases.text import normalize_text

# --- Patterns (EN + ES, accent-free) ---
_GREETING = re.compile(r"^\s*(hola|hello|hi|hey|buenas|buenos dias|buenas tardes|buenas noches)\b")
_CNV = re.compile(r"\b(cnv|convertid\w*|converted|confirmad\w*|confirmed|case converted)\b")
_HEALTH = re.compile(r"\b(dropped|drop|problem|ref out|aging|sin visitas|no visits|visits)\b|>\s*(30|60)")
_CLINICAL = re.compile(r"\b(clinical|clinic\w*|treatment|ldot|visitas clinicas)\b")
_DETAIL = re.compile(r"\b(detalle|lista|listado|top|casos|cases|ver)\b")
_KPI = re.compile(
    r"\b(confirmed|confirmados|tasa|rate|dropped|problem|leakage|active|referout|"
    r"valor de conversion|conversion value|kpi)\b"
)
_LIST_OR_BREAKDOWN = re.compile(
    r"\b(logs|lista|list|detalle|show me|dame)\b"
    r"|\bpor (oficina|team|equipo|pod|region|director|abogado|intake)\b"
    r"|\bby (office|team|pod|region|director|attorney|intake)\b"
    r"|\btop \d+\b|\branking\b"
)
_NEW_TOPIC = re.compile(
    r"\b(otra cosa|cambiando de tema|nuevo tema|diferente|ahora|por cierto|ademas|"
    r"another thing|change topic|new topic|now|by the way|also)\b"
    r"|\b(top reps|ranking|por oficina|by office|por team|by team|por region|by region)\b"
)
_FOLLOW_UP_ES = re.compile(
    r"(y el mes pasado|mes pasado|y ayer|y hoy|y esta semana|y la semana pasada|y en los ultimos \d+ dias)\b"
)
_FOLLOW_UP_EN = re.compile(r"(and last month|last month|and yesterday|today|this week|last week|last \d+ days)\b")


def is_greeting(message: str) -> bool:
    return bool(_GREETING.search(normalize_text(message)))


def classify_intent(question: str) -> str:
    q = normalize_text(question)
    cnv = bool(_CNV.search(q))
    health = bool(_HEALTH.search(q))
    clinical = bool(_CLINICAL.search(q))
    if cnv and (health or clinical):
        return "mix"
    if cnv:
        return "cnv"
    if clinical:
        return "clinical"
    if health:
        return "health"
    if _DETAIL.search(q):
        return "detail"
    return "general"


def is_kpi_only_question(message: str) -> bool:
    """Headline numbers asked for without a list or breakdown."""

    q = normalize_text(message)
    return bool(_KPI.search(q)) and not _LIST_OR_BREAKDOWN.search(q)


def looks_like_new_topic(message: str) -> bool:
    return bool(_NEW_TOPIC.search(normalize_text(message)))


def is_follow_up_question(message: str, lang: str = "en") -> bool:
    q = normalize_text(message)
    rx = _FOLLOW_UP_ES if lang == "es" else _FOLLOW_UP_EN
    return bool(rx.search(q))


__all__ = [
    "classify_intent",
    "is_follow_up_question",
    "is_greeting",
    "is_kpi_only_question",
    "looks_like_new_topic",
]
