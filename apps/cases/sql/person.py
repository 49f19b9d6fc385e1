"""Person filters written by the proposer: rewrite them to the fuzzy person match, or read them back."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

from apps.cases.dimensions.registry import PERSON_EXPR
from apps.cases.text import normalize_text

_QUAL = r"(?:`?\w+`?\.)?"
_COALESCE = r"COALESCE\s*\(\s*NULLIF\s*\(\s*submitterName\s*,\s*''\s*\)\s*,\s*submitter\s*\)"
_TRIM_COALESCE = rf"TRIM\s*\(\s*{_COALESCE}\s*\)"
_LOWER_TRIM_COALESCE = rf"LOWER\s*\(\s*{_TRIM_COALESCE}\s*\)"

_EQ = r"\s*=\s*'((?:[^'\\]|'')+)'"
_LIKE = r"\s+LIKE\s+'%((?:[^'%\\]|'')+)%'"


def _col(name: str) -> str:
    return rf"(?<![\w.]){_QUAL}`?{name}`?\b"


_INTAKE = [re.compile(_col("intakeSpecialist") + _EQ, re.I), re.compile(_col("intakeSpecialist") + _LIKE, re.I)]
_SUBMITTER = [
    re.compile(_LOWER_TRIM_COALESCE + _LIKE, re.I),
    re.compile(_TRIM_COALESCE + _EQ, re.I),
    re.compile(_TRIM_COALESCE + _LIKE, re.I),
    re.compile(rf"(?<!\()\b{_COALESCE}" + _EQ, re.I),
    re.compile(rf"(?<!\()\b{_COALESCE}" + _LIKE, re.I),
    re.compile(_col("submitterName") + _EQ, re.I),
    re.compile(_col("submitterName") + _LIKE, re.I),
    re.compile(_col("submitter") + _EQ, re.I),
    re.compile(_col("submitter") + _LIKE, re.I),
]
_NAME = [re.compile(_col("name") + _EQ, re.I), re.compile(_col("name") + _LIKE, re.I)]

_CLIENT_WORDS = (
    "cliente", "client", "patient", "paciente", "lead", "case", "caso",
    "claimant", "injured", "nombre del caso", "nombre del cliente",
)
_INTAKE_WORDS = ("intake", "locked down", "lock down", "cerrado por", "bloqueado por")


def question_mentions_client(question: str) -> bool:
    q = normalize_text(question)
    return any(w in q for w in _CLIENT_WORDS)


def question_mentions_intake(question: str) -> bool:
    q = normalize_text(question)
    return any(w in q for w in _INTAKE_WORDS)


def _escape(value: str) -> str:
    return value.replace("''", "'").replace("\\", "").replace("'", "''").replace("%", "")


def _person_like(m: re.Match) -> str:
    return f"{PERSON_EXPR} LIKE '%{_escape(m.group(1).strip().lower())}%'"


def rewrite_person_like(sql: str, question: str = "") -> str:
    """Turn submitter-like equality/LIKE filters into the fuzzy person match.

    ``intakeSpecialist`` filters are rewritten only when the question does not
    ask about intake, and ``name`` filters only when it does not ask about a
    client or case. Already rewritten filters are left alone.
    """

    out = str(sql or "")
    rules: List[Pattern[str]] = []
    if not question_mentions_intake(question):
        rules.extend(_INTAKE)
    rules.extend(_SUBMITTER)
    if not question_mentions_client(question):
        rules.extend(_NAME)
    for rx in rules:
        out = rx.sub(_person_like, out)
    return out


@dataclass(frozen=True)
class PersonFilter:
    kind: str
    value: str


_EXTRACT: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("coalesce_trim_eq", re.compile(_TRIM_COALESCE + _EQ, re.I)),
    ("coalesce_trim_like", re.compile(_TRIM_COALESCE + _LIKE, re.I)),
    ("coalesce_eq", re.compile(_COALESCE + _EQ, re.I)),
    ("coalesce_like", re.compile(_COALESCE + _LIKE, re.I)),
    ("submitterName_eq", re.compile(r"\bsubmitterName\b" + _EQ, re.I)),
    ("submitterName_like", re.compile(r"\bsubmitterName\b" + _LIKE, re.I)),
    ("submitter_eq", re.compile(r"\bsubmitter\b" + _EQ, re.I)),
    ("submitter_like", re.compile(r"\bsubmitter\b" + _LIKE, re.I)),
)


def extract_person_filter(sql: str) -> Optional[PersonFilter]:
    """The literal person value a drafted query filters on, if any."""

    text = str(sql or "")
    for kind, rx in _EXTRACT:
        m = rx.search(text)
        if m:
            value = m.group(1).replace("''", "'").strip()
            if value:
                return PersonFilter(kind=kind, value=value)
    return None


__all__ = [
    "PersonFilter",
    "extract_person_filter",
    "question_mentions_client",
    "question_mentions_intake",
    "rewrite_person_like",
]
