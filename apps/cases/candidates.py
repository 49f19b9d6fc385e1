"""Fuzzy candidate lookup for dimension values and the lock/pick decision.

Every lookup is a token AND-of-LIKE search bound through ``:tok_N`` parameters
on a trailing window of recent rows, grouped by the trimmed value and ranked
by frequency.
"""
from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from apps.cases.dimensions.registry import (
    PERSON_EXPR,
    PERSON_KEY,
    Dimension,
    get_dimension,
    key_from_column,
)
from apps.cases.state import FilterLock, PendingPick, PickOption
from apps.cases.text import clean_spaces
from core.logging_utils import log_event
from core.sql_exec import DataSource

log = logging.getLogger("cases.candidates")

DEFAULT_TABLE = "performance_data.dmLogReportDashboard"

_LEADING_DE_RE = re.compile(r"^(?:de|del)\s+", re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r"[\W_]+", re.UNICODE)
NAME_STOPWORDS = frozenset(
    {"de", "del", "la", "las", "los", "el", "y", "e", "da", "do", "dos", "das", "van", "von", "and"}
)

ROLE_KEYS = ("person", "intake", "attorney")


@dataclass(frozen=True)
class Candidate:
    value: str
    count: int

    def as_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "count": self.count}


@dataclass
class LockDecision:
    """Either a lock to store or a pick to ask; never both."""

    key: str
    lock: Optional[FilterLock] = None
    pending: Optional[PendingPick] = None

    @property
    def needs_pick(self) -> bool:
        return self.pending is not None


def tokenize_name(value: str, max_tokens: int = 3) -> List[str]:
    raw = _LEADING_DE_RE.sub("", clean_spaces(value)).lower()
    tokens = [_NON_ALNUM_RE.sub("", t) for t in raw.split()]
    tokens = [t for t in tokens if t]
    kept = [t for t in tokens if t not in NAME_STOPWORDS and len(t) >= 2]
    if not kept:
        kept = [t for t in tokens if len(t) >= 2]
    return kept[:max_tokens]


def _resolve_target(key_or_column: str) -> Optional[Dimension]:
    dim = get_dimension(key_or_column)
    if dim is not None:
        return dim
    key = key_from_column(key_or_column)
    return get_dimension(key) if key else None


def candidate_sql(dim: Dimension, n_tokens: int, *, table: str = DEFAULT_TABLE, limit: int = 8) -> str:
    display = dim.display_expr()
    match_expr = PERSON_EXPR if dim.is_person else f"LOWER({display})"
    likes = " AND ".join(f"{match_expr} LIKE :tok_{i}" for i in range(n_tokens))
    return (
        f"SELECT {display} AS value, COUNT(*) AS cnt "
        f"FROM {table} "
        "WHERE dateCameIn >= :since "
        f"AND {display} <> '' "
        f"AND ({likes}) "
        f"GROUP BY {display} "
        "ORDER BY cnt DESC, value ASC "
        f"LIMIT {int(limit)}"
    )


def find_candidates(
    source: DataSource,
    key_or_column: str,
    raw_value: str,
    limit: int = 8,
    *,
    window_days: int = 180,
    today: Optional[date] = None,
    table: str = DEFAULT_TABLE,
) -> List[Candidate]:
    """Distinct values of the dimension containing every token of ``raw_value``."""

    dim = _resolve_target(key_or_column)
    if dim is None:
        return []
    tokens = tokenize_name(raw_value)
    if not tokens:
        return []

    binds: Dict[str, Any] = {f"tok_{i}": f"%{tok}%" for i, tok in enumerate(tokens)}
    binds["since"] = (today or date.today()) - timedelta(days=int(window_days))
    rows = source.query(candidate_sql(dim, len(tokens), table=table, limit=max(1, int(limit))), binds)

    out: List[Candidate] = []
    for row in rows or []:
        value = str(row.get("value") or "").strip()
        if value:
            out.append(Candidate(value=value, count=int(row.get("cnt") or 0)))
    log_event(
        log,
        "candidates",
        "lookup",
        {"key": dim.key, "tokens": tokens, "hits": len(out)},
        level=logging.DEBUG,
    )
    return out


def find_person_candidates(
    source: DataSource,
    raw_person: str,
    limit: int = 8,
    *,
    window_days: int = 180,
    today: Optional[date] = None,
    table: str = DEFAULT_TABLE,
) -> List[Candidate]:
    return find_candidates(
        source, PERSON_KEY, raw_person, limit, window_days=window_days, today=today, table=table
    )


def pick_prompt(key: str, raw_value: str, lang: str = "en") -> str:
    dim = get_dimension(key)
    label = dim.label(lang) if dim is not None else key
    if lang == "es":
        return f'Encontré varias coincidencias para {label} "{raw_value}". ¿Cuál es la correcta?'
    return f'I found multiple matches for {label} "{raw_value}". Which one is correct?'


def decide_lock(
    key: str,
    raw_value: str,
    candidates: List[Candidate],
    lang: str = "en",
    *,
    original_message: str = "",
    original_mode: str = "dim",
) -> LockDecision:
    """0 candidates: unverified lock; 1: exact lock; 2+: pending pick."""

    raw = clean_spaces(raw_value)
    if len(candidates) >= 2:
        dim = get_dimension(key)
        options = [
            PickOption(id=c.value, label=c.value, sub=f"{c.count} cases", value=c.value)
            for c in candidates
        ]
        pending = PendingPick(
            type=dim.pick_type if dim is not None else f"{key}_pick",
            prompt=pick_prompt(key, raw, lang),
            options=options,
            dim_key=key,
            original_message=original_message,
            original_mode=original_mode,
            raw_value=raw,
        )
        return LockDecision(key=key, pending=pending)
    if len(candidates) == 1:
        return LockDecision(key=key, lock=FilterLock(value=candidates[0].value, locked=True, exact=True))
    return LockDecision(key=key, lock=FilterLock(value=raw, locked=True, exact=False))


def role_counts(
    source: DataSource,
    raw_value: str,
    *,
    window_days: int = 180,
    today: Optional[date] = None,
    table: str = DEFAULT_TABLE,
) -> Dict[str, int]:
    """How many distinct matches (capped at 2) each name-like role has for ``raw_value``."""

    with ThreadPoolExecutor(max_workers=len(ROLE_KEYS)) as pool:
        futures = {
            key: pool.submit(
                find_candidates, source, key, raw_value, 2,
                window_days=window_days, today=today, table=table,
            )
            for key in ROLE_KEYS
        }
        return {key: len(fut.result()) for key, fut in futures.items()}


_ROLE_LABELS = {
    "person": ("Representante (submitter)", "Representative (submitter)"),
    "intake": ("Intake (locked down)", "Intake (locked down)"),
    "attorney": ("Abogado (attorney)", "Attorney (lawyer)"),
}


def build_role_pick(
    raw_value: str,
    counts: Dict[str, int],
    lang: str = "en",
    *,
    original_message: str = "",
) -> Optional[PendingPick]:
    """A ``role_pick`` when the name matches two or more roles, else ``None``."""

    options: List[PickOption] = []
    for key in ROLE_KEYS:
        n = int(counts.get(key) or 0)
        if n <= 0:
            continue
        es_label, en_label = _ROLE_LABELS[key]
        options.append(
            PickOption(id=key, label=es_label if lang == "es" else en_label, sub=f"{n} matches", value=key)
        )
    if len(options) < 2:
        return None
    raw = clean_spaces(raw_value)
    prompt = f'¿A qué te refieres con "{raw}"?' if lang == "es" else f'What do you mean by "{raw}"?'
    return PendingPick(
        type="role_pick",
        prompt=prompt,
        options=options,
        dim_key="__role__",
        original_message=original_message,
        original_mode="role",
        raw_value=raw,
    )


__all__ = [
    "Candidate",
    "LockDecision",
    "build_role_pick",
    "candidate_sql",
    "decide_lock",
    "find_candidates",
    "find_person_candidates",
    "pick_prompt",
    "role_counts",
    "tokenize_name",
]
