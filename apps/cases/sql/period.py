from __future__ import annotations

import re
from datetime import date
from typing import Optional

from apps.cases.sql.where import add_condition, mask_literals, repair_where
from apps.cases.text import normalize_text
from apps.cases.time_window import (
    TimeWindow,
    current_month_window,
    previous_month_window,
    resolve_time_window,
)

_DATE_PREDICATE_RE = re.compile(
    r"(?:\b(?:date|year|month)\s*\(\s*)?\bdateCameIn\b\s*\)?\s*(?:>=|<=|<>|!=|>|<|=|\bbetween\b)",
    re.I,
)
_LAST_MONTH_CUE_RE = re.compile(r"\b(mes\s+pasado|last\s+month)\b")


def has_date_predicate(sql: str) -> bool:
    return _DATE_PREDICATE_RE.search(mask_literals(sql or "")) is not None


def window_for_question(
    question: str,
    lang: str = "en",
    *,
    today: Optional[date] = None,
    default_window_days: Optional[int] = None,
) -> TimeWindow:
    """The window a question asks for, else previous month on a last-month cue, else the current month."""

    window = resolve_time_window(question, lang, default_window_days, today=today)
    if window.matched:
        return window
    if _LAST_MONTH_CUE_RE.search(normalize_text(question)):
        return previous_month_window(today, lang)
    return current_month_window(today, lang)


def ensure_period_filter(
    sql: str,
    question: str = "",
    lang: str = "en",
    *,
    today: Optional[date] = None,
    default_window_days: Optional[int] = None,
) -> str:
    """Guarantee a date range on ``dateCameIn``.

    Pre: any SELECT draft, possibly with a malformed WHERE chain.
    Post: one WHERE clause, and it constrains ``dateCameIn``. An existing
    predicate on the date column is kept as is.
    """

    out = repair_where(sql)
    if has_date_predicate(out):
        return out
    window = window_for_question(question, lang, today=today, default_window_days=default_window_days)
    return add_condition(out, window.where_clause)


__all__ = ["ensure_period_filter", "has_date_predicate", "window_for_question"]
