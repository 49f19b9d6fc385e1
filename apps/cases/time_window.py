"""Natural-language period phrases (EN/ES) to half-open date ranges on the date column.

Patterns are tried in a fixed priority order and the first match wins:

    literal day > named relative range > relative count > explicit range
    > quarter > month + year > bare month > bare year > default days

Every window is ``[start, end)`` so a day-granular ``end`` never truncates the
last day. Dates are computed here from ``today`` and rendered as ISO literals;
no user text ever reaches the predicate.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from word2number import w2n

from apps.cases.text import normalize_text

DATE_COLUMN = "dateCameIn"

MONTHS_EN = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}
MONTHS_EN_ABBR = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "jun": 6, "jul": 7, "aug": 8,
    "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}
MONTHS_ES = {
    "enero": 1, "febrero": 2, "marzo": 3, "abril": 4, "mayo": 5, "junio": 6,
    "julio": 7, "agosto": 8, "septiembre": 9, "setiembre": 9, "octubre": 10,
    "noviembre": 11, "diciembre": 12,
}
_MONTH_WORDS = {**MONTHS_EN, **MONTHS_EN_ABBR, **MONTHS_ES}
_MONTH_LABEL_EN = [
    "", "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
_MONTH_LABEL_ES = [
    "", "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]

_YEAR = r"((?:19|20)\d{2})"

_TODAY_RE = re.compile(r"\b(today|hoy)\b")
_YESTERDAY_RE = re.compile(r"\b(yesterday|ayer)\b")

_THIS_WEEK_RE = re.compile(r"\b(this\s+week|current\s+week|esta\s+semana)\b")
_LAST_WEEK_RE = re.compile(
    r"\b(last\s+week|previous\s+week|semana\s+pasada|semana\s+anterior|ultima\s+semana)\b"
)
_THIS_MONTH_RE = re.compile(
    r"\b(this\s+month|current\s+month|month\s+to\s+date|mtd|este\s+mes|mes\s+en\s+curso|mes\s+actual)\b"
)
_LAST_MONTH_RE = re.compile(
    r"\b(last\s+month|previous\s+month|ultimo\s+mes|mes\s+pasado|mes\s+anterior)\b"
)
_THIS_YEAR_RE = re.compile(
    r"\b(this\s+year|current\s+year|year\s+to\s+date|ytd|este\s+ano|ano\s+actual|ano\s+en\s+curso)\b"
)
_LAST_YEAR_RE = re.compile(r"\b(last\s+year|previous\s+year|ano\s+pasado|ultimo\s+ano|ano\s+anterior)\b")

_LAST_N_EN_RE = re.compile(
    r"\b(?:last|past|previous)\s+(\d{1,3}|[a-z]+(?:[\s-][a-z]+)?)\s+(days?|weeks?|months?)\b"
)
_LAST_N_ES_RE = re.compile(r"\b(?:ultim[oa]s|pasad[oa]s)\s+(\d{1,3})\s+(dias?|semanas?|mes(?:es)?)\b")

_ISO_RANGE_RE = re.compile(
    r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b.*?\b(\d{4})-(\d{1,2})-(\d{1,2})\b"
)
_US_RANGE_RE = re.compile(
    r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b.*?\b(\d{1,2})/(\d{1,2})/(\d{4})\b"
)

_QUARTER_RE = re.compile(rf"\bq([1-4])\s*(?:de\s+|of\s+)?{_YEAR}\b")
_QUARTER_YEAR_FIRST_RE = re.compile(rf"\b{_YEAR}\s*-?\s*q([1-4])\b")
_QUARTER_WORD_RE = re.compile(rf"\b(?:quarter|trimestre)\s+([1-4])\s+(?:de\s+|of\s+)?{_YEAR}\b")

_MONTH_YEAR_RE = re.compile(
    r"\b(" + "|".join(sorted(_MONTH_WORDS, key=len, reverse=True)) + r")\.?\s+(?:de\s+|of\s+)?"
    + _YEAR + r"\b"
)
_FULL_MONTHS = {k: v for k, v in {**MONTHS_EN, **MONTHS_ES}.items() if k != "may"}
_BARE_MONTH_RE = re.compile(r"\b(" + "|".join(sorted(_FULL_MONTHS, key=len, reverse=True)) + r")\b")
# "may" is also a modal verb; only accept it after a preposition.
_BARE_MAY_RE = re.compile(r"\b(?:in|during|for|of|since)\s+(may)\b")

_BARE_YEAR_RE = re.compile(rf"\b{_YEAR}\b")

_PERIOD_WORDS_RE = re.compile(
    r"\b(hoy|ayer|semana|semanal|mes|mensual|ano|anual|dias?|week|weekly|month|monthly|"
    r"year|yearly|days?|today|yesterday|quarter|trimestre|ytd|mtd)\b"
)
_DATE_LIKE_RE = re.compile(r"\b\d{4}-\d{2}-\d{2}\b|\b\d{1,2}/\d{1,2}/\d{2,4}\b")


@dataclass(frozen=True)
class TimeWindow:
    matched: bool
    where_clause: str = ""
    label: str = ""
    start: Optional[date] = None
    end: Optional[date] = None
    kind: str = "none"

    def as_dict(self) -> dict:
        return {
            "matched": self.matched,
            "where": self.where_clause,
            "label": self.label,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "kind": self.kind,
        }


def range_predicate(start: date, end: date, column: str = DATE_COLUMN) -> str:
    return f"{column} >= '{start.isoformat()}' AND {column} < '{end.isoformat()}'"


def _window(kind: str, start: date, end: date, label: str, column: str) -> TimeWindow:
    return TimeWindow(
        matched=True,
        where_clause=range_predicate(start, end, column),
        label=label,
        start=start,
        end=end,
        kind=kind,
    )


def _es(lang: str) -> bool:
    return (lang or "").lower().startswith("es")


def _month_label(month: int, year: int, lang: str) -> str:
    if _es(lang):
        return f"{_MONTH_LABEL_ES[month]} {year}"
    return f"{_MONTH_LABEL_EN[month]} {year}"


def _safe_date(y: int, m: int, d: int) -> Optional[date]:
    try:
        return date(y, m, d)
    except ValueError:
        return None


def _to_number(token: str) -> Optional[int]:
    token = (token or "").strip()
    if token.isdigit():
        return int(token)
    try:
        return int(w2n.word_to_num(token))
    except (ValueError, IndexError):
        return None


# ----------------------------------------------------------------------------
# Individual matchers. Each returns a window or None; order lives in _MATCHERS.
# ----------------------------------------------------------------------------


def _literal_day(q: str, today: date, lang: str, column: str) -> Optional[TimeWindow]:
    if _TODAY_RE.search(q):
        return _window("today", today, today + timedelta(days=1), "hoy" if _es(lang) else "today", column)
    if _YESTERDAY_RE.search(q):
        y = today - timedelta(days=1)
        return _window("yesterday", y, today, "ayer" if _es(lang) else "yesterday", column)
    return None


def _named_range(q: str, today: date, lang: str, column: str) -> Optional[TimeWindow]:
    es = _es(lang)
    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)
    year_start = date(today.year, 1, 1)

    if _THIS_WEEK_RE.search(q):
        return _window("this_week", week_start, week_start + timedelta(days=7),
                       "esta semana" if es else "this week", column)
    if _LAST_WEEK_RE.search(q):
        return _window("last_week", week_start - timedelta(days=7), week_start,
                       "semana pasada" if es else "last week", column)
    if _THIS_MONTH_RE.search(q):
        return _window("this_month", month_start, month_start + relativedelta(months=1),
                       "este mes" if es else "this month", column)
    if _LAST_MONTH_RE.search(q):
        return _window("last_month", month_start - relativedelta(months=1), month_start,
                       "mes pasado" if es else "last month", column)
    if _THIS_YEAR_RE.search(q):
        return _window("this_year", year_start, date(today.year + 1, 1, 1),
                       "año actual" if es else "current year", column)
    if _LAST_YEAR_RE.search(q):
        return _window("last_year", date(today.year - 1, 1, 1), year_start,
                       "año pasado" if es else "last year", column)
    return None


def _relative_count(q: str, today: date, lang: str, column: str) -> Optional[TimeWindow]:
    es = _es(lang)
    for rx in (_LAST_N_EN_RE, _LAST_N_ES_RE):
        for m in rx.finditer(q):
            n = _to_number(m.group(1))
            if not n or n <= 0:
                continue
            unit = m.group(2)
            end = today + timedelta(days=1)
            if unit.startswith(("day", "dia")):
                start = today - timedelta(days=n)
                label = f"últimos {n} días" if es else f"last {n} days"
                kind = "last_n_days"
            elif unit.startswith(("week", "semana")):
                start = today - timedelta(days=7 * n)
                label = f"últimas {n} semanas" if es else f"last {n} weeks"
                kind = "last_n_weeks"
            else:
                start = today - relativedelta(months=n)
                label = f"últimos {n} meses" if es else f"last {n} months"
                kind = "last_n_months"
            return _window(kind, start, end, label, column)
    return None


def _explicit_range(q: str, today: date, lang: str, column: str) -> Optional[TimeWindow]:
    m = _ISO_RANGE_RE.search(q)
    if m:
        a = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        b = _safe_date(int(m.group(4)), int(m.group(5)), int(m.group(6)))
    else:
        m = _US_RANGE_RE.search(q)
        if not m:
            return None
        a = _safe_date(int(m.group(3)), int(m.group(1)), int(m.group(2)))
        b = _safe_date(int(m.group(6)), int(m.group(4)), int(m.group(5)))
    if a is None or b is None:
        return None
    if b < a:
        a, b = b, a
    label = f"rango {a.isoformat()} a {b.isoformat()}" if _es(lang) else f"range {a.isoformat()} to {b.isoformat()}"
    return _window("range", a, b + timedelta(days=1), label, column)


def _quarter(q: str, today: date, lang: str, column: str) -> Optional[TimeWindow]:
    m = _QUARTER_RE.search(q) or _QUARTER_WORD_RE.search(q)
    if m:
        qn, year = int(m.group(1)), int(m.group(2))
    else:
        m = _QUARTER_YEAR_FIRST_RE.search(q)
        if not m:
            return None
        year, qn = int(m.group(1)), int(m.group(2))
    start = date(year, (qn - 1) * 3 + 1, 1)
    label = f"trimestre {qn} {year}" if _es(lang) else f"Q{qn} {year}"
    return _window("quarter", start, start + relativedelta(months=3), label, column)


def _month_year(q: str, today: date, lang: str, column: str) -> Optional[TimeWindow]:
    m = _MONTH_YEAR_RE.search(q)
    if not m:
        return None
    month = _MONTH_WORDS[m.group(1)]
    year = int(m.group(2))
    start = date(year, month, 1)
    return _window("month", start, start + relativedelta(months=1), _month_label(month, year, lang), column)


def _bare_month(q: str, today: date, lang: str, column: str) -> Optional[TimeWindow]:
    m = _BARE_MONTH_RE.search(q)
    if m:
        month = _FULL_MONTHS[m.group(1)]
    else:
        m = _BARE_MAY_RE.search(q)
        if not m:
            return None
        month = 5
    # Most recent occurrence that is not in the future.
    year = today.year if month <= today.month else today.year - 1
    start = date(year, month, 1)
    return _window("month", start, start + relativedelta(months=1), _month_label(month, year, lang), column)


def _bare_year(q: str, today: date, lang: str, column: str) -> Optional[TimeWindow]:
    m = _BARE_YEAR_RE.search(q)
    if not m:
        return None
    year = int(m.group(1))
    return _window("year", date(year, 1, 1), date(year + 1, 1, 1),
                   f"año {year}" if _es(lang) else f"year {year}", column)


_Matcher = Callable[[str, date, str, str], Optional[TimeWindow]]

_MATCHERS: List[Tuple[str, _Matcher]] = [
    ("literal_day", _literal_day),
    ("named_range", _named_range),
    ("relative_count", _relative_count),
    ("explicit_range", _explicit_range),
    ("quarter", _quarter),
    ("month_year", _month_year),
    ("bare_month", _bare_month),
    ("bare_year", _bare_year),
]


def resolve_time_window(
    text: str,
    lang: str = "en",
    default_window_days: Optional[int] = None,
    *,
    today: Optional[date] = None,
    column: str = DATE_COLUMN,
) -> TimeWindow:
    """Return the first matching window for ``text`` or an unmatched window."""

    q = normalize_text(text)
    ref = today or date.today()

    if q:
        for _name, matcher in _MATCHERS:
            window = matcher(q, ref, lang, column)
            if window is not None:
                return window

    days = int(default_window_days or 0)
    if days > 0:
        label = f"últimos {days} días" if _es(lang) else f"last {days} days"
        return _window("default_days", ref - timedelta(days=days), ref + timedelta(days=1), label, column)

    return TimeWindow(matched=False, label="sin filtro de tiempo" if _es(lang) else "no time filter")


def current_month_window(today: Optional[date] = None, lang: str = "en", column: str = DATE_COLUMN) -> TimeWindow:
    ref = today or date.today()
    start = ref.replace(day=1)
    return _window("this_month", start, start + relativedelta(months=1), "este mes" if _es(lang) else "this month", column)


def previous_month_window(today: Optional[date] = None, lang: str = "en", column: str = DATE_COLUMN) -> TimeWindow:
    ref = today or date.today()
    start = ref.replace(day=1)
    return _window("last_month", start - relativedelta(months=1), start, "mes pasado" if _es(lang) else "last month", column)


def has_explicit_period(text: str) -> bool:
    """True when the text already carries a period cue of any kind."""

    q = normalize_text(text)
    if not q:
        return False
    if _DATE_LIKE_RE.search(q) or _PERIOD_WORDS_RE.search(q):
        return True
    return resolve_time_window(q).matched


__all__ = [
    "DATE_COLUMN",
    "TimeWindow",
    "current_month_window",
    "has_explicit_period",
    "previous_month_window",
    "range_predicate",
    "resolve_time_window",
]
