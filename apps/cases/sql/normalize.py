"""Text passes that canonicalise drafted SQL before filters are merged in.

Every pass here is idempotent: running it on its own output is a no-op.
"""
from __future__ import annotations

import re

from apps.cases.sql.where import (
    mask_literals,
    split_sql,
    strip_semicolon,
    sub_outside_literals,
)
from apps.cases.text import strip_invisible

DATE_COLUMN = "dateCameIn"

_DATE_FORMAT_YM = re.compile(
    r"DATE_FORMAT\s*\(\s*(?:DATE\s*\(\s*dateCameIn\s*\)|dateCameIn)\s*,\s*'%Y-%m'\s*\)",
    re.I,
)
YEAR_MONTH_CONCAT = "CONCAT(YEAR(dateCameIn), '-', LPAD(MONTH(dateCameIn), 2, '0'))"
YEAR_MONTH_GROUP = "YEAR(dateCameIn), MONTH(dateCameIn)"

_GROUP_BY_RE = re.compile(r"\bgroup\s+by\b", re.I)
_AGG_RE = re.compile(r"\b(count|sum|avg|min|max)\s*\(", re.I)
_YEAR_RE = re.compile(r"\byear\s*\(\s*dateCameIn\s*\)", re.I)
_MONTH_RE = re.compile(r"\bmonth\s*\(\s*dateCameIn\s*\)", re.I)

_STATUS_DROPPED = [
    re.compile(r"\b(?:leadStatus|Status)\s*=\s*'Dropped'", re.I),
    re.compile(r"\b(?:leadStatus|Status)\s+LIKE\s+'%Dropped%'", re.I),
]

_TYPO_QUOTE_RE = re.compile(r"\bdateCameIn'")


def _group_by_date_format(sql: str) -> str:
    parts = split_sql(sql)
    m = _GROUP_BY_RE.match(parts.tail)
    if not m:
        return sql
    masked_tail = mask_literals(parts.tail)
    end = len(parts.tail)
    stop = re.search(r"\b(having|order\s+by|limit)\b", masked_tail[m.end():], re.I)
    if stop:
        end = m.end() + stop.start()
    clause = parts.tail[:end]
    fixed = _DATE_FORMAT_YM.sub(YEAR_MONTH_GROUP, clause)
    if fixed == clause:
        return sql
    parts.tail = fixed + parts.tail[end:]
    return parts.join()


def normalize(sql: str) -> str:
    """Strip invisible characters, collapse whitespace and canonicalise the year-month idiom.

    In GROUP BY the ``DATE_FORMAT(dateCameIn, '%Y-%m')`` form becomes
    ``YEAR(dateCameIn), MONTH(dateCameIn)``; anywhere else it becomes the
    equivalent ``CONCAT(YEAR(..), '-', LPAD(MONTH(..), 2, '0'))``.
    """

    out = strip_invisible(str(sql or ""))
    out = sub_outside_literals(r"\s+", " ", out).strip()
    out = strip_semicolon(out)
    out = _group_by_date_format(out)
    out = _DATE_FORMAT_YM.sub(YEAR_MONTH_CONCAT, out)
    out = sub_outside_literals(r"\s+,", ",", out)
    out = sub_outside_literals(re.compile(r",\s*(FROM)\b", re.I), r" \1", out)
    return out.strip()


def enforce_status_rules(sql: str) -> str:
    """Dropped cases are matched on ``Status LIKE '%DROP%'``, never on an exact label."""

    out = str(sql or "")
    for rx in _STATUS_DROPPED:
        out = rx.sub("Status LIKE '%DROP%'", out)
    return out


def _insert_group_by(sql: str) -> str:
    parts = split_sql(sql)
    parts.tail = f"GROUP BY {YEAR_MONTH_GROUP} {parts.tail}".strip()
    return parts.join()


def enforce_group_by(sql: str) -> str:
    """Aggregates selected next to YEAR and MONTH of the date need the matching GROUP BY."""

    masked = mask_literals(sql or "")
    if _GROUP_BY_RE.search(masked) or not _AGG_RE.search(masked):
        return sql
    if _YEAR_RE.search(masked) and _MONTH_RE.search(masked):
        return _insert_group_by(sql)
    return sql


def ensure_year_month_group_by(sql: str) -> str:
    masked = mask_literals(sql or "")
    if _GROUP_BY_RE.search(masked) or not _AGG_RE.search(masked):
        return sql
    if _YEAR_RE.search(masked) or _MONTH_RE.search(masked):
        return _insert_group_by(sql)
    return sql


def sanitize_typos(sql: str) -> str:
    """``dateCameIn'`` with a stray quote becomes ``dateCameIn``."""

    text = str(sql or "")
    out = []
    pos = 0
    # a stray quote would be read as the start of a literal, so scan by hand
    for m in _TYPO_QUOTE_RE.finditer(text):
        if _inside_literal(text, m.start()):
            continue
        out.append(text[pos:m.start()])
        out.append("dateCameIn")
        pos = m.end()
    out.append(text[pos:])
    return "".join(out)


def _inside_literal(text: str, index: int) -> bool:
    quote = None
    i = 0
    while i < index:
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                if i + 1 < len(text) and text[i + 1] == quote:
                    i += 2
                    continue
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        i += 1
    return quote is not None


__all__ = [
    "YEAR_MONTH_CONCAT",
    "YEAR_MONTH_GROUP",
    "enforce_group_by",
    "enforce_status_rules",
    "ensure_year_month_group_by",
    "normalize",
    "sanitize_typos",
]
