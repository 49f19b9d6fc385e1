from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Optional

from apps.cases.dimensions.extractor import ExtractedDimension
from apps.cases.dimensions.registry import PERSON_EXPR, get_dimension
from apps.cases.text import like_pattern
from core.logging_utils import log_event
from core.sql_exec import DataSource

log = logging.getLogger("cases.dimensions")

_OFFICE_OF_EN = re.compile(r"\b(?:the\s+)?office\s+of\s+", re.IGNORECASE)
_OFFICE_OF_ES = re.compile(r"\b(?:la\s+)?oficina\s+de\s+", re.IGNORECASE)

DEFAULT_TABLE = "performance_data.dmLogReportDashboard"


@dataclass
class ResolvedDimension:
    key: str
    column: str
    value: str
    meta: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "column": self.column, "value": self.value, "meta": dict(self.meta)}


def is_office_of_person_phrase(message: str, lang: str = "en") -> bool:
    rx = _OFFICE_OF_ES if lang == "es" else _OFFICE_OF_EN
    return bool(rx.search(str(message or "")))


def office_of_person_sql(table: str) -> str:
    return (
        "SELECT TRIM(OfficeName) AS officeName, COUNT(*) AS cnt "
        f"FROM {table} "
        "WHERE dateCameIn >= :since "
        "AND TRIM(OfficeName) <> '' "
        f"AND {PERSON_EXPR} LIKE :person "
        "GROUP BY TRIM(OfficeName) "
        "ORDER BY cnt DESC "
        "LIMIT 1"
    )


def lookup_office_for_person(
    source: DataSource,
    person: str,
    *,
    table: str = DEFAULT_TABLE,
    lookup_days: int = 90,
    today: Optional[date] = None,
) -> Optional[str]:
    """Most frequent office among the person's submissions in the trailing window."""

    name = str(person or "").strip()
    if not name:
        return None
    since = (today or date.today()) - timedelta(days=lookup_days)
    rows = source.query(office_of_person_sql(table), {"since": since, "person": like_pattern(name)})
    if not rows:
        return None
    office = str(rows[0].get("officeName") or "").strip()
    return office or None


def resolve_dimension(
    source: DataSource,
    extracted: Optional[ExtractedDimension],
    message: str,
    lang: str = "en",
    *,
    settings: Any = None,
    today: Optional[date] = None,
) -> Optional[ResolvedDimension]:
    """Map an extracted mention to a concrete column/value.

    ``office of PERSON`` is the one special case: the value names a person, so
    the office is looked up from that person's recent records, falling back to
    the literal text when the lookup finds nothing.
    """

    if extracted is None:
        return None
    dim = get_dimension(extracted.key)
    if dim is None:
        return None
    value = str(extracted.value or "").strip()

    if dim.key == "office" and is_office_of_person_phrase(message, lang):
        table = settings.qualified_table() if settings is not None else DEFAULT_TABLE
        days = settings.office_lookup_days() if settings is not None else 90
        office = lookup_office_for_person(source, value, table=table, lookup_days=days, today=today)
        log_event(
            log,
            "dimensions",
            "office_of_person",
            {"person": value, "office": office, "lookup_days": days},
            level=logging.DEBUG,
        )
        if office:
            return ResolvedDimension(
                key=dim.key,
                column=dim.column,
                value=office,
                meta={"resolved_from_person": value},
            )

    return ResolvedDimension(key=dim.key, column=dim.column, value=value)


__all__ = [
    "ResolvedDimension",
    "is_office_of_person_phrase",
    "lookup_office_for_person",
    "office_of_person_sql",
    "resolve_dimension",
]
