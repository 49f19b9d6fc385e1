"""Single-row KPI pack: counts and rates for the asked window and the session locks."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Mapping, Optional

from apps.cases.sql.inject import apply_locked_filters
from apps.cases.sql.period import window_for_question
from apps.cases.state import FilterLock

KPI_COLUMNS = (
    "gross_cases",
    "confirmed_cases",
    "confirmed_rate",
    "case_converted_value",
    "dropped_cases",
    "dropped_rate",
    "problem_cases",
    "problem_rate",
    "leakage_confirmed_problem",
    "leakage_confirmed_dropped_status",
    "leakage_confirmed_clinical_dropped",
)

_SELECT = (
    "SELECT "
    "COUNT(*) AS gross_cases, "
    "SUM(CASE WHEN Confirmed=1 THEN 1 ELSE 0 END) AS confirmed_cases, "
    "ROUND(100 * SUM(CASE WHEN Confirmed=1 THEN 1 ELSE 0 END) / NULLIF(COUNT(*),0), 2) AS confirmed_rate, "
    "ROUND(SUM(COALESCE(convertedValue,0)), 2) AS case_converted_value, "
    "SUM(CASE WHEN Status LIKE '%DROP%' THEN 1 ELSE 0 END) AS dropped_cases, "
    "ROUND(100 * SUM(CASE WHEN Status LIKE '%DROP%' THEN 1 ELSE 0 END) / NULLIF(COUNT(*),0), 2) AS dropped_rate, "
    "SUM(CASE WHEN Status LIKE '%PROBLEM%' THEN 1 ELSE 0 END) AS problem_cases, "
    "ROUND(100 * SUM(CASE WHEN Status LIKE '%PROBLEM%' THEN 1 ELSE 0 END) / NULLIF(COUNT(*),0), 2) AS problem_rate, "
    "SUM(CASE WHEN Confirmed=1 AND Status LIKE '%PROBLEM%' THEN 1 ELSE 0 END) AS leakage_confirmed_problem, "
    "SUM(CASE WHEN Confirmed=1 AND Status LIKE '%DROP%' THEN 1 ELSE 0 END) AS leakage_confirmed_dropped_status, "
    "SUM(CASE WHEN Confirmed=1 AND ClinicalStatus LIKE '%DROP%' THEN 1 ELSE 0 END) "
    "AS leakage_confirmed_clinical_dropped"
)


@dataclass
class KpiQuery:
    sql: str
    binds: Dict[str, Any] = field(default_factory=dict)
    window_label: str = ""


def build_kpi_pack_sql(
    message: str,
    *,
    lang: str = "en",
    filters: Optional[Mapping[str, FilterLock]] = None,
    table: str = "dmLogReportDashboard",
    today: Optional[date] = None,
    default_window_days: Optional[int] = None,
) -> KpiQuery:
    window = window_for_question(message, lang, today=today, default_window_days=default_window_days)
    sql = f"{_SELECT} FROM {table} WHERE {window.where_clause}"
    sql, binds = apply_locked_filters(sql, filters or {})
    return KpiQuery(sql=sql, binds=binds, window_label=window.label)


def first_row(rows) -> Optional[Dict[str, Any]]:
    if not rows:
        return None
    row = rows[0]
    return {k: row.get(k) for k in KPI_COLUMNS if k in row} or dict(row)


__all__ = ["KPI_COLUMNS", "KpiQuery", "build_kpi_pack_sql", "first_row"]
