"""Quick-action presets and golden query templates.

A preset maps a UI button to a canonical message plus a deterministic query.
Templates carry no date predicate: the pipeline's period stage adds the window
the message asks for. Each template declares the shape of the rows it returns.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional

from apps.cases.intent import classify_intent

SHAPE_SERIES = "series"
SHAPE_KPI_PACK = "kpi_pack"

_CONFIRMED = "SUM(CASE WHEN Confirmed=1 THEN 1 ELSE 0 END)"
_STATUS_MIX = (
    "COUNT(*) AS gross_cases, "
    f"{_CONFIRMED} AS confirmed_cases, "
    "SUM(CASE WHEN Status LIKE '%DROP%' THEN 1 ELSE 0 END) AS dropped_cases, "
    "SUM(CASE WHEN Status LIKE '%PROBLEM%' THEN 1 ELSE 0 END) AS problem_cases, "
    "SUM(CASE WHEN Confirmed=0 AND Status LIKE '%ACTI%' THEN 1 ELSE 0 END) AS active_cases, "
    "SUM(CASE WHEN Confirmed=0 AND Status LIKE '%REF%' THEN 1 ELSE 0 END) AS referout_cases"
)


@dataclass(frozen=True)
class QueryTemplate:
    key: str
    sql: str
    shape: str = SHAPE_SERIES


@dataclass(frozen=True)
class Preset:
    key: str
    message_en: str
    message_es: str
    template: QueryTemplate

    def message(self, lang: str = "en") -> str:
        return self.message_es if lang == "es" else self.message_en


PRESETS: Dict[str, Preset] = {
    p.key: p
    for p in (
        Preset(
            "confirmed_month", "confirmed this month", "confirmados este mes",
            QueryTemplate(
                "confirmed_month",
                "SELECT COUNT(*) AS gross_cases, "
                f"{_CONFIRMED} AS confirmed_cases, "
                f"ROUND(({_CONFIRMED}/NULLIF(COUNT(*),0))*100, 2) AS confirmed_rate "
                "FROM dmLogReportDashboard",
                SHAPE_KPI_PACK,
            ),
        ),
        Preset(
            "credit_month", "credit this month", "crédito este mes",
            QueryTemplate(
                "credit_month",
                "SELECT COUNT(*) AS gross_cases, "
                f"{_CONFIRMED} AS confirmed_cases, "
                f"ROUND(({_CONFIRMED}/NULLIF(COUNT(*),0))*100, 2) AS confirmed_rate, "
                "SUM(convertedValue) AS case_converted_value "
                "FROM dmLogReportDashboard",
                SHAPE_KPI_PACK,
            ),
        ),
        Preset(
            "dropped_today_office", "dropped today by office", "dropped hoy por oficina",
            QueryTemplate(
                "dropped_today_office",
                "SELECT OfficeName, COUNT(*) AS dropped_cases "
                "FROM dmLogReportDashboard "
                "WHERE Status LIKE '%DROP%' "
                "GROUP BY OfficeName ORDER BY dropped_cases DESC",
            ),
        ),
        Preset(
            "best_confirmation_year", "best confirmation this year", "mejor confirmación este año",
            QueryTemplate(
                "best_confirmation_year",
                "SELECT TRIM(COALESCE(NULLIF(submitterName,''), submitter)) AS submitter, "
                "COUNT(*) AS gross_cases, "
                f"{_CONFIRMED} AS confirmed_cases, "
                f"ROUND(({_CONFIRMED}/NULLIF(COUNT(*),0))*100, 2) AS confirmed_rate "
                "FROM dmLogReportDashboard "
                "GROUP BY TRIM(COALESCE(NULLIF(submitterName,''), submitter)) "
                "HAVING gross_cases >= 30 "
                "ORDER BY confirmed_rate DESC, confirmed_cases DESC",
            ),
        ),
        Preset(
            "summary_week", "summary last 7 days", "resumen últimos 7 días",
            QueryTemplate(
                "summary_week",
                f"SELECT DATE(dateCameIn) AS dayKey, {_STATUS_MIX} "
                "FROM dmLogReportDashboard "
                "GROUP BY DATE(dateCameIn) ORDER BY dayKey ASC",
            ),
        ),
        Preset(
            "dropped_last_3_months", "dropped last 90 days", "dropped últimos 90 días",
            QueryTemplate(
                "dropped_last_3_months",
                f"SELECT YEAR(dateCameIn) AS anio, MONTH(dateCameIn) AS mes, {_STATUS_MIX} "
                "FROM dmLogReportDashboard "
                "GROUP BY YEAR(dateCameIn), MONTH(dateCameIn) ORDER BY anio ASC, mes ASC",
            ),
        ),
    )
}

# golden templates picked by intent when no preset applies
GOLDEN: Dict[str, QueryTemplate] = {
    "cnv": PRESETS["confirmed_month"].template,
    "health": QueryTemplate(
        "health_by_month",
        f"SELECT YEAR(dateCameIn) AS anio, MONTH(dateCameIn) AS mes, {_STATUS_MIX} "
        "FROM dmLogReportDashboard "
        "GROUP BY YEAR(dateCameIn), MONTH(dateCameIn) ORDER BY anio ASC, mes ASC",
    ),
    "detail": QueryTemplate(
        "detail_recent",
        "SELECT * FROM dmLogReportDashboard ORDER BY dateCameIn DESC",
    ),
}

_QUICK_ACTIONS = (
    (re.compile(r"^summary\s*\(\s*week\s*\)$", re.I), "summary_week"),
    (re.compile(r"^summary\s*\(\s*month\s*\)$", re.I), None),
)


def get_preset(key: Optional[str]) -> Optional[Preset]:
    return PRESETS.get(str(key or "").strip())


def normalize_quick_action(message: str, lang: str = "en") -> str:
    """Button captions such as ``Summary (week)`` become their canonical message."""

    m = str(message or "").strip()
    for rx, key in _QUICK_ACTIONS:
        if rx.match(m):
            if key is None:
                return "Resumen este mes" if lang == "es" else "Summary this month"
            return PRESETS[key].message(lang)
    return m


def template_for(message: str) -> Optional[QueryTemplate]:
    return GOLDEN.get(classify_intent(message))


__all__ = [
    "GOLDEN",
    "PRESETS",
    "Preset",
    "QueryTemplate",
    "SHAPE_KPI_PACK",
    "SHAPE_SERIES",
    "get_preset",
    "normalize_quick_action",
    "template_for",
]
