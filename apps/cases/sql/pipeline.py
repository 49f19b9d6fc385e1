"""Ordered rewrite stages applied to every drafted query before the guard.

The order is part of the contract:

1. ``normalize``                   one line, canonical year-month idiom
2. ``status_rules``                dropped status as ``Status LIKE '%DROP%'``
3. ``group_by``                    aggregate + YEAR and MONTH gets its GROUP BY
4. ``year_month_group_by``         aggregate + YEAR or MONTH gets its GROUP BY
5. ``person_like``                 opt-in, retry path only
6. ``period_filter``               WHERE repaired, date range guaranteed
7. ``typos``                       stray quote after ``dateCameIn`` removed
8. ``locked_filters``              session locks stripped and re-injected as binds

Every stage is a plain function of ``(sql, ctx)``; only the last one returns
binds.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from apps.cases.sql.inject import apply_locked_filters
from apps.cases.sql.normalize import (
    enforce_group_by,
    enforce_status_rules,
    ensure_year_month_group_by,
    normalize,
    sanitize_typos,
)
from apps.cases.sql.period import ensure_period_filter
from apps.cases.sql.person import rewrite_person_like
from apps.cases.state import FilterLock


@dataclass
class PipelineContext:
    question: str = ""
    lang: str = "en"
    filters: Mapping[str, FilterLock] = field(default_factory=dict)
    today: Optional[date] = None
    default_window_days: Optional[int] = None


@dataclass
class PipelineResult:
    sql: str
    binds: Dict[str, Any]
    stages: List[str]


StageFn = Callable[[str, PipelineContext], Any]


@dataclass(frozen=True)
class Stage:
    name: str
    fn: StageFn
    returns_binds: bool = False
    opt_in: bool = False


def _normalize(sql: str, ctx: PipelineContext) -> str:
    return normalize(sql)


def _status_rules(sql: str, ctx: PipelineContext) -> str:
    return enforce_status_rules(sql)


def _group_by(sql: str, ctx: PipelineContext) -> str:
    return enforce_group_by(sql)


def _year_month_group_by(sql: str, ctx: PipelineContext) -> str:
    return ensure_year_month_group_by(sql)


def _person_like(sql: str, ctx: PipelineContext) -> str:
    return rewrite_person_like(sql, ctx.question)


def _period_filter(sql: str, ctx: PipelineContext) -> str:
    return ensure_period_filter(
        sql,
        ctx.question,
        ctx.lang,
        today=ctx.today,
        default_window_days=ctx.default_window_days,
    )


def _typos(sql: str, ctx: PipelineContext) -> str:
    return sanitize_typos(sql)


def _locked_filters(sql: str, ctx: PipelineContext) -> Tuple[str, Dict[str, Any]]:
    return apply_locked_filters(sql, ctx.filters)


STAGES: Tuple[Stage, ...] = (
    Stage("normalize", _normalize),
    Stage("status_rules", _status_rules),
    Stage("group_by", _group_by),
    Stage("year_month_group_by", _year_month_group_by),
    Stage("person_like", _person_like, opt_in=True),
    Stage("period_filter", _period_filter),
    Stage("typos", _typos),
    Stage("locked_filters", _locked_filters, returns_binds=True),
)


def stage_names(*, rewrite_person: bool = False) -> List[str]:
    return [s.name for s in STAGES if rewrite_person or not s.opt_in]


def run_pipeline(sql: str, ctx: PipelineContext, *, rewrite_person: bool = False) -> PipelineResult:
    out = str(sql or "")
    binds: Dict[str, Any] = {}
    ran: List[str] = []
    for stage in STAGES:
        if stage.opt_in and not rewrite_person:
            continue
        if stage.returns_binds:
            out, stage_binds = stage.fn(out, ctx)
            binds.update(stage_binds)
        else:
            out = stage.fn(out, ctx)
        ran.append(stage.name)
    return PipelineResult(sql=out, binds=binds, stages=ran)


def build_fix_prompt(lang: str, question: str, bad_sql: str, error: str) -> str:
    """Question re-sent to the proposer after the engine rejected its query."""

    err = str(error or "")[:500]
    if lang == "es":
        return (
            f"{question}\n\n"
            "IMPORTANTE: el SQL anterior falló en MySQL. Corrige SOLO el SQL "
            "(misma tabla dmLogReportDashboard, sin JOIN, sin subqueries).\n"
            f"Error MySQL: {err}\n"
            f"SQL que falló:\n{bad_sql}"
        )
    return (
        f"{question}\n\n"
        "IMPORTANT: the previous SQL failed in MySQL. Fix ONLY the SQL "
        "(same table dmLogReportDashboard, no JOIN, no subqueries).\n"
        f"MySQL error: {err}\n"
        f"Failed SQL:\n{bad_sql}"
    )


__all__ = [
    "STAGES",
    "PipelineContext",
    "PipelineResult",
    "Stage",
    "build_fix_prompt",
    "run_pipeline",
    "stage_names",
]
