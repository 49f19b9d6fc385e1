import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from apps.cases.dimensions.registry import PERSON_EXPR
from apps.cases.sql import PipelineContext, build_fix_prompt, extract_person_filter, run_pipeline, validate_sql
from apps.cases.sql.inject import apply_locked_filters, column_condition, person_condition
from apps.cases.sql.normalize import enforce_status_rules, normalize, sanitize_typos
from apps.cases.sql.period import ensure_period_filter, has_date_predicate
from apps.cases.sql.person import rewrite_person_like
from apps.cases.sql.pipeline import stage_names
from apps.cases.state import FilterLock

TODAY = date(2024, 5, 15)
MAY = "dateCameIn >= '2024-05-01' AND dateCameIn < '2024-06-01'"


def _ctx(question="cases this month", filters=None, lang="en"):
    return PipelineContext(question=question, lang=lang, filters=filters or {}, today=TODAY)


def test_stage_order_is_explicit():
    assert stage_names() == [
        "normalize",
        "status_rules",
        "group_by",
        "year_month_group_by",
        "period_filter",
        "typos",
        "locked_filters",
    ]
    assert stage_names(rewrite_person=True).index("person_like") == 4


def test_person_lock_with_month_window_end_to_end():
    sql = "SELECT * FROM dmLogReportDashboard WHERE submitterName = 'john doe'"
    result = run_pipeline(sql, _ctx(filters={"person": FilterLock("john doe", exact=False)}))

    person = f"({PERSON_EXPR} LIKE :p_0 OR {PERSON_EXPR} LIKE :p_1)"
    assert result.sql == f"SELECT * FROM dmLogReportDashboard WHERE {MAY} AND {person}"
    assert result.binds == {"p_0": "%john%doe%", "p_1": "%doe%john%"}

    safe = validate_sql(result.sql)
    assert safe.endswith(" LIMIT 500")
    assert safe.upper().count("FROM") == 1
    assert safe.count("WHERE") == 1


def test_locked_filters_are_idempotent():
    filters = {
        "person": FilterLock("Ana Perez", exact=True),
        "office": FilterLock("Miami", exact=False),
    }
    sql = f"SELECT * FROM dmLogReportDashboard WHERE {MAY} AND OfficeName = 'Tampa'"
    once, binds = apply_locked_filters(sql, filters)
    twice, binds_again = apply_locked_filters(once, filters)
    assert once == twice
    assert binds == binds_again == {"office_0": "%miami%", "p_0": "%ana perez%"}
    assert "Tampa" not in once


def test_person_lock_drops_unlocked_role_columns():
    sql = f"SELECT * FROM dmLogReportDashboard WHERE {MAY} AND intakeSpecialist = 'Ana' AND attorney LIKE '%Ana%'"
    out, _ = apply_locked_filters(sql, {"person": FilterLock("Ana", exact=True)})
    assert "intakeSpecialist" not in out
    assert "attorney" not in out
    assert out.endswith(f"{PERSON_EXPR} LIKE :p_0")


def test_inactive_locks_do_nothing():
    sql = f"SELECT * FROM dmLogReportDashboard WHERE {MAY}"
    out, binds = apply_locked_filters(sql, {"office": FilterLock("Miami", locked=False)})
    assert out == sql
    assert binds == {}


def test_person_condition_exact_and_single_token():
    cond, binds = person_condition("Ana Perez", exact=True)
    assert cond == f"{PERSON_EXPR} LIKE :p_0"
    assert binds == {"p_0": "%ana perez%"}
    _, binds = person_condition("Ana", exact=False)
    assert binds == {"p_0": "%ana%"}


def test_column_condition_tokens_skip_case_words():
    cond, binds = column_condition("team", "Alpha Case Norte", exact=False)
    assert cond == "(LOWER(TRIM(TeamName)) LIKE :team_0 AND LOWER(TRIM(TeamName)) LIKE :team_1)"
    assert binds == {"team_0": "%alpha%", "team_1": "%norte%"}
    assert column_condition("nope", "x", exact=True) == ("", {})


def test_period_injected_before_tail():
    sql = "SELECT OfficeName, COUNT(*) AS n FROM dmLogReportDashboard GROUP BY OfficeName ORDER BY n DESC"
    out = ensure_period_filter(sql, "dropped last month by office", today=TODAY)
    assert out == (
        "SELECT OfficeName, COUNT(*) AS n FROM dmLogReportDashboard "
        "WHERE dateCameIn >= '2024-04-01' AND dateCameIn < '2024-05-01' "
        "GROUP BY OfficeName ORDER BY n DESC"
    )


def test_existing_date_predicate_is_kept():
    sql = "SELECT COUNT(*) FROM dmLogReportDashboard WHERE DATE(dateCameIn) = '2024-05-01'"
    assert has_date_predicate(sql)
    assert ensure_period_filter(sql, "cases last year", today=TODAY) == sql
    assert not has_date_predicate("SELECT * FROM t WHERE note = 'dateCameIn > 1'")


def test_period_defaults_to_current_month():
    out = ensure_period_filter("SELECT * FROM dmLogReportDashboard", "show me the cases", today=TODAY)
    assert out == f"SELECT * FROM dmLogReportDashboard WHERE {MAY}"


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM dmLogReportDashboard AND Status LIKE '%DROP%'",
        "SELECT * FROM dmLogReportDashboard WHERE Confirmed = 1 WHERE OfficeName = 'Miami'",
        "SELECT DATE_FORMAT(dateCameIn, '%Y-%m') AS ym, COUNT(*) AS n "
        "FROM dmLogReportDashboard GROUP BY DATE_FORMAT(dateCameIn, '%Y-%m')",
        "SELECT YEAR(dateCameIn) AS y, MONTH(dateCameIn) AS m, COUNT(*) AS n FROM dmLogReportDashboard",
    ],
)
def test_pipeline_is_idempotent(sql):
    ctx = _ctx()
    once = run_pipeline(sql, ctx)
    twice = run_pipeline(once.sql, ctx)
    assert twice.sql == once.sql
    assert twice.binds == once.binds


def test_group_by_inserted_for_year_month_aggregates():
    sql = (
        "SELECT YEAR(dateCameIn) AS y, MONTH(dateCameIn) AS m, COUNT(*) AS n "
        "FROM dmLogReportDashboard ORDER BY y"
    )
    result = run_pipeline(sql, _ctx("confirmed by month this year"))
    assert result.sql == (
        "SELECT YEAR(dateCameIn) AS y, MONTH(dateCameIn) AS m, COUNT(*) AS n "
        "FROM dmLogReportDashboard "
        "WHERE dateCameIn >= '2024-01-01' AND dateCameIn < '2025-01-01' "
        "GROUP BY YEAR(dateCameIn), MONTH(dateCameIn) ORDER BY y"
    )


def test_date_format_idiom_is_canonicalised():
    sql = (
        "SELECT DATE_FORMAT(dateCameIn, '%Y-%m') AS ym , COUNT(*) AS n\n"
        "FROM dmLogReportDashboard GROUP BY DATE_FORMAT(dateCameIn, '%Y-%m');"
    )
    assert normalize(sql) == (
        "SELECT CONCAT(YEAR(dateCameIn), '-', LPAD(MONTH(dateCameIn), 2, '0')) AS ym, COUNT(*) AS n "
        "FROM dmLogReportDashboard GROUP BY YEAR(dateCameIn), MONTH(dateCameIn)"
    )


def test_status_rules():
    assert enforce_status_rules("SELECT COUNT(*) FROM t WHERE leadStatus = 'Dropped'") == (
        "SELECT COUNT(*) FROM t WHERE Status LIKE '%DROP%'"
    )
    assert enforce_status_rules("SELECT 1 FROM t WHERE Status LIKE '%Dropped%'") == (
        "SELECT 1 FROM t WHERE Status LIKE '%DROP%'"
    )


def test_sanitize_typos_skips_literals():
    assert sanitize_typos("SELECT * FROM t WHERE dateCameIn' >= '2024-01-01'") == (
        "SELECT * FROM t WHERE dateCameIn >= '2024-01-01'"
    )
    assert sanitize_typos("SELECT * FROM t WHERE note = 'dateCameIn'") == "SELECT * FROM t WHERE note = 'dateCameIn'"


def test_rewrite_person_like_is_idempotent():
    sql = "SELECT * FROM t WHERE submitterName = 'Ana Perez'"
    once = rewrite_person_like(sql, "cases this month")
    assert once == f"SELECT * FROM t WHERE {PERSON_EXPR} LIKE '%ana perez%'"
    assert rewrite_person_like(once, "cases this month") == once


def test_rewrite_person_like_respects_question_scope():
    sql = "SELECT * FROM t WHERE intakeSpecialist = 'Ana' AND name = 'Luis'"
    assert rewrite_person_like(sql, "cases locked down by Ana for client Luis") == sql


def test_extract_person_filter():
    pf = extract_person_filter("SELECT * FROM t WHERE submitterName LIKE '%Ana%'")
    assert (pf.kind, pf.value) == ("submitterName_like", "Ana")
    pf = extract_person_filter(
        "SELECT * FROM t WHERE TRIM(COALESCE(NULLIF(submitterName,''), submitter)) = 'Ana Perez'"
    )
    assert (pf.kind, pf.value) == ("coalesce_trim_eq", "Ana Perez")
    assert extract_person_filter("SELECT * FROM t WHERE OfficeName = 'Miami'") is None


def test_fix_prompt_truncates_error():
    prompt = build_fix_prompt("es", "casos", "SELECT 1", "x" * 900)
    assert "Error MySQL: " + "x" * 500 + "\n" in prompt
    assert prompt.startswith("casos\n\nIMPORTANTE")
