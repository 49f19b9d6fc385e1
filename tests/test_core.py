import json
import logging
import sys
from pathlib import Path

import pytest
from sqlalchemy import text

sys.path.append(str(Path(__file__).resolve().parents[1]))

from core.corr import corr_scope, get_corr_id, new_corr_id, set_corr_id
from core.logging_setup import JsonFormatter
from core.logging_utils import log_event, sql_logging_enabled
from core.settings import Settings, env_flag, env_int
from core.sql_exec import EngineDataSource, ExecutionFailure, get_engine_for_url


def test_settings_defaults(monkeypatch):
    for key in ("CASES_TABLE", "CASES_SCHEMA", "CASES_MAX_LIMIT", "CASES_DEFAULT_WINDOW_DAYS", "APP_DB_URL"):
        monkeypatch.delenv(key, raising=False)
    s = Settings()

    assert s.table_name() == "dmLogReportDashboard"
    assert s.qualified_table() == "performance_data.dmLogReportDashboard"
    assert s.max_limit() == 500
    assert s.candidate_window_days() == 180
    assert s.office_lookup_days() == 90
    assert s.default_window_days() is None
    assert s.app_db_url() is None


def test_settings_overrides_beat_environment(monkeypatch):
    monkeypatch.setenv("CASES_MAX_LIMIT", "50")
    s = Settings(overrides={"cases::common": {"CASES_MAX_LIMIT": 200}, "global": {"CASES_SCHEMA": ""}})

    assert s.max_limit() == 200
    assert s.table_schema() is None
    assert s.qualified_table() == "dmLogReportDashboard"
    assert Settings().max_limit() == 50


def test_settings_sanitizes_identifiers():
    s = Settings(overrides={"CASES_TABLE": "dmLog; DROP TABLE x", "CASES_SCHEMA": "perf`data"})
    assert s.qualified_table() == "perfdata.dmLogDROPTABLEx"


def test_settings_typed_getters(monkeypatch):
    monkeypatch.setenv("CASES_DEBUG", "yes")
    monkeypatch.setenv("CASES_EXTRA", '{"a": 1}')
    s = Settings()

    assert s.debug_enabled() is True
    assert s.get_json("CASES_EXTRA") == {"a": 1}
    assert s.get_int("CASES_MISSING", 7) == 7
    assert env_flag("CASES_DEBUG") is True
    assert env_int("CASES_DEBUG", 3) == 3


def test_corr_scope_restores_previous_id():
    outer = set_corr_id("req:outer")
    with corr_scope("req:inner") as inner:
        assert inner == get_corr_id() == "req:inner"
    assert get_corr_id() == outer
    with corr_scope() as fresh:
        assert fresh.startswith("req:")
    assert new_corr_id() != new_corr_id()


def test_json_formatter_carries_corr_id_and_channel():
    record = logging.getLogger("cases.test").makeRecord(
        "cases.test", logging.INFO, __file__, 1, "hello", None, None, extra={"channel": "sql"}
    )
    with corr_scope("req:abc"):
        out = json.loads(JsonFormatter().format(record))

    assert out["corr_id"] == "req:abc"
    assert out["channel"] == "sql"
    assert out["msg"] == "hello"
    assert out["level"] == "INFO"


def test_log_event_emits_json_payload(caplog):
    logger = logging.getLogger("cases.test.events")
    with caplog.at_level(logging.INFO, logger="cases.test.events"):
        log_event(logger, "guard", "rejected", {"code": "join"})

    record = caplog.records[-1]
    assert record.channel == "guard"
    assert json.loads(record.getMessage()) == {"event": "rejected", "code": "join"}


def test_sql_logging_flag(monkeypatch):
    monkeypatch.delenv("CASES_LOG_SQL", raising=False)
    assert sql_logging_enabled() is False
    monkeypatch.setenv("CASES_LOG_SQL", "1")
    assert sql_logging_enabled() is True


def _sqlite_source():
    engine = get_engine_for_url("sqlite://")
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE IF EXISTS dmLogReportDashboard"))
        conn.execute(text("CREATE TABLE dmLogReportDashboard (caseId INTEGER, OfficeName TEXT)"))
        conn.execute(text("INSERT INTO dmLogReportDashboard VALUES (1, 'Miami'), (2, 'Tampa')"))
    return EngineDataSource(engine)


def test_engine_cache_reuses_engines():
    assert get_engine_for_url("sqlite://") is get_engine_for_url("sqlite://")


def test_engine_source_runs_with_named_binds():
    src = _sqlite_source()

    rows = src.query(
        "SELECT caseId FROM dmLogReportDashboard WHERE LOWER(OfficeName) LIKE :office_0",
        {"office_0": "%miami%"},
    )
    assert rows == [{"caseId": 1}]

    result = src.run("SELECT caseId, OfficeName FROM dmLogReportDashboard ORDER BY caseId")
    assert result.ok and result.rowcount == 2
    assert result.columns == ["caseId", "OfficeName"]
    assert result.dict()["rows"][1] == {"caseId": 2, "OfficeName": "Tampa"}


def test_engine_source_wraps_driver_errors():
    src = _sqlite_source()
    src.explain("SELECT caseId FROM dmLogReportDashboard")
    with pytest.raises(ExecutionFailure) as info:
        src.query("SELECT missingColumn FROM dmLogReportDashboard")
    assert "missingColumn" in str(info.value)
    assert info.value.sql == "SELECT missingColumn FROM dmLogReportDashboard"
