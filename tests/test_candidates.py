import sys
from datetime import date
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from apps.cases.candidates import (
    Candidate,
    build_role_pick,
    candidate_sql,
    decide_lock,
    find_candidates,
    find_person_candidates,
    role_counts,
    tokenize_name,
)
from apps.cases.dimensions.registry import get_dimension

TODAY = date(2024, 5, 15)


class _Source:
    def __init__(self, rows=None, by_column=None):
        self.rows = rows or []
        self.by_column = by_column or {}
        self.calls = []

    def query(self, sql, binds=None):
        self.calls.append((sql, dict(binds or {})))
        for marker, rows in self.by_column.items():
            if marker in sql:
                return list(rows)
        return list(self.rows)


def test_tokenize_name_drops_particles():
    assert tokenize_name("de la Cruz Maria") == ["cruz", "maria"]
    assert tokenize_name("  José  O'Neil ") == ["josé", "oneil"]
    assert tokenize_name("a b") == []
    assert tokenize_name("Ana Maria de la Paz Ruiz") == ["ana", "maria", "paz"]


def test_candidate_sql_person_uses_coalesced_display():
    sql = candidate_sql(get_dimension("person"), 2, table="t", limit=5)
    assert sql.startswith("SELECT TRIM(COALESCE(NULLIF(submitterName,''), submitter)) AS value")
    assert "LOWER(TRIM(COALESCE(NULLIF(submitterName,''), submitter))) LIKE :tok_0" in sql
    assert ":tok_1" in sql
    assert sql.endswith("LIMIT 5")


def test_candidate_sql_plain_dimension():
    sql = candidate_sql(get_dimension("office"), 1, table="t")
    assert "LOWER(TRIM(OfficeName)) LIKE :tok_0" in sql
    assert "GROUP BY TRIM(OfficeName)" in sql


def test_no_tokens_means_no_query():
    source = _Source(rows=[{"value": "x", "cnt": 1}])
    assert find_candidates(source, "person", "  ") == []
    assert find_candidates(source, "unknown_dim", "Ana") == []
    assert source.calls == []


def test_find_candidates_binds_tokens_and_window():
    source = _Source(rows=[{"value": "Ana Perez", "cnt": 9}, {"value": " ", "cnt": 3}])
    got = find_person_candidates(source, "Ana Perez", 4, window_days=30, today=TODAY, table="t")
    assert got == [Candidate("Ana Perez", 9)]
    sql, binds = source.calls[0]
    assert binds == {"tok_0": "%ana%", "tok_1": "%perez%", "since": date(2024, 4, 15)}
    assert "LIMIT 4" in sql


def test_find_candidates_accepts_column_name():
    source = _Source(rows=[{"value": "Miami", "cnt": 2}])
    assert find_candidates(source, "OfficeName", "miami", today=TODAY) == [Candidate("Miami", 2)]


def test_decide_lock_zero_one_many():
    none = decide_lock("person", "Ana", [])
    assert not none.needs_pick
    assert none.lock.value == "Ana" and none.lock.exact is False

    one = decide_lock("person", "ana", [Candidate("Ana Perez", 3)])
    assert one.lock.value == "Ana Perez" and one.lock.exact is True

    many = decide_lock(
        "person",
        "Ana",
        [Candidate("Ana Perez", 9), Candidate("Ana Gil", 4), Candidate("Mariana Ana", 1)],
        "en",
        original_message="give me the cases of Ana",
    )
    assert many.needs_pick and many.lock is None
    pending = many.pending
    assert pending.type == "person_pick"
    assert pending.dim_key == "person"
    assert [o.label for o in pending.options] == ["Ana Perez", "Ana Gil", "Mariana Ana"]
    assert pending.options[0].sub == "9 cases"
    assert pending.original_message == "give me the cases of Ana"
    assert '"Ana"' in pending.prompt


def test_role_pick_needs_two_roles():
    source = _Source(
        by_column={
            "intakeSpecialist": [{"value": "Ana Gil", "cnt": 5}],
            "submitterName": [{"value": "Ana Perez", "cnt": 2}, {"value": "Ana Ruiz", "cnt": 1}],
        }
    )
    counts = role_counts(source, "Ana", today=TODAY)
    assert counts == {"person": 2, "intake": 1, "attorney": 0}

    pick = build_role_pick("Ana", counts, "es", original_message="casos de Ana")
    assert pick.type == "role_pick"
    assert pick.raw_value == "Ana"
    assert [o.id for o in pick.options] == ["person", "intake"]
    assert pick.options[0].sub == "2 matches"

    assert build_role_pick("Ana", {"person": 3}, "en") is None
