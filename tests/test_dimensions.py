import sys
from datetime import date
from pathlib import Path

import pytest
import yaml

sys.path.append(str(Path(__file__).resolve().parents[1]))

from apps.cases.dimensions.extractor import (
    ExtractedDimension,
    extract_dimension,
    extract_person_name,
    looks_like_period,
    safe_explicit_person,
    strip_trailing_noise,
)
from apps.cases.dimensions.registry import (
    PERSON_EXPR,
    get_dimension,
    key_from_column,
    list_dimensions,
)
from apps.cases.dimensions.resolver import is_office_of_person_phrase, resolve_dimension
from core.settings import Settings

_GOLDEN = yaml.safe_load((Path(__file__).parent / "golden" / "dimensions.yaml").read_text(encoding="utf-8"))


class _Source:
    def __init__(self, rows=None):
        self.rows = rows or []
        self.calls = []

    def query(self, sql, binds=None):
        self.calls.append((sql, dict(binds or {})))
        return list(self.rows)


@pytest.mark.parametrize("case", _GOLDEN["cases"], ids=lambda c: c["q"])
def test_extracts_dimension(case):
    got = extract_dimension(case["q"], case["lang"])
    assert got == ExtractedDimension(key=case["key"], value=case["value"], match_type=case["match"])


@pytest.mark.parametrize("case", _GOLDEN["none"], ids=lambda c: c["q"] or "<empty>")
def test_no_dimension(case):
    assert extract_dimension(case["q"], case["lang"]) is None


def test_registry_is_the_only_column_map():
    keys = [d.key for d in list_dimensions()]
    assert len(keys) == len(set(keys))
    assert get_dimension("office").column == "OfficeName"
    assert key_from_column("officename") == "office"
    assert key_from_column("intakeSpecialist") == "intake"
    assert key_from_column("nope") is None


def test_person_dimension_uses_coalesced_expression():
    person = get_dimension("person")
    assert person.is_person
    assert person.match_expr() == PERSON_EXPR
    assert person.referenced_columns() == ("submitterName", "submitter")
    assert person.pick_type == "person_pick"
    assert get_dimension("team").match_expr() == "LOWER(TRIM(TeamName))"


def test_strip_trailing_noise_keeps_name():
    assert strip_trailing_noise("Ana Perez last 30 days please", "en") == "Ana Perez"
    assert strip_trailing_noise("Norte por oficina y", "es") == "Norte"


def test_looks_like_period():
    assert looks_like_period("this month")
    assert looks_like_period("marzo de 2024", "es")
    assert looks_like_period("Q3 2023")
    assert not looks_like_period("Maria")


def test_extract_person_name_prefers_quotes():
    assert extract_person_name('cases of "Ana Maria" this week') == "Ana Maria"
    assert extract_person_name("dame casos de Pedro Gil este mes") == "Pedro Gil"
    assert extract_person_name("Carlos confirmed") == "Carlos"
    assert extract_person_name("") is None


def test_safe_explicit_person_rejects_noise():
    assert safe_explicit_person("dame los casos de Ana Lopez este mes", "es") == "Ana Lopez"
    assert safe_explicit_person("confirmados de hoy", "es") is None
    assert safe_explicit_person("cases for this month", "en") is None
    assert safe_explicit_person("confirmed rate", "en") is None


def test_office_of_person_resolves_to_top_office():
    source = _Source(rows=[{"officeName": "Miami", "cnt": 14}])
    extracted = extract_dimension("office of Maria Lopez", "en")
    resolved = resolve_dimension(
        source, extracted, "office of Maria Lopez", "en", settings=Settings(overrides={}), today=date(2024, 5, 15)
    )
    assert resolved.key == "office"
    assert resolved.column == "OfficeName"
    assert resolved.value == "Miami"
    assert resolved.meta == {"resolved_from_person": "Maria Lopez"}
    sql, binds = source.calls[0]
    assert "LIMIT 1" in sql
    assert binds["person"] == "%maria lopez%"
    assert binds["since"] == date(2024, 2, 15)


def test_office_of_person_falls_back_to_literal():
    source = _Source(rows=[])
    extracted = extract_dimension("office of Maria Lopez", "en")
    resolved = resolve_dimension(source, extracted, "office of Maria Lopez", "en", today=date(2024, 5, 15))
    assert resolved.value == "Maria Lopez"
    assert resolved.meta == {}


def test_plain_office_is_not_looked_up():
    source = _Source(rows=[{"officeName": "Tampa"}])
    extracted = extract_dimension("confirmed for office Miami", "en")
    resolved = resolve_dimension(source, extracted, "confirmed for office Miami", "en")
    assert resolved.value == "Miami"
    assert source.calls == []
    assert not is_office_of_person_phrase("confirmed for office Miami")
    assert is_office_of_person_phrase("la oficina de Ana", "es")
