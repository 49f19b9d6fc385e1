import sys
from datetime import date
from pathlib import Path

import pytest
import yaml

sys.path.append(str(Path(__file__).resolve().parents[1]))

from apps.cases.time_window import (
    current_month_window,
    has_explicit_period,
    previous_month_window,
    resolve_time_window,
)

_GOLDEN = yaml.safe_load((Path(__file__).parent / "golden" / "time_windows.yaml").read_text(encoding="utf-8"))
TODAY = date.fromisoformat(_GOLDEN["today"])


@pytest.mark.parametrize("case", _GOLDEN["cases"], ids=lambda c: c["q"])
def test_golden_windows(case):
    window = resolve_time_window(case["q"], case["lang"], today=TODAY)
    assert window.matched
    assert window.kind == case["kind"]
    assert window.start.isoformat() == case["start"]
    assert window.end.isoformat() == case["end"]
    assert window.where_clause == (
        f"dateCameIn >= '{case['start']}' AND dateCameIn < '{case['end']}'"
    )
    if "label" in case:
        assert window.label == case["label"]


def test_no_period_without_default():
    window = resolve_time_window("show me the cases", "en", today=TODAY)
    assert not window.matched
    assert window.where_clause == ""


def test_default_window_days_applies_when_nothing_matches():
    window = resolve_time_window("show me the cases", "en", 30, today=TODAY)
    assert window.matched
    assert window.kind == "default_days"
    assert window.start == date(2024, 4, 15)
    assert window.end == date(2024, 5, 16)


def test_literal_day_beats_named_range():
    window = resolve_time_window("today vs this month", "en", today=TODAY)
    assert window.kind == "today"


def test_literal_day_beats_an_explicit_year():
    window = resolve_time_window("today in 2024", "en", today=TODAY)
    assert window.kind == "today"
    assert window.start == TODAY
    assert window.end == date(2024, 5, 16)


def test_bare_month_in_january_resolves_to_previous_year():
    window = resolve_time_window("casos de diciembre", "es", today=date(2025, 1, 10))
    assert window.start == date(2024, 12, 1)
    assert window.end == date(2025, 1, 1)


def test_may_as_verb_is_not_a_month():
    window = resolve_time_window("may I see the cases", "en", today=TODAY)
    assert not window.matched


def test_month_helpers_roll_over_year():
    ref = date(2024, 1, 20)
    assert current_month_window(ref).start == date(2024, 1, 1)
    prev = previous_month_window(ref, "es")
    assert prev.start == date(2023, 12, 1)
    assert prev.end == date(2024, 1, 1)
    assert prev.label == "mes pasado"


def test_has_explicit_period():
    assert has_explicit_period("confirmados esta semana")
    assert has_explicit_period("between 2024-01-01 and 2024-02-01")
    assert not has_explicit_period("dame los casos de Ana")
