import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from apps.cases.locks import wants_to_change, wants_to_clear
from apps.cases.picks import resolve_pick
from apps.cases.state import PickOption

OPTIONS = [
    PickOption("Ana Perez", "Ana Perez", "9 cases"),
    PickOption("Ana Gil", "Ana Gil", "4 cases"),
    PickOption("Mariana Ruiz", "Mariana Ruiz", "1 cases"),
]


def test_pick_by_index():
    assert resolve_pick("2", OPTIONS).label == "Ana Gil"
    assert resolve_pick(" 3 please", OPTIONS).label == "Mariana Ruiz"


def test_pick_by_label_or_substring():
    assert resolve_pick("Ana Gil", OPTIONS).label == "Ana Gil"
    assert resolve_pick("gil", OPTIONS).label == "Ana Gil"
    assert resolve_pick("RUIZ", OPTIONS).label == "Mariana Ruiz"


def test_pick_by_numeric_id():
    options = [PickOption("101", "North"), PickOption("205", "South")]
    assert resolve_pick("#205", options).label == "South"


def test_unmatched_reply_returns_none():
    assert resolve_pick("10", OPTIONS) is None
    assert resolve_pick("the other one", OPTIONS) is None
    assert resolve_pick("", OPTIONS) is None
    assert resolve_pick("1", []) is None


def test_role_pick_options_match_by_label():
    roles = [PickOption("person", "Representative (submitter)"), PickOption("intake", "Intake (locked down)")]
    assert resolve_pick("intake", roles).id == "intake"


def test_wants_to_change():
    assert wants_to_change("cambia el representante", "person")
    assert wants_to_change("no es ese rep", "person")
    assert wants_to_change("change the region", "region")
    assert not wants_to_change("cases for office Miami", "office")
    assert wants_to_change("switch please")


def test_wants_to_clear():
    assert wants_to_clear("sin oficina", "office")
    assert wants_to_clear("quita el equipo por favor", "team")
    assert wants_to_clear("remove the submitter filter", "person")
    assert not wants_to_clear("cases for office Miami", "office")
    assert not wants_to_clear("remove it", "office")
