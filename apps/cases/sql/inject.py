"""Merge session filter locks into a drafted query.

For each locked dimension every WHERE operand already touching its column is
removed, then one bound condition is added. Bind names come from the dimension
key, so applying the same locks again produces the same text and binds.
"""
from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional, Tuple

from apps.cases.candidates import tokenize_name
from apps.cases.dimensions.registry import PERSON_EXPR, PERSON_KEY, get_dimension, list_dimensions
from apps.cases.sql.where import add_condition, references_column, repair_where, strip_conjuncts
from apps.cases.state import FilterLock
from apps.cases.text import clean_spaces, like_pattern

PERSON_BIND = "p"
PERSON_STRIP_COLUMNS = ("submitterName", "submitter")
ROLE_COLUMNS = {"intake": "intakeSpecialist", "attorney": "attorney"}

_NON_NAME_TOKEN_RE = re.compile(r"(accident|accidente|case|caso|lead|cliente|client|paciente)", re.I)


def _bind_prefix(key: str) -> str:
    return PERSON_BIND if key == PERSON_KEY else re.sub(r"\W", "_", key)


def _is_active(lock: Optional[FilterLock]) -> bool:
    return lock is not None and lock.active


def person_condition(value: str, *, exact: bool) -> Tuple[str, Dict[str, str]]:
    """Order-insensitive two-token match for names, single substring otherwise."""

    tokens = tokenize_name(value)
    if not exact and len(tokens) >= 2:
        a, b = tokens[0], tokens[1]
        cond = f"({PERSON_EXPR} LIKE :{PERSON_BIND}_0 OR {PERSON_EXPR} LIKE :{PERSON_BIND}_1)"
        return cond, {f"{PERSON_BIND}_0": like_pattern(a, b), f"{PERSON_BIND}_1": like_pattern(b, a)}
    return f"{PERSON_EXPR} LIKE :{PERSON_BIND}_0", {f"{PERSON_BIND}_0": like_pattern(value)}


def column_condition(key: str, value: str, *, exact: bool) -> Tuple[str, Dict[str, str]]:
    dim = get_dimension(key)
    if dim is None:
        return "", {}
    expr = dim.match_expr()
    prefix = _bind_prefix(key)
    if exact:
        tokens = [clean_spaces(value)]
    else:
        tokens = [t for t in tokenize_name(value, max_tokens=6) if not _NON_NAME_TOKEN_RE.search(t)]
        if not tokens:
            tokens = [clean_spaces(value)]
    binds = {f"{prefix}_{i}": like_pattern(tok) for i, tok in enumerate(tokens) if tok}
    if not binds:
        return "", {}
    likes = [f"{expr} LIKE :{name}" for name in binds]
    cond = likes[0] if len(likes) == 1 else "(" + " AND ".join(likes) + ")"
    return cond, binds


def apply_locked_filters(
    sql: str,
    filters: Mapping[str, FilterLock],
) -> Tuple[str, Dict[str, Any]]:
    """Strip-then-inject every active lock; returns the new SQL and its binds.

    Pre: the period filter is already in place. Post: each locked column is
    constrained by exactly one bound condition. With a person lock, unlocked
    intake/attorney operands are removed too, since drafts often put the
    person's name there.
    """

    out = str(sql or "")
    binds: Dict[str, Any] = {}
    person = filters.get(PERSON_KEY)

    if _is_active(person):
        out = strip_conjuncts(out, lambda c: references_column(c, PERSON_STRIP_COLUMNS))
        for role_key, column in ROLE_COLUMNS.items():
            if not _is_active(filters.get(role_key)):
                out = strip_conjuncts(out, lambda c, col=column: references_column(c, (col,)))

    for dim in list_dimensions():
        if dim.key == PERSON_KEY:
            continue
        lock = filters.get(dim.key)
        if not _is_active(lock):
            continue
        out = strip_conjuncts(out, lambda c, col=dim.column: references_column(c, (col,)))
        cond, cond_binds = column_condition(dim.key, lock.value, exact=lock.exact)
        if cond:
            out = add_condition(out, cond)
            binds.update(cond_binds)

    if _is_active(person):
        cond, cond_binds = person_condition(person.value, exact=person.exact)
        out = add_condition(out, cond)
        binds.update(cond_binds)

    return repair_where(out), binds


__all__ = [
    "apply_locked_filters",
    "column_condition",
    "person_condition",
]
