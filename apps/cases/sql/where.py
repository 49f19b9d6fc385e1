"""
Small helpers for WHERE-clause surgery on single-table SELECTs without a parser.
Keywords are located on a literal-masked copy of the text, so quoted values can
never be mistaken for clause boundaries.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

_LITERAL_RE = re.compile(r"'(?:[^'\\]|\\.|'')*'|\"(?:[^\"\\]|\\.|\"\")*\"")
_FROM_RE = re.compile(r"\bfrom\b", re.I)
_CLAUSE_RE = re.compile(r"\b(where|group\s+by|having|order\s+by|limit)\b", re.I)
_AND_BETWEEN_OR_RE = re.compile(r"\b(and|between|or)\b", re.I)
_WHERE_WORD_RE = re.compile(r"\bwhere\b", re.I)
_BIND_RE = re.compile(r"(?<![:\w]):([A-Za-z_][A-Za-z0-9_]*)")


@dataclass
class SqlParts:
    head: str
    where: str
    tail: str

    def join(self) -> str:
        out = [self.head.strip()]
        if self.where.strip():
            out.append("WHERE " + self.where.strip())
        if self.tail.strip():
            out.append(self.tail.strip())
        return " ".join(p for p in out if p)


def strip_semicolon(sql: str) -> str:
    return re.sub(r"[;\s]+$", "", sql or "")


def mask_literals(sql: str) -> str:
    """Same-length copy of ``sql`` with the inside of every quoted literal replaced by ``x``."""

    def _mask(m: re.Match) -> str:
        lit = m.group(0)
        return lit[0] + "x" * (len(lit) - 2) + lit[-1]

    return _LITERAL_RE.sub(_mask, sql or "")


def sub_outside_literals(pattern, repl, sql: str, flags: int = 0) -> str:
    """``re.sub`` applied only to the text between quoted literals."""

    rx = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, flags)
    text = sql or ""
    out: List[str] = []
    pos = 0
    for m in _LITERAL_RE.finditer(text):
        out.append(rx.sub(repl, text[pos:m.start()]))
        out.append(m.group(0))
        pos = m.end()
    out.append(rx.sub(repl, text[pos:]))
    return "".join(out)


def extract_bind_names(sql: str) -> List[str]:
    """Distinct ``:name`` binds outside literals, sorted."""

    return sorted(set(_BIND_RE.findall(mask_literals(sql))))


def _depths(masked: str) -> List[int]:
    depth = 0
    out: List[int] = []
    for ch in masked:
        if ch == ")":
            depth = max(0, depth - 1)
        out.append(depth)
        if ch == "(":
            depth += 1
    return out


def _top_level(masked: str, rx: re.Pattern, start: int = 0) -> Iterable[re.Match]:
    depth = _depths(masked)
    for m in rx.finditer(masked, start):
        if depth[m.start()] == 0:
            yield m


def split_sql(sql: str) -> SqlParts:
    """Split into (everything before WHERE, the WHERE body, GROUP BY/HAVING/ORDER BY/LIMIT tail)."""

    text = strip_semicolon(sql).strip()
    masked = mask_literals(text)
    from_m = next(_top_level(masked, _FROM_RE), None)
    scan_from = from_m.end() if from_m else 0

    where_m: Optional[re.Match] = None
    tail_at = len(text)
    for m in _top_level(masked, _CLAUSE_RE, scan_from):
        word = m.group(1).lower()
        if word == "where":
            if where_m is None:
                where_m = m
            continue
        tail_at = m.start()
        break

    if where_m is not None:
        head = text[: where_m.start()]
        where = text[where_m.end(): tail_at]
    else:
        head = text[:tail_at]
        where = ""
    return SqlParts(head=head.strip(), where=where.strip(), tail=text[tail_at:].strip())


def has_top_level_or(where_body: str) -> bool:
    masked = mask_literals(where_body)
    return any(m.group(1).lower() == "or" for m in _top_level(masked, _AND_BETWEEN_OR_RE))


def split_conjuncts(where_body: str) -> List[str]:
    """Top-level AND operands of a WHERE body.

    ``BETWEEN x AND y`` stays in one operand. A body with a top-level OR is
    returned whole so operator precedence is never changed.
    """

    body = (where_body or "").strip()
    if not body:
        return []
    if has_top_level_or(body):
        return [body]

    masked = mask_literals(body)
    parts: List[str] = []
    start = 0
    in_between = False
    for m in _top_level(masked, _AND_BETWEEN_OR_RE):
        word = m.group(1).lower()
        if word == "between":
            in_between = True
            continue
        if in_between:
            in_between = False
            continue
        parts.append(body[start: m.start()])
        start = m.end()
    parts.append(body[start:])
    return [p.strip() for p in parts if p.strip()]


def join_conjuncts(conjuncts: Iterable[str]) -> str:
    return " AND ".join(c.strip() for c in conjuncts if c and c.strip())


def references_column(conjunct: str, columns: Iterable[str]) -> bool:
    masked = mask_literals(conjunct)
    return any(re.search(rf"(?<![\w.]){re.escape(c)}\b|\.{re.escape(c)}\b", masked, re.I) for c in columns)


def strip_conjuncts(sql: str, drop: Callable[[str], bool]) -> str:
    """Remove every top-level WHERE operand for which ``drop`` returns True."""

    parts = split_sql(sql)
    if not parts.where:
        return parts.join()
    kept = [c for c in split_conjuncts(parts.where) if not drop(c)]
    parts.where = join_conjuncts(kept)
    return parts.join()


def _squash(s: str) -> str:
    return re.sub(r"\s+", " ", s or "").strip().lower()


def add_condition(sql: str, condition: str) -> str:
    """AND ``condition`` into the WHERE clause ahead of GROUP BY/HAVING/ORDER BY/LIMIT."""

    cond = (condition or "").strip()
    parts = split_sql(sql)
    if not cond:
        return parts.join()
    existing = split_conjuncts(parts.where)
    if any(_squash(c) == _squash(cond) for c in existing):
        return parts.join()
    if not parts.where:
        parts.where = cond
    elif has_top_level_or(parts.where):
        parts.where = f"({parts.where}) AND {cond}"
    else:
        parts.where = f"{parts.where} AND {cond}"
    return parts.join()


_FROM_AND_RE = re.compile(r"(\bfrom\s+[\w.`]+(?:\s+(?:as\s+)?(?!and\b|where\b)[A-Za-z_]\w*)?)\s+and\b", re.I)
_WHERE_AND_RE = re.compile(r"\bwhere\s+(?:and\s+)+", re.I)
_AND_AND_RE = re.compile(r"\band\s+(?:and\s+)+", re.I)
_DANGLING_AND_RE = re.compile(r"\s+and\s*(?=\b(?:group\s+by|having|order\s+by|limit)\b|$)", re.I)
_EMPTY_WHERE_RE = re.compile(r"\bwhere\s*(?=\b(?:group\s+by|having|order\s+by|limit)\b|$)", re.I)


def _sub_masked(rx: re.Pattern, repl: str, sql: str) -> str:
    masked = mask_literals(sql)
    out = sql
    for m in reversed(list(rx.finditer(masked))):
        out = out[: m.start()] + m.expand(repl) + out[m.end():]
    return out


def _extra_where_to_and(sql: str) -> str:
    masked = mask_literals(sql)
    hits = list(_top_level(masked, _WHERE_WORD_RE))
    if len(hits) < 2:
        return sql
    out = sql
    for m in reversed(hits[1:]):
        out = out[: m.start()] + "AND" + out[m.end():]
    return out


def repair_where(sql: str) -> str:
    """Fold the malformed WHERE shapes drafts tend to produce into one WHERE ... AND chain.

    ``FROM t AND x`` becomes ``FROM t WHERE x``; ``WHERE AND`` and doubled ANDs
    collapse; every WHERE after the first becomes AND; an empty WHERE or a
    dangling AND before the tail is dropped.
    """

    s = strip_semicolon(sql).strip()
    if not s:
        return s
    s = _sub_masked(_FROM_AND_RE, r"\1 WHERE", s)
    s = _extra_where_to_and(s)
    s = _sub_masked(_WHERE_AND_RE, "WHERE ", s)
    s = _sub_masked(_AND_AND_RE, "AND ", s)
    s = _sub_masked(_DANGLING_AND_RE, " ", s)
    s = _sub_masked(_EMPTY_WHERE_RE, "", s)
    return sub_outside_literals(r"\s+", " ", s).strip()


__all__ = [
    "SqlParts",
    "add_condition",
    "extract_bind_names",
    "has_top_level_or",
    "join_conjuncts",
    "mask_literals",
    "references_column",
    "repair_where",
    "split_conjuncts",
    "split_sql",
    "strip_conjuncts",
    "strip_semicolon",
    "sub_outside_literals",
]
