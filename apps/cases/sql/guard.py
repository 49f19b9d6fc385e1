"""Allow-list validator run on every statement right before execution.

Only a single read-only SELECT over the reporting table passes. Keyword checks
run on a copy with string literals masked, so values never trip them.
"""
from __future__ import annotations

import re
from typing import Any, Optional

from apps.cases.sql.where import mask_literals

DEFAULT_TABLE = "dmLogReportDashboard"
DEFAULT_MAX_LIMIT = 500

FORBIDDEN_WORDS = (
    "insert", "update", "delete", "drop", "alter", "truncate", "create", "replace",
    "rename", "grant", "revoke", "set", "prepare", "execute", "deallocate", "call",
    "handler", "load_file", "outfile", "dumpfile", "information_schema", "mysql",
    "performance_schema", "sys",
)

_FORBIDDEN_RE = re.compile(r"\b(" + "|".join(FORBIDDEN_WORDS) + r")\b", re.I)
_TRAILING_SEMI_RE = re.compile(r"[;\s]+$")
_MULTI_STMT_RE = re.compile(r";\s*\S")
_COMMENT_RE = re.compile(r"--|/\*|\*/")
_HASH_COMMENT_RE = re.compile(r"#")
_FROM_TARGET_RE = re.compile(r"\bfrom\s+([`\w.]+)", re.I)
_FROM_RE = re.compile(r"\bfrom\b", re.I)
_FROM_END_RE = re.compile(r"\b(where|group\s+by|having|order\s+by|limit)\b", re.I)
_ALIAS_ONLY_RE = re.compile(r"^\s*(?:(?:as\s+)?`?\w+`?)?\s*$", re.I)
_JOIN_RE = re.compile(r"\bjoin\b", re.I)
_UNION_RE = re.compile(r"\bunion\b", re.I)
_WITH_RE = re.compile(r"\bwith\b", re.I)
_INTO_RE = re.compile(r"\binto\b", re.I)
_GROUP_BY_RE = re.compile(r"\bgroup\s+by\b", re.I)
_AGG_RE = re.compile(r"\b(count|sum|avg|min|max)\s*\(", re.I)
_LIMIT_RE = re.compile(r"\blimit\s+(\S+)", re.I)


class RejectedQuery(ValueError):
    """A statement failed the allow-list; never executed."""

    def __init__(self, reason: str, code: str = "rejected") -> None:
        super().__init__(reason)
        self.reason = reason
        self.code = code

    def as_dict(self) -> dict:
        return {"code": self.code, "reason": self.reason}


def _table_ok(target: str, table: str, schema: Optional[str]) -> bool:
    name = target.replace("`", "").lower()
    table_l = table.lower()
    if name == table_l:
        return True
    if "." not in name:
        return False
    qualifier, _, base = name.rpartition(".")
    if base != table_l:
        return False
    return schema is None or qualifier == schema.lower()


def is_aggregated(sql: str) -> bool:
    masked = mask_literals(sql or "")
    return bool(_GROUP_BY_RE.search(masked) or _AGG_RE.search(masked))


def validate_sql(
    sql: str,
    *,
    table: str = DEFAULT_TABLE,
    schema: Optional[str] = None,
    max_limit: int = DEFAULT_MAX_LIMIT,
    default_limit: int = DEFAULT_MAX_LIMIT,
) -> str:
    """Return the statement ready to run (LIMIT appended when needed) or raise ``RejectedQuery``."""

    if not isinstance(sql, str) or not sql.strip():
        raise RejectedQuery("empty query", "empty")

    cleaned = _TRAILING_SEMI_RE.sub("", sql.strip())
    flat = re.sub(r"\s+", " ", cleaned).strip()
    if not flat.lower().startswith("select "):
        raise RejectedQuery("only SELECT statements are allowed", "not_select")

    masked_raw = mask_literals(cleaned)
    if _MULTI_STMT_RE.search(masked_raw):
        raise RejectedQuery("multiple statements are not allowed", "multi_statement")
    if _COMMENT_RE.search(cleaned) or _HASH_COMMENT_RE.search(masked_raw):
        raise RejectedQuery("comments are not allowed", "comment")

    masked = mask_literals(flat)
    target = _FROM_TARGET_RE.search(masked)
    if not target:
        raise RejectedQuery("query must select FROM the reporting table", "no_from")
    if not _table_ok(target.group(1), table, schema):
        raise RejectedQuery(f"only {table} may be queried", "table")

    if _JOIN_RE.search(masked):
        raise RejectedQuery("JOIN is not allowed", "join")
    if _UNION_RE.search(masked):
        raise RejectedQuery("UNION is not allowed", "union")
    if _WITH_RE.search(masked):
        raise RejectedQuery("WITH (CTE) is not allowed", "cte")
    if _INTO_RE.search(masked):
        raise RejectedQuery("INTO is not allowed", "into")
    if len(_FROM_RE.findall(masked)) != 1:
        raise RejectedQuery("subqueries are not allowed", "subquery")

    # after the table only an alias may follow, up to the first clause keyword
    rest = masked[target.end():]
    stop = _FROM_END_RE.search(rest)
    if not _ALIAS_ONLY_RE.match(rest[: stop.start()] if stop else rest):
        raise RejectedQuery(f"only {table} may be referenced", "multi_table")

    bad = _FORBIDDEN_RE.search(masked)
    if bad:
        raise RejectedQuery(f"keyword not allowed: {bad.group(1).lower()}", "forbidden_keyword")

    aggregated = bool(_GROUP_BY_RE.search(masked) or _AGG_RE.search(masked))
    limit = _LIMIT_RE.search(masked)
    if aggregated:
        if limit:
            raise RejectedQuery("LIMIT is not allowed on aggregated queries", "aggregate_limit")
        return cleaned

    if not limit:
        return f"{cleaned} LIMIT {int(default_limit)}"
    raw = limit.group(1).rstrip(",")
    if not raw.isdigit() or int(raw) <= 0:
        raise RejectedQuery("LIMIT must be a positive integer", "limit_invalid")
    if int(raw) > max_limit:
        raise RejectedQuery(f"LIMIT may not exceed {max_limit}", "limit_too_large")
    return cleaned


class SqlGuard:
    """``validate_sql`` bound to the configured table, schema and limit."""

    def __init__(self, settings: Any = None) -> None:
        if settings is not None:
            self.table = settings.table_name()
            self.schema = settings.table_schema()
            self.max_limit = settings.max_limit()
        else:
            self.table, self.schema, self.max_limit = DEFAULT_TABLE, None, DEFAULT_MAX_LIMIT

    def validate(self, sql: str) -> str:
        return validate_sql(
            sql,
            table=self.table,
            schema=self.schema,
            max_limit=self.max_limit,
            default_limit=self.max_limit,
        )


__all__ = [
    "FORBIDDEN_WORDS",
    "RejectedQuery",
    "SqlGuard",
    "is_aggregated",
    "validate_sql",
]
