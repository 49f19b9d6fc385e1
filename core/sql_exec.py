from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

_ENGINES: Dict[str, Engine] = {}
_ENGINES_LOCK = threading.Lock()


class ExecutionFailure(RuntimeError):
    """The data source rejected an already-guarded statement."""

    def __init__(self, message: str, *, sql: str | None = None) -> None:
        super().__init__(message)
        self.sql = sql


class DataSource(Protocol):
    def query(self, sql: str, binds: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        ...


def get_engine_for_url(url: str, *, pool_pre_ping: bool = True, pool_recycle: int = 3600) -> Engine:
    """Create or reuse an Engine for the provided SQLAlchemy URL."""

    if not url:
        raise ValueError("Database URL must be provided")

    key = f"url::{url}::{pool_recycle}" if pool_pre_ping else f"url::{url}::np"
    engine = _ENGINES.get(key)
    if engine is not None:
        return engine

    with _ENGINES_LOCK:
        engine = _ENGINES.get(key)
        if engine is None:
            engine = create_engine(
                url, pool_pre_ping=pool_pre_ping, pool_recycle=pool_recycle, future=True
            )
            _ENGINES[key] = engine
    return engine


@dataclass
class SQLExecutionResult:
    """Normalised result wrapper for SQL execution."""

    ok: bool
    columns: List[str]
    rows: List[Dict[str, Any]]
    rowcount: int
    error: Optional[str] = None
    binds: Dict[str, Any] = field(default_factory=dict)

    def dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "columns": self.columns,
            "rows": self.rows,
            "rowcount": self.rowcount,
            "error": self.error,
        }


class EngineDataSource:
    """Read-only executor over a SQLAlchemy engine using named binds."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    def query(self, sql: str, binds: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        return self.run(sql, binds).rows

    # ------------------------------------------------------------------
    def run(self, sql: str, binds: Optional[Mapping[str, Any]] = None) -> SQLExecutionResult:
        params = dict(binds or {})
        try:
            with self.engine.connect() as conn:
                rs = conn.execute(text(sql), params)
                cols = list(rs.keys())
                rows = [dict(zip(cols, list(r))) for r in rs]
        except SQLAlchemyError as exc:
            raise ExecutionFailure(str(getattr(exc, "orig", None) or exc), sql=sql) from exc
        return SQLExecutionResult(ok=True, columns=cols, rows=rows, rowcount=len(rows), binds=params)

    # ------------------------------------------------------------------
    def explain(self, sql: str, binds: Optional[Mapping[str, Any]] = None) -> None:
        """Ask the engine to plan ``sql`` without running it."""

        try:
            with self.engine.connect() as conn:
                conn.execute(text(f"EXPLAIN {sql}"), dict(binds or {}))
        except SQLAlchemyError as exc:
            raise ExecutionFailure(str(getattr(exc, "orig", None) or exc), sql=sql) from exc


__all__ = [
    "DataSource",
    "EngineDataSource",
    "ExecutionFailure",
    "SQLExecutionResult",
    "get_engine_for_url",
]
