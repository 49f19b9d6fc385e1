"""Correlation identifiers for request-scoped logging and support replies."""
from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator
import uuid


_corr_id: ContextVar[str | None] = ContextVar("corr_id", default=None)


def new_corr_id() -> str:
    return f"req:{uuid.uuid4().hex[:16]}"


def set_corr_id(value: str | None = None) -> str:
    """Set the correlation identifier for the current context.

    A fresh ``req:``-prefixed identifier is generated when ``value`` is empty,
    so a support ticket can quote it back and we can grep the JSON logs.
    """

    cid = (value or "").strip() or new_corr_id()
    _corr_id.set(cid)
    return cid


def get_corr_id() -> str | None:
    return _corr_id.get()


@contextmanager
def corr_scope(value: str | None = None) -> Iterator[str]:
    """Bind a correlation id for the duration of a block (one chat turn)."""

    token = _corr_id.set((value or "").strip() or new_corr_id())
    try:
        yield _corr_id.get() or ""
    finally:
        _corr_id.reset(token)


__all__ = ["corr_scope", "get_corr_id", "new_corr_id", "set_corr_id"]
