"""Per-session conversation state: filter locks, pending picks, last person.

State lives behind a small key-value store interface so the TTL/eviction
policy can change (in-process map, external cache) without touching callers.
All writes replace the whole value. A caller that needs a partial update reads,
merges and writes back; that sequence is not atomic across two concurrent
requests for the same session, which the chat flow (one turn in flight per
user) tolerates.
"""
from __future__ import annotations

import copy
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from apps.cases.dimensions.registry import PERSON_KEY


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def sweep(self) -> int:
        ...


class MemoryStore:
    """In-process TTL map; expiry is checked lazily on read, oldest writes are evicted past the cap."""

    def __init__(
        self,
        ttl_seconds: float = 600,
        max_entries: int = 5000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._data: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    def _expired(self, written_at: float) -> bool:
        return self._clock() - written_at > self.ttl_seconds

    # ------------------------------------------------------------------
    def get(self, key: str) -> Any:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            written_at, value = item
            if self._expired(written_at):
                del self._data[key]
                return None
            return copy.deepcopy(value)

    # ------------------------------------------------------------------
    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data.pop(key, None)
            self._data[key] = (self._clock(), copy.deepcopy(value))
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    # ------------------------------------------------------------------
    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    # ------------------------------------------------------------------
    def sweep(self) -> int:
        with self._lock:
            stale = [k for k, (ts, _v) in self._data.items() if self._expired(ts)]
            for k in stale:
                del self._data[k]
            return len(stale)

    def __len__(self) -> int:
        return len(self._data)


@dataclass
class FilterLock:
    value: str
    locked: bool = True
    exact: bool = False

    @property
    def active(self) -> bool:
        return bool(self.locked and str(self.value or "").strip())

    def as_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "locked": self.locked, "exact": self.exact}

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> Optional["FilterLock"]:
        if not raw or not raw.get("value"):
            return None
        return cls(value=str(raw["value"]), locked=bool(raw.get("locked", True)), exact=bool(raw.get("exact", False)))


@dataclass
class PickOption:
    id: str
    label: str
    sub: str = ""
    value: str = ""

    def as_dict(self) -> Dict[str, str]:
        return {"id": self.id, "label": self.label, "sub": self.sub, "value": self.value or self.label}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PickOption":
        return cls(
            id=str(raw.get("id", "")),
            label=str(raw.get("label", "")),
            sub=str(raw.get("sub", "") or ""),
            value=str(raw.get("value", "") or raw.get("label", "")),
        )


@dataclass
class PendingPick:
    type: str
    prompt: str
    options: List[PickOption]
    dim_key: str
    original_message: str = ""
    original_mode: str = "dim"
    raw_value: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "prompt": self.prompt,
            "options": [o.as_dict() for o in self.options],
            "dimKey": self.dim_key,
            "originalMessage": self.original_message,
            "originalMode": self.original_mode,
            "rawValue": self.raw_value,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PendingPick":
        return cls(
            type=str(raw.get("type", "")),
            prompt=str(raw.get("prompt", "")),
            options=[PickOption.from_dict(o) for o in raw.get("options") or []],
            dim_key=str(raw.get("dimKey", "")),
            original_message=str(raw.get("originalMessage", "") or ""),
            original_mode=str(raw.get("originalMode", "") or ""),
            raw_value=raw.get("rawValue"),
        )


@dataclass
class ConversationContext:
    filters: Dict[str, FilterLock] = field(default_factory=dict)
    last_person: Optional[str] = None
    pdf_user: Optional[Dict[str, str]] = None

    def active_locks(self) -> Dict[str, FilterLock]:
        return {k: v for k, v in self.filters.items() if v is not None and v.active}

    def as_dict(self) -> Dict[str, Any]:
        return {
            "filters": {k: v.as_dict() for k, v in self.filters.items() if v is not None},
            "lastPerson": self.last_person,
            "pdfUser": dict(self.pdf_user) if self.pdf_user else None,
        }

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "ConversationContext":
        raw = raw or {}
        filters: Dict[str, FilterLock] = {}
        for key, value in (raw.get("filters") or {}).items():
            lock = FilterLock.from_dict(value)
            if lock is not None:
                filters[key] = lock
        pdf_user = raw.get("pdfUser")
        return cls(
            filters=filters,
            last_person=raw.get("lastPerson") or None,
            pdf_user=dict(pdf_user) if isinstance(pdf_user, dict) else None,
        )


class ConversationState:
    """Accessors for one session's context and pending pick; the only owner of the store keys."""

    def __init__(self, store: Optional[KeyValueStore] = None) -> None:
        self.store: KeyValueStore = store if store is not None else MemoryStore()

    @staticmethod
    def _ctx_key(session_id: str) -> str:
        return f"ctx:{session_id}"

    @staticmethod
    def _pending_key(session_id: str) -> str:
        return f"pending:{session_id}"

    # ------------------------------------------------------------------
    def get_context(self, session_id: str) -> Optional[ConversationContext]:
        if not session_id:
            return None
        raw = self.store.get(self._ctx_key(session_id))
        return ConversationContext.from_dict(raw) if raw is not None else None

    # ------------------------------------------------------------------
    def set_context(self, session_id: str, ctx: ConversationContext) -> None:
        if session_id:
            self.store.set(self._ctx_key(session_id), ctx.as_dict())

    # ------------------------------------------------------------------
    def merge_context(self, session_id: str, **patch: Any) -> ConversationContext:
        """Read-merge-write of ``filters``/``last_person``/``pdf_user``."""

        ctx = self.get_context(session_id) or ConversationContext()
        for name in ("filters", "last_person", "pdf_user"):
            if name in patch:
                setattr(ctx, name, copy.deepcopy(patch[name]))
        self.set_context(session_id, ctx)
        return ctx

    # ------------------------------------------------------------------
    def get_pending(self, session_id: str) -> Optional[PendingPick]:
        if not session_id:
            return None
        raw = self.store.get(self._pending_key(session_id))
        return PendingPick.from_dict(raw) if raw else None

    # ------------------------------------------------------------------
    def set_pending(self, session_id: str, pending: PendingPick) -> None:
        """Ask a pick; the stored lock it re-decides is dropped so both never coexist."""

        if not session_id:
            return
        ctx = self.get_context(session_id)
        if ctx is not None and pending.dim_key in ctx.filters:
            ctx.filters.pop(pending.dim_key)
            if pending.dim_key == PERSON_KEY:
                ctx.last_person = None
            self.set_context(session_id, ctx)
        self.store.set(self._pending_key(session_id), pending.as_dict())

    # ------------------------------------------------------------------
    def clear_pending(self, session_id: str) -> None:
        if session_id:
            self.store.delete(self._pending_key(session_id))

    # ------------------------------------------------------------------
    def lock_filter(
        self,
        session_id: str,
        key: str,
        lock: FilterLock,
        *,
        last_person: Optional[str] = None,
    ) -> ConversationContext:
        """Confirm a lock; any pending pick is dropped first so both never coexist."""

        self.clear_pending(session_id)
        ctx = self.get_context(session_id) or ConversationContext()
        ctx.filters[key] = lock
        if last_person:
            ctx.last_person = last_person
        self.set_context(session_id, ctx)
        return ctx

    # ------------------------------------------------------------------
    def snapshot(self, session_id: str) -> Optional[Dict[str, Any]]:
        if not session_id:
            return None
        return self.store.get(self._ctx_key(session_id))

    # ------------------------------------------------------------------
    def restore(self, session_id: str, snapshot: Optional[Dict[str, Any]]) -> None:
        if not session_id:
            return
        if snapshot is None:
            self.store.delete(self._ctx_key(session_id))
        else:
            self.store.set(self._ctx_key(session_id), snapshot)


__all__ = [
    "ConversationContext",
    "ConversationState",
    "FilterLock",
    "KeyValueStore",
    "MemoryStore",
    "PendingPick",
    "PickOption",
]
