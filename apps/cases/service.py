"""One chat turn: resolve filters, draft SQL, rewrite, guard, execute, narrate.

The proposer and narrator are collaborators behind small protocols; the
in-process implementations here are deterministic and need no model.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

from apps.cases.candidates import (
    build_role_pick,
    decide_lock,
    find_candidates,
    find_person_candidates,
    role_counts,
)
from apps.cases.dimensions.extractor import (
    FALLBACK,
    FALLBACK_CASES,
    extract_dimension,
    extract_person_name,
    safe_explicit_person,
)
from apps.cases.dimensions.registry import PERSON_KEY, list_dimensions
from apps.cases.dimensions.resolver import resolve_dimension
from apps.cases.intent import (
    is_follow_up_question,
    is_greeting,
    is_kpi_only_question,
    looks_like_new_topic,
)
from apps.cases.kpi import build_kpi_pack_sql, first_row
from apps.cases.locks import wants_to_change, wants_to_clear
from apps.cases.picks import resolve_pick
from apps.cases.presets import (
    GOLDEN,
    SHAPE_KPI_PACK,
    SHAPE_SERIES,
    QueryTemplate,
    get_preset,
    normalize_quick_action,
    template_for,
)
from apps.cases.sql.guard import RejectedQuery, SqlGuard, is_aggregated
from apps.cases.sql.person import extract_person_filter
from apps.cases.sql.pipeline import PipelineContext, build_fix_prompt, run_pipeline
from apps.cases.state import (
    ConversationContext,
    ConversationState,
    FilterLock,
    PendingPick,
    PickOption,
)
from apps.cases.text import pick_lang, same_text
from core.corr import get_corr_id
from core.logging_utils import log_event, sql_logging_enabled
from core.settings import Settings
from core.sql_exec import DataSource, ExecutionFailure

log = logging.getLogger("cases.service")

_ASKS_LIST_RE = re.compile(r"(dame|give me|show me|logs|lista|list|casos|cases)", re.I)
_OTHER_ROLE_RE = re.compile(r"(intake|locked down|cerrado por|bloqueado por|attorney|abogado|lawyer)", re.I)


@dataclass
class Proposal:
    sql: str
    comment: Optional[str] = None
    shape: str = SHAPE_SERIES


class SqlProposer(Protocol):
    def propose(self, question: str, lang: str) -> Proposal:
        ...


class Narrator(Protocol):
    def narrate(
        self,
        question: str,
        sql: str,
        rows: List[Dict[str, Any]],
        *,
        lang: str = "en",
        kpi: Optional[Dict[str, Any]] = None,
        window_label: Optional[str] = None,
    ) -> str:
        ...


class TemplateProposer:
    """Golden template for the question's intent, else a recent-detail draft."""

    def propose(self, question: str, lang: str) -> Proposal:
        tpl = template_for(question) or GOLDEN["detail"]
        return Proposal(sql=tpl.sql, comment=f"template:{tpl.key}", shape=tpl.shape)


class PlainNarrator:
    def narrate(self, question, sql, rows, *, lang="en", kpi=None, window_label=None) -> str:
        es = lang == "es"
        parts: List[str] = []
        if kpi:
            gross = kpi.get("gross_cases") or 0
            confirmed = kpi.get("confirmed_cases") or 0
            period = f" ({window_label})" if window_label else ""
            parts.append(
                f"{gross} casos, {confirmed} confirmados{period}."
                if es
                else f"{gross} cases, {confirmed} confirmed{period}."
            )
        if rows or not kpi:
            n = len(rows or [])
            parts.append(f"{n} filas." if es else f"{n} rows.")
        return " ".join(parts)


@dataclass
class RowSet:
    shape: str
    data: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {"shape": self.shape, "data": self.data}


@dataclass
class ChatResult:
    # 'answer' | 'pick' | 'greeting' | 'error'
    kind: str
    answer: str
    rows: Optional[RowSet] = None
    kpi: Optional[Dict[str, Any]] = None
    pick: Optional[PendingPick] = None
    comment: Optional[str] = None
    window_label: Optional[str] = None
    sql: Optional[str] = None
    binds: Optional[Dict[str, Any]] = None
    error_code: Optional[str] = None
    details: Optional[str] = None
    status: int = 200
    corr_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind != "error"

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "ok": self.ok,
            "kind": self.kind,
            "answer": self.answer,
            "rowCount": len(self.rows.data) if self.rows else 0,
            "rows": self.rows.as_dict() if self.rows else None,
            "kpi": self.kpi,
            "aiComment": self.comment,
            "window": self.window_label,
            "corrId": self.corr_id,
        }
        if self.pick is not None:
            out["pick"] = {"type": self.pick.type, "options": [o.as_dict() for o in self.pick.options]}
        if self.error_code:
            out["error"] = self.error_code
        if self.details:
            out["details"] = self.details
        if self.sql is not None:
            out["executedSql"] = self.sql
            out["binds"] = self.binds or {}
        return out


def greeting_answer(lang: str) -> str:
    if lang == "es":
        return (
            "Hola. ¿Qué quieres revisar hoy?\n\n"
            "Ejemplos: Confirmados (mes) · Dropped últimos 7 días por oficina · Dame los logs de Maria Chacon"
        )
    return (
        "Hi. What do you want to review today?\n\n"
        "Examples: Confirmed (month) · Dropped last 7 days by office · Give me logs for Maria Chacon"
    )


class _PickRequired(Exception):
    """Internal control flow: the turn stops on a pending pick."""

    def __init__(self, pending: PendingPick, comment: str) -> None:
        super().__init__(comment)
        self.pending = pending
        self.comment = comment


@dataclass
class _Turn:
    cid: str
    lang: str
    message: str
    debug: bool
    ctx: ConversationContext
    filters: Dict[str, FilterLock]
    forced_pick: Optional[PickOption] = None
    pending_ctx: Optional[PendingPick] = None
    template: Optional[QueryTemplate] = None
    locked_now: Set[str] = field(default_factory=set)


class ChatService:
    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        state: Optional[ConversationState] = None,
        source: Optional[DataSource] = None,
        proposer: Optional[SqlProposer] = None,
        narrator: Optional[Narrator] = None,
        guard: Optional[SqlGuard] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.state = state or ConversationState()
        self.source = source
        self.proposer = proposer or TemplateProposer()
        self.narrator = narrator or PlainNarrator()
        self.guard = guard or SqlGuard(self.settings)
        self._today = today or date.today

    # ------------------------------------------------------------------
    def handle(
        self,
        message: str,
        *,
        lang: Optional[str] = None,
        client_id: str = "",
        preset: Optional[str] = None,
        debug: bool = False,
    ) -> ChatResult:
        ui_lang = pick_lang(lang, message or "")
        cid = str(client_id or "").strip()
        text = str(message or "").strip()

        template: Optional[QueryTemplate] = None
        chosen = get_preset(preset)
        if chosen is not None:
            text = chosen.message(ui_lang)
            template = chosen.template
        text = normalize_quick_action(text, ui_lang)

        snapshot = self.state.snapshot(cid)

        forced_pick: Optional[PickOption] = None
        pending_ctx: Optional[PendingPick] = None
        pending = self.state.get_pending(cid)
        if pending is not None:
            forced_pick = resolve_pick(text, pending.options)
            if forced_pick is None:
                return self._result("pick", pending.prompt, pick=pending, comment="pending_pick")
            self.state.clear_pending(cid)
            pending_ctx = pending
            text = pending.original_message or text

        if not text:
            return self._error(ui_lang, "empty", "Mensaje vacío." if ui_lang == "es" else "Empty message.", 400)

        if is_greeting(text):
            return self._result("greeting", greeting_answer(ui_lang), comment="greeting")

        ctx = self.state.get_context(cid) or ConversationContext()
        turn = _Turn(
            cid=cid,
            lang=ui_lang,
            message=text,
            debug=bool(debug),
            ctx=ctx,
            filters=dict(ctx.filters),
            forced_pick=forced_pick,
            pending_ctx=pending_ctx,
            template=template,
        )
        try:
            return self._run_turn(turn)
        except _PickRequired as pick:
            if cid:
                self.state.set_pending(cid, pick.pending)
            return self._result("pick", pick.pending.prompt, pick=pick.pending, comment=pick.comment)
        except RejectedQuery as exc:
            self._rollback(cid, snapshot)
            log_event(log, "guard", "rejected", {"code": exc.code, "reason": exc.reason}, level=logging.WARNING)
            msg = "Consulta no permitida." if ui_lang == "es" else "Query not allowed."
            return self._error(ui_lang, exc.code, msg, 400, details=exc.reason if debug else None)
        except ExecutionFailure as exc:
            self._rollback(cid, snapshot)
            log_event(log, "sql", "execution_failed", {"error": str(exc)}, level=logging.ERROR)
            msg = (
                "La consulta generada tiene un error. Intenta reformular tu pregunta."
                if ui_lang == "es"
                else "The generated query has an error. Please rephrase your question."
            )
            return self._error(ui_lang, "execution_failed", msg, 500, details=str(exc) if debug else None)
        except Exception:
            self._rollback(cid, snapshot)
            raise

    # ------------------------------------------------------------------
    def _run_turn(self, t: _Turn) -> ChatResult:
        extracted = extract_dimension(t.message, t.lang)
        self._apply_lock_intents(t, extracted)
        user_wants_person_change = wants_to_change(t.message, PERSON_KEY) or wants_to_clear(t.message, PERSON_KEY)

        if t.forced_pick is not None and t.pending_ctx is not None:
            self._apply_pick(t)

        resolved = None
        if extracted is not None and self.source is not None:
            resolved = resolve_dimension(
                self.source, extracted, t.message, t.lang, settings=self.settings, today=self._today()
            )

        if t.forced_pick is None and t.cid and self.source is not None:
            self._disambiguate_message_person(t, extracted, user_wants_person_change)
            self._disambiguate_fallback_person(t, extracted)
            self._lock_resolved_dimension(t, extracted, resolved)

        question = self._carry_person(t, extracted, user_wants_person_change)
        filters = self._effective_filters(t, user_wants_person_change)

        if t.template is None and is_kpi_only_question(question):
            return self._kpi_only(t, question, filters)

        if t.template is not None:
            proposal = Proposal(sql=t.template.sql, comment=f"preset:{t.template.key}", shape=t.template.shape)
        else:
            proposal = self.proposer.propose(question, t.lang)

        if PERSON_KEY not in filters and t.cid and t.forced_pick is None and self.source is not None:
            self._disambiguate_sql_person(t, proposal.sql)
            filters = self._effective_filters(t, user_wants_person_change)

        pctx = PipelineContext(
            question=question,
            lang=t.lang,
            filters=filters,
            today=self._today(),
            default_window_days=self.settings.default_window_days(),
        )
        result = run_pipeline(proposal.sql, pctx)
        safe_sql = self.guard.validate(result.sql)
        binds = result.binds
        try:
            self._preflight(safe_sql, binds)
            rows = self._query("main", safe_sql, binds)
        except ExecutionFailure as exc:
            log_event(log, "sql", "retry", {"error": str(exc)[:500]}, level=logging.WARNING)
            retry = self.proposer.propose(build_fix_prompt(t.lang, question, safe_sql, str(exc)), t.lang)
            result = run_pipeline(retry.sql, pctx, rewrite_person=True)
            safe_sql = self.guard.validate(result.sql)
            binds = result.binds
            self._preflight(safe_sql, binds)
            rows = self._query("retry", safe_sql, binds)
            proposal = Proposal(sql=retry.sql, comment=retry.comment or proposal.comment, shape=retry.shape)

        self._persist(t)

        kpi = None
        window_label = None
        if proposal.shape == SHAPE_KPI_PACK:
            kpi = first_row(rows)
        elif is_aggregated(safe_sql):
            kq = build_kpi_pack_sql(
                question,
                lang=t.lang,
                filters=filters,
                table=self.settings.qualified_table(),
                today=self._today(),
                default_window_days=self.settings.default_window_days(),
            )
            kpi = first_row(self._query("kpi", self.guard.validate(kq.sql), kq.binds))
            window_label = kq.window_label

        answer = self.narrator.narrate(question, safe_sql, rows, lang=t.lang, kpi=kpi, window_label=window_label)
        return self._result(
            "answer",
            answer,
            rows=RowSet(shape=proposal.shape, data=rows),
            kpi=kpi,
            comment=proposal.comment,
            window_label=window_label,
            sql=safe_sql if t.debug else None,
            binds=binds if t.debug else None,
        )

    # ------------------------------------------------------------------
    def _kpi_only(self, t: _Turn, question: str, filters: Dict[str, FilterLock]) -> ChatResult:
        kq = build_kpi_pack_sql(
            question,
            lang=t.lang,
            filters=filters,
            table=self.settings.qualified_table(),
            today=self._today(),
            default_window_days=self.settings.default_window_days(),
        )
        safe_sql = self.guard.validate(kq.sql)
        rows = self._query("kpi_only", safe_sql, kq.binds)
        self._persist(t)
        kpi = first_row(rows)
        answer = self.narrator.narrate(question, safe_sql, [], lang=t.lang, kpi=kpi, window_label=kq.window_label)
        return self._result(
            "answer",
            answer,
            rows=RowSet(shape=SHAPE_KPI_PACK, data=[kpi] if kpi else []),
            kpi=kpi,
            comment="kpi_only",
            window_label=kq.window_label,
            sql=safe_sql if t.debug else None,
            binds=kq.binds if t.debug else None,
        )

    # ------------------------------------------------------------------
    def _apply_lock_intents(self, t: _Turn, extracted) -> None:
        for dim in list_dimensions():
            if dim.key in t.filters and wants_to_clear(t.message, dim.key):
                t.filters.pop(dim.key, None)
                if dim.is_person:
                    t.ctx.last_person = None

        if extracted is not None and extracted.key != PERSON_KEY:
            return
        explicit = safe_explicit_person(t.message, t.lang)
        current = t.filters.get(PERSON_KEY)
        if explicit and current is not None and not same_text(current.value, explicit):
            # a new name replaces the old lock; disambiguation below decides the new one
            t.filters.pop(PERSON_KEY, None)
            t.ctx.last_person = None

    # ------------------------------------------------------------------
    def _apply_pick(self, t: _Turn) -> None:
        pending, pick = t.pending_ctx, t.forced_pick
        if pending.type == "role_pick":
            role = str(pick.value or pick.id)
            raw = str(pending.raw_value or "").strip()
            if not raw:
                return
            if role == PERSON_KEY and self.source is not None:
                cands = find_person_candidates(self.source, raw, self.settings.candidate_limit(), **self._lookup_kw())
                self._decide(t, PERSON_KEY, raw, cands, mode="dim")
            else:
                self._lock(t, role, FilterLock(value=raw, locked=True, exact=False))
            return
        if pending.dim_key:
            self._lock(t, pending.dim_key, FilterLock(value=str(pick.value or pick.label), locked=True, exact=True))

    # ------------------------------------------------------------------
    def _disambiguate_message_person(self, t: _Turn, extracted, user_wants_person_change: bool) -> None:
        if PERSON_KEY in t.filters or user_wants_person_change:
            return
        if extracted is not None and extracted.key != PERSON_KEY:
            return
        if not _ASKS_LIST_RE.search(t.message) or _OTHER_ROLE_RE.search(t.message):
            return
        raw_name = extract_person_name(t.message)
        if not raw_name:
            return
        cands = find_person_candidates(self.source, raw_name, self.settings.candidate_limit(), **self._lookup_kw())
        if cands:
            self._decide(t, PERSON_KEY, raw_name, cands, mode="message_person_disambiguation")

    # ------------------------------------------------------------------
    def _disambiguate_fallback_person(self, t: _Turn, extracted) -> None:
        if extracted is None or extracted.key != PERSON_KEY:
            return
        if extracted.match_type not in (FALLBACK, FALLBACK_CASES) or PERSON_KEY in t.locked_now:
            return
        raw = extracted.value
        counts = role_counts(self.source, raw, **self._lookup_kw())
        role_pick = build_role_pick(raw, counts, t.lang, original_message=t.message)
        if role_pick is not None:
            raise _PickRequired(role_pick, "role_disambiguation")
        cands = find_person_candidates(self.source, raw, self.settings.candidate_limit(), **self._lookup_kw())
        if cands:
            self._decide(t, PERSON_KEY, raw, cands, mode="fallback_person_disambiguation")

    # ------------------------------------------------------------------
    def _lock_resolved_dimension(self, t: _Turn, extracted, resolved) -> None:
        if resolved is None or resolved.key in t.locked_now:
            return
        if resolved.meta.get("resolved_from_person"):
            self._lock(t, resolved.key, FilterLock(value=resolved.value, locked=True, exact=True))
            return
        raw = str(extracted.value if extracted is not None else resolved.value).strip()
        limit = self.settings.candidate_limit()
        if resolved.key == PERSON_KEY:
            cands = find_person_candidates(self.source, raw, limit, **self._lookup_kw())
        else:
            cands = find_candidates(self.source, resolved.key, raw, limit, **self._lookup_kw())
        self._decide(t, resolved.key, raw, cands, mode="dim")

    # ------------------------------------------------------------------
    def _disambiguate_sql_person(self, t: _Turn, sql: str) -> None:
        pf = extract_person_filter(sql)
        if pf is None:
            return
        cands = find_person_candidates(self.source, pf.value, self.settings.candidate_limit(), **self._lookup_kw())
        self._decide(t, PERSON_KEY, pf.value, cands, mode="sql_person_disambiguation")

    # ------------------------------------------------------------------
    def _decide(self, t: _Turn, key: str, raw: str, cands, *, mode: str) -> None:
        decision = decide_lock(key, raw, cands, t.lang, original_message=t.message, original_mode=mode)
        if decision.pending is not None:
            raise _PickRequired(decision.pending, mode)
        self._lock(t, key, decision.lock)

    # ------------------------------------------------------------------
    def _lock(self, t: _Turn, key: str, lock: FilterLock) -> None:
        t.filters[key] = lock
        t.locked_now.add(key)
        if key == PERSON_KEY:
            t.ctx.last_person = lock.value
        if t.cid:
            t.ctx.filters = dict(t.filters)
            self.state.lock_filter(t.cid, key, lock, last_person=t.ctx.last_person if key == PERSON_KEY else None)
        log_event(log, "locks", "locked", {"key": key, "value": lock.value, "exact": lock.exact}, level=logging.DEBUG)

    # ------------------------------------------------------------------
    def _carry_person(self, t: _Turn, extracted, user_wants_person_change: bool) -> str:
        person = t.filters.get(PERSON_KEY)
        carry = person.value if person is not None and person.active else (t.ctx.last_person or "")
        carry = carry.strip()
        if not carry or user_wants_person_change:
            return t.message
        if safe_explicit_person(t.message, t.lang):
            return t.message
        if extracted is not None:
            return t.message
        if looks_like_new_topic(t.message):
            return t.message
        if not (is_follow_up_question(t.message, t.lang) or len(t.message) <= 40):
            return t.message
        return f"{t.message} de {carry}" if t.lang == "es" else f"{t.message} for {carry}"

    # ------------------------------------------------------------------
    def _effective_filters(self, t: _Turn, user_wants_person_change: bool) -> Dict[str, FilterLock]:
        filters = {k: v for k, v in t.filters.items() if v is not None and v.active}
        if PERSON_KEY not in filters and t.ctx.last_person and not user_wants_person_change:
            filters[PERSON_KEY] = FilterLock(value=t.ctx.last_person, locked=True, exact=False)
        return filters

    # ------------------------------------------------------------------
    def _persist(self, t: _Turn) -> None:
        if not t.cid:
            return
        t.ctx.filters = {k: v for k, v in t.filters.items() if v is not None}
        person = t.ctx.filters.get(PERSON_KEY)
        if person is not None and person.active:
            t.ctx.last_person = person.value
        self.state.set_context(t.cid, t.ctx)

    # ------------------------------------------------------------------
    def _rollback(self, cid: str, snapshot) -> None:
        if not cid:
            return
        self.state.clear_pending(cid)
        self.state.restore(cid, snapshot)

    # ------------------------------------------------------------------
    def _lookup_kw(self) -> Dict[str, Any]:
        return {
            "window_days": self.settings.candidate_window_days(),
            "today": self._today(),
            "table": self.settings.qualified_table(),
        }

    # ------------------------------------------------------------------
    def _query(self, label: str, sql: str, binds: Dict[str, Any]) -> List[Dict[str, Any]]:
        if self.source is None:
            raise ExecutionFailure("no data source configured", sql=sql)
        level = logging.INFO if sql_logging_enabled() else logging.DEBUG
        log_event(log, "sql", label, {"sql": sql, "binds": binds}, level=level)
        return list(self.source.query(sql, binds))

    # ------------------------------------------------------------------
    def _preflight(self, sql: str, binds: Dict[str, Any]) -> None:
        """EXPLAIN the statement first when the source can plan without running."""

        explain = getattr(self.source, "explain", None)
        if self.source is None or not callable(explain):
            return
        explain(sql, binds)

    # ------------------------------------------------------------------
    def _result(self, kind: str, answer: str, **kw: Any) -> ChatResult:
        return ChatResult(kind=kind, answer=answer, corr_id=get_corr_id(), **kw)

    # ------------------------------------------------------------------
    def _error(self, lang: str, code: str, message: str, status: int, *, details: Optional[str] = None) -> ChatResult:
        return ChatResult(
            kind="error",
            answer=message,
            error_code=code,
            status=status,
            details=details,
            corr_id=get_corr_id(),
        )


__all__ = [
    "ChatResult",
    "ChatService",
    "Narrator",
    "PlainNarrator",
    "Proposal",
    "RowSet",
    "SqlProposer",
    "TemplateProposer",
    "greeting_answer",
]
