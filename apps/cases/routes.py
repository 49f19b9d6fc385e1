from __future__ import annotations

import logging
import time
from typing import Optional

from flask import Blueprint, current_app, jsonify, request
from pydantic import BaseModel, Field, ValidationError

from apps.cases.service import ChatService
from core.corr import corr_scope
from core.logging_utils import log_event

log = logging.getLogger("cases.routes")

cases_bp = Blueprint("cases", __name__)


class ChatRequest(BaseModel):
    message: str = ""
    lang: Optional[str] = None
    client_id: str = Field(default="", alias="clientId")
    preset: Optional[str] = None
    debug: bool = False

    model_config = {"populate_by_name": True}


def _service() -> ChatService:
    return current_app.config["CASES_SERVICE"]


@cases_bp.post("/chat")
def chat():
    payload = request.get_json(force=True, silent=True) or {}
    corr = request.headers.get("X-Correlation-Id") or ""
    with corr_scope(corr) as corr_id:
        try:
            req = ChatRequest.model_validate(payload)
        except ValidationError as exc:
            log_event(log, "http", "chat.bad_request", {"errors": exc.error_count()}, level=logging.WARNING)
            return jsonify({"ok": False, "error": "bad_request", "corrId": corr_id}), 400

        t0 = time.time()
        try:
            result = _service().handle(
                req.message,
                lang=req.lang,
                client_id=req.client_id,
                preset=req.preset,
                debug=req.debug,
            )
        except Exception:
            log.exception("chat.failed")
            return jsonify({"ok": False, "error": "internal_error", "corrId": corr_id}), 500

        log_event(
            log,
            "http",
            "chat.done",
            {"kind": result.kind, "status": result.status, "ms": int((time.time() - t0) * 1000)},
        )
        return jsonify(result.as_dict()), result.status


__all__ = ["ChatRequest", "cases_bp"]
