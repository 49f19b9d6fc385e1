from __future__ import annotations

from typing import Any

__all__ = ["cases_bp", "ChatService", "NAMESPACE"]

NAMESPACE = "cases::common"


def __getattr__(name: str) -> Any:  # pragma: no cover - simple lazy importer
    if name == "cases_bp":
        from .routes import cases_bp

        return cases_bp
    if name == "ChatService":
        from .service import ChatService

        return ChatService
    raise AttributeError(f"module 'apps.cases' has no attribute {name!r}")
