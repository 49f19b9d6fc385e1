from flask import Flask

from apps.cases.routes import cases_bp
from apps.cases.service import ChatService
from apps.cases.state import ConversationState, MemoryStore
from core.logging_utils import get_logger, log_event, setup_logging
from core.settings import Settings
from core.sql_exec import EngineDataSource, get_engine_for_url


def make_source(settings: Settings):
    """Read-only data source for the configured APP_DB_URL, or None when unset."""

    url = settings.app_db_url()
    if not url:
        return None
    return EngineDataSource(get_engine_for_url(url))


def create_app(settings=None, *, source=None, state=None, proposer=None, today=None):
    settings = settings or Settings()
    setup_logging(settings)
    log = get_logger("main")

    app = Flask(__name__)
    app.logger.handlers.clear()
    app.logger.propagate = True

    if source is None:
        source = make_source(settings)
    if state is None:
        state = ConversationState(
            MemoryStore(ttl_seconds=settings.state_ttl_seconds(), max_entries=settings.state_max_entries())
        )

    service = ChatService(settings=settings, state=state, source=source, proposer=proposer, today=today)

    app.config["SETTINGS"] = settings
    app.config["CASES_SERVICE"] = service

    app.register_blueprint(cases_bp, url_prefix="/cases")

    log_event(
        log,
        "boot",
        "app_boot",
        {
            "table": settings.qualified_table(),
            "app_db": str(settings.app_db_url() or "").split("://")[0] or None,
            "state_ttl_seconds": settings.state_ttl_seconds(),
        },
    )

    @app.get("/health")
    def health():
        return {"ok": True, "db": source is not None}

    @app.get("/__routes")
    def list_routes():
        rows = []
        for rule in app.url_map.iter_rules():
            rows.append(
                {
                    "rule": str(rule),
                    "endpoint": rule.endpoint,
                    "methods": sorted(list(rule.methods - {"HEAD", "OPTIONS"})),
                }
            )
        return {"routes": rows}

    return app


app = create_app()
