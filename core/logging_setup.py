from __future__ import annotations

import json
import logging
import os
import sys
import time
from logging.handlers import RotatingFileHandler

from core.corr import get_corr_id

_INSTALLED_FLAG = "_cases_json_handler"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "ts": int(time.time() * 1000),
            "level": record.levelname,
            "logger": record.name,
            "channel": getattr(record, "channel", None),
            "msg": record.getMessage(),
            "corr_id": get_corr_id(),
        }
        if isinstance(record.args, dict):
            base.update(record.args)
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False, default=str)


def setup_logging(debug: bool = False, *, preserve_handlers: bool = False) -> None:
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    installed = [h for h in root.handlers if getattr(h, _INSTALLED_FLAG, False)]
    if installed and preserve_handlers:
        return

    # Console JSON
    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(JsonFormatter())
    setattr(sh, _INSTALLED_FLAG, True)
    if preserve_handlers:
        root.addHandler(sh)
    else:
        root.handlers[:] = [sh]

    # Optional file logs (export LOG_FILE=/var/log/cases-copilot.log)
    log_file = os.getenv("LOG_FILE")
    if log_file:
        fh = RotatingFileHandler(log_file, maxBytes=10_000_000, backupCount=3)
        fh.setFormatter(JsonFormatter())
        setattr(fh, _INSTALLED_FLAG, True)
        root.addHandler(fh)

    # Reduce noise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.INFO)

    # App loggers
    logging.getLogger("cases").setLevel(logging.DEBUG if debug else logging.INFO)
    logging.getLogger("apps.cases").setLevel(logging.DEBUG if debug else logging.INFO)
