from __future__ import annotations

import json
import os
import re
from typing import Any, Dict, Mapping, Optional

_TRUE = {"1", "true", "t", "yes", "y", "on"}


def env_flag(name: str, default: bool = False) -> bool:
    v = (os.getenv(name, "1" if default else "0") or "").strip().lower()
    return v in _TRUE


def env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


class Settings:
    """Namespace-scoped settings resolved from explicit overrides, then the environment.

    Overrides are either flat (``{"CASES_MAX_LIMIT": 200}``) or keyed by
    namespace (``{"cases::common": {...}, "global": {...}}``). Lookups try the
    active namespace first, then ``global``, then ``os.environ``.
    """

    def __init__(
        self,
        namespace: str = "cases::common",
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.namespace = namespace
        self._overrides: Dict[str, Any] = dict(overrides or {})

    # ------------------------------------------------------------------
    def _fetch(self, key: str, *, namespace: Optional[str] = None) -> Any:
        ns = namespace or self.namespace
        for scope in (ns, "global"):
            bucket = self._overrides.get(scope)
            if isinstance(bucket, Mapping) and key in bucket:
                return bucket[key]
        return self._overrides.get(key)

    # ------------------------------------------------------------------
    def get(self, key: str, default: Any = None, *, namespace: Optional[str] = None) -> Any:
        value = self._fetch(key, namespace=namespace)
        if value is not None:
            return value
        env_val = os.getenv(key)
        if env_val is not None:
            return env_val
        return default

    # ------------------------------------------------------------------
    def get_string(
        self, key: str, default: Optional[str] = None, *, namespace: Optional[str] = None
    ) -> Optional[str]:
        value = self.get(key, default=default, namespace=namespace)
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value)

    # ------------------------------------------------------------------
    def get_bool(
        self, key: str, default: Optional[bool] = None, *, namespace: Optional[str] = None
    ) -> Optional[bool]:
        value = self.get(key, default=default, namespace=namespace)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in _TRUE
        if value is None:
            return default
        return bool(value)

    # ------------------------------------------------------------------
    def get_int(
        self, key: str, default: Optional[int] = None, *, namespace: Optional[str] = None
    ) -> Optional[int]:
        value = self.get(key, default=default, namespace=namespace)
        if value is None:
            return default
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except (TypeError, ValueError):
            return default

    # ------------------------------------------------------------------
    def get_json(self, key: str, default: Any = None, *, namespace: Optional[str] = None) -> Any:
        value = self.get(key, default=None, namespace=namespace)
        if value is None:
            return default
        if isinstance(value, (dict, list)):
            return value
        if isinstance(value, str):
            try:
                return json.loads(value)
            except ValueError:
                return default
        return value

    _IDENT_RGX = re.compile(r"[^0-9A-Za-z_]")

    @classmethod
    def _sanitize_ident(cls, s: Any) -> str:
        return cls._IDENT_RGX.sub("", str(s or ""))

    # ------------------------------------------------------------------
    def table_name(self) -> str:
        return self._sanitize_ident(self.get_string("CASES_TABLE", "dmLogReportDashboard"))

    # ------------------------------------------------------------------
    def table_schema(self) -> Optional[str]:
        schema = self._sanitize_ident(self.get_string("CASES_SCHEMA", "performance_data"))
        return schema or None

    # ------------------------------------------------------------------
    def qualified_table(self) -> str:
        schema = self.table_schema()
        table = self.table_name()
        return f"{schema}.{table}" if schema else table

    # ------------------------------------------------------------------
    def max_limit(self) -> int:
        return max(1, self.get_int("CASES_MAX_LIMIT", 500) or 500)

    # ------------------------------------------------------------------
    def candidate_window_days(self) -> int:
        return max(1, self.get_int("CASES_CANDIDATE_WINDOW_DAYS", 180) or 180)

    # ------------------------------------------------------------------
    def candidate_limit(self) -> int:
        return max(1, self.get_int("CASES_CANDIDATE_LIMIT", 8) or 8)

    # ------------------------------------------------------------------
    def office_lookup_days(self) -> int:
        return max(1, self.get_int("CASES_OFFICE_LOOKUP_DAYS", 90) or 90)

    # ------------------------------------------------------------------
    def state_ttl_seconds(self) -> int:
        return max(1, self.get_int("CASES_STATE_TTL_SECONDS", 600) or 600)

    # ------------------------------------------------------------------
    def state_max_entries(self) -> int:
        return max(1, self.get_int("CASES_STATE_MAX_ENTRIES", 5000) or 5000)

    # ------------------------------------------------------------------
    def default_window_days(self) -> Optional[int]:
        days = self.get_int("CASES_DEFAULT_WINDOW_DAYS", 0) or 0
        return days if days > 0 else None

    # ------------------------------------------------------------------
    def app_db_url(self) -> Optional[str]:
        return self.get_string("APP_DB_URL")

    # ------------------------------------------------------------------
    def debug_enabled(self) -> bool:
        return bool(self.get_bool("CASES_DEBUG", False))


__all__ = ["Settings", "env_flag", "env_int"]
