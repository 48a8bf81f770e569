from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

# record attributes copied into the JSON line when a call passes them via extra=
_EXTRA_KEYS = ("backend", "area_id", "entity_type", "entity_id", "count", "error")

# third-party loggers and the env var that overrides their level
_QUIET_LOGGERS = {
    "sqlalchemy.engine": "SQL_LOG_LEVEL",
    "google": "GOOGLE_LOG_LEVEL",
    "grpc": "GOOGLE_LOG_LEVEL",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, stamped with the service component and site."""

    def __init__(self, component: str = "", site_code: str = ""):
        super().__init__()
        self.component = component
        self.site_code = site_code

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": ts.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "component": getattr(record, "component", self.component),
            "site_code": self.site_code,
            "request_id": request_id_ctx.get(),
        }
        for k in _EXTRA_KEYS:
            value = getattr(record, k, None)
            if value is not None:
                payload[k] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(component: str, site_code: str = "") -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    if os.environ.get("LOG_FORMAT", "json").lower() == "text":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter(component=component, site_code=site_code))
    root.addHandler(handler)

    for name in ("uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
    for name, env in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(os.environ.get(env, "WARNING").upper())

    logging.getLogger(__name__).info("logging_configured", extra={"component": component})
