from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from common_core.logging_setup import request_id_ctx

log = logging.getLogger("safetrack.http")

_MAX_ID_LEN = 64


def _incoming_id(request: Request) -> str:
    rid = (request.headers.get("X-Request-Id") or "").strip()
    if not rid or len(rid) > _MAX_ID_LEN:
        return uuid.uuid4().hex
    return rid


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags every request (and every log line emitted while serving it) with an id."""

    async def dispatch(self, request: Request, call_next):
        rid = _incoming_id(request)
        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        started = time.monotonic()
        try:
            resp: Response = await call_next(request)
            resp.headers["X-Request-Id"] = rid
            log.debug(
                "request_done %s %s %s %.1fms",
                request.method,
                request.url.path,
                resp.status_code,
                (time.monotonic() - started) * 1000,
            )
            return resp
        finally:
            request_id_ctx.reset(token)
