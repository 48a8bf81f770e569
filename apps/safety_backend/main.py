from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from apps.safety_backend import models  # noqa: F401
from apps.safety_backend.area_store import AreaStore
from apps.safety_backend.area_tree import flatten_forest
from apps.safety_backend.backend_config import get_backend_mode
from apps.safety_backend.backend_select import get_active_adapter, reset_active_adapter
from apps.safety_backend.errors import StorageError
from apps.safety_backend.routers import areas, areas_api, realtime, settings_db
from apps.safety_backend.routers.health import router as health_router
from common_core.config import settings
from common_core.guardrails import validate_runtime_config
from common_core.logging_setup import configure_logging
from common_core.realtime.sse_bus import SseBus
from common_core.request_id import RequestIdMiddleware

log = logging.getLogger("safetrack.safety")

app = FastAPI(title="SafeTrack Safety Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestIdMiddleware)

app.include_router(health_router)
app.include_router(areas_api.router)
app.include_router(areas.router)
app.include_router(settings_db.router)
app.include_router(realtime.router)


def _publish_forest(bus: SseBus):
    def _on_forest(forest) -> None:
        bus.publish({"type": "areas", "areas": flatten_forest(forest)})

    return _on_forest


@app.on_event("startup")
def startup() -> None:
    configure_logging(component="safety_backend", site_code=settings.site_code)
    mode = get_backend_mode()
    validate_runtime_config(mode)

    bus = SseBus()
    store = AreaStore(get_active_adapter())
    store.add_listener(_publish_forest(bus))
    app.state.sse_bus = bus
    app.state.area_store = store

    try:
        store.start()
    except StorageError as e:
        # Tables might not exist yet if alembic hasn't run, or Firestore is unreachable.
        # Keep serving so /healthz passes; /health/ready reports subscribed=false.
        log.warning("area_subscription_failed", extra={"backend": mode, "error": e.code})

    log.info("safety_started", extra={"backend": mode})


@app.on_event("shutdown")
def shutdown() -> None:
    store = getattr(app.state, "area_store", None)
    if store is not None:
        store.stop()
    reset_active_adapter()
    app.state.area_store = None
    log.info("safety_stopped")
