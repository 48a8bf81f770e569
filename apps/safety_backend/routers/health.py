from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from common_core.config import settings
from common_core.db import SafetySessionLocal

router = APIRouter(tags=["health"])


@router.get("/health/live")
def live():
    return {"ok": True}


@router.get("/health/ready")
def ready(request: Request):
    store = getattr(request.app.state, "area_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="AREA_STORE_NOT_READY")

    if store.backend == "mariadb":
        db = SafetySessionLocal()
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise HTTPException(status_code=503, detail="DB_NOT_READY") from e
        finally:
            db.close()

    return {
        "ok": True,
        "site_code": settings.site_code,
        "backend": store.backend,
        "subscribed": store.subscribed,
        "roots": len(store.forest),
    }


@router.get("/healthz")
def healthz():
    return live()


@router.get("/readyz")
def readyz(request: Request):
    return ready(request)
