from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from apps.safety_backend.backend_config import get_backend_mode, set_backend_mode

router = APIRouter(prefix="/settings/database", tags=["settings"])


class BackendIn(BaseModel):
    backend: str


def _active_mode(request: Request) -> str | None:
    store = getattr(request.app.state, "area_store", None)
    return store.backend if store is not None else None


@router.get("")
def get_database_settings(request: Request):
    return {"backend": get_backend_mode(), "active": _active_mode(request)}


@router.put("")
def put_database_settings(body: BackendIn, request: Request):
    try:
        mode = set_backend_mode(body.backend)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    active = _active_mode(request)
    # no hot swap: the running adapter keeps serving until restart
    return {"backend": mode, "active": active, "restart_required": mode != active}
