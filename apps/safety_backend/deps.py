from __future__ import annotations

from fastapi import HTTPException, Request

from apps.safety_backend.area_store import AreaStore
from apps.safety_backend.errors import AreaError, NotFound, StorageError, ValidationError

_CONFLICT_CODES = {"area_id_exists"}


def get_area_store(request: Request) -> AreaStore:
    store = getattr(request.app.state, "area_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="AREA_STORE_NOT_READY")
    return store


def http_error(e: AreaError, storage_status: int = 500) -> HTTPException:
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=e.code)
    if isinstance(e, ValidationError):
        status = 409 if e.code in _CONFLICT_CODES else 400
        return HTTPException(status_code=status, detail=e.code)
    if isinstance(e, StorageError):
        return HTTPException(status_code=storage_status, detail=e.code)
    return HTTPException(status_code=500, detail=e.code)
