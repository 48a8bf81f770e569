from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from apps.safety_backend.deps import http_error
from apps.safety_backend.errors import AreaError
from apps.safety_backend.services import (
    area_create,
    area_delete_many,
    area_list,
    area_subtree_ids,
    area_to_dict,
    area_update,
)
from common_core.db import SafetySessionLocal

log = logging.getLogger("safetrack.api.areas")

router = APIRouter(prefix="/api/areas", tags=["api-areas"])


class AreaIn(BaseModel):
    area_id: str | None = None
    name: str
    machines: list[str] = Field(default_factory=list)
    parentId: str | None = None


class AreaUpdateIn(BaseModel):
    name: str
    machines: list[str] = Field(default_factory=list)
    parentId: str | None = None


def _refresh_listeners(request: Request) -> None:
    store = getattr(request.app.state, "area_store", None)
    if store is not None:
        store.adapter.refresh()


@router.get("")
def list_areas():
    db = SafetySessionLocal()
    try:
        return area_list(db)
    except SQLAlchemyError as e:
        log.error("areas_fetch_failed", exc_info=True)
        raise HTTPException(status_code=500, detail="areas_fetch_failed") from e
    finally:
        db.close()


@router.post("", status_code=201)
def create_area(body: AreaIn, request: Request):
    db = SafetySessionLocal()
    try:
        row = area_create(db, body.model_dump(), request_id=request.state.request_id)
        out: dict[str, Any] = area_to_dict(row)
        db.commit()
    except AreaError as e:
        db.rollback()
        raise http_error(e) from e
    except SQLAlchemyError as e:
        db.rollback()
        log.error("area_create_failed", exc_info=True)
        raise HTTPException(status_code=500, detail="area_create_failed") from e
    finally:
        db.close()

    _refresh_listeners(request)
    return {"message": "Area created successfully.", **out}


@router.put("/{area_id}")
def update_area(area_id: str, body: AreaUpdateIn, request: Request):
    kwargs: dict[str, Any] = {}
    if "parentId" in body.model_fields_set:
        kwargs["parent_id"] = body.parentId
    db = SafetySessionLocal()
    try:
        row = area_update(
            db, area_id, body.name, body.machines, request_id=request.state.request_id, **kwargs
        )
        out = area_to_dict(row)
        db.commit()
    except AreaError as e:
        db.rollback()
        raise http_error(e) from e
    except SQLAlchemyError as e:
        db.rollback()
        log.error("area_update_failed", exc_info=True, extra={"area_id": area_id})
        raise HTTPException(status_code=500, detail="area_update_failed") from e
    finally:
        db.close()

    _refresh_listeners(request)
    return out


@router.delete("/{area_id}")
def delete_area(area_id: str, request: Request):
    """Deletes the area and every area below it in one transaction."""
    db = SafetySessionLocal()
    try:
        ids = area_subtree_ids(db, area_id)
        deleted = area_delete_many(db, ids, request_id=request.state.request_id)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error("area_delete_failed", exc_info=True, extra={"area_id": area_id})
        raise HTTPException(status_code=500, detail="area_delete_failed") from e
    finally:
        db.close()

    if deleted:
        _refresh_listeners(request)
    return {"ok": True, "deleted": deleted}
