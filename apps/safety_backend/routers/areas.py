from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from apps.safety_backend.area_store import AreaStore
from apps.safety_backend.area_tree import find_area_path, format_area_path, parse_machines
from apps.safety_backend.deps import get_area_store, http_error
from apps.safety_backend.errors import AreaError

router = APIRouter(prefix="/areas", tags=["areas"])

UNKNOWN_AREA = "Unknown area"


class AreaCreateIn(BaseModel):
    name: str
    machines: list[str] | None = None
    # comma separated alternative, as typed into the area form
    machines_text: str | None = None
    parentId: str | None = None


class AreaUpdateIn(BaseModel):
    name: str
    machines: list[str] | None = None
    machines_text: str | None = None
    parentId: str | None = None


def _machines(body: AreaCreateIn | AreaUpdateIn) -> list[str]:
    if body.machines is not None:
        return body.machines
    return parse_machines(body.machines_text)


@router.get("/tree")
def tree(store: AreaStore = Depends(get_area_store)):
    return {"backend": store.backend, "children": [a.to_tree() for a in store.forest]}


@router.get("/{area_id}")
def get_area(area_id: str, store: AreaStore = Depends(get_area_store)):
    area = store.get(area_id)
    if area is None:
        raise HTTPException(status_code=404, detail="area_not_found")
    return area.to_tree()


@router.get("/{area_id}/path")
def get_area_path(area_id: str, store: AreaStore = Depends(get_area_store)):
    forest = store.forest
    return {
        "area_id": area_id,
        "path": find_area_path(forest, area_id),
        "display": format_area_path(forest, area_id, fallback=UNKNOWN_AREA),
    }


@router.post("", status_code=201)
async def create_area(body: AreaCreateIn, store: AreaStore = Depends(get_area_store)):
    try:
        area = await store.create_area(body.name, _machines(body), body.parentId)
    except AreaError as e:
        raise http_error(e, storage_status=502) from e
    return area.to_row()


@router.put("/{area_id}")
async def update_area(area_id: str, body: AreaUpdateIn, store: AreaStore = Depends(get_area_store)):
    kwargs: dict[str, Any] = {}
    if "parentId" in body.model_fields_set:
        kwargs["parent_id"] = body.parentId
    try:
        area = await store.update_area(area_id, body.name, _machines(body), **kwargs)
    except AreaError as e:
        raise http_error(e, storage_status=502) from e
    return area.to_tree()


@router.delete("/{area_id}")
async def delete_area(area_id: str, store: AreaStore = Depends(get_area_store)):
    try:
        deleted = await store.delete_area(area_id)
    except AreaError as e:
        raise http_error(e, storage_status=502) from e
    return {"ok": True, "deleted": deleted}
