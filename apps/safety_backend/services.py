from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Sequence

from sqlalchemy import delete, select

from apps.safety_backend.area_tree import (
    build_forest,
    find_area_by_id,
    new_area_id,
    subtree_ids,
    validate_area_fields,
)
from apps.safety_backend.errors import NotFound, ValidationError
from apps.safety_backend.models import AreaRow, AuditLog
from common_core.config import settings

_UNSET: Any = object()

# fixed path segments under /areas that an id would collide with
RESERVED_AREA_IDS = frozenset({"tree"})


def _now() -> datetime:
    return datetime.utcnow()


def audit_write(
    db,
    action: str,
    entity_id: str,
    details: dict[str, Any],
    actor: str | None = None,
    request_id: str | None = None,
) -> None:
    db.add(
        AuditLog(
            site_code=settings.site_code,
            actor=actor,
            action=action,
            entity_type="area",
            entity_id=entity_id,
            request_id=request_id,
            details_json=details,
            created_at_utc=_now(),
        )
    )


def area_to_dict(r: AreaRow) -> dict[str, Any]:
    return {
        "area_id": r.area_id,
        "name": r.name,
        "machines": list(r.machines or []),
        "parentId": r.parent_id,
    }


# -----------------------------
# Areas (relational store)
# -----------------------------


def area_list(db) -> list[dict[str, Any]]:
    rows = db.execute(select(AreaRow)).scalars().all()
    return [area_to_dict(r) for r in rows]


def area_get(db, area_id: str) -> AreaRow | None:
    return db.get(AreaRow, area_id)


def area_create(db, payload: Mapping[str, Any], request_id: str | None = None) -> AreaRow:
    name, machines = validate_area_fields(payload.get("name"), payload.get("machines"))

    area_id = (payload.get("area_id") or "").strip() or new_area_id()
    if len(area_id) > 64:
        raise ValidationError("area_id_too_long")
    if area_id in RESERVED_AREA_IDS:
        raise ValidationError("area_id_reserved")
    parent_id = payload.get("parentId", payload.get("parent_id")) or None

    if db.get(AreaRow, area_id) is not None:
        raise ValidationError("area_id_exists")
    if parent_id and db.get(AreaRow, parent_id) is None:
        raise NotFound("parent_not_found", f"parent area {parent_id} not found")

    row = AreaRow(area_id=area_id, name=name, machines=list(machines), parent_id=parent_id)
    db.add(row)
    db.flush()

    audit_write(
        db,
        "AREA_CREATE",
        area_id,
        {"name": name, "parentId": parent_id, "machines": len(machines)},
        request_id=request_id,
    )
    return row


def area_update(
    db,
    area_id: str,
    name: Any,
    machines: Any,
    parent_id: Any = _UNSET,
    request_id: str | None = None,
) -> AreaRow:
    row = db.get(AreaRow, area_id)
    if row is None:
        raise NotFound("area_not_found", f"area {area_id} not found")
    if parent_id is not _UNSET and (parent_id or None) != row.parent_id:
        raise ValidationError("reparent_not_supported")

    clean_name, clean_machines = validate_area_fields(name, machines)
    row.name = clean_name
    row.machines = list(clean_machines)

    audit_write(
        db,
        "AREA_UPDATE",
        area_id,
        {"name": clean_name, "machines": len(clean_machines)},
        request_id=request_id,
    )
    return row


def area_subtree_ids(db, area_id: str) -> list[str]:
    """Ids of the area and all its descendants, or [] when the area is gone."""
    node = find_area_by_id(build_forest(area_list(db)), area_id)
    return subtree_ids(node) if node is not None else []


def area_delete_many(db, ids: Sequence[str], request_id: str | None = None) -> list[str]:
    """Delete the given batch in the caller's transaction; returns the ids that existed."""
    wanted = list(dict.fromkeys(ids))
    if not wanted:
        return []

    present = set(
        db.execute(select(AreaRow.area_id).where(AreaRow.area_id.in_(wanted))).scalars().all()
    )
    if present:
        db.execute(delete(AreaRow).where(AreaRow.area_id.in_(present)))

    deleted = [i for i in wanted if i in present]
    for area_id in deleted:
        audit_write(db, "AREA_DELETE", area_id, {"batch": len(wanted)}, request_id=request_id)
    return deleted
