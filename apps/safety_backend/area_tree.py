"""In-memory area hierarchy.

Areas are immutable; every operation returns a new forest and shares the
untouched subtrees with its input, so a reader holding an older forest never
sees it change.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, Iterable, Iterator, Mapping, Sequence

from apps.safety_backend.errors import NotFound, ValidationError
from common_core.config import settings

log = logging.getLogger("safetrack.area_tree")


@dataclass(frozen=True)
class Area:
    area_id: str
    name: str
    machines: tuple[str, ...] = ()
    parent_id: str | None = None
    children: tuple[Area, ...] = ()

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Area:
        parent_id = row.get("parentId", row.get("parent_id"))
        return cls(
            area_id=str(row["area_id"]),
            name=row.get("name") or "",
            machines=tuple(row.get("machines") or ()),
            parent_id=parent_id or None,
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "area_id": self.area_id,
            "name": self.name,
            "machines": list(self.machines),
            "parentId": self.parent_id,
        }

    def to_tree(self) -> dict[str, Any]:
        out = self.to_row()
        out["children"] = [c.to_tree() for c in self.children]
        return out


Forest = tuple[Area, ...]


def new_area_id() -> str:
    return f"AREA_{uuid.uuid4().hex[:18]}"


# -----------------------------
# Field validation
# -----------------------------


def parse_machines(text: str | None) -> list[str]:
    """Comma separated form input -> machine list."""
    if not text:
        return []
    return [m.strip() for m in text.split(",") if m.strip()]


def validate_area_fields(name: Any, machines: Any) -> tuple[str, tuple[str, ...]]:
    """Return the normalized (name, machines) pair or raise ValidationError."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name_required")
    name = name.strip()
    if len(name) > settings.area_name_max_len:
        raise ValidationError("name_too_long")

    if machines is None:
        machines = ()
    if isinstance(machines, str) or not isinstance(machines, (list, tuple)):
        raise ValidationError("invalid_machines")
    cleaned = []
    for m in machines:
        if not isinstance(m, str):
            raise ValidationError("invalid_machines")
        if m.strip():
            cleaned.append(m.strip())
    return name, tuple(cleaned)


# -----------------------------
# Lookups
# -----------------------------


def iter_areas(forest: Iterable[Area]) -> Iterator[Area]:
    """Depth-first, pre-order, siblings in stored order."""
    for area in forest:
        yield area
        if area.children:
            yield from iter_areas(area.children)


def find_area_by_id(forest: Sequence[Area], area_id: str) -> Area | None:
    for area in forest:
        if area.area_id == area_id:
            return area
        if area.children:
            found = find_area_by_id(area.children, area_id)
            if found is not None:
                return found
    return None


def find_area_path(forest: Sequence[Area], area_id: str, _prefix: Sequence[str] = ()) -> list[str]:
    for area in forest:
        path = [*_prefix, area.name]
        if area.area_id == area_id:
            return path
        if area.children:
            found = find_area_path(area.children, area_id, path)
            if found:
                return found
    return []


def format_area_path(forest: Sequence[Area], area_id: str, fallback: str = "") -> str:
    path = find_area_path(forest, area_id)
    return " / ".join(path) if path else fallback


def subtree_ids(area: Area) -> list[str]:
    return [a.area_id for a in iter_areas((area,))]


def flatten_forest(forest: Sequence[Area]) -> list[dict[str, Any]]:
    return [a.to_row() for a in iter_areas(forest)]


# -----------------------------
# Mutations
# -----------------------------


def _insert_under(forest: Forest, node: Area, parent_id: str) -> tuple[Forest, bool]:
    out = []
    done = False
    for area in forest:
        if not done:
            if area.area_id == parent_id:
                area = replace(area, children=(*area.children, node))
                done = True
            elif area.children:
                children, done = _insert_under(area.children, node, parent_id)
                if done:
                    area = replace(area, children=children)
        out.append(area)
    return tuple(out), done


def insert_area(forest: Sequence[Area], new_area: Area, parent_id: str | None = None) -> Forest:
    forest = tuple(forest)
    for a in iter_areas((new_area,)):
        if find_area_by_id(forest, a.area_id) is not None:
            raise ValidationError("area_id_exists")

    node = replace(new_area, parent_id=parent_id or None)
    if not parent_id:
        return (*forest, node)

    new_forest, done = _insert_under(forest, node, parent_id)
    if not done:
        raise NotFound("parent_not_found", f"parent area {parent_id} not found")
    return new_forest


def _replace_node(forest: Forest, area_id: str, fn) -> Forest:
    out = []
    for area in forest:
        if area.area_id == area_id:
            area = fn(area)
        elif area.children:
            children = _replace_node(area.children, area_id, fn)
            if children != area.children:
                area = replace(area, children=children)
        out.append(area)
    return tuple(out)


def update_area(forest: Sequence[Area], updated: Area) -> Forest:
    """Apply ``updated.name``/``updated.machines`` to the stored node.

    Children are kept as they are. A different ``parent_id`` is rejected:
    areas cannot be moved.
    """
    forest = tuple(forest)
    current = find_area_by_id(forest, updated.area_id)
    if current is None:
        raise NotFound("area_not_found", f"area {updated.area_id} not found")
    if (updated.parent_id or None) != current.parent_id:
        raise ValidationError("reparent_not_supported")
    name, machines = validate_area_fields(updated.name, list(updated.machines))
    return rename_area(forest, updated.area_id, name, machines)


def rename_area(
    forest: Sequence[Area], area_id: str, name: str, machines: Sequence[str]
) -> Forest:
    """Set name/machines on the node wherever it currently sits; no checks.

    Unknown ids leave the forest as is.
    """
    forest = tuple(forest)
    if find_area_by_id(forest, area_id) is None:
        return forest
    machines = tuple(machines)
    return _replace_node(forest, area_id, lambda a: replace(a, name=name, machines=machines))


def _remove(forest: Forest, area_id: str) -> Forest:
    out = []
    for area in forest:
        if area.area_id == area_id:
            continue
        if area.children:
            children = _remove(area.children, area_id)
            if children != area.children:
                area = replace(area, children=children)
        out.append(area)
    return tuple(out)


def delete_area(forest: Sequence[Area], area_id: str) -> Forest:
    """Drop the node and everything below it. Unknown ids leave the forest as is."""
    forest = tuple(forest)
    if find_area_by_id(forest, area_id) is None:
        return forest
    return _remove(forest, area_id)


# -----------------------------
# Flat rows -> forest
# -----------------------------


def build_forest(rows: Iterable[Mapping[str, Any]]) -> Forest:
    """Rebuild the hierarchy from flat rows joined on ``parentId``.

    Rows pointing at a missing parent become roots (what ON DELETE SET NULL
    would leave behind). Rows only reachable through a parent cycle are dropped.
    """
    records: list[Area] = []
    seen: set[str] = set()
    for row in rows:
        area = Area.from_row(row)
        if area.area_id in seen:
            log.warning("area_duplicate_skipped", extra={"area_id": area.area_id})
            continue
        seen.add(area.area_id)
        records.append(area)

    by_parent: dict[str | None, list[Area]] = {}
    for area in records:
        pid = area.parent_id
        if pid is not None and pid not in seen:
            log.warning("area_orphan_promoted", extra={"area_id": area.area_id})
            pid = None
        by_parent.setdefault(pid, []).append(area)

    def build(pid: str | None) -> Forest:
        return tuple(
            replace(a, parent_id=pid, children=build(a.area_id)) for a in by_parent.get(pid, ())
        )

    forest = build(None)
    placed = sum(1 for _ in iter_areas(forest))
    if placed != len(records):
        reachable = {a.area_id for a in iter_areas(forest)}
        for area in records:
            if area.area_id not in reachable:
                log.warning("area_cycle_dropped", extra={"area_id": area.area_id})
    return forest
