from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Sequence

from apps.safety_backend.adapters.base import AreaAdapter, AreaRows, Unsubscribe
from apps.safety_backend.area_tree import (
    Area,
    Forest,
    build_forest,
    delete_area,
    find_area_by_id,
    insert_area,
    new_area_id,
    rename_area,
    subtree_ids,
    update_area,
    validate_area_fields,
)
from apps.safety_backend.errors import NotFound

log = logging.getLogger("safetrack.area_store")

ForestListener = Callable[[Forest], None]
_KEEP: Any = object()


class AreaStore:
    """Owner of the current area forest.

    The forest is only ever replaced, never edited: either with a rebuild from
    the adapter's latest delivery, or with the result of a tree operation once
    the adapter has confirmed the write. Failed writes leave it untouched.
    """

    def __init__(self, adapter: AreaAdapter):
        self.adapter = adapter
        self._forest: Forest = ()
        self._lock = threading.Lock()
        self._listeners: list[ForestListener] = []
        self._unsubscribe: Unsubscribe | None = None

    @property
    def forest(self) -> Forest:
        return self._forest

    @property
    def backend(self) -> str:
        return self.adapter.mode

    @property
    def subscribed(self) -> bool:
        return self._unsubscribe is not None

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.adapter.subscribe_areas(self._on_rows)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def add_listener(self, fn: ForestListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(fn)

        def _remove() -> None:
            with self._lock:
                if fn in self._listeners:
                    self._listeners.remove(fn)

        return _remove

    def _replace(self, forest: Forest) -> None:
        with self._lock:
            self._forest = forest
            listeners = list(self._listeners)
        self._notify(listeners, forest)

    def _apply(self, op: Callable[[Forest], Forest]) -> Forest:
        """Replace the snapshot with ``op(snapshot)``.

        ``op`` runs outside the lock, so a delivery may land meanwhile; the
        swap only happens if the snapshot is still the one ``op`` saw,
        otherwise ``op`` is re-run on the newer snapshot.
        """
        while True:
            with self._lock:
                base = self._forest
            forest = op(base)
            with self._lock:
                if self._forest is not base:
                    continue
                if forest is base:
                    return base
                self._forest = forest
                listeners = list(self._listeners)
            self._notify(listeners, forest)
            return forest

    @staticmethod
    def _notify(listeners: list[ForestListener], forest: Forest) -> None:
        for fn in listeners:
            try:
                fn(forest)
            except Exception:
                log.error("forest_listener_failed", exc_info=True)

    def _on_rows(self, rows: AreaRows) -> None:
        self._replace(build_forest(rows))

    # -- lookups ------------------------------------------------------------

    def get(self, area_id: str) -> Area | None:
        return find_area_by_id(self._forest, area_id)

    # -- mutations ----------------------------------------------------------

    async def create_area(
        self, name: Any, machines: Any = None, parent_id: str | None = None
    ) -> Area:
        clean_name, clean_machines = validate_area_fields(name, machines)
        parent_id = parent_id or None
        if parent_id and find_area_by_id(self._forest, parent_id) is None:
            raise NotFound("parent_not_found", f"parent area {parent_id} not found")

        area_id = await self.adapter.create_area(
            {"area_id": new_area_id(), "name": clean_name, "machines": list(clean_machines)},
            parent_id,
        )
        area = Area(area_id=area_id, name=clean_name, machines=clean_machines, parent_id=parent_id)

        def _insert(forest: Forest) -> Forest:
            # the subscription may already have delivered the new row
            if find_area_by_id(forest, area_id) is not None:
                return forest
            try:
                return insert_area(forest, area, parent_id)
            except NotFound:
                # parent vanished while the write was in flight; the next delivery settles it
                log.warning("area_parent_gone", extra={"area_id": area_id})
                return forest

        self._apply(_insert)
        return area

    async def update_area(
        self, area_id: str, name: Any, machines: Any = None, parent_id: Any = _KEEP
    ) -> Area:
        snapshot = self._forest
        current = find_area_by_id(snapshot, area_id)
        if current is None:
            raise NotFound("area_not_found", f"area {area_id} not found")
        clean_name, clean_machines = validate_area_fields(name, machines)
        updated = Area(
            area_id=area_id,
            name=clean_name,
            machines=clean_machines,
            parent_id=current.parent_id if parent_id is _KEEP else (parent_id or None),
        )
        # raises before anything is written
        update_area(snapshot, updated)

        await self.adapter.update_area(updated)
        # written: only name/machines are applied, wherever the node sits now
        forest = self._apply(lambda f: rename_area(f, area_id, clean_name, clean_machines))
        return find_area_by_id(forest, area_id) or updated

    async def delete_area(self, area_id: str) -> list[str]:
        """Delete the area with its whole subtree; an unknown id is a no-op."""
        target = find_area_by_id(self._forest, area_id)
        if target is None:
            return []
        ids: Sequence[str] = subtree_ids(target)
        await self.adapter.delete_areas(ids)
        self._apply(lambda f: delete_area(f, area_id))
        log.info("area_subtree_deleted", extra={"area_id": area_id, "count": len(ids)})
        return list(ids)
