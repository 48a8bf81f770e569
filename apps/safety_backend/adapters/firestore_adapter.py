from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional, Sequence

from google.api_core import exceptions as gexc
from google.auth import exceptions as auth_exc
from google.cloud import firestore
from starlette.concurrency import run_in_threadpool

from apps.safety_backend.adapters.base import AreaAdapter, AreaRows, OnChange, Unsubscribe, deliver
from apps.safety_backend.area_tree import Area, validate_area_fields
from apps.safety_backend.errors import NotFound, StorageError, ValidationError
from common_core.config import settings

log = logging.getLogger("safetrack.adapters.firestore")

_STORE_ERRORS = (gexc.GoogleAPICallError, gexc.RetryError, auth_exc.GoogleAuthError)


class FirestoreAreaAdapter(AreaAdapter):
    """Document backend ("firebase").

    One flat document per area in the ``areas`` collection; the document id is
    the ``area_id`` and roots simply have no ``parentId`` field. Live updates
    come from ``on_snapshot``, which calls back on a Firestore watch thread.
    """

    mode = "firebase"

    def __init__(self, client: Any = None, collection: str | None = None):
        self._client = client
        self._collection_name = collection or settings.firestore_areas_collection
        self._watches: dict[int, Any] = {}
        self._lock = threading.Lock()

    @property
    def client(self):
        if self._client is None:
            self._client = firestore.Client(
                project=settings.firestore_project_id or None,
                database=settings.firestore_database,
            )
        return self._client

    def _col(self):
        return self.client.collection(self._collection_name)

    @staticmethod
    def _row(snap) -> dict[str, Any]:
        data = snap.to_dict() or {}
        return {
            "area_id": snap.id,
            "name": data.get("name", ""),
            "machines": list(data.get("machines") or []),
            "parentId": data.get("parentId") or None,
        }

    # -- reads --------------------------------------------------------------

    def subscribe_areas(self, on_change: OnChange) -> Unsubscribe:
        def _on_snapshot(col_snapshot, changes, read_time) -> None:
            rows: AreaRows = [self._row(s) for s in col_snapshot]
            deliver(on_change, rows, self.mode)

        try:
            watch = self._col().on_snapshot(_on_snapshot)
        except _STORE_ERRORS as e:
            raise StorageError("subscribe_failed", str(e)[:300]) from e

        key = id(watch)
        with self._lock:
            self._watches[key] = watch

        def _stop() -> None:
            with self._lock:
                self._watches.pop(key, None)
            watch.unsubscribe()

        return Unsubscribe(_stop)

    # -- writes -------------------------------------------------------------

    def _create(self, data: Mapping[str, Any], parent_id: Optional[str]) -> str:
        name, machines = validate_area_fields(data.get("name"), data.get("machines"))
        doc: dict[str, Any] = {"name": name, "machines": list(machines)}
        if parent_id:
            doc["parentId"] = parent_id

        col = self._col()
        area_id = (data.get("area_id") or "").strip()
        ref = col.document(area_id) if area_id else col.document()
        try:
            ref.create(doc)
        except gexc.AlreadyExists as e:
            raise ValidationError("area_id_exists") from e
        except _STORE_ERRORS as e:
            raise StorageError("storage_error", str(e)[:300]) from e
        return ref.id

    def _update(self, area: Area) -> None:
        ref = self._col().document(area.area_id)
        try:
            ref.update({"name": area.name, "machines": list(area.machines)})
        except gexc.NotFound as e:
            raise NotFound("area_not_found", f"area {area.area_id} not found") from e
        except _STORE_ERRORS as e:
            raise StorageError("storage_error", str(e)[:300]) from e

    def _delete(self, ids: list[str]) -> list[str]:
        col = self._col()
        refs = [col.document(i) for i in ids]
        try:
            present = {s.id for s in self.client.get_all(refs) if s.exists}
            batch = self.client.batch()
            for ref in refs:
                batch.delete(ref)
            batch.commit()
        except _STORE_ERRORS as e:
            raise StorageError("storage_error", str(e)[:300], ids=ids) from e
        return [i for i in ids if i in present]

    async def create_area(self, data: Mapping[str, Any], parent_id: Optional[str] = None) -> str:
        area_id = await run_in_threadpool(self._create, data, parent_id)
        log.info("area_created", extra={"backend": self.mode, "area_id": area_id})
        return area_id

    async def update_area(self, area: Area) -> None:
        name, machines = validate_area_fields(area.name, list(area.machines))
        await run_in_threadpool(self._update, Area(area.area_id, name, machines, area.parent_id))
        log.info("area_updated", extra={"backend": self.mode, "area_id": area.area_id})

    async def delete_areas(self, ids: Sequence[str]) -> list[str]:
        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return []
        deleted = await run_in_threadpool(self._delete, wanted)
        log.info("areas_deleted", extra={"backend": self.mode, "count": len(deleted)})
        return deleted

    def close(self) -> None:
        with self._lock:
            watches = list(self._watches.values())
            self._watches.clear()
        for w in watches:
            w.unsubscribe()
        if self._client is not None:
            self._client.close()
