from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from apps.safety_backend import services
from apps.safety_backend.adapters.base import AreaAdapter, AreaRows, OnChange, Unsubscribe, deliver
from apps.safety_backend.area_tree import Area
from apps.safety_backend.errors import StorageError
from common_core.logging_setup import request_id_ctx

log = logging.getLogger("safetrack.adapters.sql")


class SqlAreaAdapter(AreaAdapter):
    """Relational backend ("mariadb").

    SQL has no change feed, so listeners are notified in-process after every
    committed write with a fresh read of the table. Writes made by other
    processes show up on the next local write or re-subscription.
    """

    mode = "mariadb"

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._listeners: dict[int, OnChange] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # -- reads --------------------------------------------------------------

    def _read_rows(self) -> AreaRows:
        db = self._session_factory()
        try:
            return services.area_list(db)
        except SQLAlchemyError as e:
            raise StorageError("areas_fetch_failed", str(e)[:300]) from e
        finally:
            db.close()

    def subscribe_areas(self, on_change: OnChange) -> Unsubscribe:
        with self._lock:
            token = next(self._ids)
            self._listeners[token] = on_change

        def _stop() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        handle = Unsubscribe(_stop)
        try:
            rows = self._read_rows()
        except StorageError:
            handle()
            raise
        deliver(on_change, rows, self.mode)
        return handle

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        if not listeners:
            return
        try:
            rows = self._read_rows()
        except StorageError:
            # the write itself is committed; listeners catch up on the next change
            log.error("area_notify_failed", exc_info=True, extra={"backend": self.mode})
            return
        for fn in listeners:
            deliver(fn, rows, self.mode)

    # -- writes -------------------------------------------------------------

    def _write(self, fn, *args):
        rid = request_id_ctx.get() or None
        db = self._session_factory()
        try:
            result = fn(db, *args, request_id=rid)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            log.error("area_write_failed", exc_info=True, extra={"backend": self.mode})
            raise StorageError("storage_error", str(e)[:300]) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        self._notify()
        return result

    async def create_area(self, data: Mapping[str, Any], parent_id: Optional[str] = None) -> str:
        payload = dict(data)
        payload["parentId"] = parent_id
        area_id = await run_in_threadpool(self._write, _create_tx, payload)
        log.info("area_created", extra={"backend": self.mode, "area_id": area_id})
        return area_id

    async def update_area(self, area: Area) -> None:
        await run_in_threadpool(self._write, _update_tx, area)
        log.info("area_updated", extra={"backend": self.mode, "area_id": area.area_id})

    async def delete_areas(self, ids: Sequence[str]) -> list[str]:
        batch = list(ids)
        try:
            deleted = await run_in_threadpool(self._write, services.area_delete_many, batch)
        except StorageError as e:
            e.ids = batch
            raise
        log.info("areas_deleted", extra={"backend": self.mode, "count": len(deleted)})
        return deleted

    def refresh(self) -> None:
        self._notify()

    def close(self) -> None:
        with self._lock:
            self._listeners.clear()


def _create_tx(db, payload: dict[str, Any], request_id: str | None = None) -> str:
    return services.area_create(db, payload, request_id).area_id


def _update_tx(db, area: Area, request_id: str | None = None) -> None:
    services.area_update(db, area.area_id, area.name, list(area.machines), request_id=request_id)
