from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional, Sequence

from apps.safety_backend.area_tree import Area

log = logging.getLogger("safetrack.adapters")

AreaRows = list[dict[str, Any]]
OnChange = Callable[[AreaRows], None]


class Unsubscribe:
    """Stop handle returned by ``subscribe_areas``. Safe to call more than once."""

    def __init__(self, stop: Callable[[], None]):
        self._stop = stop
        self._lock = threading.Lock()
        self._done = False

    @property
    def active(self) -> bool:
        return not self._done

    def __call__(self) -> None:
        with self._lock:
            if self._done:
                return
            self._done = True
        self._stop()


class AreaAdapter(ABC):
    """
    Storage contract for areas.

    Every backend works on flat rows ``{area_id, name, machines, parentId}``;
    the hierarchy is rebuilt by the caller. Implementations must provide:
    - subscribe_areas(): live flat list, delivered once right away and on every change
    - create_area(): persist a record, return its id
    - update_area(): write name/machines (the parent is never written)
    - delete_areas(): delete a whole batch, report which ids existed
    """

    mode: str = "base"

    @abstractmethod
    def subscribe_areas(self, on_change: OnChange) -> Unsubscribe:
        ...

    @abstractmethod
    async def create_area(self, data: Mapping[str, Any], parent_id: Optional[str] = None) -> str:
        ...

    @abstractmethod
    async def update_area(self, area: Area) -> None:
        ...

    @abstractmethod
    async def delete_areas(self, ids: Sequence[str]) -> list[str]:
        ...

    def refresh(self) -> None:
        """Re-deliver the current rows to listeners. Backends with a change feed need not."""

    def close(self) -> None:
        pass


def deliver(on_change: OnChange, rows: AreaRows, backend: str) -> None:
    """Call a listener; one failing listener must not stop delivery to the others."""
    try:
        on_change(rows)
    except Exception:
        log.error("listener_failed", exc_info=True, extra={"backend": backend})
