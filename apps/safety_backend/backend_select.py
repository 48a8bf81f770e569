from __future__ import annotations

import logging
import threading

from apps.safety_backend.adapters.base import AreaAdapter
from apps.safety_backend.backend_config import BACKEND_MODES, get_backend_mode

log = logging.getLogger("safetrack.backend_select")

_active: AreaAdapter | None = None
_active_lock = threading.Lock()


def make_adapter(mode: str) -> AreaAdapter:
    if mode == "firebase":
        from apps.safety_backend.adapters.firestore_adapter import FirestoreAreaAdapter

        return FirestoreAreaAdapter()
    if mode == "mariadb":
        from apps.safety_backend.adapters.sql_adapter import SqlAreaAdapter
        from common_core.db import SafetySessionLocal

        return SqlAreaAdapter(SafetySessionLocal)
    raise ValueError(f"unknown backend {mode!r}; expected one of {BACKEND_MODES}")


def get_active_adapter() -> AreaAdapter:
    """The adapter chosen at first use. It stays the same until the process restarts."""
    global _active
    with _active_lock:
        if _active is None:
            mode = get_backend_mode()
            _active = make_adapter(mode)
            log.info("adapter_selected", extra={"backend": mode})
        return _active


def reset_active_adapter() -> None:
    global _active
    with _active_lock:
        adapter, _active = _active, None
    if adapter is not None:
        adapter.close()
