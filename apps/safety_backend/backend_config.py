"""Persisted backend choice ("firebase" or "mariadb").

The choice lives in a small JSON file next to the service, the server-side
counterpart of a browser's local storage. It is read once at startup; changing
it only takes effect after a restart.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Literal

from common_core.config import settings

log = logging.getLogger("safetrack.backend_config")

BackendMode = Literal["firebase", "mariadb"]
BACKEND_MODES: tuple[str, ...] = ("firebase", "mariadb")
FALLBACK_MODE: BackendMode = "firebase"
_KEY = "backend"


def _default_mode() -> BackendMode:
    if settings.default_backend in BACKEND_MODES:
        return settings.default_backend  # type: ignore[return-value]
    return FALLBACK_MODE


def _read_state(path: str) -> dict:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        log.warning("backend_state_unreadable", exc_info=True)
        return {}
    return data if isinstance(data, dict) else {}


def get_backend_mode(path: str | None = None) -> BackendMode:
    mode = _read_state(path or settings.local_state_path).get(_KEY)
    if mode in BACKEND_MODES:
        return mode
    return _default_mode()


def set_backend_mode(mode: str, path: str | None = None) -> BackendMode:
    if mode not in BACKEND_MODES:
        raise ValueError("invalid_backend")
    path = path or settings.local_state_path
    state = _read_state(path)
    state[_KEY] = mode

    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(state, f)
    os.replace(tmp, path)
    log.info("backend_mode_saved", extra={"backend": mode})
    return mode  # type: ignore[return-value]
