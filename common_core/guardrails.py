from __future__ import annotations

from common_core.config import settings

KNOWN_BACKENDS = ("firebase", "mariadb")


class ConfigError(RuntimeError):
    pass


def _must_set(name: str, value: str) -> None:
    if not value or not value.strip():
        raise ConfigError(f"{name} is required")
    if value.strip().upper() == "CHANGE_ME":
        raise ConfigError(f"{name} must not be CHANGE_ME")


def validate_runtime_config(active_backend: str) -> None:
    if settings.default_backend not in KNOWN_BACKENDS:
        raise ConfigError(f"DEFAULT_BACKEND must be one of {', '.join(KNOWN_BACKENDS)}")
    if active_backend not in KNOWN_BACKENDS:
        raise ConfigError(f"unknown backend {active_backend!r}")
    if active_backend == "mariadb":
        _must_set("SAFETY_DB_URL", settings.safety_db_url)
    if not settings.firestore_areas_collection.strip():
        raise ConfigError("FIRESTORE_AREAS_COLLECTION must not be empty")
