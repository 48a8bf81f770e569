from __future__ import annotations

from typing import Sequence


class AreaError(Exception):
    """Base for area failures. ``code`` is the short snake_case reason sent to clients."""

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code)
        self.code = code


class NotFound(AreaError):
    pass


class ValidationError(AreaError, ValueError):
    pass


class StorageError(AreaError):
    def __init__(self, code: str, message: str | None = None, ids: Sequence[str] = ()):
        super().__init__(code, message)
        self.ids = list(ids)
