from __future__ import annotations

from typing import Any

from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


class StoreError(Exception):
    """Base class for everything the store raises on purpose."""


class UniqueConstraintViolation(StoreError):
    pass


class ForeignKeyViolation(StoreError):
    pass


class NotFound(StoreError):
    def __init__(self, entity: str, key: Any) -> None:
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = exc.orig
    # asyncpg exposes .sqlstate (also through SQLAlchemy's adapter); psycopg exposes .pgcode.
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if isinstance(code, str):
            return code
    cause = getattr(orig, "__cause__", None)
    code = getattr(cause, "sqlstate", None)
    return code if isinstance(code, str) else None


def translate_integrity_error(exc: IntegrityError) -> StoreError:
    """Map a driver integrity failure onto the store's error taxonomy."""
    message = str(exc.orig)
    code = _sqlstate(exc)
    if code == UNIQUE_VIOLATION:
        return UniqueConstraintViolation(message)
    if code == FOREIGN_KEY_VIOLATION:
        return ForeignKeyViolation(message)

    # SQLite reports no SQLSTATE, only text.
    lowered = message.lower()
    if "unique constraint" in lowered:
        return UniqueConstraintViolation(message)
    if "foreign key constraint" in lowered:
        return ForeignKeyViolation(message)
    return StoreError(message)
