from __future__ import annotations

import uuid

from sqlalchemy.exc import IntegrityError

from blogstore.errors import (
    ForeignKeyViolation,
    NotFound,
    StoreError,
    UniqueConstraintViolation,
    translate_integrity_error,
)


class _DriverError(Exception):
    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def _integrity(orig: Exception) -> IntegrityError:
    return IntegrityError("INSERT INTO users ...", {}, orig)


def test_postgres_unique_violation():
    err = translate_integrity_error(_integrity(_DriverError('duplicate key value violates unique constraint "users_email_key"', "23505")))
    assert isinstance(err, UniqueConstraintViolation)
    assert "users_email_key" in str(err)


def test_postgres_foreign_key_violation():
    err = translate_integrity_error(_integrity(_DriverError("insert or update on table posts violates foreign key", "23503")))
    assert isinstance(err, ForeignKeyViolation)


def test_sqlstate_on_wrapped_cause():
    inner = _DriverError("duplicate key", "23505")
    outer = Exception("wrapped")
    outer.__cause__ = inner
    assert isinstance(translate_integrity_error(_integrity(outer)), UniqueConstraintViolation)


def test_sqlite_messages():
    unique = translate_integrity_error(_integrity(Exception("UNIQUE constraint failed: likes.user_id, likes.post_id")))
    foreign = translate_integrity_error(_integrity(Exception("FOREIGN KEY constraint failed")))

    assert isinstance(unique, UniqueConstraintViolation)
    assert isinstance(foreign, ForeignKeyViolation)


def test_other_integrity_errors_stay_generic():
    err = translate_integrity_error(_integrity(_DriverError("null value in column", "23502")))
    assert type(err) is StoreError


def test_not_found_carries_entity_and_key():
    key = uuid.uuid4()
    err = NotFound("post", key)
    assert isinstance(err, StoreError)
    assert err.entity == "post"
    assert err.key == key
    assert str(key) in str(err)
