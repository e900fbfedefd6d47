"""Translate store constraint violations into application errors.

Unique violations become `Conflict`; foreign-key, not-null and check
violations become `InvalidArgument` because the caller supplied the
offending value. Anything else propagates unchanged.

Both PostgreSQL (SQLSTATE codes, `Key (col)=(val)` details) and SQLite
(`UNIQUE constraint failed: table.col` messages) are understood.
"""

import logging
import re
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from ..errors import AppError, Conflict, InvalidArgument

logger = logging.getLogger("soundtrack.db")

PG_UNIQUE = "23505"
PG_FOREIGN_KEY = "23503"
PG_NOT_NULL = "23502"
PG_CHECK = "23514"

_PG_KEY = re.compile(r"Key \((.*?)\)")
_PG_NOT_NULL_COLUMN = re.compile(r'null value in column "(\w+)"')
_SQLITE_COLUMNS = re.compile(r"constraint failed: (.+)$")


def _sqlite_columns(message: str) -> Optional[str]:
    m = _SQLITE_COLUMNS.search(message)
    if not m:
        return None
    # "students.email" / "student_techniques.student_id, student_techniques.technique_id"
    return ", ".join(part.strip().split(".")[-1] for part in m.group(1).split(","))


def _pg_key(message: str) -> Optional[str]:
    m = _PG_KEY.search(message)
    return m.group(1) if m else None


def translate_integrity_error(err: IntegrityError) -> Optional[AppError]:
    """Return the application error for `err`, or None if it is not a known constraint kind."""
    orig = err.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    message = str(orig)

    if code == PG_UNIQUE or message.startswith("UNIQUE constraint failed"):
        key = _pg_key(message) or _sqlite_columns(message) or "value"
        return Conflict(f"'{key}' already exists.")
    if code == PG_FOREIGN_KEY or message.startswith("FOREIGN KEY constraint failed"):
        # SQLite does not say which key failed
        key = _pg_key(message)
        return InvalidArgument(f"'{key}' is invalid" if key else "Referenced record does not exist")
    if code == PG_NOT_NULL or message.startswith("NOT NULL constraint failed"):
        column = getattr(getattr(orig, "diag", None), "column_name", None)
        if not column:
            m = _PG_NOT_NULL_COLUMN.search(message)
            column = m.group(1) if m else _sqlite_columns(message)
        return InvalidArgument(f"'{column}' is required")
    if code == PG_CHECK or message.startswith("CHECK constraint failed"):
        return InvalidArgument("Check constraint violation")
    return None


@contextmanager
def store_errors(session: Session):
    """Roll back and translate constraint violations raised inside the block."""
    try:
        yield
    except IntegrityError as err:
        session.rollback()
        translated = translate_integrity_error(err)
        if translated is None:
            logger.exception("unhandled integrity error")
            raise
        logger.info("constraint violation: %s", translated.message)
        raise translated from err
