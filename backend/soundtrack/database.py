"""Database engine and helpers.

The engine is not a module-level singleton: the FastAPI lifespan in
`main` opens one per process with `create_db_engine` and disposes of it
at shutdown. Tests build their own in-memory engine and override
`get_session`.
"""

import logging

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from . import models  # noqa: F401  registers the tables on SQLModel.metadata

logger = logging.getLogger("soundtrack.db")


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for `url`.

    SQLite connections get `PRAGMA foreign_keys=ON` so the store enforces
    the foreign-key and ON DELETE rules declared on the models. An
    in-memory SQLite URL shares a single connection so every session sees
    the same data.
    """
    kwargs = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    logger.info("engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables(engine: Engine):
    """Create database tables using SQLModel metadata.

    Intended for local development, tests and the `init_db.py` script;
    an existing schema is left untouched.
    """
    SQLModel.metadata.create_all(engine)


def get_session(request: Request):
    """Yield a database `Session` bound to the application's engine.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(request.app.state.engine) as session:
        yield session
