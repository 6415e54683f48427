"""
core/database.py -- SQLAlchemy engine construction shared by the stores.

Production runs against PostgreSQL; tests and local hacking can point
DATABASE_URL at SQLite. Each store owns its engine (created here) and its
tables, all registered on the single `metadata` object so create_all() builds
foreign keys in the right order.
"""

from __future__ import annotations

import logging

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import URL, Engine

from core.config import Settings

logger = logging.getLogger("codestandoff.database")

metadata = MetaData()


def resolve_database_url(settings: Settings) -> str:
    """Return the connection URL: DATABASE_URL if set, else built from DB_* parts.

    Cloud providers hand out `postgres://` URLs, which SQLAlchemy 2.x no longer
    accepts -- normalize them to `postgresql://`.
    """
    if settings.database_url:
        url = settings.database_url
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://") :]
        return url

    url = URL.create(
        "postgresql+psycopg2",
        username=settings.db_user,
        password=settings.db_password or None,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
        query={"sslmode": settings.db_sslmode},
    )
    return url.render_as_string(hide_password=False)


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign keys; SQLite PRAGMAs are per-connection."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_db_engine(db_url: str) -> Engine:
    """Create an engine, applying the SQLite threading and PRAGMA tweaks when needed."""
    connect_args: dict = {}
    is_sqlite = db_url.startswith("sqlite")
    if is_sqlite:
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=not is_sqlite)
    if is_sqlite:
        event.listen(engine, "connect", _set_sqlite_pragmas)
    logger.debug("Engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine
