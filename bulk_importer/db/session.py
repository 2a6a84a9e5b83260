"""Engine and session factory configuration."""

import logging
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from bulk_importer.core.config import get_settings

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict[str, Any]:
    """Pool and keepalive options for long-running worker connections.

    Only PostgreSQL gets the pooled configuration; other backends (SQLite in
    tests) use SQLAlchemy defaults.
    """
    if not database_url.startswith("postgresql"):
        return {}
    return {
        "poolclass": QueuePool,
        "pool_pre_ping": True,  # Test connections before using
        "pool_recycle": 1800,  # Recycle connections after 30 minutes
        "pool_size": 5,
        "max_overflow": 10,
        "connect_args": {
            "connect_timeout": 10,
            "keepalives": 1,
            "keepalives_idle": 30,
            "keepalives_interval": 10,
            "keepalives_count": 5,
        },
    }


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works under pysqlite."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(database_url: str, **kwargs: Any) -> Engine:
    options = {**_engine_options(database_url), **kwargs}
    engine = create_engine(database_url, echo=False, **options)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)
    return engine


settings = get_settings()

engine = create_db_engine(settings.database_url)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

