import logging
import os
import time
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from spa_scheduler.config import DatabaseConfig, settings

logger = logging.getLogger(__name__)

ENABLE_QUERY_LOGGING = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

Base = declarative_base()


def _enable_sqlite_locking(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite defers BEGIN until the first write, so two sessions could both
    read an empty interval and then both insert. BEGIN IMMEDIATE makes the
    check-then-insert in a reservation serialize across connections.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _enable_slow_query_logging(engine: Engine) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > SLOW_QUERY_THRESHOLD:
            logger.warning("Slow query (%.2fs): %s...", total, statement[:200])


def create_db_engine(url: Optional[str] = None, config: Optional[DatabaseConfig] = None) -> Engine:
    """Create an engine configured for reservation locking.

    In-memory SQLite URLs get a ``StaticPool`` so every thread sees the same
    database. That single connection cannot hold two transactions at once;
    ``SqlStore`` serializes them, and concurrent deployments should point at a
    file or server database instead.
    """
    config = config or settings.database
    url = url or config.url
    is_sqlite = url.startswith("sqlite")

    kwargs: dict = {"echo": config.echo}
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["pool_recycle"] = config.pool_recycle

    try:
        engine = create_engine(url, **kwargs)
    except Exception as e:
        logger.error("Failed to create database engine: %s", e)
        raise

    if is_sqlite:
        _enable_sqlite_locking(engine)
    if ENABLE_QUERY_LOGGING:
        _enable_slow_query_logging(engine)

    logger.info("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autoflush=False, bind=engine, expire_on_commit=False)
