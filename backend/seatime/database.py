import logging
from contextlib import contextmanager
from typing import Any, Generator, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from seatime.config import settings

logger = logging.getLogger(__name__)


def make_engine(url: str, **overrides: Any) -> Engine:
    """Engine for ``url``; SQLite gets foreign keys on (and WAL for file databases)."""
    is_sqlite = url.startswith("sqlite")
    kwargs: dict = {"pool_pre_ping": True}
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
    kwargs.update(overrides)
    eng = create_engine(url, **kwargs)

    if is_sqlite:
        in_memory = url in ("sqlite://", "sqlite:///:memory:")

        @event.listens_for(eng, "connect")
        def _set_sqlite_pragmas(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            # sea_time_entries/tracking_tasks/position_checks cascade on vessel delete
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return eng


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for CLI commands; the operations it is passed to commit their own work."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables. Safe to call repeatedly; existing tables are left alone."""
    from seatime.models import Base  # noqa: F401 -- ensure all models are registered
    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info("Database schema ready (%d tables) at %s", len(Base.metadata.tables), target.url.render_as_string(hide_password=True))
