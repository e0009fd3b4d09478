"""
database.py — SQLAlchemy Engine and Session Management

Provides the declarative base for all tables, a module-level engine built from
`config.DATABASE_URL`, and the per-request session dependency used by the API.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from . import config
from .logging_config import get_logger

log = get_logger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(url: str, echo: bool = False):
    """Creates an engine; SQLite connections may be shared across worker threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=echo, future=True, connect_args=connect_args)


engine = build_engine(config.DATABASE_URL, echo=config.SQL_ECHO)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(bind=None):
    """Creates all tables that do not exist yet."""
    # Table classes must be registered on Base.metadata before create_all.
    from . import entities  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)
    log.info(f"Database schema ready ({target.url.render_as_string(hide_password=True)}).")


def get_session():
    """FastAPI dependency: one session per request, always closed."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
