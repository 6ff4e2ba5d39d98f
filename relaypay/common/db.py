"""Database bootstrap helpers."""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from relaypay.common.config import settings


def engine_options(dsn: str) -> dict:
    """Return `create_engine` keyword arguments suited to the DSN's backend."""

    if not dsn.startswith("sqlite"):
        return {"pool_pre_ping": True}
    # Handlers run in a threadpool, so SQLite connections must cross threads.
    options: dict = {"connect_args": {"check_same_thread": False}}
    if dsn in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every checkout sees an empty database.
        options["poolclass"] = StaticPool
    return options


def make_session_factory(dsn: str) -> sessionmaker:
    """Build an engine + session factory pair for `dsn`."""

    engine = create_engine(dsn, **engine_options(dsn))
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


# Single SQLAlchemy engine per process.
SessionLocal = make_session_factory(settings.database_dsn)
engine = SessionLocal.kw["bind"]


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass
