"""
Docent - Database Utilities
===========================

Engine and session plumbing for the relational store that holds
conversations, messages, feedback, knowledge items and the personality.

PostgreSQL (with pgvector) is the production target. SQLite works for local
runs and tests; embeddings are then stored as JSON text.

Usage:
    from docent.core.db import build_engine, build_session_factory, init_db, session_scope

    engine = build_engine("sqlite:///./docent.db")
    init_db(engine)
    factory = build_session_factory(engine)

    with session_scope(factory) as session:
        session.add(KnowledgeItem(title="Guide", type="document", created_by="system"))
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from ..config import Settings, get_settings
from .models import Base

logger = logging.getLogger(__name__)


def _engine_options(url: str, pool_size: int, max_overflow: int) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # repositories open sessions from executor threads
        return {"connect_args": {"check_same_thread": False}}
    return {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
    }


def build_engine(
    url: str | None = None,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
    settings: Settings | None = None,
) -> Engine:
    """
    Create the engine for ``url``, or for ``DATABASE_URL`` when no URL is given.

    Pool sizing only applies to server databases.
    """
    db_url = url or (settings or get_settings()).DATABASE_URL
    engine = create_engine(db_url, echo=echo, **_engine_options(db_url, pool_size, max_overflow))
    logger.debug(f"Engine created for dialect {engine.dialect.name}")
    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    # Records are read after commit, outside the session
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    One unit of work: commit when the block finishes, roll back if it raises.

    Usage:
        with session_scope(factory) as session:
            items = session.query(KnowledgeItem).all()
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Create any missing tables, enabling pgvector first on PostgreSQL."""
    dialect = engine.dialect.name
    if dialect == "postgresql":
        with engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))

    Base.metadata.create_all(engine)
    logger.info("Database schema ready", extra={"extra_data": {"dialect": dialect}})


def drop_all_tables(engine: Engine) -> None:
    """Drop every Docent table. Development and tests only."""
    Base.metadata.drop_all(engine)
    logger.warning("All tables dropped", extra={"extra_data": {"dialect": engine.dialect.name}})
