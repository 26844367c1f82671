"""Relational persistence: ORM models, sessions, schemas and repositories."""

from .db import build_engine, build_session_factory, drop_all_tables, init_db, session_scope
from .models import Base

__all__ = [
    "Base",
    "build_engine",
    "build_session_factory",
    "drop_all_tables",
    "init_db",
    "session_scope",
]
