"""Database engine, declarative base and session factory."""

__all__ = ["Base", "init_db", "get_session", "get_db"]

from .base import Base, get_db, get_session, init_db
