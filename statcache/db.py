"""
Database connection and setup
SQLite database with SQLAlchemy
"""
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from statcache.models import Base
from config.settings import settings


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create an engine for the document store.

    In-memory SQLite databases share one connection so that every session
    sees the same data.
    """
    url = database_url or settings.database_url
    kwargs = {
        "connect_args": {"check_same_thread": False},  # Needed for SQLite
        "echo": False,  # Set to True to see SQL queries
    }
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def init_db(engine: Engine) -> None:
    """
    Initialize database - create all tables
    Safe to call multiple times (won't recreate existing tables)
    """
    Base.metadata.create_all(bind=engine)


def make_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to the given engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
