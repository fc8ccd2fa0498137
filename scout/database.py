"""
Database engine + session factory.

Defaults to SQLite for local dev, Postgres in production. Nothing connects at
import time: the worker builds one session factory at startup and hands it to
the pipeline.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from scout.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


def normalize_url(url: str) -> str:
    # Railway/Heroku inject postgres:// but SQLAlchemy 2.x requires postgresql://
    return url.replace('postgres://', 'postgresql://', 1)


def build_engine(url: str = None):
    """Create an engine with driver-appropriate kwargs."""
    url = normalize_url(url or DATABASE_URL)
    if url.startswith('sqlite'):
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)


def build_session_factory(url: str = None, engine=None):
    """Return a sessionmaker bound to the given engine (or a new one for url)."""
    return sessionmaker(bind=engine or build_engine(url), expire_on_commit=False)


def create_schema(engine):
    """Create all scout tables. Used by tests and local dev; prod uses alembic."""
    from scout import models  # noqa: F401  registers the tables
    Base.metadata.create_all(engine)
