"""
Database engine + session factory.

Defaults to SQLite for local dev, Postgres in production. The engine is built
lazily so importing models never opens a connection and a bad DATABASE_URL
only surfaces when the SQL repository is first used.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from growth_audit.config import DATABASE_URL

logger = logging.getLogger('growth_audit.database')


class Base(DeclarativeBase):
    pass


_engine = None
SessionLocal = None


def normalise_database_url(url):
    # Hosted Postgres often injects postgres:// but SQLAlchemy 2.x requires postgresql://
    return url.replace('postgres://', 'postgresql://', 1)


def build_engine(url):
    """Create an engine with the kwargs appropriate for the backend."""
    url = normalise_database_url(url)
    if url.startswith('sqlite'):
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)


def get_engine():
    global _engine, SessionLocal
    if _engine is None:
        _engine = build_engine(DATABASE_URL)
        SessionLocal = sessionmaker(bind=_engine)
        logger.info("Database engine initialized (%s)", _engine.url.get_backend_name())
    return _engine


def get_session():
    """Return a new DB session."""
    get_engine()
    return SessionLocal()


def serialise_value(value):
    """Datetimes become ISO-8601 UTC strings; everything else passes through."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return value


class SerializerMixin:
    """Adds to_dict() over the mapped columns."""

    def to_dict(self):
        return {
            column.key: serialise_value(getattr(self, column.key))
            for column in self.__table__.columns
        }


def parse_datetime(value):
    """ISO-8601 string (or datetime) to an aware UTC datetime; None passes through."""
    if value is None or value == '':
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value
