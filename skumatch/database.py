"""
Database engine + session factory for the match job tables.

SQLite (default, local runs and tests) or Postgres via DATABASE_URL. The store
opens one short session per operation through get_session().
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from skumatch.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


def make_engine(url):
    """Engine for a DATABASE_URL-style string."""
    # SQLAlchemy 2.x only accepts the postgresql:// scheme
    if url.startswith('postgres://'):
        url = 'postgresql://' + url[len('postgres://'):]

    if url.startswith('sqlite'):
        # Row pages may be processed on worker threads
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine)


def get_session():
    return SessionLocal()
