"""Database engine and session management.

Usage:
    db = Database("sqlite:///admin_starter.db")
    db.create_all()

    with db.read_session() as session:     # always rolled back
        session.execute(select(Role))

    with db.transaction() as session:      # commit on success, rollback on error
        session.add(Role(name="editor"))
"""
from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create a SQLAlchemy engine.

    In-memory SQLite shares one connection across threads so every session
    sees the same database.
    """
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(database_url, **kwargs)


class Database:
    """Engine plus session factory for one database."""

    def __init__(self, database_url: str, echo: bool = False):
        self.url = database_url
        self.engine = build_engine(database_url, echo=echo)
        self.session_factory = sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database engine created (dialect=%s)", self.engine.dialect.name)

    def create_all(self) -> None:
        """Create missing tables and indexes."""
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def read_session(self) -> Generator[Session, None, None]:
        """Session for read-only work; nothing it does is committed."""
        session = self.session_factory()
        try:
            yield session
        finally:
            session.rollback()
            session.close()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Session inside one transaction: commit on success, rollback on error."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as exc:
            logger.warning("Database ping failed: %s", exc)
            return False

    def dispose(self) -> None:
        self.engine.dispose()
