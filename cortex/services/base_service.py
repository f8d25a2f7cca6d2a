"""Shared service base with robust session lifecycle behavior."""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker


class BaseService:
    """Base class for services that open short-lived SQLAlchemy sessions."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    @staticmethod
    def commit(db: Session) -> None:
        """Commit current transaction and rollback on failure."""
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
