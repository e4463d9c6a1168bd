from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy.orm import Session


class ServiceError(Exception):
    """Base class for application service level exceptions."""


class BaseService:
    """Provides guard rails and helpers shared by database-backed services."""

    def __init__(self, session: Session):
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def _commit(self) -> None:
        try:
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Provide an explicit transaction boundary for composed use cases."""
        with self._session.begin():
            yield self._session
