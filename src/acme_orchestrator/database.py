"""Engine/session setup and the per-step unit of work used by the orchestrator."""

from __future__ import annotations

import logging

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from acme_orchestrator.models import Base

logger = logging.getLogger(__name__)


def create_session_factory(database_url: str, *, echo: bool = False) -> sessionmaker[Session]:
    """Build a session factory bound to a new engine for ``database_url``.

    Instances are not expired on commit: the orchestrator keeps working with the
    records it has just written, and reloading them after every step would only
    add round trips to the database.
    """
    engine = create_engine(database_url, echo=echo)
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create any missing tables."""
    Base.metadata.create_all(engine)


class UnitOfWork:
    """Commits the records touched by one orchestration step.

    Each call to :meth:`commit` is its own transaction: the orchestrator calls it
    right after every externally observable change, so a crash never loses more
    than the round trip in flight.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def commit(self, *records: object) -> None:
        for record in records:
            self._session.add(record)
        try:
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.debug("Committed %d record(s)", len(records))
