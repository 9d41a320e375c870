"""Engine and session factory for the exam hall store."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


class Database:
    """Owns the engine and hands out short-lived sessions."""

    def __init__(self, url: str, echo: bool = False) -> None:
        connect_args = {}
        if url.startswith("sqlite"):
            # Sessions are opened from uvicorn worker threads and the sweeper thread.
            connect_args = {"check_same_thread": False, "timeout": 15}
        self.url = url
        self.engine: Engine = create_engine(url, echo=echo, connect_args=connect_args)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        # Imported for its side effect of registering the tables on Base.
        from exam_hall.storage import tables  # noqa: F401

        Base.metadata.create_all(self.engine)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on any error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
