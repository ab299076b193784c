from __future__ import annotations

from collections.abc import Callable
from typing import Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker


SessionFactory = Callable[[], Session]


def create_sqlalchemy_session_factory(
    database_url: Optional[str] = None,
    *,
    engine: Optional[Engine] = None,
) -> SessionFactory:
    """Create a factory producing SQLAlchemy Session instances.

    Either a database URL or an already-configured engine must be supplied;
    passing an engine lets callers share one connection pool (for example an
    in-memory SQLite engine in tests).
    """

    if engine is None:
        if not database_url:
            raise ValueError("create_sqlalchemy_session_factory needs a database_url or an engine")
        engine = create_engine(database_url, future=True)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)

    def _factory() -> Session:
        return SessionLocal()

    return _factory
