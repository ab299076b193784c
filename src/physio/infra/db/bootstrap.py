from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine

from src.physio.config import settings
from src.physio.infra.db import inmemory as inmemory_repos
from src.physio.infra.db import models_notes_plans  # noqa: F401 - registers tables on Base.metadata
from src.physio.infra.db.models import Base
from src.physio.infra.db.session import create_sqlalchemy_session_factory
from src.physio.infra.db.sql_notes_plans import (
    SqlExerciseRepository,
    SqlNoteVersionRepository,
    SqlTreatmentPlanRepository,
)
from src.physio.infra.db.sql_sessions import SqlAppointmentRepository, SqlSessionRepository

logger = logging.getLogger("db")


def init_sql_repositories(database_url: Optional[str] = None) -> bool:  # pragma: no cover - side-effectful wiring
    """Optionally switch in-memory repositories to SQL-backed implementations.

    If USE_SQL_REPOS is not enabled or DATABASE_URL is not configured, this is
    a no-op and the in-memory repositories remain active. Returns True when
    the SQL repositories were installed.
    """

    if not settings.use_sql_repos:
        return False

    db_url = database_url or settings.database_url
    if not db_url:
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; keeping in-memory repositories")
        return False

    engine = create_engine(db_url, future=True)

    # Create tables if they do not exist. In a real deployment this should be
    # handled by migrations, but this is convenient for early setups.
    Base.metadata.create_all(engine)

    session_factory = create_sqlalchemy_session_factory(engine=engine)

    # Rebind the repository singletons; services resolve them through the
    # inmemory module at call time so the swap takes effect everywhere.
    inmemory_repos.appointment_repository = SqlAppointmentRepository(session_factory)
    inmemory_repos.session_repository = SqlSessionRepository(session_factory)
    inmemory_repos.note_version_repository = SqlNoteVersionRepository(session_factory)
    inmemory_repos.exercise_repository = SqlExerciseRepository(session_factory)
    inmemory_repos.treatment_plan_repository = SqlTreatmentPlanRepository(session_factory)
    logger.info("SQL repositories initialised")
    return True
