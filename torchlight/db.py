from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import Engine, create_engine, inspect as sa_inspect
from sqlalchemy.orm import Session, sessionmaker

from torchlight.models import OPTIONAL_COLUMNS, Base, SubmissionRecord

log = logging.getLogger(__name__)


def make_engine(url: str, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def live_columns(engine: Engine, table: str = SubmissionRecord.__tablename__) -> set[str] | None:
    """Column names of *table* as the live store has them, ``None`` if the table is absent."""
    inspector = sa_inspect(engine)
    if not inspector.has_table(table):
        return None
    return {col["name"] for col in inspector.get_columns(table)}


def missing_optional_columns(engine: Engine) -> list[str]:
    columns = live_columns(engine)
    if columns is None:
        return list(OPTIONAL_COLUMNS)
    return [c for c in OPTIONAL_COLUMNS if c not in columns]


def init_schema(engine: Engine) -> None:
    """Create the submissions table if absent and report drift on existing ones.

    Existing tables are never altered; submissions against an older table
    fall back to the minimal column set at write time.
    """
    Base.metadata.create_all(engine)
    missing = missing_optional_columns(engine)
    if missing:
        log.warning(
            "submissions table is missing optional columns %s; "
            "submissions will be stored with the minimal column set",
            ", ".join(missing),
        )


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Context manager providing a read session that always closes.

    Usage::

        with session_scope(store.session_factory) as session:
            ...
    """
    session = factory()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
