"""Submission persistence with schema-drift tolerance.

A submission is written with the full column set first. If the live table
turns out not to have one of those columns, the write is repeated once with
the minimal column set that every deployed schema has. Each attempt is its
own transaction, so a rejected attempt leaves no row behind.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from sqlalchemy import Engine, insert, select
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    SQLAlchemyError,
)

from torchlight.db import live_columns, make_session_factory, session_scope
from torchlight.models import MINIMAL_COLUMNS, SubmissionRecord
from torchlight.schemas import Submission

log = logging.getLogger(__name__)

RECORD_FIELDS = (
    "id", "email", "submitted_at", "background", "interests", "experience",
    "scorecard", "form_data", "searcher_name", "home_base", "target_close_window",
)


class StoreErrorKind(str, Enum):
    SCHEMA_MISMATCH = "schema_mismatch"
    CONSTRAINT_VIOLATION = "constraint_violation"
    CONNECTIVITY = "connectivity"
    PERMISSION = "permission"
    UNKNOWN = "unknown"


class StoreWriteError(Exception):
    """A write to the submissions table failed; ``kind`` says how."""

    def __init__(self, kind: StoreErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


@dataclass
class SaveResult:
    saved: bool
    record_id: str | None = None
    column_set: str | None = None  # "full" | "minimal"
    error_kind: StoreErrorKind | None = None


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

_SCHEMA_SQLSTATES = {"42703", "42P01"}  # undefined_column, undefined_table


def _sqlstate(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if isinstance(code, str) and code:
            return code
    return None


def classify_store_error(
    exc: BaseException, engine: Engine, written_columns: Iterable[str],
) -> StoreErrorKind:
    """Map a failed write to a ``StoreErrorKind`` without reading the error text.

    Driver SQLSTATE codes are used when the driver provides them; otherwise
    the live table is inspected to see whether the write referenced a
    column (or table) the store does not have.
    """
    if isinstance(exc, IntegrityError):
        return StoreErrorKind.CONSTRAINT_VIOLATION

    code = _sqlstate(exc)
    if code:
        if code in _SCHEMA_SQLSTATES:
            return StoreErrorKind.SCHEMA_MISMATCH
        if code == "42501":
            return StoreErrorKind.PERMISSION
        if code.startswith("23"):
            return StoreErrorKind.CONSTRAINT_VIOLATION
        if code.startswith("08"):
            return StoreErrorKind.CONNECTIVITY

    if isinstance(exc, (DisconnectionError, InterfaceError)):
        return StoreErrorKind.CONNECTIVITY
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return StoreErrorKind.CONNECTIVITY

    try:
        columns = live_columns(engine)
    except SQLAlchemyError:
        return StoreErrorKind.CONNECTIVITY
    if columns is None or not set(written_columns) <= columns:
        return StoreErrorKind.SCHEMA_MISMATCH
    return StoreErrorKind.UNKNOWN


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------


def _or_none(value: str) -> str | None:
    return value or None


def minimal_row(submission: Submission) -> dict[str, Any]:
    """Columns every deployed submissions table has."""
    em = submission.background_edge.experience_map
    return {
        "email": _or_none(submission.email.strip()),
        "background": _or_none(em.functional_strengths),
        "interests": _or_none(submission.quick_summary.primary_thesis),
        "experience": _or_none(em.deal_exposure),
        "scorecard": submission.scorecard_blob(),
    }


def full_row(submission: Submission) -> dict[str, Any]:
    qs = submission.quick_summary
    return {
        **minimal_row(submission),
        "form_data": submission.form_blob(),
        "searcher_name": _or_none(qs.searcher_name),
        "home_base": _or_none(qs.home_base),
        "target_close_window": _or_none(qs.target_close_window),
    }


def record_dict(row: dict[str, Any]) -> dict[str, Any]:
    out = {f: row.get(f) for f in RECORD_FIELDS}
    submitted_at = out["submitted_at"]
    if isinstance(submitted_at, datetime):
        out["submitted_at"] = submitted_at.isoformat()
    if out["scorecard"] is None:
        out["scorecard"] = []
    return out


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SubmissionStore:
    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = make_session_factory(engine)
        self.table = SubmissionRecord.__table__

    def _insert(self, values: dict[str, Any]) -> str:
        """Insert one row in its own transaction and return the generated id."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(insert(self.table).values(**values))
                return str(result.inserted_primary_key[0])
        except SQLAlchemyError as exc:
            kind = classify_store_error(exc, self.engine, values.keys())
            raise StoreWriteError(kind, str(exc)) from exc

    def _missing_columns(self, written: Iterable[str]) -> list[str]:
        try:
            live = live_columns(self.engine)
        except SQLAlchemyError:
            return []
        if live is None:
            return []
        return [c for c in written if c not in live]

    def save(self, submission: Submission) -> SaveResult:
        """Store a submission, narrowing to the minimal columns on schema mismatch.

        Store errors never propagate; they come back as ``saved=False``.
        """
        full = full_row(submission)
        try:
            record_id = self._insert(full)
            log.info("Submission saved to database: %s", record_id)
            return SaveResult(saved=True, record_id=record_id, column_set="full")
        except StoreWriteError as exc:
            if exc.kind is not StoreErrorKind.SCHEMA_MISMATCH:
                log.error("PersistenceFailure (%s): %s", exc.kind.value, exc)
                return SaveResult(saved=False, error_kind=exc.kind)
            log.warning(
                "SchemaMismatch: submissions table lacks %s; retrying with minimal columns",
                ", ".join(self._missing_columns(full)) or "the table",
            )

        minimal = {k: full[k] for k in MINIMAL_COLUMNS}
        try:
            record_id = self._insert(minimal)
        except StoreWriteError as exc:
            log.error("PersistenceFailure (%s) on minimal insert: %s", exc.kind.value, exc)
            return SaveResult(saved=False, error_kind=exc.kind)
        log.info("Submission saved with minimal schema (some columns missing from table): %s", record_id)
        return SaveResult(saved=True, record_id=record_id, column_set="minimal")

    # -- read-back ----------------------------------------------------------

    def _readable_columns(self):
        live = live_columns(self.engine) or set()
        return [c for c in self.table.c if c.name in live]

    def list_records(self) -> list[dict[str, Any]]:
        """All stored submissions, newest first, reading only columns the table has."""
        columns = self._readable_columns()
        if not columns:
            return []
        stmt = select(*columns)
        if "submitted_at" in {c.name for c in columns}:
            stmt = stmt.order_by(self.table.c.submitted_at.desc())
        with session_scope(self.session_factory) as session:
            rows = session.execute(stmt).mappings().all()
        return [record_dict(dict(r)) for r in rows]

    def get_record(self, record_id: str) -> dict[str, Any] | None:
        columns = self._readable_columns()
        if not columns:
            return None
        stmt = select(*columns).where(self.table.c.id == record_id)
        with session_scope(self.session_factory) as session:
            row = session.execute(stmt).mappings().first()
        return record_dict(dict(row)) if row is not None else None
