from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


class SubmissionRecord(Base):
    """One stored onboarding submission.

    ``form_data`` holds the complete submission and is the source of truth;
    the scalar columns are denormalised excerpts for listing and search.
    """

    __tablename__ = "submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    background: Mapped[str | None] = mapped_column(Text, nullable=True)
    interests: Mapped[str | None] = mapped_column(Text, nullable=True)
    experience: Mapped[str | None] = mapped_column(Text, nullable=True)
    scorecard: Mapped[list[Any]] = mapped_column(JSON, default=list)
    # Columns below were added after the first deployments; older tables may lack them.
    form_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    searcher_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    home_base: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_close_window: Mapped[str | None] = mapped_column(Text, nullable=True)


MINIMAL_COLUMNS = ("email", "background", "interests", "experience", "scorecard")
OPTIONAL_COLUMNS = ("form_data", "searcher_name", "home_base", "target_close_window")
