"""Enables /stats and per-trigger observability"""

import uuid
from sqlalchemy import JSON, DateTime, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from sftrigger.models.base import Base


class PollRun(Base):
    __tablename__ = "poll_runs"

    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    trigger_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String,
        nullable=False,  # running | success | no_items | failure
    )

    manual: Mapped[bool] = mapped_column(default=False)

    records_found: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    error_message: Mapped[str | None] = mapped_column(String, nullable=True)

    window_start: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    window_end: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # "metadata" attribute name is reserved by SQLAlchemy; use column name metadata with safe attribute.
    meta: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    started_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    ended_at: Mapped[DateTime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
