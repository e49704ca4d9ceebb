"""Trigger definitions: what to watch and where to deliver changes."""

import uuid

from sqlalchemy import Boolean, DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from sftrigger.models.base import Base


class TriggerDefinition(Base):
    __tablename__ = "triggers"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(String, nullable=False)

    # Combined selection value, e.g. "opportunityUpdated"
    trigger_on: Mapped[str] = mapped_column(String, nullable=False)

    custom_object: Mapped[str | None] = mapped_column(String, nullable=True)

    webhook_url: Mapped[str | None] = mapped_column(String, nullable=True)

    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
