"""Powers incremental polling + retry-on-failure"""

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from sftrigger.models.base import Base


class TriggerCheckpoint(Base):
    __tablename__ = "trigger_checkpoints"

    trigger_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
    )

    last_checked_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
