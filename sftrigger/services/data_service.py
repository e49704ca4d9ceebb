"""Data Service - read-only queries behind the stats and health endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from sftrigger.models.checkpoints import TriggerCheckpoint
from sftrigger.models.runs import PollRun
from sftrigger.models.triggers import TriggerDefinition


class DataService:
    """Handles all read queries - no writes."""

    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Poll Runs & Checkpoints Queries
    # -------------------------------------------------------------------------
    def get_poll_runs(
        self,
        trigger_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 10,
    ) -> List[PollRun]:
        """Get recent poll runs with optional filtering."""
        stmt = select(PollRun)

        if trigger_id:
            stmt = stmt.where(PollRun.trigger_id == trigger_id)
        if status:
            stmt = stmt.where(PollRun.status == status)

        stmt = stmt.order_by(PollRun.started_at.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def get_latest_poll_run(self, trigger_id: Optional[str] = None) -> Optional[PollRun]:
        """Get the most recent poll run."""
        stmt = select(PollRun)
        if trigger_id:
            stmt = stmt.where(PollRun.trigger_id == trigger_id)
        stmt = stmt.order_by(PollRun.started_at.desc()).limit(1)
        return self.db.execute(stmt).scalars().first()

    def get_checkpoints(self) -> List[TriggerCheckpoint]:
        """Get all checkpoints."""
        stmt = select(TriggerCheckpoint).order_by(TriggerCheckpoint.trigger_id)
        return list(self.db.execute(stmt).scalars().all())

    def get_checkpoint(self, trigger_id: str) -> Optional[TriggerCheckpoint]:
        return self.db.get(TriggerCheckpoint, trigger_id)

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------
    def get_triggers_summary(self) -> List[Dict[str, Any]]:
        """Checkpoint and last run per trigger."""
        triggers = self.db.execute(select(TriggerDefinition).order_by(TriggerDefinition.name)).scalars().all()
        summary = []

        for trigger in triggers:
            key = str(trigger.id)
            checkpoint = self.get_checkpoint(key)
            latest_run = self.get_latest_poll_run(key)
            run_count = self.db.execute(
                select(func.count()).select_from(PollRun).where(PollRun.trigger_id == key)
            ).scalar() or 0

            summary.append({
                "trigger_id": key,
                "name": trigger.name,
                "trigger_on": trigger.trigger_on,
                "enabled": trigger.enabled,
                "runs": run_count,
                "last_checkpoint": checkpoint.last_checked_at if checkpoint else None,
                "last_run_status": latest_run.status if latest_run else None,
                "last_run_at": latest_run.started_at if latest_run else None,
            })

        return summary
