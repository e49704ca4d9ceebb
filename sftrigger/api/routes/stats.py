"""Stats routes - Poll observability."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sftrigger.api.deps import get_db
from sftrigger.schemas.api import CheckpointOut, StatsResponse
from sftrigger.services.data_service import DataService

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=list[StatsResponse])
def get_poll_stats(
    trigger_id: Optional[str] = Query(None, description="Filter by trigger id"),
    status: Optional[str] = Query(None, description="Filter by status (running, success, no_items, failure)"),
    limit: int = Query(10, ge=1, le=50, description="Number of runs to return"),
    db: Session = Depends(get_db),
):
    """
    Get recent poll runs.

    Shows records found, window, status, and error messages.
    """
    service = DataService(db)
    runs = service.get_poll_runs(trigger_id=trigger_id, status=status, limit=limit)

    return [
        StatsResponse(
            run_id=str(run.run_id),
            trigger_id=run.trigger_id,
            status=run.status,
            manual=run.manual,
            records_found=run.records_found,
            error_message=run.error_message,
            window_start=run.window_start,
            window_end=run.window_end,
            started_at=run.started_at,
            ended_at=run.ended_at,
        )
        for run in runs
    ]


@router.get("/checkpoints", response_model=list[CheckpointOut])
def get_checkpoints(db: Session = Depends(get_db)):
    """
    Get all trigger checkpoints.

    A checkpoint is the end of the last successfully polled window.
    """
    service = DataService(db)
    return [
        CheckpointOut(
            trigger_id=cp.trigger_id,
            last_checked_at=cp.last_checked_at,
            updated_at=cp.updated_at,
        )
        for cp in service.get_checkpoints()
    ]


@router.get("/triggers")
def get_triggers_summary(db: Session = Depends(get_db)):
    """Per-trigger checkpoint, run count and last run status."""
    return DataService(db).get_triggers_summary()
