from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TriggerOnOption(BaseModel):
    name: str
    value: str
    description: str


class CustomObjectOption(BaseModel):
    name: str
    value: str


class TriggerCreate(BaseModel):
    name: str = Field(min_length=1)
    trigger_on: str = Field(description="Combined selection, e.g. opportunityUpdated")
    custom_object: Optional[str] = None
    webhook_url: Optional[str] = None
    enabled: bool = True


class TriggerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    trigger_on: str
    custom_object: Optional[str] = None
    webhook_url: Optional[str] = None
    enabled: bool
    created_at: Optional[datetime] = None


class PollResponse(BaseModel):
    trigger_id: str
    status: str
    records_found: int
    records: list[dict[str, Any]]
    window_start: datetime
    window_end: datetime
    checkpoint: datetime


class HealthResponse(BaseModel):
    database: str
    last_poll_status: str | None


class StatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    run_id: str
    trigger_id: str
    status: str
    manual: bool
    records_found: int
    error_message: str | None = None
    window_start: datetime | None = None
    window_end: datetime | None = None
    started_at: datetime
    ended_at: datetime | None


class CheckpointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    trigger_id: str
    last_checked_at: datetime
    updated_at: datetime | None = None
