"""Runs watermark polls for stored trigger definitions."""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from sftrigger.core.checkpoints import CheckpointStore, ensure_utc
from sftrigger.core.config import settings
from sftrigger.core.errors import TriggerNotFoundError
from sftrigger.core.logging import get_logger
from sftrigger.models.checkpoints import TriggerCheckpoint
from sftrigger.models.runs import PollRun
from sftrigger.models.triggers import TriggerDefinition
from sftrigger.polling.poller import PagedFetcher, PollResult, WatermarkPoller
from sftrigger.salesforce.selector import ChangeSelector

log = get_logger("trigger_service")

Clock = Callable[[], datetime]

# One in-flight poll per trigger across the scheduler and the API
_poll_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DatabaseCheckpointStore(CheckpointStore):
    """Checkpoints in the ``trigger_checkpoints`` table.

    Writes are staged on the session; the caller decides when to commit.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, trigger_id: str) -> Optional[datetime]:
        checkpoint = self.db.get(TriggerCheckpoint, trigger_id)
        return ensure_utc(checkpoint.last_checked_at) if checkpoint else None

    def set(self, trigger_id: str, checkpoint: datetime) -> None:
        checkpoint = ensure_utc(checkpoint)
        row = self.db.get(TriggerCheckpoint, trigger_id)
        if not row:
            row = TriggerCheckpoint(trigger_id=trigger_id, last_checked_at=checkpoint)
        else:
            row.last_checked_at = checkpoint
        self.db.add(row)
        self.db.flush()

    def delete(self, trigger_id: str) -> None:
        row = self.db.get(TriggerCheckpoint, trigger_id)
        if row:
            self.db.delete(row)
            self.db.flush()


class WebhookDispatcher:
    """Delivers a non-empty batch as one downstream workflow run."""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    @staticmethod
    def payload(trigger: TriggerDefinition, result: PollResult) -> Dict[str, Any]:
        return {
            "trigger_id": str(trigger.id),
            "trigger_on": trigger.trigger_on,
            "resource": result.resource,
            "manual": result.manual,
            "window": {
                "start": result.window.start.isoformat(),
                "end": result.window.end.isoformat(),
            },
            "records": result.batch,
        }

    async def dispatch(self, trigger: TriggerDefinition, result: PollResult) -> None:
        if not trigger.webhook_url:
            log.info(f"Trigger '{trigger.name}' has no webhook; {len(result.batch)} record(s) not delivered")
            return

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(trigger.webhook_url, json=self.payload(trigger, result))
            resp.raise_for_status()
        log.info(f"Delivered {len(result.batch)} record(s) for trigger '{trigger.name}'")


class TriggerService:
    """Owns trigger definitions and runs their polls.

    Responsibilities:
    - Validate and store trigger definitions
    - Run one poll per trigger with its persisted checkpoint
    - Hand non-empty batches to the dispatcher
    - Record every poll attempt for /stats
    """

    def __init__(
        self,
        db: Session,
        fetcher: PagedFetcher,
        dispatcher: Optional[WebhookDispatcher] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.fetcher = fetcher
        self.dispatcher = dispatcher or WebhookDispatcher()
        self.clock = clock
        self.checkpoints = DatabaseCheckpointStore(db)

    # -------------------------------------------------------------------------
    # Definitions
    # -------------------------------------------------------------------------
    def create_trigger(
        self,
        name: str,
        trigger_on: str,
        custom_object: Optional[str] = None,
        webhook_url: Optional[str] = None,
        enabled: bool = True,
    ) -> TriggerDefinition:
        selector = ChangeSelector.parse(trigger_on, custom_object)
        # Fail early on a custom object selection without a name
        selector.resolved_resource

        trigger = TriggerDefinition(
            name=name,
            trigger_on=selector.trigger_on,
            custom_object=custom_object if selector.is_custom else None,
            webhook_url=webhook_url,
            enabled=enabled,
        )
        self.db.add(trigger)
        self.db.commit()
        self.db.refresh(trigger)
        log.info(f"Created trigger '{name}' ({selector}) id={trigger.id}")
        return trigger

    def list_triggers(self, enabled_only: bool = False) -> List[TriggerDefinition]:
        stmt = select(TriggerDefinition).order_by(TriggerDefinition.created_at, TriggerDefinition.name)
        if enabled_only:
            stmt = stmt.where(TriggerDefinition.enabled.is_(True))
        return list(self.db.execute(stmt).scalars().all())

    def get_trigger(self, trigger_id: str | uuid.UUID) -> TriggerDefinition:
        try:
            key = trigger_id if isinstance(trigger_id, uuid.UUID) else uuid.UUID(str(trigger_id))
        except ValueError as exc:
            raise TriggerNotFoundError(f"Trigger not found: {trigger_id}") from exc
        trigger = self.db.get(TriggerDefinition, key)
        if not trigger:
            raise TriggerNotFoundError(f"Trigger not found: {trigger_id}")
        return trigger

    def delete_trigger(self, trigger_id: str | uuid.UUID) -> None:
        trigger = self.get_trigger(trigger_id)
        key, name = str(trigger.id), trigger.name
        self.checkpoints.delete(key)
        self.db.delete(trigger)
        self.db.commit()
        _poll_locks.pop(key, None)
        log.info(f"Deleted trigger '{name}' id={key}")

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------
    async def run(self, trigger_id: str | uuid.UUID, manual: bool = False) -> Dict[str, Any]:
        """Poll a single trigger once.

        Polls of the same trigger are serialized, so each one reads the
        checkpoint committed by the previous one.
        """
        trigger = self.get_trigger(trigger_id)
        key = str(trigger.id)

        async with _poll_locks[key]:
            return await self._run_locked(trigger, key, manual)

    async def _run_locked(self, trigger: TriggerDefinition, key: str, manual: bool) -> Dict[str, Any]:
        run = PollRun(trigger_id=key, status="running", manual=manual, records_found=0)
        self.db.add(run)
        self.db.commit()
        self.db.refresh(run)

        try:
            selector = ChangeSelector.parse(trigger.trigger_on, trigger.custom_object)
            poller = WatermarkPoller(key, self.checkpoints, self.fetcher)
            result = await poller.run(selector, now=self.clock(), is_manual_run=manual)

            if result.has_items:
                await self.dispatcher.dispatch(trigger, result)

            # Checkpoint and run status land together
            run.status = "success" if result.has_items else "no_items"
            run.records_found = len(result.batch)
            run.window_start = result.window.start
            run.window_end = result.window.end
            run.meta = {"query": result.query, "resource": result.resource}
            run.ended_at = utcnow()
            self.db.commit()

            log.info(f"Poll finished for '{trigger.name}' | status={run.status} records={run.records_found}")
            return {
                "success": True,
                "status": run.status,
                "trigger_id": key,
                "records": result.batch,
                "records_found": len(result.batch),
                "window_start": result.window.start,
                "window_end": result.window.end,
                "checkpoint": result.checkpoint,
            }

        except asyncio.CancelledError:
            self._mark_failed(run, "Poll cancelled")
            log.warning(f"Poll cancelled for '{trigger.name}' ({trigger.trigger_on})")
            raise

        except Exception as exc:  # noqa: BLE001
            self._mark_failed(run, str(exc))
            log.error(f"Poll failed for '{trigger.name}' ({trigger.trigger_on}): {exc}")
            raise

    def _mark_failed(self, run: PollRun, message: str) -> None:
        self.db.rollback()
        run.status = "failure"
        run.error_message = message
        run.ended_at = utcnow()
        self.db.add(run)
        self.db.commit()

    async def run_all(self) -> Dict[str, Any]:
        """Poll every enabled trigger, one at a time."""
        results: Dict[str, Any] = {}
        for trigger in self.list_triggers(enabled_only=True):
            key = str(trigger.id)
            try:
                result = await self.run(key)
                results[key] = {
                    "success": True,
                    "status": result["status"],
                    "records_found": result["records_found"],
                }
            except Exception as exc:  # noqa: BLE001
                log.error(f"Failed to poll trigger {key}: {exc}")
                results[key] = {"success": False, "error": str(exc)}
        return results
