"""Watermark-based incremental polling.

Each trigger instance keeps a single checkpoint timestamp. A poll queries the
half-open window ``[checkpoint, now)`` and, on success, moves the checkpoint to
``now``. The first poll has no checkpoint, so its window is empty: it only
establishes the watermark and never replays historical records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from sftrigger.core.checkpoints import CheckpointStore, ensure_utc
from sftrigger.core.errors import ConfigurationError, FetchError
from sftrigger.core.logging import get_logger
from sftrigger.salesforce.query import Condition, build_query
from sftrigger.salesforce.selector import ChangeKind, ChangeSelector

log = get_logger("polling.poller")


class PagedFetcher(Protocol):
    async def fetch_all(self, query: str, property_name: str = "records") -> List[Dict[str, Any]]:
        ...


@dataclass(frozen=True)
class PollWindow:
    start: datetime
    end: datetime

    @classmethod
    def compute(cls, previous_checkpoint: Optional[datetime], now: datetime) -> "PollWindow":
        end = ensure_utc(now)
        start = ensure_utc(previous_checkpoint) if previous_checkpoint is not None else end
        return cls(start=start, end=end)

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end


@dataclass
class PollResult:
    batch: List[Dict[str, Any]]
    checkpoint: datetime
    window: PollWindow
    query: str
    resource: str
    manual: bool = False
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_items(self) -> bool:
        return bool(self.batch)


def build_filters(change_kind: ChangeKind, window: PollWindow) -> List[Condition]:
    """Time filter for a scheduled poll of one window."""
    if change_kind == ChangeKind.CREATED:
        return [
            Condition("CreatedDate", ">=", window.start),
            Condition("CreatedDate", "<", window.end),
        ]
    return [
        Condition("LastModifiedDate", ">=", window.start),
        Condition("LastModifiedDate", "<", window.end),
        # Records created inside the window are reported as created, not updated.
        Condition("CreatedDate", "<", window.start),
    ]


def _manual_order(change_kind: ChangeKind) -> str:
    if change_kind == ChangeKind.CREATED:
        return "CreatedDate DESC"
    return "LastModifiedDate DESC"


async def poll(
    selector: ChangeSelector,
    previous_checkpoint: Optional[datetime],
    now: datetime,
    is_manual_run: bool,
    fetcher: PagedFetcher,
    trigger_id: Optional[str] = None,
) -> PollResult:
    """Run one poll; the caller persists ``result.checkpoint`` on success.

    Raises ConfigurationError when the selector or credentials are missing
    and FetchError when building or executing the query fails.
    """
    resource = selector.resolved_resource
    window = PollWindow.compute(previous_checkpoint, now)

    try:
        if is_manual_run:
            query = build_query(resource, limit=1, order_by=_manual_order(selector.change_kind))
        else:
            query = build_query(resource, build_filters(selector.change_kind, window))
        records = await fetcher.fetch_all(query, "records")
    except ConfigurationError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise FetchError(exc, trigger_id=trigger_id, selector=str(selector), resource=resource) from exc

    if not is_manual_run and window.is_empty:
        # [t, t) holds nothing; the query above only proves connectivity.
        records = []

    return PollResult(
        batch=list(records or []),
        checkpoint=window.end,
        window=window,
        query=query,
        resource=resource,
        manual=is_manual_run,
    )


class WatermarkPoller:
    """Binds a trigger instance to its checkpoint store and fetcher."""

    def __init__(self, trigger_id: str, store: CheckpointStore, fetcher: PagedFetcher):
        self.trigger_id = trigger_id
        self.store = store
        self.fetcher = fetcher
        self.log = log.bind(trigger_id=trigger_id)

    async def run(self, selector: ChangeSelector, now: datetime, is_manual_run: bool = False) -> PollResult:
        previous = self.store.get(self.trigger_id)
        try:
            result = await poll(
                selector,
                previous,
                now,
                is_manual_run,
                self.fetcher,
                trigger_id=self.trigger_id,
            )
        except FetchError as exc:
            # Always propagate; the checkpoint stays as it was so the next
            # poll retries the same window.
            if not is_manual_run and previous is not None:
                self.log.error(
                    f"Poll failed for trigger '{self.trigger_id}' ({exc.selector}); "
                    f"checkpoint kept at {previous.isoformat()}: {exc.cause}"
                )
            raise

        self.store.set(self.trigger_id, result.checkpoint)
        if result.has_items:
            self.log.info(
                f"Trigger '{self.trigger_id}' found {len(result.batch)} {result.resource} change(s) "
                f"in [{result.window.start.isoformat()}, {result.window.end.isoformat()})"
            )
        else:
            self.log.debug(f"Trigger '{self.trigger_id}' found no new items")
        return result
