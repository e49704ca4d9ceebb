"""Poll entrypoint - Standalone script for running trigger polls.

Usage:
    python -m sftrigger.poll_entrypoint                       # Poll all enabled triggers
    python -m sftrigger.poll_entrypoint <trigger_id>          # Poll a single trigger
    python -m sftrigger.poll_entrypoint <trigger_id> --manual # Fetch the latest record only
    python -m sftrigger.poll_entrypoint --selector leadCreated [--custom-object Invoice__c]
                                                              # Poll without a stored trigger,
                                                              # checkpoint kept under CHECKPOINT_DIR
"""

import asyncio
import json
import sys
from datetime import datetime, timezone
from typing import Optional

from sftrigger.core.checkpoints import CheckpointStore, FileCheckpointStore
from sftrigger.core.db import SessionLocal
from sftrigger.core.logging import get_logger
from sftrigger.polling.poller import PagedFetcher, WatermarkPoller
from sftrigger.salesforce.client import SalesforceClient
from sftrigger.salesforce.credentials import StaticCredentialResolver
from sftrigger.salesforce.selector import ChangeSelector
from sftrigger.services.trigger_service import TriggerService

logger = get_logger("poll_entrypoint")


def _service(db) -> TriggerService:
    return TriggerService(db, SalesforceClient(StaticCredentialResolver()))


async def run_trigger(trigger_id: str, manual: bool = False):
    """Poll a single trigger."""
    with SessionLocal() as db:
        result = await _service(db).run(trigger_id, manual=manual)
        logger.info(
            f"Poll completed for {trigger_id}: status={result['status']} records={result['records_found']}"
        )
        return {trigger_id: {"success": True, "status": result["status"]}}


async def run_all_triggers():
    """Poll every enabled trigger."""
    logger.info("Polling all enabled triggers")
    with SessionLocal() as db:
        return await _service(db).run_all()


async def run_selector(
    trigger_on: str,
    custom_object: Optional[str] = None,
    manual: bool = False,
    store: Optional[CheckpointStore] = None,
    fetcher: Optional[PagedFetcher] = None,
):
    """Poll a selection directly, keeping its checkpoint in a JSON file.

    The batch is printed as JSON lines on stdout.
    """
    selector = ChangeSelector.parse(trigger_on, custom_object)
    key = f"cli-{selector.trigger_on}"
    if selector.is_custom and custom_object:
        key = f"{key}-{custom_object}"

    poller = WatermarkPoller(
        key,
        store or FileCheckpointStore(),
        fetcher or SalesforceClient(StaticCredentialResolver()),
    )
    result = await poller.run(selector, now=datetime.now(timezone.utc), is_manual_run=manual)

    for record in result.batch:
        print(json.dumps(record, default=str))

    status = "success" if result.has_items else "no_items"
    logger.info(f"Poll completed for {selector}: status={status} records={len(result.batch)}")
    return {key: {"success": True, "status": status, "records_found": len(result.batch)}}


def _option(args, name):
    """Pop ``name VALUE`` from args and return VALUE (or None)."""
    if name not in args:
        return None
    index = args.index(name)
    if index + 1 >= len(args):
        logger.error(f"Missing value for {name}")
        sys.exit(2)
    value = args[index + 1]
    del args[index:index + 2]
    return value


def main(argv=None):
    args = list(sys.argv[1:] if argv is None else argv)
    manual = "--manual" in args
    args = [a for a in args if a != "--manual"]
    trigger_on = _option(args, "--selector")
    custom_object = _option(args, "--custom-object")

    if trigger_on:
        try:
            results = asyncio.run(run_selector(trigger_on, custom_object=custom_object, manual=manual))
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Poll failed for {trigger_on}: {exc}")
            sys.exit(1)
    elif args:
        try:
            results = asyncio.run(run_trigger(args[0], manual=manual))
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Poll failed for {args[0]}: {exc}")
            sys.exit(1)
    else:
        results = asyncio.run(run_all_triggers())

    logger.info(f"Polling finished: {results}")

    if any(not r.get("success", False) for r in results.values()):
        sys.exit(1)

    return results


if __name__ == "__main__":
    main()
