from pathlib import Path
from contextlib import asynccontextmanager
import asyncio
from typing import Optional

from alembic import command
from alembic.config import Config
from fastapi import FastAPI

from sftrigger.api.routes import health, stats, triggers
from sftrigger.core.config import settings
from sftrigger.core.db import SessionLocal
from sftrigger.core.logging import get_logger
from sftrigger.salesforce.client import SalesforceClient
from sftrigger.salesforce.credentials import StaticCredentialResolver
from sftrigger.services.trigger_service import TriggerService


log = get_logger("sftrigger")

# Background task handle
_poll_task: Optional[asyncio.Task] = None


def run_migrations() -> None:
    """Execute Alembic migrations programmatically on startup."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    # Keep Loguru interception in place of alembic.ini logging
    alembic_cfg.attributes["configure_logger"] = False
    log.info("Running Alembic migrations to head")
    command.upgrade(alembic_cfg, "head")
    log.info("Alembic migrations applied")


async def run_poll_cycle() -> None:
    """Poll every enabled trigger once."""
    db = SessionLocal()
    try:
        service = TriggerService(db, SalesforceClient(StaticCredentialResolver()))
        results = await service.run_all()

        for trigger_id, result in results.items():
            if result.get("success"):
                log.debug(f"Trigger {trigger_id}: {result.get('status')} ({result.get('records_found', 0)} records)")
            else:
                log.error(f"Trigger {trigger_id}: failed - {result.get('error', 'unknown error')}")
    except Exception as exc:
        log.exception(f"Poll cycle failed: {exc}")
    finally:
        db.close()


async def scheduled_poll_task() -> None:
    """Background task that polls all triggers at the configured interval.

    Cycles run back to back, so a trigger never has two polls in flight.
    """
    interval = settings.POLL_INTERVAL_SECONDS
    log.info(f"Scheduled poll task started (interval: {interval}s)")

    while True:
        try:
            await run_poll_cycle()
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            log.info("Scheduled poll task cancelled")
            break


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _poll_task

    log.info(f"Starting application in {settings.ENV.upper()} mode")

    try:
        run_migrations()
    except Exception:
        log.exception("Failed to apply migrations on startup")
        raise

    if settings.POLL_ENABLED:
        log.info("Starting scheduled poll background task...")
        _poll_task = asyncio.create_task(scheduled_poll_task())
    else:
        log.info("Scheduled polling is disabled (POLL_ENABLED=false)")

    yield

    log.info("Shutting down services...")

    if _poll_task:
        log.info("Cancelling scheduled poll task...")
        _poll_task.cancel()
        try:
            await _poll_task
        except asyncio.CancelledError:
            pass

    log.info("Application shutdown complete")


app = FastAPI(
    title="Salesforce Trigger Service",
    description="Polling triggers for Salesforce record changes",
    version="1.0.0",
    lifespan=lifespan,
    # Disable docs in production for security
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    debug=settings.debug_enabled,
)


app.include_router(health.router)
app.include_router(stats.router)
app.include_router(triggers.router)
