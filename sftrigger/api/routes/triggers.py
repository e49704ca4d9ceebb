"""Trigger routes - Define triggers and run polls on demand."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from sftrigger.api.deps import get_salesforce_client, get_trigger_service
from sftrigger.core.errors import ConfigurationError, FetchError, SalesforceApiError, TriggerNotFoundError
from sftrigger.core.logging import get_logger
from sftrigger.models.triggers import TriggerDefinition
from sftrigger.salesforce.client import SalesforceClient
from sftrigger.salesforce.selector import TRIGGER_ON_OPTIONS
from sftrigger.schemas.api import CustomObjectOption, PollResponse, TriggerCreate, TriggerOnOption, TriggerOut
from sftrigger.services.trigger_service import TriggerService

router = APIRouter(prefix="/triggers", tags=["triggers"])
log = get_logger("trigger_routes")


def _trigger_out(trigger: TriggerDefinition) -> TriggerOut:
    return TriggerOut(
        id=str(trigger.id),
        name=trigger.name,
        trigger_on=trigger.trigger_on,
        custom_object=trigger.custom_object,
        webhook_url=trigger.webhook_url,
        enabled=trigger.enabled,
        created_at=trigger.created_at,
    )


@router.get("/options", response_model=list[TriggerOnOption])
def trigger_on_options():
    """Selections a trigger can watch for."""
    return TRIGGER_ON_OPTIONS


@router.get("/custom-objects", response_model=list[CustomObjectOption])
async def custom_objects(client: SalesforceClient = Depends(get_salesforce_client)):
    """Custom objects available in the connected org, sorted by label."""
    try:
        return await client.list_custom_objects()
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except SalesforceApiError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


@router.post("", response_model=TriggerOut, status_code=status.HTTP_201_CREATED)
def create_trigger(body: TriggerCreate, service: TriggerService = Depends(get_trigger_service)):
    try:
        trigger = service.create_trigger(
            name=body.name,
            trigger_on=body.trigger_on,
            custom_object=body.custom_object,
            webhook_url=body.webhook_url,
            enabled=body.enabled,
        )
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return _trigger_out(trigger)


@router.get("", response_model=list[TriggerOut])
def list_triggers(
    enabled_only: bool = Query(False, description="Only return enabled triggers"),
    service: TriggerService = Depends(get_trigger_service),
):
    return [_trigger_out(t) for t in service.list_triggers(enabled_only=enabled_only)]


@router.get("/{trigger_id}", response_model=TriggerOut)
def get_trigger(trigger_id: str, service: TriggerService = Depends(get_trigger_service)):
    try:
        return _trigger_out(service.get_trigger(trigger_id))
    except TriggerNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.delete("/{trigger_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_trigger(trigger_id: str, service: TriggerService = Depends(get_trigger_service)):
    try:
        service.delete_trigger(trigger_id)
    except TriggerNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post("/{trigger_id}/poll", response_model=PollResponse)
async def poll_trigger(
    trigger_id: str,
    manual: bool = Query(False, description="Ignore the window and fetch the latest record"),
    service: TriggerService = Depends(get_trigger_service),
):
    """
    Run one poll for a trigger.

    A scheduled-style poll queries changes since the stored checkpoint; a
    manual poll returns at most the most recent record. Both advance the
    checkpoint on success.
    """
    log.info(f"Poll requested for trigger {trigger_id} (manual={manual})")
    try:
        result = await service.run(trigger_id, manual=manual)
    except TriggerNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except FetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.context())

    return PollResponse(
        trigger_id=result["trigger_id"],
        status=result["status"],
        records_found=result["records_found"],
        records=result["records"],
        window_start=result["window_start"],
        window_end=result["window_end"],
        checkpoint=result["checkpoint"],
    )
