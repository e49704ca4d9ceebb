# Services package
from sftrigger.services.data_service import DataService
from sftrigger.services.trigger_service import DatabaseCheckpointStore, TriggerService, WebhookDispatcher

__all__ = [
    "DataService",
    "DatabaseCheckpointStore",
    "TriggerService",
    "WebhookDispatcher",
]
