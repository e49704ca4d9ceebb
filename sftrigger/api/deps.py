"""API dependencies"""

from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from sftrigger.core.db import SessionLocal
from sftrigger.salesforce.client import SalesforceClient
from sftrigger.salesforce.credentials import StaticCredentialResolver
from sftrigger.services.trigger_service import TriggerService


def get_db() -> Generator[Session, None, None]:
    """Database session per request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_salesforce_client() -> SalesforceClient:
    return SalesforceClient(StaticCredentialResolver())


def get_trigger_service(
    db: Session = Depends(get_db),
    client: SalesforceClient = Depends(get_salesforce_client),
) -> TriggerService:
    return TriggerService(db, client)
