"""Shared fixtures: in-memory database and fake Salesforce collaborators."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sftrigger.models import Base


class FakeFetcher:
    """Paged fetcher double that records queries and returns canned rows."""

    def __init__(self, records=None, error=None):
        self.records = list(records or [])
        self.error = error
        self.queries = []

    async def fetch_all(self, query, property_name="records"):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.records)

    async def list_custom_objects(self):
        return [{"name": "Invoice", "value": "Invoice__c"}]


@pytest.fixture
def fetcher_factory():
    return FakeFetcher


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
