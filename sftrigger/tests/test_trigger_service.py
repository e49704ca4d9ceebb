"""Trigger service tests: polls, checkpoints, dispatch and run bookkeeping"""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from sftrigger.core.errors import ConfigurationError, FetchError, SalesforceApiError, TriggerNotFoundError
from sftrigger.services.data_service import DataService
from sftrigger.services.trigger_service import TriggerService, WebhookDispatcher

T1 = datetime(2024, 1, 2, tzinfo=timezone.utc)
T2 = datetime(2024, 1, 3, tzinfo=timezone.utc)
T3 = datetime(2024, 1, 4, tzinfo=timezone.utc)


class Clock:
    def __init__(self, *times):
        self.times = list(times)

    def __call__(self):
        return self.times.pop(0)


class RecordingDispatcher(WebhookDispatcher):
    def __init__(self, error=None):
        super().__init__()
        self.batches = []
        self.windows = []
        self.error = error

    async def dispatch(self, trigger, result):
        if self.error is not None:
            raise self.error
        self.batches.append(list(result.batch))
        self.windows.append((result.window.start, result.window.end))


class SlowFetcher:
    """Holds each query open briefly and counts overlapping fetches."""

    def __init__(self, records):
        self.records = records
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_all(self, query, property_name="records"):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return list(self.records)
        finally:
            self.in_flight -= 1


class TestTriggerDefinitions:
    """Test trigger CRUD"""

    def test_create_normalizes_selection(self, db, fetcher_factory):
        service = TriggerService(db, fetcher_factory())
        trigger = service.create_trigger("Deals", "opportunityUpdated")
        assert trigger.trigger_on == "opportunityUpdated"
        assert trigger.custom_object is None
        assert service.get_trigger(str(trigger.id)).name == "Deals"

    def test_create_custom_object_trigger(self, db, fetcher_factory):
        service = TriggerService(db, fetcher_factory())
        trigger = service.create_trigger("Invoices", "customObjectCreated", custom_object="Invoice__c")
        assert trigger.custom_object == "Invoice__c"

    def test_custom_object_requires_name(self, db, fetcher_factory):
        service = TriggerService(db, fetcher_factory())
        with pytest.raises(ConfigurationError):
            service.create_trigger("Broken", "customObjectCreated")
        assert service.list_triggers() == []

    def test_unknown_trigger(self, db, fetcher_factory):
        service = TriggerService(db, fetcher_factory())
        with pytest.raises(TriggerNotFoundError):
            service.get_trigger("not-a-uuid")
        with pytest.raises(TriggerNotFoundError):
            service.get_trigger("6f1c1a52-5d1e-4c43-9b89-2f0cf2b43b5e")

    def test_delete_removes_checkpoint(self, db, fetcher_factory):
        service = TriggerService(db, fetcher_factory())
        trigger = service.create_trigger("Deals", "opportunityCreated")
        key = str(trigger.id)
        service.checkpoints.set(key, T1)
        db.commit()

        service.delete_trigger(key)
        assert service.checkpoints.get(key) is None
        assert service.list_triggers() == []


class TestTriggerPolling:
    """Test polls through the service"""

    @pytest.mark.asyncio
    async def test_first_poll_then_changes(self, db, fetcher_factory):
        fetcher = fetcher_factory(records=[{"Id": "006A"}])
        dispatcher = RecordingDispatcher()
        service = TriggerService(db, fetcher, dispatcher=dispatcher, clock=Clock(T1, T2))
        trigger = service.create_trigger("Deals", "opportunityUpdated")

        first = await service.run(trigger.id)
        assert first["status"] == "no_items"
        assert first["checkpoint"] == T1
        assert dispatcher.batches == []

        second = await service.run(trigger.id)
        assert second["status"] == "success"
        assert second["records_found"] == 1
        assert second["window_start"] == T1
        assert dispatcher.batches == [[{"Id": "006A"}]]
        assert service.checkpoints.get(str(trigger.id)) == T2

        runs = DataService(db).get_poll_runs(trigger_id=str(trigger.id))
        assert sorted(r.status for r in runs) == ["no_items", "success"]

    @pytest.mark.asyncio
    async def test_fetch_failure_records_run_and_keeps_checkpoint(self, db, fetcher_factory):
        fetcher = fetcher_factory(error=SalesforceApiError("INVALID_SESSION_ID", status_code=401))
        service = TriggerService(db, fetcher, dispatcher=RecordingDispatcher(), clock=Clock(T2))
        trigger = service.create_trigger("Leads", "leadCreated")
        key = str(trigger.id)
        service.checkpoints.set(key, T1)
        db.commit()

        with pytest.raises(FetchError):
            await service.run(key)

        assert service.checkpoints.get(key) == T1
        run = DataService(db).get_latest_poll_run(key)
        assert run.status == "failure"
        assert "INVALID_SESSION_ID" in run.error_message

    @pytest.mark.asyncio
    async def test_dispatch_failure_rolls_back_checkpoint(self, db, fetcher_factory):
        fetcher = fetcher_factory(records=[{"Id": "500A"}])
        dispatcher = RecordingDispatcher(error=httpx.ConnectError("webhook down"))
        service = TriggerService(db, fetcher, dispatcher=dispatcher, clock=Clock(T2))
        trigger = service.create_trigger("Cases", "caseCreated")
        key = str(trigger.id)
        service.checkpoints.set(key, T1)
        db.commit()

        with pytest.raises(httpx.ConnectError):
            await service.run(key)
        assert service.checkpoints.get(key) == T1

    @pytest.mark.asyncio
    async def test_manual_poll(self, db, fetcher_factory):
        fetcher = fetcher_factory(records=[{"Id": "003A"}])
        dispatcher = RecordingDispatcher()
        service = TriggerService(db, fetcher, dispatcher=dispatcher, clock=Clock(T1))
        trigger = service.create_trigger("Contacts", "contactCreated")

        result = await service.run(trigger.id, manual=True)
        assert result["status"] == "success"
        assert fetcher.queries[0].endswith("LIMIT 1")
        assert service.checkpoints.get(str(trigger.id)) == T1

    @pytest.mark.asyncio
    async def test_overlapping_runs_are_serialized(self, db):
        fetcher = SlowFetcher([{"Id": "006A"}])
        dispatcher = RecordingDispatcher()
        service = TriggerService(db, fetcher, dispatcher=dispatcher, clock=Clock(T2, T3))
        trigger = service.create_trigger("Deals", "opportunityCreated")
        key = str(trigger.id)
        service.checkpoints.set(key, T1)
        db.commit()

        first, second = await asyncio.gather(service.run(key), service.run(key))

        assert fetcher.max_in_flight == 1
        assert dispatcher.windows == [(T1, T2), (T2, T3)]
        assert (first["window_start"], second["window_start"]) == (T1, T2)
        assert service.checkpoints.get(key) == T3

    @pytest.mark.asyncio
    async def test_cancelled_poll_marks_run_failed(self, db, fetcher_factory):
        fetcher = fetcher_factory(error=asyncio.CancelledError())
        service = TriggerService(db, fetcher, dispatcher=RecordingDispatcher(), clock=Clock(T2))
        trigger = service.create_trigger("Leads", "leadCreated")
        key = str(trigger.id)
        service.checkpoints.set(key, T1)
        db.commit()

        with pytest.raises(asyncio.CancelledError):
            await service.run(key)

        assert service.checkpoints.get(key) == T1
        run = DataService(db).get_latest_poll_run(key)
        assert run.status == "failure"
        assert run.error_message == "Poll cancelled"
        assert run.ended_at is not None

    @pytest.mark.asyncio
    async def test_run_all_collects_failures(self, db, fetcher_factory):
        fetcher = fetcher_factory()
        service = TriggerService(db, fetcher, dispatcher=RecordingDispatcher(), clock=Clock(T1, T1, T1))
        ok = service.create_trigger("Tasks", "taskCreated")
        service.create_trigger("Paused", "userCreated", enabled=False)
        broken = service.create_trigger("Invoices", "customObjectCreated", custom_object="Invoice__c")
        broken.custom_object = None
        db.commit()

        results = await service.run_all()

        assert set(results) == {str(ok.id), str(broken.id)}
        assert results[str(ok.id)]["success"] is True
        assert results[str(broken.id)]["success"] is False
        assert "custom object" in results[str(broken.id)]["error"]


class TestWebhookDispatcher:
    """Test downstream delivery"""

    @pytest.mark.asyncio
    async def test_posts_batch(self, db, fetcher_factory):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(202)

        dispatcher = WebhookDispatcher(transport=httpx.MockTransport(handler))
        service = TriggerService(db, fetcher_factory(records=[{"Id": "00QA"}]), dispatcher=dispatcher, clock=Clock(T2))
        trigger = service.create_trigger("Leads", "leadUpdated", webhook_url="https://hooks.example.com/sf")
        service.checkpoints.set(str(trigger.id), T1)
        db.commit()

        await service.run(trigger.id)

        assert len(received) == 1
        body = received[0].read()
        assert b'"resource":"Lead"' in body.replace(b" ", b"")
        assert b"00QA" in body

    @pytest.mark.asyncio
    async def test_webhook_error_propagates(self, db, fetcher_factory):
        dispatcher = WebhookDispatcher(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        service = TriggerService(db, fetcher_factory(records=[{"Id": "00QA"}]), dispatcher=dispatcher, clock=Clock(T3))
        trigger = service.create_trigger("Leads", "leadUpdated", webhook_url="https://hooks.example.com/sf")
        service.checkpoints.set(str(trigger.id), T2)
        db.commit()

        with pytest.raises(httpx.HTTPStatusError):
            await service.run(trigger.id)
        assert service.checkpoints.get(str(trigger.id)) == T2
