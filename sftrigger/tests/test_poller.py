"""Watermark polling tests"""

from datetime import datetime, timezone

import pytest

from sftrigger.core.checkpoints import MemoryCheckpointStore
from sftrigger.core.errors import ConfigurationError, FetchError, SalesforceApiError
from sftrigger.polling.poller import PollWindow, WatermarkPoller, build_filters, poll
from sftrigger.salesforce.selector import ChangeKind, ChangeSelector

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2024, 1, 2, tzinfo=timezone.utc)
T2 = datetime(2024, 1, 3, tzinfo=timezone.utc)
T3 = datetime(2024, 1, 4, tzinfo=timezone.utc)

CREATED = ChangeSelector.parse("opportunityCreated")
UPDATED = ChangeSelector.parse("opportunityUpdated")


def _matches(record, conditions):
    ops = {
        ">=": lambda a, b: a >= b,
        "<": lambda a, b: a < b,
    }
    return all(ops[c.operation](record[c.field], c.value) for c in conditions)


class TestPollFunction:
    """Test the pure poll step"""

    @pytest.mark.asyncio
    async def test_updated_window_filter(self, fetcher_factory):
        fetcher = fetcher_factory(records=[{"Id": "006A"}])
        result = await poll(UPDATED, T0, T1, False, fetcher)

        assert fetcher.queries[0].endswith(
            " FROM Opportunity WHERE LastModifiedDate >= 2024-01-01T00:00:00Z"
            " AND LastModifiedDate < 2024-01-02T00:00:00Z"
            " AND CreatedDate < 2024-01-01T00:00:00Z"
        )
        assert result.batch == [{"Id": "006A"}]
        assert result.checkpoint == T1

    @pytest.mark.asyncio
    async def test_created_window_filter(self, fetcher_factory):
        fetcher = fetcher_factory()
        result = await poll(CREATED, T0, T1, False, fetcher)

        assert fetcher.queries[0].endswith(
            "WHERE CreatedDate >= 2024-01-01T00:00:00Z AND CreatedDate < 2024-01-02T00:00:00Z"
        )
        assert result.batch == []
        assert not result.has_items

    @pytest.mark.asyncio
    @pytest.mark.parametrize("selector", [CREATED, UPDATED])
    async def test_first_poll_only_sets_watermark(self, fetcher_factory, selector):
        fetcher = fetcher_factory(records=[{"Id": "stale"}])
        result = await poll(selector, None, T1, False, fetcher)

        assert result.window.start == result.window.end == T1
        assert result.batch == []
        assert result.checkpoint == T1
        # The query still runs so a broken configuration surfaces on first poll
        assert len(fetcher.queries) == 1

    @pytest.mark.asyncio
    async def test_manual_run_ignores_window(self, fetcher_factory):
        fetcher = fetcher_factory(records=[{"Id": "latest"}])
        result = await poll(UPDATED, T0, T1, True, fetcher)

        query = fetcher.queries[0]
        assert "WHERE" not in query
        assert query.endswith("ORDER BY LastModifiedDate DESC LIMIT 1")
        assert result.batch == [{"Id": "latest"}]
        assert result.checkpoint == T1

    @pytest.mark.asyncio
    async def test_manual_run_without_checkpoint_returns_record(self, fetcher_factory):
        fetcher = fetcher_factory(records=[{"Id": "latest"}])
        result = await poll(CREATED, None, T1, True, fetcher)
        assert result.batch == [{"Id": "latest"}]
        assert fetcher.queries[0].endswith("ORDER BY CreatedDate DESC LIMIT 1")

    @pytest.mark.asyncio
    async def test_missing_custom_object_is_configuration_error(self, fetcher_factory):
        fetcher = fetcher_factory()
        with pytest.raises(ConfigurationError):
            await poll(ChangeSelector.parse("customObjectCreated"), T0, T1, False, fetcher)
        assert fetcher.queries == []

    @pytest.mark.asyncio
    async def test_custom_object_queries_named_object(self, fetcher_factory):
        fetcher = fetcher_factory()
        selector = ChangeSelector.parse("customObjectUpdated", custom_object="Invoice__c")
        await poll(selector, T0, T1, False, fetcher)
        assert " FROM Invoice__c WHERE " in fetcher.queries[0]

    @pytest.mark.asyncio
    async def test_fetch_failure_is_wrapped_with_context(self, fetcher_factory):
        fetcher = fetcher_factory(error=SalesforceApiError("bad query", status_code=400, error_code="MALFORMED_QUERY"))
        with pytest.raises(FetchError) as excinfo:
            await poll(UPDATED, T0, T1, False, fetcher, trigger_id="t-1")

        err = excinfo.value
        assert err.trigger_id == "t-1"
        assert err.resource == "Opportunity"
        assert err.selector == "opportunityUpdated"
        assert isinstance(err.cause, SalesforceApiError)
        assert "MALFORMED_QUERY" in str(err)


class TestFilters:
    """Created and updated changes never overlap"""

    def test_record_created_in_window_is_not_an_update(self):
        created_at = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        record = {"CreatedDate": created_at, "LastModifiedDate": created_at}

        window = PollWindow(T0, T1)
        assert _matches(record, build_filters(ChangeKind.CREATED, window))
        assert not _matches(record, build_filters(ChangeKind.UPDATED, window))

        # Edited again later, but still inside an update window that began before creation
        record["LastModifiedDate"] = datetime(2024, 1, 2, 6, tzinfo=timezone.utc)
        assert not _matches(record, build_filters(ChangeKind.UPDATED, PollWindow(T0, T2)))

    def test_update_after_creation_window_is_reported(self):
        record = {
            "CreatedDate": datetime(2024, 1, 1, 12, tzinfo=timezone.utc),
            "LastModifiedDate": datetime(2024, 1, 2, 6, tzinfo=timezone.utc),
        }
        assert _matches(record, build_filters(ChangeKind.UPDATED, PollWindow(T1, T2)))
        assert not _matches(record, build_filters(ChangeKind.CREATED, PollWindow(T1, T2)))

    def test_window_is_half_open(self):
        on_end = {"CreatedDate": T1, "LastModifiedDate": T1}
        assert not _matches(on_end, build_filters(ChangeKind.CREATED, PollWindow(T0, T1)))
        assert _matches(on_end, build_filters(ChangeKind.CREATED, PollWindow(T1, T2)))


class TestWatermarkPoller:
    """Checkpoint handling across poll sequences"""

    @pytest.mark.asyncio
    async def test_checkpoints_follow_now(self, fetcher_factory):
        store = MemoryCheckpointStore()
        poller = WatermarkPoller("t-1", store, fetcher_factory())

        seen = []
        for now in (T1, T2, T3):
            await poller.run(UPDATED, now)
            seen.append(store.get("t-1"))

        assert seen == [T1, T2, T3]
        assert seen == sorted(seen)

    @pytest.mark.asyncio
    async def test_empty_batch_still_advances_checkpoint(self, fetcher_factory):
        store = MemoryCheckpointStore({"t-1": T0})
        result = await WatermarkPoller("t-1", store, fetcher_factory()).run(CREATED, T1)
        assert result.batch == []
        assert store.get("t-1") == T1

    @pytest.mark.asyncio
    async def test_failure_keeps_existing_checkpoint(self, fetcher_factory):
        store = MemoryCheckpointStore({"t-1": T0})
        failing = fetcher_factory(error=SalesforceApiError("timeout"))

        with pytest.raises(FetchError):
            await WatermarkPoller("t-1", store, failing).run(UPDATED, T1)
        assert store.get("t-1") == T0

        # The retry covers the whole window from the old checkpoint
        healthy = fetcher_factory(records=[{"Id": "006A"}])
        result = await WatermarkPoller("t-1", store, healthy).run(UPDATED, T2)
        assert result.window.start == T0
        assert "LastModifiedDate >= 2024-01-01T00:00:00Z" in healthy.queries[0]
        assert store.get("t-1") == T2

    @pytest.mark.asyncio
    async def test_failure_without_checkpoint_leaves_it_unset(self, fetcher_factory):
        store = MemoryCheckpointStore()
        failing = fetcher_factory(error=SalesforceApiError("invalid session", status_code=401))

        with pytest.raises(FetchError):
            await WatermarkPoller("t-1", store, failing).run(CREATED, T1)
        assert store.get("t-1") is None

        result = await WatermarkPoller("t-1", store, fetcher_factory()).run(CREATED, T2)
        assert result.window.start == result.window.end == T2

    @pytest.mark.asyncio
    async def test_manual_failure_always_raises(self, fetcher_factory):
        store = MemoryCheckpointStore({"t-1": T0})
        failing = fetcher_factory(error=SalesforceApiError("boom"))
        with pytest.raises(FetchError):
            await WatermarkPoller("t-1", store, failing).run(CREATED, T1, is_manual_run=True)
        assert store.get("t-1") == T0

    @pytest.mark.asyncio
    async def test_manual_run_advances_checkpoint(self, fetcher_factory):
        store = MemoryCheckpointStore({"t-1": T0})
        fetcher = fetcher_factory(records=[{"Id": "1"}, {"Id": "2"}])
        await WatermarkPoller("t-1", store, fetcher).run(CREATED, T2, is_manual_run=True)
        assert store.get("t-1") == T2
        assert "LIMIT 1" in fetcher.queries[0]

    @pytest.mark.asyncio
    async def test_configuration_error_does_not_touch_checkpoint(self, fetcher_factory):
        store = MemoryCheckpointStore({"t-1": T0})
        with pytest.raises(ConfigurationError):
            await WatermarkPoller("t-1", store, fetcher_factory()).run(
                ChangeSelector.parse("customObjectUpdated"), T1
            )
        assert store.get("t-1") == T0

    @pytest.mark.asyncio
    async def test_credential_error_is_not_wrapped(self, fetcher_factory):
        store = MemoryCheckpointStore({"t-1": T0})
        fetcher = fetcher_factory(error=ConfigurationError("Salesforce access token is not configured"))
        with pytest.raises(ConfigurationError) as excinfo:
            await WatermarkPoller("t-1", store, fetcher).run(UPDATED, T1)

        assert not isinstance(excinfo.value, FetchError)
        assert store.get("t-1") == T0
