"""
Unit tests for the dashboard aggregation.
"""

from datetime import datetime

import pytest
from loguru import logger

from snipwire.services.dashboard import (
    LEG_NAMES,
    ConcurrentDashboardStrategy,
    DashboardAggregator,
    SequentialDashboardStrategy,
    build_dashboard_queries,
)
from snipwire.services.errors import AuthNotConfiguredError, InvalidDateError
from snipwire.services.sniprest import SnipREST
from snipwire.settings import Settings

from tests.conftest import API_ENDPOINT, FakeTransport

START = "2024-01-01"
END = "2024-01-31"

FIXTURES = {
    "data/performance": {"ordersSales": {"value": 1200}},
    "data/orders/sales": {"labels": ["2024-01-01"], "data": [100]},
    "data/orders/count": {"labels": ["2024-01-01"], "data": [3]},
    "customers": {"items": [{"id": "c1"}]},
    "products": {"items": [{"id": "p1"}]},
    "orders": {"items": [{"token": "o1"}]},
}


def load_fixtures(transport: FakeTransport) -> None:
    for path, body in FIXTURES.items():
        transport.add(path, body)


@pytest.fixture
def sequential_transport():
    return FakeTransport(concurrent=False)


class TestDashboardQueries:
    def test_fixed_leg_order(self):
        queries = build_dashboard_queries(START, END, "eur")
        assert [q.name for q in queries] == list(LEG_NAMES)

    def test_stats_legs_use_unix_timestamps(self):
        queries = build_dashboard_queries(START, END, "eur")
        start_ts = int(datetime.fromisoformat(START).timestamp())

        assert queries[0].options == {"from": start_ts, "to": int(datetime.fromisoformat(END).timestamp())}
        assert queries[1].options["currency"] == "eur"
        assert queries[2].options["from"] == start_ts

    def test_list_legs_use_iso_dates(self):
        queries = {q.name: q for q in build_dashboard_queries(START, END, "eur")}

        assert queries["customers"].options["from"] == START
        assert queries["products"].options["excludeZeroSales"] == "true"
        assert queries["products"].options["orderBy"] == "SalesValue"
        assert queries["orders"].options["format"] == "Excerpt"
        assert all(queries[n].options["limit"] == 10 for n in ("customers", "products", "orders"))

    def test_utc_suffix_is_accepted(self):
        queries = build_dashboard_queries("2024-01-01T00:00:00Z", END, "eur")
        assert queries[0].options["from"] == 1704067200

    @pytest.mark.parametrize("start", ["not-a-date", "2024-13-01"])
    def test_invalid_date_raises(self, start):
        with pytest.raises(InvalidDateError) as exc_info:
            build_dashboard_queries(start, END, "eur")
        assert exc_info.value.message_key == "invalid_date"

    def test_empty_range_is_left_out(self):
        queries = build_dashboard_queries("", "", "eur")
        assert queries[0].query == ""
        assert queries[3].query == "?limit=10&offset=0"


class TestDashboardAggregator:
    @pytest.mark.asyncio
    async def test_concurrent_path_issues_one_batch(self, sniprest, transport):
        load_fixtures(transport)
        aggregator = DashboardAggregator(sniprest)

        data = await aggregator.get_dashboard_data(START, END, "eur")

        assert isinstance(aggregator.strategy, ConcurrentDashboardStrategy)
        assert len(transport.batches) == 1
        assert len(transport.batches[0]) == 6
        assert not data.degraded
        assert not data.has_warnings

        # Envelopes are keyed by full request URL
        first_key = next(iter(data.legs[0]))
        assert first_key.startswith(f"{API_ENDPOINT}data/performance?")
        assert data.leg("performance").content == FIXTURES["data/performance"]

    @pytest.mark.asyncio
    async def test_sequential_path_when_no_concurrency(self, settings, cache, sequential_transport):
        load_fixtures(sequential_transport)
        sniprest = SnipREST(settings=settings, cache=cache, transport=sequential_transport)
        aggregator = DashboardAggregator(sniprest)

        data = await aggregator.get_dashboard_data(START, END, "eur")

        assert isinstance(aggregator.strategy, SequentialDashboardStrategy)
        assert sequential_transport.batches == []
        assert len(sequential_transport.calls) == 6
        assert data.degraded
        assert data.has_warnings
        assert list(data.legs[3]) == ["customers"]

    @pytest.mark.asyncio
    async def test_sequential_legs_are_not_cached_individually(
        self, settings, cache, sequential_transport
    ):
        sniprest = SnipREST(settings=settings, cache=cache, transport=sequential_transport)
        aggregator = DashboardAggregator(sniprest)

        await aggregator.get_dashboard_data(START, END, "eur")

        # Only the composite entry
        assert cache.get_stats().size == 1

    @pytest.mark.asyncio
    async def test_both_paths_are_equivalent(self, settings, clock):
        from snipwire.services.cache import CacheStore

        concurrent_transport = FakeTransport(concurrent=True)
        sequential_transport = FakeTransport(concurrent=False)
        load_fixtures(concurrent_transport)
        load_fixtures(sequential_transport)

        concurrent = DashboardAggregator(
            SnipREST(settings=settings, cache=CacheStore(clock=clock), transport=concurrent_transport)
        )
        sequential = DashboardAggregator(
            SnipREST(settings=settings, cache=CacheStore(clock=clock), transport=sequential_transport)
        )

        a = await concurrent.get_dashboard_data(START, END, "eur")
        b = await sequential.get_dashboard_data(START, END, "eur")

        assert len(a.legs) == len(b.legs) == 6
        assert a.contents() == b.contents()
        assert [r.url for r in concurrent_transport.calls] == [
            r.url for r in sequential_transport.calls
        ]

    @pytest.mark.asyncio
    async def test_composite_is_cached(self, sniprest, transport):
        aggregator = DashboardAggregator(sniprest)

        await aggregator.get_dashboard_data(START, END, "eur")
        await aggregator.get_dashboard_data(START, END, "eur")
        await aggregator.get_dashboard_data(START, END, "usd")

        assert len(transport.batches) == 2

    @pytest.mark.asyncio
    async def test_mutating_result_does_not_change_cached_composite(self, sniprest, transport):
        load_fixtures(transport)
        aggregator = DashboardAggregator(sniprest)

        data = await aggregator.get_dashboard_data(START, END, "eur")
        data.legs.clear()
        data = await aggregator.get_dashboard_data(START, END, "eur")
        data.leg("products").content["items"].clear()

        data = await aggregator.get_dashboard_data(START, END, "eur")
        assert len(data.legs) == 6
        assert data.leg("products").content == FIXTURES["products"]
        assert len(transport.batches) == 1

    @pytest.mark.asyncio
    async def test_force_refresh(self, sniprest, transport):
        aggregator = DashboardAggregator(sniprest)

        await aggregator.get_dashboard_data(START, END, "eur")
        await aggregator.get_dashboard_data(START, END, "eur", force_refresh=True)

        assert len(transport.batches) == 2

    @pytest.mark.asyncio
    async def test_failed_leg_keeps_other_legs(self, sniprest, transport):
        load_fixtures(transport)
        transport.fail("customers", 500)
        aggregator = DashboardAggregator(sniprest)

        data = await aggregator.get_dashboard_data(START, END, "eur")

        assert data.failed_legs == ["customers"]
        assert data.leg("customers").content == {}
        assert data.leg("customers").http_code == 500
        assert data.leg("orders").content == FIXTURES["orders"]
        assert data.has_warnings

    @pytest.mark.asyncio
    async def test_product_mutation_drops_dashboard_cache(self, sniprest, transport):
        aggregator = DashboardAggregator(sniprest)
        await aggregator.get_dashboard_data(START, END, "eur")

        await sniprest.put_product("p1", {"stock": 1})
        await aggregator.get_dashboard_data(START, END, "eur")

        assert len(transport.batches) == 2

    @pytest.mark.asyncio
    async def test_reset_full_cache_drops_dashboard(self, sniprest, transport):
        aggregator = DashboardAggregator(sniprest)
        await aggregator.get_dashboard_data(START, END, "eur")

        await sniprest.reset_full_cache()
        await aggregator.get_dashboard_data(START, END, "eur")

        assert len(transport.batches) == 2

    @pytest.mark.asyncio
    async def test_missing_headers(self, cache, transport):
        aggregator = DashboardAggregator(
            SnipREST(settings=Settings(), cache=cache, transport=transport)
        )

        with pytest.raises(AuthNotConfiguredError):
            await aggregator.get_dashboard_data(START, END, "eur")
        assert transport.batches == []

    def test_degraded_notice_logged_once(self, settings, cache, sequential_transport):
        messages = []
        handler_id = logger.add(messages.append, level="WARNING")
        try:
            aggregator = DashboardAggregator(
                SnipREST(settings=settings, cache=cache, transport=sequential_transport)
            )
        finally:
            logger.remove(handler_id)

        assert aggregator.degraded
        assert len(messages) == 1
        assert "Concurrent requests not available" in messages[0]
