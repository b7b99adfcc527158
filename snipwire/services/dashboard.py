"""
Dashboard data aggregation.

The dashboard needs six independent Snipcart queries for one date range:
performance, sales by day, order counts by day, top 10 customers, top 10
products and the latest 10 orders. They are fetched as one unit and cached
as one composite entry.

Two strategies fetch the legs:
- ConcurrentDashboardStrategy: one round of concurrent requests
- SequentialDashboardStrategy: six SnipREST calls one after another, used
  when the transport cannot run requests concurrently
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Protocol

from loguru import logger

from snipwire.services import resources
from snipwire.services.cache import EXPIRE_NOW, Expires
from snipwire.services.errors import InvalidDateError
from snipwire.services.messages import get_messages_text
from snipwire.services.resources import (
    CACHE_EXPIRE_DEFAULT,
    CACHE_NAMESPACE,
    CACHE_PREFIX_DASHBOARD,
    Resource,
    build_query,
    cache_name,
)
from snipwire.services.sniprest import ResourceResult, ResultEnvelope, SnipREST, read_json
from snipwire.services.transport import HttpRequest

LEG_NAMES = (
    "performance",
    "sales",
    "orders_count",
    "customers",
    "products",
    "orders",
)


@dataclass(frozen=True)
class DashboardQuery:
    """One leg of the dashboard fetch."""

    name: str
    resource: Resource
    options: dict[str, Any]

    @property
    def query(self) -> str:
        return build_query(self.resource.filter_options(self.options))


def _timestamp(value: str) -> int | None:
    """ISO 8601 date string to UNIX timestamp (data/* resources need those)."""
    if not value:
        return None
    try:
        return int(datetime.fromisoformat(value).timestamp())
    except ValueError as e:
        message = f"{get_messages_text('invalid_date')}: {value!r}"
        logger.error(message)
        raise InvalidDateError(message, message_key="invalid_date") from e


def build_dashboard_queries(start: str, end: str, currency: str) -> list[DashboardQuery]:
    """The six dashboard legs in their fixed order."""
    range_ts = {"from": _timestamp(start), "to": _timestamp(end)}
    range_iso = {"from": start or None, "to": end or None}

    return [
        DashboardQuery("performance", resources.PERFORMANCE, dict(range_ts)),
        DashboardQuery("sales", resources.SALES, {**range_ts, "currency": currency}),
        DashboardQuery(
            "orders_count", resources.ORDER_COUNTS, {**range_ts, "currency": currency}
        ),
        DashboardQuery("customers", resources.CUSTOMERS, {"limit": 10, **range_iso}),
        DashboardQuery(
            "products",
            resources.PRODUCTS,
            {
                "offset": 0,
                "limit": 10,
                "archived": "false",
                "excludeZeroSales": "true",
                "orderBy": "SalesValue",
                **range_iso,
            },
        ),
        DashboardQuery(
            "orders",
            resources.ORDERS,
            {"limit": 10, "format": "Excerpt", **range_iso},
        ),
    ]


@dataclass
class DashboardData:
    """
    Results of all dashboard legs.

    legs holds one result envelope per leg, in LEG_NAMES order. Envelopes from
    the concurrent strategy are keyed by request URL, those from the
    sequential strategy by resource path.
    """

    legs: list[ResultEnvelope] = field(default_factory=list)
    degraded: bool = False

    def leg(self, name: str) -> ResourceResult:
        """The result of a leg by name (see LEG_NAMES)."""
        envelope = self.legs[LEG_NAMES.index(name)]
        return next(iter(envelope.values()))

    def contents(self) -> list[Any]:
        return [self.leg(name).content for name in LEG_NAMES]

    @property
    def failed_legs(self) -> list[str]:
        return [name for name in LEG_NAMES if not self.leg(name).ok]

    @property
    def has_warnings(self) -> bool:
        """Dashboard should show a warning banner."""
        return self.degraded or bool(self.failed_legs)


class DashboardStrategy(Protocol):
    """Fetches the dashboard legs."""

    degraded: bool

    async def fetch(self, queries: list[DashboardQuery]) -> list[ResultEnvelope]: ...


class ConcurrentDashboardStrategy:
    """All legs in one round of concurrent requests."""

    degraded = False

    def __init__(self, sniprest: SnipREST):
        self.sniprest = sniprest

    async def fetch(self, queries: list[DashboardQuery]) -> list[ResultEnvelope]:
        headers = self.sniprest.headers
        requests = [
            HttpRequest(url=self.sniprest.build_url(q.resource, q.query), headers=headers)
            for q in queries
        ]
        responses = await self.sniprest.transport.send_many(requests)

        legs: list[ResultEnvelope] = []
        for request in requests:
            response = responses[request.url]
            payload, error = read_json(response)
            legs.append(
                {
                    request.url: ResourceResult(
                        content=payload if payload is not None else {},
                        http_code=response.status_code,
                        error=error,
                    )
                }
            )

        failed = [url for envelope in legs for url, r in envelope.items() if not r.ok]
        if failed:
            logger.warning(f"Dashboard: {len(failed)} of {len(legs)} requests failed")
        return legs


class SequentialDashboardStrategy:
    """Legs one after another through the SnipREST single operations."""

    degraded = True

    def __init__(self, sniprest: SnipREST):
        self.sniprest = sniprest

    async def fetch(self, queries: list[DashboardQuery]) -> list[ResultEnvelope]:
        sniprest = self.sniprest
        operations: dict[str, Callable[[dict[str, Any]], Awaitable[ResultEnvelope]]] = {
            "performance": lambda o: sniprest.get_performance(o, expires=EXPIRE_NOW),
            "sales": lambda o: sniprest.get_sales_count(o, expires=EXPIRE_NOW),
            "orders_count": lambda o: sniprest.get_orders_count(o, expires=EXPIRE_NOW),
            "customers": lambda o: sniprest.get_customers(options=o, expires=EXPIRE_NOW),
            "products": lambda o: sniprest.get_products(options=o, expires=EXPIRE_NOW),
            "orders": lambda o: sniprest.get_orders(options=o, expires=EXPIRE_NOW),
        }

        legs: list[ResultEnvelope] = []
        for q in queries:
            legs.append(await operations[q.name](q.options))
        return legs


def select_strategy(sniprest: SnipREST) -> DashboardStrategy:
    """Pick the dashboard strategy from the transport capabilities."""
    if sniprest.transport.supports_concurrency:
        return ConcurrentDashboardStrategy(sniprest)

    logger.warning(get_messages_text("dashboard_no_concurrency"))
    return SequentialDashboardStrategy(sniprest)


class DashboardAggregator:
    """
    Fetches and caches the dashboard data.

    Usage:
        aggregator = DashboardAggregator(sniprest)
        data = await aggregator.get_dashboard_data(
            "2024-01-01", "2024-01-31", "eur"
        )
        data.leg("performance").content
    """

    def __init__(self, sniprest: SnipREST, strategy: DashboardStrategy | None = None):
        self.sniprest = sniprest
        self.strategy = strategy or select_strategy(sniprest)

    @property
    def degraded(self) -> bool:
        return self.strategy.degraded

    async def get_dashboard_data(
        self,
        start: str,
        end: str,
        currency: str,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> DashboardData:
        """
        Get all dashboard results.

        Args:
            start: ISO 8601 date string
            end: ISO 8601 date string
            currency: Currency code (e.g. "eur")
            expires: Lifetime of the composite cache entry, in seconds
            force_refresh: Drop the cached composite first
        """
        self.sniprest.ensure_headers()

        name = cache_name(CACHE_PREFIX_DASHBOARD, f"{start}{end}{currency}")
        if force_refresh:
            await self.sniprest.cache.delete_for(CACHE_NAMESPACE, name)

        queries = build_dashboard_queries(start, end, currency)

        async def produce() -> list[ResultEnvelope]:
            return await self.strategy.fetch(queries)

        legs = await self.sniprest.cache.get_for(CACHE_NAMESPACE, name, expires, produce)
        return DashboardData(legs=legs or [], degraded=self.degraded)
