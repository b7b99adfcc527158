"""
Snipcart resource table.

Every remote resource the REST layer talks to is declared here once: its path
(template), the cache name prefix, the query options Snipcart recognizes for it
and the defaults that are always sent.
"""

import hashlib
import string
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import quote

import httpx

CACHE_NAMESPACE = "SnipWire"
CACHE_EXPIRE_DEFAULT = 900  # max. cache expiration time in seconds

CACHE_PREFIX_DASHBOARD = "Dashboard"


@dataclass(frozen=True)
class Resource:
    """A Snipcart REST resource."""

    name: str
    path: str
    cache_prefix: str
    allowed_options: frozenset[str] = field(default_factory=frozenset)
    defaults: Mapping[str, Any] = field(default_factory=dict)

    @property
    def id_field(self) -> str | None:
        """Name of the first {placeholder} in path, None for collections."""
        for _, field_name, _, _ in string.Formatter().parse(self.path):
            if field_name:
                return field_name
        return None

    def url_path(self, **ids: str) -> str:
        """Path with {placeholders} filled in, each id quoted as one segment."""
        if not ids:
            return self.path
        return self.path.format(**{k: quote(str(v), safe="") for k, v in ids.items()})

    def filter_options(self, options: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Drop unrecognized options and fill in defaults."""
        merged = dict(self.defaults)
        for name, value in (options or {}).items():
            if name in self.allowed_options:
                merged[name] = value
        return merged


def _resource(name, path, cache_prefix, allowed=(), defaults=None) -> Resource:
    return Resource(
        name=name,
        path=path,
        cache_prefix=cache_prefix,
        allowed_options=frozenset(allowed),
        defaults=defaults or {},
    )


PAGING_DEFAULTS = {"offset": 0, "limit": 20}

ORDERS = _resource(
    "orders",
    "orders",
    "Orders",
    ("offset", "limit", "status", "paymentStatus", "invoiceNumber", "placedBy",
     "from", "to", "format"),
    PAGING_DEFAULTS,
)
ORDER_DETAIL = _resource("order-by-token", "orders/{token}", "OrderDetail")
ORDER_NOTIFICATIONS = _resource(
    "order-notifications",
    "orders/{token}/notifications",
    "OrdersNotifications",
    ("type", "deliveryMethod", "message"),
    {"type": "TrackingNumber", "deliveryMethod": "Email"},
)
ORDER_REFUNDS = _resource(
    "order-refunds", "orders/{token}/refunds", "OrdersRefunds", ("amount", "comment")
)
SUBSCRIPTIONS = _resource(
    "subscriptions",
    "subscriptions",
    "Subscriptions",
    ("offset", "limit", "status", "userDefinedPlanName",
     "userDefinedCustomerNameOrEmail", "from", "to"),
    PAGING_DEFAULTS,
)
SUBSCRIPTION_DETAIL = _resource(
    "subscription-by-id", "subscriptions/{id}", "SubscriptionDetail"
)
CUSTOMERS = _resource(
    "customers",
    "customers",
    "Customers",
    ("offset", "limit", "status", "email", "name", "from", "to"),
    PAGING_DEFAULTS,
)
CUSTOMER_DETAIL = _resource("customer-by-id", "customers/{id}", "CustomerDetail")
CUSTOMER_ORDERS = _resource(
    "customer-orders", "customers/{id}/orders", "CustomersOrders"
)
PRODUCTS = _resource(
    "products",
    "products",
    "Products",
    ("offset", "limit", "userDefinedId", "keywords", "archived", "excludeZeroSales",
     "orderBy", "from", "to"),
    {**PAGING_DEFAULTS, "orderBy": "SalesValue"},
)
PRODUCT_DETAIL = _resource(
    "product-by-id",
    "products/{id}",
    "ProductDetail",
    ("inventoryManagementMethod", "variants", "stock", "allowOutOfStockPurchases"),
)
DISCOUNTS = _resource("discounts", "discounts", "Discounts")
DISCOUNT_DETAIL = _resource("discount-by-id", "discounts/{id}", "DiscountDetail")
ABANDONED_CARTS = _resource(
    "abandoned-carts",
    "carts/abandoned",
    "CartsAbandoned",
    ("limit", "continuationToken", "timeRange", "minimalValue", "email"),
    {"limit": 50, "continuationToken": None},
)
ABANDONED_CART_DETAIL = _resource(
    "abandoned-cart-by-id", "carts/abandoned/{id}", "CartAbandonedDetail"
)
SETTINGS = _resource("settings", "settings/general", "Settings")
SETTINGS_DOMAIN = _resource("settings-domain", "settings/domain", "SettingsDomain")
PERFORMANCE = _resource(
    "performance-stats", "data/performance", "Performance", ("from", "to")
)
SALES = _resource(
    "sales-stats", "data/orders/sales", "OrdersSales", ("from", "to", "currency")
)
ORDER_COUNTS = _resource(
    "order-counts", "data/orders/count", "OrdersCount", ("from", "to", "currency")
)

RESOURCES: dict[str, Resource] = {
    r.name: r
    for r in (
        ORDERS,
        ORDER_DETAIL,
        ORDER_NOTIFICATIONS,
        ORDER_REFUNDS,
        SUBSCRIPTIONS,
        SUBSCRIPTION_DETAIL,
        CUSTOMERS,
        CUSTOMER_DETAIL,
        CUSTOMER_ORDERS,
        PRODUCTS,
        PRODUCT_DETAIL,
        DISCOUNTS,
        DISCOUNT_DETAIL,
        ABANDONED_CARTS,
        ABANDONED_CART_DETAIL,
        SETTINGS,
        SETTINGS_DOMAIN,
        PERFORMANCE,
        SALES,
        ORDER_COUNTS,
    )
}


def build_query(options: Mapping[str, Any]) -> str:
    """
    Canonical URL query string for options (with leading "?").

    Options are sorted by name so the same set of options always yields the
    same string. None values are left out, booleans become "true"/"false".
    """
    items = sorted((k, v) for k, v in options.items() if v is not None)
    if not items:
        return ""
    return "?" + str(httpx.QueryParams(items))


def fingerprint(value: str) -> str:
    """md5 hex digest used to segment cache names."""
    return hashlib.md5(value.encode()).hexdigest()


def cache_name(prefix: str, value: str | None = None) -> str:
    """Cache name inside CACHE_NAMESPACE: "<prefix>.<md5(value)>" or bare prefix."""
    if value is None:
        return prefix
    return f"{prefix}.{fingerprint(value)}"
