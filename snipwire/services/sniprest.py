"""
SnipREST - service class for the Snipcart REST API.

Every read operation goes through the CacheStore: a query is turned into a
cache name, served from cache when possible and fetched from Snipcart on a
miss. All operations return a result envelope, a dict mapping a result key
(resource path, optionally with identifier) to a ResourceResult.

Snipcart only accepts application/json, uses HTTP Basic Auth with the secret
API key as user name and an empty password.
"""

import base64
from dataclasses import dataclass, field
from typing import Any, Mapping

from loguru import logger

from snipwire.services import resources
from snipwire.services.cache import EXPIRE_NEVER, EXPIRE_NOW, CacheStore, Expires
from snipwire.services.errors import (
    AuthNotConfiguredError,
    DecodeError,
    MissingIdentifierError,
    ProductNotFoundError,
    RemoteCallFailedError,
)
from snipwire.services.messages import get_messages_text
from snipwire.services.resources import (
    CACHE_EXPIRE_DEFAULT,
    CACHE_NAMESPACE,
    CACHE_PREFIX_DASHBOARD,
    Resource,
    build_query,
    cache_name,
)
from snipwire.services.transport import HttpRequest, HttpResponse, HttpxTransport, Transport
from snipwire.settings import Settings, global_settings


@dataclass
class ResourceResult:
    """Content, HTTP status and error of one remote result."""

    content: Any = field(default_factory=dict)
    http_code: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and self.http_code is not None
            and 200 <= self.http_code < 300
        )

    def raise_for_error(self, result_key: str = "") -> None:
        """Raise RemoteCallFailedError if this result reports a failure."""
        if not self.ok:
            raise RemoteCallFailedError(result_key, self.http_code, self.error)


ResultEnvelope = dict[str, ResourceResult]


def read_json(response: HttpResponse) -> tuple[Any | None, str | None]:
    """
    Decode a transport response.

    Returns:
        (payload, error) - payload is None if the request failed or the body
        is not valid JSON
    """
    if not response.ok:
        return None, response.error
    try:
        return response.json(), None
    except DecodeError as e:
        logger.warning(str(e))
        return None, str(e)


def build_headers(api_key: str) -> dict[str, str]:
    """Headers required by Snipcart (empty if no API key is configured)."""
    if not api_key:
        return {}
    credentials = base64.b64encode(f"{api_key}:".encode()).decode()
    return {
        "cache-control": "no-cache",
        "Authorization": f"Basic {credentials}",
        "Accept": "application/json",
    }


class SnipREST:
    """
    Cached access to the Snipcart REST API.

    Usage:
        sniprest = SnipREST()

        data = await sniprest.get_order("tok123")
        result = data["orders/tok123"]
        if result.ok:
            print(result.content["total"])

        # List queries with options, forced past the cache
        data = await sniprest.get_orders_items(
            {"status": "Processed", "limit": 50},
            force_refresh=True,
        )
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cache: CacheStore | None = None,
        transport: Transport | None = None,
    ):
        self.settings = settings if settings is not None else global_settings
        self.cache = cache or CacheStore(
            max_size=self.settings.cache_max_size,
            debug=self.settings.debug,
        )
        self.transport = transport or HttpxTransport(
            timeout=self.settings.http_timeout,
            max_connections=self.settings.max_connections,
            concurrent=self.settings.concurrent_requests,
        )
        self.api_endpoint = self.settings.api_endpoint.rstrip("/") + "/"
        self._headers = build_headers(self.settings.active_api_key)

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def has_headers(self) -> bool:
        return bool(self._headers)

    @staticmethod
    def get_messages_text(key: str) -> str:
        return get_messages_text(key)

    def build_url(self, resource: Resource, query: str = "", **ids: str) -> str:
        """Full API URL of resource (with optional query string)."""
        return self.api_endpoint + resource.url_path(**ids) + query

    def ensure_headers(self) -> None:
        if not self._headers:
            message = get_messages_text("no_headers")
            logger.error(message)
            raise AuthNotConfiguredError(message, message_key="no_headers")

    def _require_identifier(self, value: str | None, message_key: str) -> None:
        if not value:
            message = get_messages_text(message_key)
            logger.error(message)
            raise MissingIdentifierError(message, message_key=message_key)

    # Cached fetching

    async def _fetch_cached(
        self,
        result_key: str,
        name: str,
        url: str,
        expires: Expires,
        force_refresh: bool,
        key: str = "",
    ) -> ResultEnvelope:
        """
        Fetch url through the cache and wrap it into a result envelope.

        A result served from cache reports HTTP 200 and no error, as no
        request was made.
        """
        if force_refresh:
            await self.cache.delete_for(CACHE_NAMESPACE, name)

        http_code: int | None = 200
        error: str | None = None

        async def produce() -> Any | None:
            nonlocal http_code, error
            response = await self.transport.send(HttpRequest(url=url, headers=self.headers))
            payload, error = read_json(response)
            http_code = response.status_code
            return payload

        payload = await self.cache.get_for(CACHE_NAMESPACE, name, expires, produce)

        if key and isinstance(payload, dict) and key in payload:
            payload = payload[key]
        if payload is None:
            payload = [] if key else {}

        return {result_key: ResourceResult(content=payload, http_code=http_code, error=error)}

    async def _get_list(
        self,
        resource: Resource,
        key: str,
        options: Mapping[str, Any] | None,
        expires: Expires,
        force_refresh: bool,
    ) -> ResultEnvelope:
        self.ensure_headers()

        query = build_query(resource.filter_options(options))
        return await self._fetch_cached(
            result_key=resource.path,
            name=cache_name(resource.cache_prefix, query),
            url=self.build_url(resource, query),
            expires=expires,
            force_refresh=force_refresh,
            key=key,
        )

    async def _get_detail(
        self,
        resource: Resource,
        identifier: str,
        message_key: str,
        expires: Expires,
        force_refresh: bool,
    ) -> ResultEnvelope:
        self.ensure_headers()
        self._require_identifier(identifier, message_key)

        path = resource.path.split("/{")[0]
        return await self._fetch_cached(
            result_key=f"{path}/{identifier}",
            name=cache_name(resource.cache_prefix, identifier),
            url=self.build_url(resource, **{resource.id_field: identifier}),
            expires=expires,
            force_refresh=force_refresh,
        )

    # Settings

    async def get_settings(
        self,
        key: str = "",
        expires: Expires = EXPIRE_NEVER,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """
        Get the general store settings.

        Settings are configuration data: cached until explicitly refreshed
        unless a finite expires is given.
        """
        self.ensure_headers()
        return await self._fetch_cached(
            result_key=resources.SETTINGS.path,
            name=cache_name(resources.SETTINGS.cache_prefix),
            url=self.build_url(resources.SETTINGS),
            expires=expires,
            force_refresh=force_refresh,
            key=key,
        )

    async def refresh_settings(self) -> ResultEnvelope:
        """Completely refresh the settings cache."""
        return await self.get_settings(expires=EXPIRE_NEVER, force_refresh=True)

    # Orders

    async def get_orders(
        self,
        key: str = "",
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """
        Get orders.

        Args:
            key: Payload field to return (e.g. "items"), full payload if empty
            options: Filter options sent as URL params:
                offset, limit (defaults 0 and 20), status, paymentStatus,
                invoiceNumber, placedBy, from, to, format ("Excerpt")
            expires: Cache lifetime in seconds
            force_refresh: Drop the cached result first
        """
        return await self._get_list(resources.ORDERS, key, options, expires, force_refresh)

    async def get_orders_items(
        self,
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        return await self.get_orders("items", options, expires, force_refresh)

    async def get_order(
        self,
        token: str,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """Get a single order by its Snipcart token."""
        return await self._get_detail(
            resources.ORDER_DETAIL, token, "no_order_token", expires, force_refresh
        )

    async def delete_order_cache(self, token: str) -> None:
        """Drop the cached detail of a single order."""
        self._require_identifier(token, "no_order_token")
        await self.cache.delete_for(
            CACHE_NAMESPACE, cache_name(resources.ORDER_DETAIL.cache_prefix, token)
        )

    async def post_order_notification(
        self, token: str, options: Mapping[str, Any] | None = None
    ) -> ResultEnvelope:
        """
        Create a notification on an order (may send an email to the customer).

        Args:
            token: Snipcart order token
            options: type (default "TrackingNumber"), deliveryMethod
                (default "Email"), message
        """
        self.ensure_headers()
        self._require_identifier(token, "no_order_token")

        resource = resources.ORDER_NOTIFICATIONS
        result = await self._send(
            "POST",
            self.build_url(resource, token=token),
            resource.filter_options(options),
            result_key=token,
        )
        if result[token].ok:
            await self._invalidate_order(token)
        return result

    async def post_order_refund(
        self, token: str, options: Mapping[str, Any] | None = None
    ) -> ResultEnvelope:
        """
        Create a refund on an order.

        Args:
            token: Snipcart order token
            options: amount (required by Snipcart), comment (internal note)
        """
        self.ensure_headers()
        self._require_identifier(token, "no_order_token")

        resource = resources.ORDER_REFUNDS
        result = await self._send(
            "POST",
            self.build_url(resource, token=token),
            resource.filter_options(options),
            result_key=token,
        )
        if result[token].ok:
            await self._invalidate_order(token)
        return result

    # Subscriptions

    async def get_subscriptions(
        self,
        key: str = "",
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """
        Get subscriptions.

        Options: offset, limit (defaults 0 and 20), status, userDefinedPlanName,
        userDefinedCustomerNameOrEmail, from, to.
        """
        return await self._get_list(
            resources.SUBSCRIPTIONS, key, options, expires, force_refresh
        )

    async def get_subscriptions_items(
        self,
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        return await self.get_subscriptions("items", options, expires, force_refresh)

    async def get_subscription(
        self,
        subscription_id: str,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        return await self._get_detail(
            resources.SUBSCRIPTION_DETAIL,
            subscription_id,
            "no_subscription_id",
            expires,
            force_refresh,
        )

    # Abandoned carts

    async def get_abandoned_carts(
        self,
        key: str = "",
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """
        Get abandoned carts.

        Snipcart has no offset pagination here: use continuationToken and
        hasMoreResults from the response to load more.

        Options: limit (default 50), continuationToken, timeRange,
        minimalValue, email.
        """
        return await self._get_list(
            resources.ABANDONED_CARTS, key, options, expires, force_refresh
        )

    async def get_abandoned_carts_items(
        self,
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        return await self.get_abandoned_carts("items", options, expires, force_refresh)

    async def get_abandoned_cart(
        self,
        cart_id: str,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        return await self._get_detail(
            resources.ABANDONED_CART_DETAIL, cart_id, "no_cart_id", expires, force_refresh
        )

    # Customers

    async def get_customers(
        self,
        key: str = "",
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """
        Get customers.

        Options: offset, limit (defaults 0 and 20), status (Confirmed,
        Unconfirmed), email, name, from, to.
        """
        return await self._get_list(
            resources.CUSTOMERS, key, options, expires, force_refresh
        )

    async def get_customers_items(
        self,
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        return await self.get_customers("items", options, expires, force_refresh)

    async def get_customer(
        self,
        customer_id: str,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        return await self._get_detail(
            resources.CUSTOMER_DETAIL, customer_id, "no_customer_id", expires, force_refresh
        )

    async def get_customers_orders(
        self,
        customer_id: str,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """Get all orders of a customer (keyed by the path template)."""
        self.ensure_headers()
        self._require_identifier(customer_id, "no_customer_id")

        resource = resources.CUSTOMER_ORDERS
        return await self._fetch_cached(
            result_key=resource.path,
            name=cache_name(resource.cache_prefix, customer_id),
            url=self.build_url(resource, id=customer_id),
            expires=expires,
            force_refresh=force_refresh,
        )

    # Products

    async def get_products(
        self,
        key: str = "",
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """
        Get products.

        Options: offset, limit (defaults 0 and 20), userDefinedId, keywords,
        archived, excludeZeroSales, orderBy (default "SalesValue"), from, to.
        """
        return await self._get_list(
            resources.PRODUCTS, key, options, expires, force_refresh
        )

    async def get_products_items(
        self,
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        return await self.get_products("items", options, expires, force_refresh)

    async def get_product(
        self,
        product_id: str,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        return await self._get_detail(
            resources.PRODUCT_DETAIL, product_id, "no_product_id", expires, force_refresh
        )

    async def get_product_id(self, user_defined_id: str) -> str:
        """
        Resolve a user defined product id (SKU) to the Snipcart product id.

        Always bypasses the cache.

        Raises:
            MissingIdentifierError: If user_defined_id is empty
            ProductNotFoundError: If no product matches or the request failed
        """
        self._require_identifier(user_defined_id, "no_userdefined_id")

        options = {
            "offset": 0,
            "limit": 1,
            "orderBy": "",
            "userDefinedId": user_defined_id,
        }
        data = await self.get_products_items(options, expires=EXPIRE_NOW)
        result = data[resources.PRODUCTS.path]

        if not result.ok:
            raise ProductNotFoundError(user_defined_id, result.error)
        if not isinstance(result.content, list) or not result.content:
            raise ProductNotFoundError(user_defined_id)
        item = result.content[0]
        if not isinstance(item, dict) or not item.get("id"):
            raise ProductNotFoundError(user_defined_id)
        return item["id"]

    async def post_product(self, fetch_url: str) -> ResultEnvelope:
        """Let Snipcart crawl fetch_url and create the product(s) found there."""
        self.ensure_headers()
        self._require_identifier(fetch_url, "no_product_url")

        result = await self._send(
            "POST",
            self.build_url(resources.PRODUCTS),
            {"fetchUrl": fetch_url},
            result_key=fetch_url,
        )
        if result[fetch_url].ok:
            await self._invalidate_products()
        return result

    async def put_product(
        self, product_id: str, options: Mapping[str, Any] | None = None
    ) -> ResultEnvelope:
        """
        Update a product.

        Options: inventoryManagementMethod (Single, Variant), variants, stock,
        allowOutOfStockPurchases.
        """
        self.ensure_headers()
        self._require_identifier(product_id, "no_product_id")

        resource = resources.PRODUCT_DETAIL
        result = await self._send(
            "PUT",
            self.build_url(resource, id=product_id),
            resource.filter_options(options),
            result_key=product_id,
        )
        if result[product_id].ok:
            await self._invalidate_products(product_id)
        return result

    async def delete_product(self, product_id: str) -> ResultEnvelope:
        """Archive a product (Snipcart never really deletes products)."""
        self.ensure_headers()
        self._require_identifier(product_id, "no_product_id")

        result = await self._send(
            "DELETE",
            self.build_url(resources.PRODUCT_DETAIL, id=product_id),
            None,
            result_key=product_id,
        )
        if result[product_id].ok:
            await self._invalidate_products(product_id)
        return result

    # Discounts

    async def get_discounts(
        self,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """Get all discounts (no pagination, no query options)."""
        self.ensure_headers()
        return await self._fetch_cached(
            result_key=resources.DISCOUNTS.path,
            name=cache_name(resources.DISCOUNTS.cache_prefix),
            url=self.build_url(resources.DISCOUNTS),
            expires=expires,
            force_refresh=force_refresh,
        )

    async def get_discount(
        self,
        discount_id: str,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        return await self._get_detail(
            resources.DISCOUNT_DETAIL, discount_id, "no_discount_id", expires, force_refresh
        )

    # Statistics

    async def get_performance(
        self,
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """Store performance; options from/to as UNIX timestamps."""
        return await self._get_list(
            resources.PERFORMANCE, "", options, expires, force_refresh
        )

    async def get_sales_count(
        self,
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """Amount of sales by day; options from, to, currency."""
        return await self._get_list(resources.SALES, "", options, expires, force_refresh)

    async def get_orders_count(
        self,
        options: Mapping[str, Any] | None = None,
        expires: Expires = CACHE_EXPIRE_DEFAULT,
        force_refresh: bool = False,
    ) -> ResultEnvelope:
        """Number of orders by day; options from, to, currency."""
        return await self._get_list(
            resources.ORDER_COUNTS, "", options, expires, force_refresh
        )

    # Connection and cache maintenance

    async def test_connection(self) -> bool | str:
        """
        Snipcart REST API connection test.

        Returns:
            True on success, the error text otherwise
        """
        self.ensure_headers()
        response = await self.transport.send(
            HttpRequest(url=self.build_url(resources.SETTINGS_DOMAIN), headers=self.headers)
        )
        if response.ok:
            return True
        logger.error(f"{get_messages_text('connection_failed')}: {response.error}")
        return response.error or get_messages_text("connection_failed")

    async def reset_full_cache(self) -> int:
        """Reset the full Snipcart cache for all sections."""
        count = await self.cache.delete_for(CACHE_NAMESPACE)
        logger.info(f"{get_messages_text('full_cache_refreshed')} ({count} entries)")
        return count

    async def _invalidate_products(self, product_id: str | None = None) -> None:
        """Drop cached product lists (and detail) after a product mutation."""
        if product_id:
            await self.cache.delete_for(
                CACHE_NAMESPACE, cache_name(resources.PRODUCT_DETAIL.cache_prefix, product_id)
            )
        await self.cache.invalidate_for(CACHE_NAMESPACE, f"{resources.PRODUCTS.cache_prefix}.")
        await self.cache.invalidate_for(CACHE_NAMESPACE, f"{CACHE_PREFIX_DASHBOARD}.")

    async def _invalidate_order(self, token: str) -> None:
        """Drop cached order lists and detail after an order mutation."""
        await self.cache.delete_for(
            CACHE_NAMESPACE, cache_name(resources.ORDER_DETAIL.cache_prefix, token)
        )
        await self.cache.invalidate_for(CACHE_NAMESPACE, f"{resources.ORDERS.cache_prefix}.")
        await self.cache.invalidate_for(CACHE_NAMESPACE, f"{CACHE_PREFIX_DASHBOARD}.")

    async def _send(
        self,
        method: str,
        url: str,
        json_data: Any,
        result_key: str,
    ) -> ResultEnvelope:
        """Uncached request with JSON body."""
        response = await self.transport.send(
            HttpRequest(url=url, method=method, headers=self.headers, json_data=json_data)
        )
        payload, error = read_json(response)
        return {
            result_key: ResourceResult(
                content=payload if payload is not None else {},
                http_code=response.status_code,
                error=error,
            )
        }

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "SnipREST":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
