"""
Message texts (info, warning, error) used by the REST layer.
"""

MESSAGES = {
    "no_headers": "Missing request headers for Snipcart REST connection",
    "connection_failed": "Connection to Snipcart failed",
    "cache_refreshed": "Snipcart cache for this section refreshed",
    "full_cache_refreshed": "Full Snipcart cache refreshed",
    "dashboard_no_concurrency": (
        "Concurrent requests not available - "
        "the SnipWire Dashboard will respond very slow without"
    ),
    "no_order_token": "No order token provided",
    "no_subscription_id": "No subscription ID provided",
    "no_cart_id": "No cart ID provided",
    "no_customer_id": "No customer ID provided",
    "no_product_id": "No product ID provided",
    "no_product_url": "No product URL provided",
    "no_userdefined_id": "No userdefined ID provided",
    "no_discount_id": "No discount ID provided",
    "product_not_found": "No product found for this userdefined ID",
    "invalid_date": "Invalid ISO 8601 date",
}


def get_messages_text(key: str) -> str:
    """Returns the message text for key (empty if key not found)."""
    return MESSAGES.get(key, "")
