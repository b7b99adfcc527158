"""
Service layer for the Snipcart REST API.

Provides:
- CacheStore: Namespaced cache with TTL and compute-on-miss
- HttpxTransport: Single and concurrent HTTP requests
- SnipREST: Cached access to every Snipcart resource
- DashboardAggregator: All dashboard queries as one cached unit
"""

from snipwire.services.errors import (
    SnipRESTError,
    AuthNotConfiguredError,
    MissingIdentifierError,
    InvalidDateError,
    ProductNotFoundError,
    RemoteCallFailedError,
    DecodeError,
)
from snipwire.services.cache import CacheStore, CacheEntry, EXPIRE_NEVER, EXPIRE_NOW
from snipwire.services.transport import (
    HttpRequest,
    HttpResponse,
    HttpxTransport,
    Transport,
)
from snipwire.services.sniprest import ResourceResult, ResultEnvelope, SnipREST
from snipwire.services.dashboard import (
    DashboardAggregator,
    DashboardData,
    ConcurrentDashboardStrategy,
    SequentialDashboardStrategy,
)

__all__ = [
    # Errors
    "SnipRESTError",
    "AuthNotConfiguredError",
    "MissingIdentifierError",
    "InvalidDateError",
    "ProductNotFoundError",
    "RemoteCallFailedError",
    "DecodeError",
    # Cache
    "CacheStore",
    "CacheEntry",
    "EXPIRE_NEVER",
    "EXPIRE_NOW",
    # Transport
    "HttpRequest",
    "HttpResponse",
    "HttpxTransport",
    "Transport",
    # REST client
    "ResourceResult",
    "ResultEnvelope",
    "SnipREST",
    # Dashboard
    "DashboardAggregator",
    "DashboardData",
    "ConcurrentDashboardStrategy",
    "SequentialDashboardStrategy",
]
