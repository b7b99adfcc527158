"""
HTTP transport for the Snipcart REST layer.

Wraps httpx.AsyncClient for single requests and for batches of requests that
are executed concurrently over the client's connection pool. Transport never
raises for network or HTTP failures: status code and error text are reported
on the returned HttpResponse.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from loguru import logger

from snipwire.services.errors import DecodeError

BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
JSON_CONTENT_TYPE = "application/json; charset=utf-8"


@dataclass
class HttpRequest:
    """A single outbound request."""

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    json_data: Any = None


@dataclass
class HttpResponse:
    """Outcome of a single request."""

    url: str
    status_code: int | None = None
    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and self.status_code is not None
            and 200 <= self.status_code < 300
        )

    def json(self) -> Any:
        """
        Decode the response body.

        An empty body decodes to an empty dict.

        Raises:
            DecodeError: If the body is not valid JSON
        """
        if not self.text.strip():
            return {}
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise DecodeError(self.url, str(e)) from e


class Transport(Protocol):
    """What the REST layer needs from an HTTP transport."""

    @property
    def supports_concurrency(self) -> bool: ...

    async def send(self, request: HttpRequest) -> HttpResponse: ...

    async def send_many(self, requests: list[HttpRequest]) -> dict[str, HttpResponse]: ...

    async def close(self) -> None: ...


class HttpxTransport:
    """
    httpx based transport.

    Usage:
        transport = HttpxTransport(timeout=15.0, max_connections=6)
        response = await transport.send(HttpRequest(url="https://..."))

        responses = await transport.send_many([req1, req2, req3])
        responses[req1.url].status_code
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_connections: int = 10,
        concurrent: bool = True,
        client: httpx.AsyncClient | None = None,
    ):
        self._timeout = timeout
        self._max_connections = max_connections
        self._concurrent = concurrent

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = client

    @property
    def supports_concurrency(self) -> bool:
        """Whether send_many() multiplexes requests over several connections."""
        return self._concurrent and self._max_connections > 1

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                limits=httpx.Limits(max_connections=self._max_connections),
                follow_redirects=True,
            )
        return self._http_client

    async def send(self, request: HttpRequest) -> HttpResponse:
        """Execute a single request."""
        client = await self._get_http_client()

        headers = dict(request.headers)
        content = None
        if request.method in BODY_METHODS:
            headers["Content-Type"] = JSON_CONTENT_TYPE
            if request.json_data is not None:
                content = json.dumps(request.json_data)

        try:
            response = await client.request(
                method=request.method,
                url=request.url,
                headers=headers,
                content=content,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"{request.method} {request.url} timed out: {e}")
            return HttpResponse(
                url=request.url,
                error=f"Request timed out after {self._timeout}s",
            )
        except httpx.RequestError as e:
            logger.warning(f"{request.method} {request.url} failed: {e}")
            return HttpResponse(url=request.url, error=str(e) or type(e).__name__)

        error = None
        if not response.is_success:
            error = f"HTTP {response.status_code}: {response.text[:200]}"
            logger.warning(f"{request.method} {request.url} -> {error}")

        return HttpResponse(
            url=request.url,
            status_code=response.status_code,
            text=response.text,
            error=error,
        )

    async def send_many(self, requests: list[HttpRequest]) -> dict[str, HttpResponse]:
        """
        Execute a batch of requests and wait for all of them.

        Requests run concurrently when supports_concurrency is set, one after
        another otherwise. A failing request does not cancel the others.

        Returns:
            Responses indexed by request URL
        """
        if self.supports_concurrency:
            responses = await asyncio.gather(*(self.send(r) for r in requests))
        else:
            responses = [await self.send(r) for r in requests]
        return {response.url: response for response in responses}

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("HttpxTransport closed")

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
