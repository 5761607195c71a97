"""Outbound delivery executor.

Sends one payload to one destination and classifies the result. Every
transport problem is converted into a failed DeliveryAttempt, so callers
can fan out without guarding individual deliveries.
"""

import asyncio
import json
import logging
import time
from typing import Any, Mapping, Optional

import httpx

from ..core.settings import RedistributorSettings
from .errors import DeliveryErrorKind
from .headers import DEFAULT_SOURCE_MARKER, DEFAULT_USER_AGENT, build_delivery_headers
from .models import DeliveryAttempt, Destination

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 5000

# Responses below this status mean the destination received the request
SERVER_ERROR_THRESHOLD = 500


def encode_payload(payload: Any) -> bytes:
    """Encode a payload for the request body.

    Raw bytes and strings are forwarded verbatim; anything else is
    serialized as JSON.
    """
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload).encode("utf-8")


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class DeliveryExecutor:
    """Delivers payloads to destinations over a shared HTTP connection pool.

    Features:
    - Fixed per-attempt timeout covering connect, send and response read
    - Status < 500 counts as delivered (the destination processed the request)
    - Transport errors become failed attempts instead of exceptions

    Example:
        async with DeliveryExecutor(timeout_ms=5000) as executor:
            attempt = await executor.deliver(destination, b'{"id": 1}', inbound_headers)
            print(attempt.success, attempt.status_code)
    """

    def __init__(
        self,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        user_agent: str = DEFAULT_USER_AGENT,
        source_marker: str = DEFAULT_SOURCE_MARKER,
        limits: Optional[httpx.Limits] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize executor.

        Args:
            timeout_ms: Upper bound for a whole delivery attempt.
            user_agent: User-Agent sent to destinations.
            source_marker: X-Redistributed-From value.
            limits: Connection pool limits for the shared client.
            transport: Optional transport for the shared client.
            client: Pre-built client; the executor will not close it.
        """
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent
        self.source_marker = source_marker
        self._limits = limits or httpx.Limits(max_connections=100, max_keepalive_connections=20)
        self._transport = transport
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(
        cls,
        settings: RedistributorSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "DeliveryExecutor":
        return cls(
            timeout_ms=settings.delivery_timeout_ms,
            user_agent=settings.user_agent,
            source_marker=settings.source_marker,
            limits=httpx.Limits(
                max_connections=settings.max_connections,
                max_keepalive_connections=settings.max_keepalive_connections,
            ),
            transport=transport,
        )

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=self._limits,
                transport=self._transport,
                follow_redirects=False,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the shared HTTP client if this executor created it."""
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "DeliveryExecutor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def deliver(
        self,
        destination: Destination,
        payload: Any,
        headers: Optional[Mapping[str, str]] = None,
    ) -> DeliveryAttempt:
        """POST a payload to a destination.

        Args:
            destination: Target destination.
            payload: Raw body (bytes/str, sent verbatim) or a JSON-serializable value.
            headers: Inbound request headers; only passthrough indicators are forwarded.

        Returns:
            The classified delivery attempt. Never raises for delivery problems.
        """
        start = time.perf_counter()
        try:
            body = encode_payload(payload)
        except (TypeError, ValueError) as e:
            return self._failure(
                destination, DeliveryErrorKind.INTERNAL,
                f"Payload could not be encoded: {e}", _elapsed_ms(start),
            )

        request_headers = build_delivery_headers(
            headers,
            user_agent=self.user_agent,
            source_marker=self.source_marker,
        )

        logger.debug(f"Sending {len(body)} bytes to {destination.name} ({destination.url})")
        return await self._attempt(
            destination,
            start,
            self._get_client().post(destination.url, content=body, headers=request_headers),
        )

    async def probe(self, destination: Destination) -> DeliveryAttempt:
        """Check that a destination is reachable without sending a payload.

        Uses a GET request with the same timeout and status policy as
        deliveries.
        """
        start = time.perf_counter()
        headers = {"User-Agent": self.user_agent, "X-Redistributed-From": self.source_marker}
        return await self._attempt(
            destination,
            start,
            self._get_client().get(destination.url, headers=headers),
        )

    async def _attempt(self, destination: Destination, start: float, request) -> DeliveryAttempt:
        try:
            response = await asyncio.wait_for(request, timeout=self.timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return self._failure(
                destination, DeliveryErrorKind.TIMEOUT,
                f"Request timeout ({self.timeout_ms}ms)", _elapsed_ms(start),
            )
        except httpx.ConnectError as e:
            return self._failure(
                destination, DeliveryErrorKind.CONNECTION,
                f"Connection failed: {str(e) or type(e).__name__}", _elapsed_ms(start),
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return self._failure(
                destination, DeliveryErrorKind.TRANSPORT,
                f"{type(e).__name__}: {str(e) or 'transport error'}", _elapsed_ms(start),
            )
        except Exception as e:
            logger.exception(f"Unexpected error delivering to {destination.name}")
            return self._failure(
                destination, DeliveryErrorKind.INTERNAL,
                f"Unexpected error: {e}", _elapsed_ms(start),
            )

        elapsed = _elapsed_ms(start)
        if response.status_code >= SERVER_ERROR_THRESHOLD:
            return self._failure(
                destination, DeliveryErrorKind.HTTP_STATUS,
                f"HTTP {response.status_code}: {response.reason_phrase}", elapsed,
                status_code=response.status_code,
            )

        logger.info(
            f"Delivered to {destination.name}: status {response.status_code}, "
            f"{elapsed}ms, {len(response.content)} bytes returned"
        )
        return DeliveryAttempt.succeeded(destination, response.status_code, elapsed)

    def _failure(
        self,
        destination: Destination,
        kind: DeliveryErrorKind,
        message: str,
        elapsed_ms: float,
        status_code: Optional[int] = None,
    ) -> DeliveryAttempt:
        logger.warning(f"Delivery to {destination.name} failed after {elapsed_ms}ms: {message}")
        return DeliveryAttempt.failed(
            destination, kind, message, elapsed_ms, status_code=status_code
        )
