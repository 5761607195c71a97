"""Tests for the outbound delivery executor."""

import asyncio
import json

import httpx
import pytest

from redistributor.core.settings import RedistributorSettings
from redistributor.webhooks.delivery import DeliveryExecutor, encode_payload
from redistributor.webhooks.errors import DeliveryErrorKind
from redistributor.webhooks.headers import build_delivery_headers, select_passthrough_headers
from redistributor.webhooks.models import Destination

DESTINATION = Destination(id="dst-1", name="Sales", url="https://sales.example.com/hook?src=crm")


def _executor(handler, timeout_ms=1000):
    return DeliveryExecutor(timeout_ms=timeout_ms, transport=httpx.MockTransport(handler))


# ============================================================================
# Header Tests
# ============================================================================

class TestDeliveryHeaders:
    """Tests for outbound header construction."""

    def test_minimal_header_set(self):
        headers = build_delivery_headers()

        assert headers["Content-Type"] == "application/json"
        assert headers["User-Agent"] == "Webhook-Redistributor/1.0"
        assert headers["X-Redistributed-From"] == "webhook-redistributor"
        assert "X-Redistributed-At" in headers
        assert "X-Original-Source" not in headers

    def test_passthrough_is_case_insensitive(self):
        selected = select_passthrough_headers({
            "x-webhook-source": "shopify",
            "X-WEBHOOK-EVENT": "order.created",
            "Authorization": "Bearer secret",
        })

        assert selected == {"X-Original-Source": "shopify", "X-Original-Event": "order.created"}

    def test_empty_passthrough_values_skipped(self):
        assert select_passthrough_headers({"X-Webhook-Source": ""}) == {}
        assert select_passthrough_headers(None) == {}


# ============================================================================
# Executor Tests
# ============================================================================

class TestDeliveryExecutor:
    """Tests for DeliveryExecutor status policy and error classification."""

    @pytest.mark.asyncio
    async def test_success(self):
        async with _executor(lambda request: httpx.Response(200, json={"ok": True})) as executor:
            attempt = await executor.deliver(DESTINATION, b'{"id": 1}')

        assert attempt.success is True
        assert attempt.status_code == 200
        assert attempt.destination_id == "dst-1"
        assert attempt.destination_name == "Sales"
        assert attempt.destination_url == DESTINATION.url
        assert attempt.response_time_ms >= 0

    @pytest.mark.asyncio
    async def test_client_error_counts_as_delivered(self):
        """A 4xx response means the destination received the request."""
        async with _executor(lambda request: httpx.Response(404)) as executor:
            attempt = await executor.deliver(DESTINATION, b"{}")

        assert attempt.success is True
        assert attempt.status_code == 404

    @pytest.mark.asyncio
    async def test_server_error_is_failure(self):
        async with _executor(lambda request: httpx.Response(503)) as executor:
            attempt = await executor.deliver(DESTINATION, b"{}")

        assert attempt.success is False
        assert attempt.status_code == 503
        assert attempt.error_kind == DeliveryErrorKind.HTTP_STATUS
        assert attempt.error_message == "HTTP 503: Service Unavailable"

    @pytest.mark.asyncio
    async def test_timeout(self):
        """A slow destination fails at the timeout instead of holding the attempt open."""
        async def slow(request):
            await asyncio.sleep(2)
            return httpx.Response(200)

        async with _executor(slow, timeout_ms=50) as executor:
            attempt = await executor.deliver(DESTINATION, b"{}")

        assert attempt.success is False
        assert attempt.error_kind == DeliveryErrorKind.TIMEOUT
        assert attempt.error_message == "Request timeout (50ms)"
        assert attempt.status_code is None
        assert attempt.response_time_ms < 1000

    @pytest.mark.asyncio
    async def test_transport_timeout(self):
        def read_timeout(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _executor(read_timeout) as executor:
            attempt = await executor.deliver(DESTINATION, b"{}")

        assert attempt.error_kind == DeliveryErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        async with _executor(refuse) as executor:
            attempt = await executor.deliver(DESTINATION, b"{}")

        assert attempt.success is False
        assert attempt.error_kind == DeliveryErrorKind.CONNECTION
        assert "Connection refused" in attempt.error_message

    @pytest.mark.asyncio
    async def test_other_transport_error(self):
        def reset(request):
            raise httpx.ReadError("connection reset", request=request)

        async with _executor(reset) as executor:
            attempt = await executor.deliver(DESTINATION, b"{}")

        assert attempt.error_kind == DeliveryErrorKind.TRANSPORT
        assert "ReadError" in attempt.error_message

    @pytest.mark.asyncio
    async def test_unexpected_error_is_captured(self):
        def explode(request):
            raise RuntimeError("boom")

        async with _executor(explode) as executor:
            attempt = await executor.deliver(DESTINATION, b"{}")

        assert attempt.success is False
        assert attempt.error_kind == DeliveryErrorKind.INTERNAL
        assert "boom" in attempt.error_message

    @pytest.mark.asyncio
    async def test_body_forwarded_verbatim(self):
        seen = {}

        def capture(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["body"] = request.content
            return httpx.Response(200)

        raw = b'{"b": 1,   "a": [2, 3]}'
        async with _executor(capture) as executor:
            await executor.deliver(DESTINATION, raw)

        assert seen["method"] == "POST"
        assert seen["url"] == "https://sales.example.com/hook?src=crm"
        assert seen["body"] == raw

    @pytest.mark.asyncio
    async def test_structured_payload_serialized(self):
        seen = {}

        def capture(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200)

        async with _executor(capture) as executor:
            await executor.deliver(DESTINATION, {"event": "signup", "id": 7})

        assert seen["body"] == {"event": "signup", "id": 7}

    @pytest.mark.asyncio
    async def test_unencodable_payload(self):
        async with _executor(lambda request: httpx.Response(200)) as executor:
            attempt = await executor.deliver(DESTINATION, {"when": object()})

        assert attempt.success is False
        assert attempt.error_kind == DeliveryErrorKind.INTERNAL

    @pytest.mark.asyncio
    async def test_only_indicator_headers_forwarded(self):
        seen = {}

        def capture(request):
            seen["headers"] = request.headers
            return httpx.Response(200)

        inbound = {
            "X-Webhook-Source": "shopify",
            "X-Webhook-Event": "order.created",
            "Authorization": "Bearer secret",
            "Cookie": "session=1",
        }
        async with _executor(capture) as executor:
            await executor.deliver(DESTINATION, b"{}", inbound)

        headers = seen["headers"]
        assert headers["content-type"] == "application/json"
        assert headers["user-agent"] == "Webhook-Redistributor/1.0"
        assert headers["x-redistributed-from"] == "webhook-redistributor"
        assert "x-redistributed-at" in headers
        assert headers["x-original-source"] == "shopify"
        assert headers["x-original-event"] == "order.created"
        assert "authorization" not in headers
        assert "cookie" not in headers

    @pytest.mark.asyncio
    async def test_probe_uses_get_without_body(self):
        seen = {}

        def capture(request):
            seen["method"] = request.method
            seen["body"] = request.content
            return httpx.Response(405)

        async with _executor(capture) as executor:
            attempt = await executor.probe(DESTINATION)

        assert seen["method"] == "GET"
        assert seen["body"] == b""
        assert attempt.success is True
        assert attempt.status_code == 405

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        executor = DeliveryExecutor(client=client)

        await executor.deliver(DESTINATION, b"{}")
        await executor.aclose()

        assert not client.is_closed
        await client.aclose()

    def test_invalid_timeout(self):
        with pytest.raises(ValueError):
            DeliveryExecutor(timeout_ms=0)

    def test_from_settings(self):
        settings = RedistributorSettings(delivery_timeout_ms=2500, user_agent="Relay/2.0")

        executor = DeliveryExecutor.from_settings(settings)

        assert executor.timeout_ms == 2500
        assert executor.timeout_seconds == 2.5
        assert executor.user_agent == "Relay/2.0"


class TestEncodePayload:
    """Tests for request body encoding."""

    def test_bytes_unchanged(self):
        assert encode_payload(b'{"a":1}') == b'{"a":1}'

    def test_str_encoded(self):
        assert encode_payload('{"a": "é"}') == '{"a": "é"}'.encode("utf-8")

    def test_value_serialized(self):
        assert json.loads(encode_payload([1, {"a": None}])) == [1, {"a": None}]
