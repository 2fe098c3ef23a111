"""
Unit tests for the SMS gateway client.
"""

import json
from collections.abc import Callable

import httpx
import pytest

from notifyq.constants import DeliveryStatus
from notifyq.delivery.client import SMSGatewayClient

BASE_URL = "https://gateway.test/version1"


def _recipient_response(status_code: int, status: str, message_id: str = "ATXid_1") -> dict:
    return {
        "SMSMessageData": {
            "Message": "Sent to 1/1 Total Cost: KES 0.8000",
            "Recipients": [
                {
                    "statusCode": status_code,
                    "number": "+254712345678",
                    "status": status,
                    "cost": "KES 0.8000",
                    "messageId": message_id,
                }
            ],
        }
    }


def _client(handler: Callable[[httpx.Request], httpx.Response], sender_id: str = "TESTCO") -> SMSGatewayClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SMSGatewayClient(
        base_url=BASE_URL,
        username="sandbox",
        api_key="secret-key",
        sender_id=sender_id,
        timeout=5.0,
        http_client=http_client,
    )


class TestSMSGatewayClient:
    """Tests for SMSGatewayClient.send."""

    @pytest.mark.asyncio
    async def test_request_shape(self):
        """Test the request targets /messaging with credentials and a normalised number."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json=_recipient_response(101, "Success"))

        client = _client(handler)
        await client.send("0712 345 678", "Your order has shipped")

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE_URL}/messaging"
        assert request.headers["apiKey"] == "secret-key"
        assert request.headers["Accept"] == "application/json"
        assert json.loads(request.content) == {
            "username": "sandbox",
            "to": "+254712345678",
            "message": "Your order has shipped",
            "from": "TESTCO",
        }

    def test_sender_omitted_when_empty(self):
        """Test no 'from' field is sent without a sender id."""
        client = _client(lambda request: httpx.Response(200), sender_id="")

        body = client.build_request_body("+254712345678", "hello")

        assert "from" not in body

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [100, 101, 102])
    async def test_accepted_codes_are_delivered(self, code: int):
        """Test Processed, Sent and Queued count as delivered."""
        client = _client(lambda request: httpx.Response(201, json=_recipient_response(code, "Success")))

        outcome = await client.send("+254712345678", "hello")

        assert outcome.status == DeliveryStatus.DELIVERED
        assert outcome.message_id == "ATXid_1"
        assert outcome.gateway_status_code == code

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [500, 501, 502])
    async def test_gateway_side_codes_are_transient(self, code: int):
        """Test gateway-side recipient failures are retryable."""
        client = _client(lambda request: httpx.Response(201, json=_recipient_response(code, "GatewayError")))

        outcome = await client.send("+254712345678", "hello")

        assert outcome.status == DeliveryStatus.TRANSIENT_ERROR
        assert outcome.reason == f"SMS API error: GatewayError (code: {code})"

    @pytest.mark.asyncio
    async def test_other_recipient_codes_are_rejected(self):
        """Test recipient errors such as an invalid number are rejected."""
        client = _client(lambda request: httpx.Response(201, json=_recipient_response(403, "InvalidPhoneNumber")))

        outcome = await client.send("+254712345678", "hello")

        assert outcome.status == DeliveryStatus.REJECTED
        assert "InvalidPhoneNumber" in outcome.reason

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [500, 503, 429])
    async def test_server_errors_are_transient(self, status_code: int):
        """Test 5xx and throttling responses are retryable."""
        client = _client(lambda request: httpx.Response(status_code, text="busy"))

        outcome = await client.send("+254712345678", "hello")

        assert outcome.status == DeliveryStatus.TRANSIENT_ERROR
        assert outcome.gateway_status_code == status_code

    @pytest.mark.asyncio
    async def test_client_errors_are_rejected(self):
        """Test 4xx responses other than 429 are rejected."""
        client = _client(lambda request: httpx.Response(401, text="The supplied authentication is invalid"))

        outcome = await client.send("+254712345678", "hello")

        assert outcome.status == DeliveryStatus.REJECTED
        assert outcome.reason.startswith("SMS API returned status 401")

    @pytest.mark.asyncio
    async def test_missing_recipients_is_transient(self):
        """Test a success response without recipient status is ambiguous."""
        client = _client(
            lambda request: httpx.Response(201, json={"SMSMessageData": {"Message": "InvalidSenderId", "Recipients": []}})
        )

        outcome = await client.send("+254712345678", "hello")

        assert outcome.status == DeliveryStatus.TRANSIENT_ERROR
        assert "InvalidSenderId" in outcome.reason

    @pytest.mark.asyncio
    async def test_unreadable_body_is_transient(self):
        """Test a non-JSON success body is retryable."""
        client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))

        outcome = await client.send("+254712345678", "hello")

        assert outcome.status == DeliveryStatus.TRANSIENT_ERROR

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        """Test a timed-out request is retryable and not raised."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        outcome = await _client(handler).send("+254712345678", "hello")

        assert outcome.status == DeliveryStatus.TRANSIENT_ERROR
        assert "timed out" in outcome.reason

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        """Test a transport failure is retryable and not raised."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        outcome = await _client(handler).send("+254712345678", "hello")

        assert outcome.status == DeliveryStatus.TRANSIENT_ERROR
        assert outcome.reason.startswith("HTTP request failed")

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self):
        """Test aclose leaves a caller-owned HTTP client open."""
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))

        async with SMSGatewayClient(BASE_URL, "sandbox", "key", http_client=http_client):
            pass

        assert not http_client.is_closed
        await http_client.aclose()
