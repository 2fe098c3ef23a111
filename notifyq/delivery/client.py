"""
SMS gateway delivery client.

Wraps one call to the Africa's Talking messaging API and classifies the
result as delivered, rejected or transient. Gateway and transport failures
are returned as outcomes, never raised, so the dispatch worker decides what
happens to the job.
"""

import logging
from typing import Any, Protocol

import httpx

from notifyq.config import Settings, get_settings
from notifyq.constants import (
    GATEWAY_ACCEPTED_CODES,
    GATEWAY_MESSAGING_PATH,
    GATEWAY_TRANSIENT_CODES,
)
from notifyq.delivery.phone import normalize_phone
from notifyq.types.job import DeliveryOutcome

logger = logging.getLogger(__name__)

# Response bodies are truncated to this many characters in error reasons
_MAX_BODY_IN_REASON = 200


class DeliveryClient(Protocol):
    """Anything that can attempt a single notification delivery."""

    async def send(self, recipient: str, message: str) -> DeliveryOutcome: ...


class SMSGatewayClient:
    """
    Client for the Africa's Talking SMS API.

    Each ``send`` makes exactly one HTTP request bounded by ``timeout``.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        api_key: str,
        sender_id: str = "",
        timeout: float = 30.0,
        default_country_code: str = "254",
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API root, e.g. ``https://api.africastalking.com/version1``.
            username: Gateway account username.
            api_key: Gateway API key.
            sender_id: Shortcode or alphanumeric sender; omitted when empty.
            timeout: Per-request timeout in seconds.
            default_country_code: Country code applied to local numbers.
            http_client: Optional client to use instead of an owned one.
        """
        self._url = base_url.rstrip("/") + GATEWAY_MESSAGING_PATH
        self._username = username
        self._api_key = api_key
        self._sender_id = sender_id
        self._timeout = timeout
        self._default_country_code = default_country_code
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "SMSGatewayClient":
        """Build a client from application settings."""
        settings = settings or get_settings()
        return cls(
            base_url=settings.sms_base_url,
            username=settings.sms_username,
            api_key=settings.sms_api_key,
            sender_id=settings.sms_sender_id,
            timeout=settings.sms_timeout_seconds,
            default_country_code=settings.sms_default_country_code,
            http_client=http_client,
        )

    async def __aenter__(self) -> "SMSGatewayClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    def build_request_body(self, recipient: str, message: str) -> dict[str, str]:
        """Build the JSON body for a messaging request."""
        body = {
            "username": self._username,
            "to": normalize_phone(recipient, self._default_country_code),
            "message": message,
        }
        if self._sender_id:
            body["from"] = self._sender_id
        return body

    async def send(self, recipient: str, message: str) -> DeliveryOutcome:
        """
        Send one SMS and classify the gateway's answer.

        Args:
            recipient: Destination phone number.
            message: Message text.

        Returns:
            DeliveryOutcome: delivered, rejected or transient_error.
        """
        body = self.build_request_body(recipient, message)

        logger.info(
            "Sending SMS",
            extra={"to": body["to"], "message_length": len(message)},
        )

        try:
            response = await self._client.post(
                self._url,
                json=body,
                headers={
                    "apiKey": self._api_key,
                    "Accept": "application/json",
                },
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            return DeliveryOutcome.transient(f"SMS API request timed out: {e!r}")
        except httpx.HTTPError as e:
            return DeliveryOutcome.transient(f"HTTP request failed: {e!r}")

        return self.classify_response(response)

    def classify_response(self, response: httpx.Response) -> DeliveryOutcome:
        """
        Map a gateway HTTP response to a delivery outcome.

        - 5xx and 429: transient
        - other non-2xx: rejected
        - 2xx without a readable recipient status: transient (ambiguous)
        - recipient status 100/101/102: delivered
        - recipient status 500/501/502: transient
        - any other recipient status: rejected
        """
        status_code = response.status_code

        if status_code >= 500 or status_code == 429:
            return DeliveryOutcome.transient(
                f"SMS API returned status {status_code}: {response.text[:_MAX_BODY_IN_REASON]}",
                gateway_status_code=status_code,
            )

        if not response.is_success:
            return DeliveryOutcome.rejected(
                f"SMS API returned status {status_code}: {response.text[:_MAX_BODY_IN_REASON]}",
                gateway_status_code=status_code,
            )

        try:
            data = response.json()
        except ValueError:
            return DeliveryOutcome.transient(
                f"Unreadable SMS API response: {response.text[:_MAX_BODY_IN_REASON]}"
            )

        message_data = data.get("SMSMessageData") if isinstance(data, dict) else None
        recipients = message_data.get("Recipients") if isinstance(message_data, dict) else None

        if not recipients or not isinstance(recipients[0], dict):
            summary = message_data.get("Message", "") if isinstance(message_data, dict) else ""
            return DeliveryOutcome.transient(f"SMS API returned no recipient status: {summary}")

        recipient = recipients[0]
        status = str(recipient.get("status", ""))

        try:
            code = int(recipient.get("statusCode"))
        except (TypeError, ValueError):
            return DeliveryOutcome.transient(f"SMS API returned no recipient status code: {status}")

        if code in GATEWAY_ACCEPTED_CODES:
            return DeliveryOutcome.delivered(
                message_id=recipient.get("messageId"),
                gateway_status_code=code,
                reason=status,
            )

        reason = f"SMS API error: {status} (code: {code})"
        if code in GATEWAY_TRANSIENT_CODES:
            return DeliveryOutcome.transient(reason, gateway_status_code=code)
        return DeliveryOutcome.rejected(reason, gateway_status_code=code)
