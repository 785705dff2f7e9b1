"""Z-API client for outbound WhatsApp messages.

Endpoints used:
- POST /instances/{instance_id}/token/{token}/send-text — send a text message

No retries here: a failed send is surfaced as ``GatewaySendFailure`` and the
caller decides what to do with it.
"""

import logging
from dataclasses import dataclass

import httpx

from fullhouse_agent.app.config import get_settings
from fullhouse_agent.domain.errors import GatewaySendFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayCredentials:
    """Per-instance Z-API credentials."""
    instance_id: str
    token: str
    client_token: str | None = None

    @classmethod
    def from_instance(cls, instance) -> "GatewayCredentials":
        return cls(
            instance_id=instance.instance_id,
            token=instance.instance_token,
            client_token=instance.client_token or None,
        )


class ZAPIClient:
    """Send WhatsApp messages through Z-API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.zapi_base_url).rstrip("/")
        self.timeout = timeout or settings.zapi_timeout_seconds
        self.transport = transport

    def _url(self, credentials: GatewayCredentials, path: str) -> str:
        return f"{self.base_url}/instances/{credentials.instance_id}/token/{credentials.token}/{path}"

    async def send_text(self, credentials: GatewayCredentials, phone: str, message: str) -> dict:
        """Send a text message.

        Returns:
            ``{"provider_message_id": str | None, "raw": dict}``

        Raises:
            GatewaySendFailure: on transport errors or non-2xx responses.
        """
        headers = {"Content-Type": "application/json"}
        if credentials.client_token:
            headers["Client-Token"] = credentials.client_token

        url = self._url(credentials, "send-text")
        logger.info("Z-API send: instance=%s to=%s msg_len=%d", credentials.instance_id, phone, len(message))

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(url, json={"phone": phone, "message": message}, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Z-API send failed for %s: %s", phone, exc)
            raise GatewaySendFailure(f"Z-API transport error: {exc}") from exc

        if resp.status_code >= 400:
            logger.error("Z-API send failed for %s: %d %s", phone, resp.status_code, resp.text[:300])
            raise GatewaySendFailure(
                f"Z-API returned {resp.status_code}", status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError:
            data = {}

        provider_message_id = data.get("zapiMessageId") or data.get("messageId") or data.get("id")
        return {"provider_message_id": provider_message_id, "raw": data}
