"""
WhatsApp channel provider for the Insurance Sales Assistant.

Sends text replies through the Meta Cloud API.
"""

import logging
from typing import Optional

import httpx

from .base import ChannelMessage, ChannelProvider, ChannelResponse

logger = logging.getLogger(__name__)


class MetaCloudWhatsApp(ChannelProvider):
    """WhatsApp via Meta Cloud API."""

    BASE_URL = "https://graph.facebook.com/v18.0"

    name = "whatsapp"

    def __init__(
        self,
        api_token: str,
        phone_number_id: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.api_token = api_token
        self.phone_number_id = phone_number_id
        self.timeout = timeout
        self._client = client

    async def send_message(self, message: ChannelMessage) -> ChannelResponse:
        url = f"{self.BASE_URL}/{self.phone_number_id}/messages"
        payload = {
            "messaging_product": "whatsapp",
            "to": message.to.lstrip("+"),
            "type": "text",
            "text": {"body": message.content},
        }
        try:
            resp = await self._post(url, payload)
            resp.raise_for_status()
            data = resp.json()
            msg_id = data.get("messages", [{}])[0].get("id")
            return ChannelResponse(success=True, message_id=msg_id)
        except httpx.HTTPError as e:
            logger.error(f"Meta WhatsApp send failed: {e}")
            return ChannelResponse(success=False, error=str(e))

    async def health_check(self) -> bool:
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.get(
                    f"{self.BASE_URL}/{self.phone_number_id}",
                    headers={"Authorization": f"Bearer {self.api_token}"},
                    timeout=5,
                )
                return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def _post(self, url: str, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_token}", "Content-Type": "application/json"}
        if self._client is not None:
            return await self._client.post(url, json=payload, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient() as client:
            return await client.post(url, json=payload, headers=headers, timeout=self.timeout)
