"""Messenger Send API client."""

import asyncio
import logging
import os

import httpx

log = logging.getLogger(__name__)

MESSENGER_API_URL = os.environ.get("MESSENGER_API_URL", "https://graph.facebook.com/v12.0/me/messages")
TYPING_INDICATOR_MAX_DELAY = 0.6  # seconds


def pacing(send_delay: float) -> tuple[float, float]:
    """Split a send delay into (wait before typing indicator, wait after it).

    The indicator is delayed too, otherwise the previous message can clip it.
    """
    if not send_delay or send_delay <= 0:
        return 0.0, 0.0
    typing_delay = min(TYPING_INDICATOR_MAX_DELAY, send_delay / 2)
    return typing_delay, send_delay - typing_delay


class ChatInterface:
    def __init__(self, endpoint_url: str = MESSENGER_API_URL, access_token: str | None = None,
                 client: httpx.AsyncClient | None = None):
        self.endpoint_url = endpoint_url
        self.access_token = access_token if access_token is not None else os.environ.get("PAGE_ACCESS_TOKEN", "")
        self.client = client or httpx.AsyncClient(timeout=30.0)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def post_data(self, data: dict) -> dict | None:
        """POST one Send API body. Failures are logged and reported as None."""
        try:
            resp = await self.client.post(
                self.endpoint_url,
                params={"access_token": self.access_token},
                json=data,
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            log.error("Send API call for %s failed: %s", data.get("recipient", {}).get("id"), e)
            return None
        body = resp.json()
        log.debug("Send API response: %s", body)
        return body

    async def typing_on(self, sender_id: str) -> dict | None:
        return await self.post_data({"recipient": {"id": sender_id}, "sender_action": "typing_on"})

    async def send_response(
        self,
        sender_id: str,
        message: str,
        send_delay: float = 0,
        quick_replies: list[dict] | None = None,
    ) -> bool:
        """Send a text message, optionally after a typing pause of `send_delay` seconds."""
        typing_delay, remaining = pacing(send_delay)
        if typing_delay:
            await asyncio.sleep(typing_delay)
            await self.typing_on(sender_id)
            await asyncio.sleep(remaining)

        body = {
            "messaging_type": "RESPONSE",
            "recipient": {"id": sender_id},
            "message": {"text": message},
        }
        if quick_replies is not None:
            body["message"]["quick_replies"] = quick_replies
        return await self.post_data(body) is not None
