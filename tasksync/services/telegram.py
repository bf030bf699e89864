"""Telegram chat notifications"""
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Sends messages to one Telegram chat through the Bot API.

    Delivery is best effort: failures are logged and reported as False,
    never raised.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        base_url: str = "https://api.telegram.org/",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.chat_id = chat_id
        self.http = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/bot{bot_token}/",
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self):
        await self.http.aclose()

    async def send_message(self, text: str) -> bool:
        try:
            response = await self.http.post(
                "sendMessage",
                json={"chat_id": self.chat_id, "text": text, "parse_mode": "Markdown"},
            )
            response.raise_for_status()
            return True
        except Exception as e:
            # The token is part of the URL, so only log the error type.
            logger.warning(f"Failed to send Telegram message ({type(e).__name__})")
            return False
