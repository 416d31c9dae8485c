"""Telegram notices for autopilot runs."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from linkchain.config import settings

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class TelegramNotifier:
    """Send short HTML messages to one chat.

    Without a bot token and chat id every :meth:`send` is a no-op.  Delivery
    failures are logged and never raised.
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        timeout: float = 10.0,
        base_url: str = TELEGRAM_API,
    ) -> None:
        self._bot_token = settings.telegram_bot_token if bot_token is None else bot_token
        self._chat_id = settings.telegram_chat_id if chat_id is None else chat_id
        self._timeout = timeout
        self._base_url = base_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    async def send(self, text: str) -> bool:
        """Post *text*; returns ``True`` when Telegram accepted it."""
        if not self.configured:
            return False
        url = f"{self._base_url}/bot{self._bot_token}/sendMessage"
        payload = {"chat_id": self._chat_id, "text": text, "parse_mode": "HTML"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Telegram notice not delivered: %s", exc)
            return False
        return True
