"""
Telegram Bot API client
One instance per bot: the requester-facing bot and the DJ-facing bot use
separate credentials.
"""

import logging
from typing import Any, Optional

import httpx

from ..config import (
    HTTP_TIMEOUT_SECONDS,
    TELEGRAM_API_URL,
    TELEGRAM_DJ_BOT_TOKEN,
    TELEGRAM_USER_BOT_TOKEN,
)
from ..errors import DeliveryFailure

logger = logging.getLogger(__name__)


def inline_keyboard(*rows: list[dict]) -> dict:
    """Build reply_markup for an inline keyboard, one button list per row"""
    return {"inline_keyboard": [list(row) for row in rows]}


def url_button(text: str, url: str) -> list[dict]:
    return [{"text": text, "url": url}]


def callback_button(text: str, data: str) -> list[dict]:
    return [{"text": text, "callback_data": data}]


class TelegramBot:
    """Thin async wrapper over the Bot API methods we use"""

    def __init__(
        self,
        token: Optional[str],
        name: str = "bot",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.token = token
        self.name = name
        self.client = client

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        if not self.enabled:
            raise DeliveryFailure(f"{self.name} has no token configured")

        url = f"{TELEGRAM_API_URL}/bot{self.token}/{method}"
        try:
            if self.client is not None:
                response = await self.client.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
                    response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise DeliveryFailure(f"{self.name}.{method} transport error: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code != 200 or not body.get("ok"):
            description = body.get("description") or response.text
            blocked = response.status_code == 403
            raise DeliveryFailure(
                f"{self.name}.{method} failed ({response.status_code}): {description}",
                blocked=blocked,
            )
        return body.get("result")

    async def send_message(
        self,
        chat_id: str,
        text: str,
        reply_markup: Optional[dict] = None,
    ) -> Any:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self._call("sendMessage", payload)

    async def delete_message(self, chat_id: str, message_id: int) -> Any:
        return await self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> Any:
        payload: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        return await self._call("answerCallbackQuery", payload)


user_bot = TelegramBot(TELEGRAM_USER_BOT_TOKEN, name="user_bot")
dj_bot = TelegramBot(TELEGRAM_DJ_BOT_TOKEN, name="dj_bot")
