"""Telegram Bot API publisher (sendMessage / editMessageText)."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import httpx

from publish.models import ErrorCode, Platform
from publish.platforms.base import PlatformPublisher, classify_status


class TelegramPublisher(PlatformPublisher):
    platform = Platform.TELEGRAM

    def is_configured(self) -> bool:
        return bool(self.settings.telegram_bot_token and self.settings.telegram_chat_id)

    def _method_url(self, method: str) -> str:
        assert self.settings.telegram_bot_token is not None
        token = self.settings.telegram_bot_token.get_secret_value()
        return f"{self.settings.telegram_api_base.rstrip('/')}/bot{token}/{method}"

    async def _send(self, client: httpx.AsyncClient, text: str) -> httpx.Response:
        return await client.post(
            self._method_url("sendMessage"),
            json={"chat_id": self.settings.telegram_chat_id, "text": text},
        )

    async def _edit(self, client: httpx.AsyncClient, message_id: str, text: str) -> httpx.Response:
        return await client.post(
            self._method_url("editMessageText"),
            json={"chat_id": self.settings.telegram_chat_id, "message_id": int(message_id), "text": text},
        )

    def _is_success(self, response: httpx.Response, data: Dict[str, Any]) -> bool:
        return response.is_success and bool(data.get("ok"))

    def _extract_message_id(self, data: Dict[str, Any]) -> Optional[str]:
        result = data.get("result") or {}
        message_id = result.get("message_id") if isinstance(result, dict) else None
        return str(message_id) if message_id is not None else None

    def _classify_error(self, status_code: int, data: Dict[str, Any]) -> Tuple[ErrorCode, str]:
        description = str(data.get("description") or data.get("text") or "")
        code = int(data.get("error_code") or status_code)
        lowered = description.lower()
        if code == 400 and "message is too long" in lowered:
            return ErrorCode.CONTENT_TOO_LONG, description
        if code == 400 and "message is not modified" in lowered:
            return ErrorCode.DUPLICATE_POST, description
        return classify_status(code), description or f"HTTP {status_code}"
