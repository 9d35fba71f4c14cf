"""Threads Graph API publisher (컨테이너 생성 → 게시 2단계)."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import httpx

from publish.models import ErrorCode, Platform
from publish.platforms.base import PlatformPublisher, classify_status

_GRAPH_ERROR_CODES = {
    4: ErrorCode.RATE_LIMIT,
    17: ErrorCode.RATE_LIMIT,
    613: ErrorCode.RATE_LIMIT,
    1: ErrorCode.NETWORK_ERROR,
    2: ErrorCode.NETWORK_ERROR,
    100: ErrorCode.INVALID_CONTENT,
    190: ErrorCode.AUTH_FAILED,
    10: ErrorCode.AUTH_FAILED,
}


class ThreadsPublisher(PlatformPublisher):
    platform = Platform.THREADS

    def is_configured(self) -> bool:
        return bool(self.settings.threads_user_id and self.settings.threads_access_token)

    def _url(self, edge: str) -> str:
        return f"{self.settings.threads_api_base.rstrip('/')}/{self.settings.threads_user_id}/{edge}"

    async def _send(self, client: httpx.AsyncClient, text: str) -> httpx.Response:
        assert self.settings.threads_access_token is not None
        token = self.settings.threads_access_token.get_secret_value()
        container = await client.post(
            self._url("threads"),
            params={"media_type": "TEXT", "text": text, "access_token": token},
        )
        if not container.is_success:
            return container
        creation_id = container.json().get("id")
        return await client.post(
            self._url("threads_publish"),
            params={"creation_id": creation_id, "access_token": token},
        )

    def _extract_message_id(self, data: Dict[str, Any]) -> Optional[str]:
        return str(data["id"]) if data.get("id") else None

    def _classify_error(self, status_code: int, data: Dict[str, Any]) -> Tuple[ErrorCode, str]:
        error = data.get("error") if isinstance(data.get("error"), dict) else {}
        message = str(error.get("message") or data.get("text") or f"HTTP {status_code}")
        code = error.get("code")
        if code in _GRAPH_ERROR_CODES:
            return _GRAPH_ERROR_CODES[code], message
        return classify_status(status_code), message
