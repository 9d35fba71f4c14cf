"""Toss 증권 커뮤니티 publisher (Bearer 토큰, 엔드포인트 설정 필요)."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import httpx

from publish.models import ErrorCode, Platform
from publish.platforms.base import PlatformPublisher, classify_status

_TOSS_ERROR_CODES = {
    "RATE_LIMIT_EXCEEDED": ErrorCode.RATE_LIMIT,
    "INTERNAL_SERVER_ERROR": ErrorCode.NETWORK_ERROR,
    "INVALID_CONTENT": ErrorCode.INVALID_CONTENT,
    "CONTENT_TOO_LONG": ErrorCode.CONTENT_TOO_LONG,
    "DUPLICATE_CONTENT": ErrorCode.DUPLICATE_POST,
    "UNAUTHORIZED": ErrorCode.AUTH_FAILED,
}


class TossPublisher(PlatformPublisher):
    platform = Platform.TOSS

    def is_configured(self) -> bool:
        return bool(self.settings.toss_api_endpoint and self.settings.toss_api_token)

    def _headers(self) -> Dict[str, str]:
        assert self.settings.toss_api_token is not None
        return {"Authorization": f"Bearer {self.settings.toss_api_token.get_secret_value()}"}

    async def _send(self, client: httpx.AsyncClient, text: str) -> httpx.Response:
        return await client.post(str(self.settings.toss_api_endpoint), json={"content": text}, headers=self._headers())

    async def _edit(self, client: httpx.AsyncClient, message_id: str, text: str) -> httpx.Response:
        url = f"{str(self.settings.toss_api_endpoint).rstrip('/')}/{message_id}"
        return await client.put(url, json={"content": text}, headers=self._headers())

    def _is_success(self, response: httpx.Response, data: Dict[str, Any]) -> bool:
        return response.is_success and data.get("success", True) is not False

    def _extract_message_id(self, data: Dict[str, Any]) -> Optional[str]:
        payload = data.get("data") or {}
        post_id = payload.get("postId") if isinstance(payload, dict) else None
        return str(post_id) if post_id else None

    def _classify_error(self, status_code: int, data: Dict[str, Any]) -> Tuple[ErrorCode, str]:
        error = data.get("error") if isinstance(data.get("error"), dict) else {}
        message = str(error.get("message") or data.get("text") or f"HTTP {status_code}")
        code = error.get("code")
        if code in _TOSS_ERROR_CODES:
            return _TOSS_ERROR_CODES[code], message
        return classify_status(status_code), message
