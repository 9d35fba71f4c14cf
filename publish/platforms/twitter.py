"""Twitter(X) API v2 publisher. OAuth 1.0a 사용자 컨텍스트 서명은 Authlib으로 처리."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import httpx
from authlib.integrations.httpx_client import OAuth1Auth

from publish.models import ErrorCode, Platform
from publish.platforms.base import PlatformPublisher, classify_status


class TwitterPublisher(PlatformPublisher):
    """트윗은 수정할 수 없다. edit 호출 시 EditNotSupportedError."""

    platform = Platform.TWITTER

    def is_configured(self) -> bool:
        s = self.settings
        return all(
            (s.twitter_consumer_key, s.twitter_consumer_secret, s.twitter_access_token, s.twitter_access_token_secret)
        )

    def _auth(self) -> OAuth1Auth:
        s = self.settings
        return OAuth1Auth(
            client_id=s.twitter_consumer_key.get_secret_value(),
            client_secret=s.twitter_consumer_secret.get_secret_value(),
            token=s.twitter_access_token.get_secret_value(),
            token_secret=s.twitter_access_token_secret.get_secret_value(),
        )

    async def _send(self, client: httpx.AsyncClient, text: str) -> httpx.Response:
        return await client.post(
            f"{self.settings.twitter_api_base.rstrip('/')}/2/tweets",
            json={"text": text},
            auth=self._auth(),
        )

    def _extract_message_id(self, data: Dict[str, Any]) -> Optional[str]:
        payload = data.get("data") or {}
        return str(payload["id"]) if isinstance(payload, dict) and payload.get("id") else None

    def _classify_error(self, status_code: int, data: Dict[str, Any]) -> Tuple[ErrorCode, str]:
        detail = str(data.get("detail") or data.get("title") or data.get("text") or "")
        lowered = detail.lower()
        if status_code == 403 and "duplicate" in lowered:
            return ErrorCode.DUPLICATE_POST, detail
        if status_code == 400 and "too long" in lowered:
            return ErrorCode.CONTENT_TOO_LONG, detail
        return classify_status(status_code), detail or f"HTTP {status_code}"
