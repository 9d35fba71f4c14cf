"""FCM HTTP v1 push client (httpx).

FCM v1 has no multicast endpoint, so each device token is one request.
Without FCM_PROJECT_ID/FCM_ACCESS_TOKEN the sender is a no-op success.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

import httpx

from ingestion.utils.logging import get_logger
from publish.settings import PublishSettings, get_publish_settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class PushResult:
    success_count: int = 0
    failure_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failure_count == 0


class FcmPushSender:
    def __init__(
        self,
        settings: Optional[PublishSettings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or get_publish_settings()
        self._client = client
        self._max_attempts = max(1, max_attempts)
        self._sleep = sleep

    def is_configured(self) -> bool:
        return bool(self.settings.fcm_project_id and self.settings.fcm_access_token)

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=float(self.settings.http_timeout_seconds)) as client:
            yield client

    def _message(self, token: str, title: str, body: str, data: Mapping[str, str]) -> Dict[str, object]:
        message: Dict[str, object] = {
            "token": token,
            "notification": {"title": title, "body": body},
            "android": {"priority": "high", "notification": {"sound": "default", "channel_id": "stock_news"}},
            "apns": {"payload": {"aps": {"sound": "default", "badge": 1}}},
        }
        if data:
            message["data"] = {str(k): str(v) for k, v in data.items()}
        return {"message": message}

    async def _send_one(self, client: httpx.AsyncClient, token: str, payload: Dict[str, object]) -> Optional[str]:
        """성공 시 None, 실패 시 오류 메시지."""
        assert self.settings.fcm_access_token is not None
        url = (
            f"{self.settings.fcm_api_base.rstrip('/')}/v1/projects/"
            f"{self.settings.fcm_project_id}/messages:send"
        )
        headers = {"Authorization": f"Bearer {self.settings.fcm_access_token.get_secret_value()}"}
        error = "unknown error"
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await client.post(url, json=payload, headers=headers)
            except httpx.HTTPError as exc:
                error = str(exc) or exc.__class__.__name__
            else:
                if response.is_success:
                    return None
                error = f"{response.status_code} {response.text[:200]}"
                if response.status_code != 429 and response.status_code < 500:
                    return error
            if attempt < self._max_attempts:
                await self._sleep(float(2 ** (attempt - 1)))
        return error

    async def send_push(
        self,
        tokens: Sequence[str] | str,
        title: str,
        body: str,
        data: Optional[Mapping[str, str]] = None,
    ) -> PushResult:
        if not self.is_configured():
            logger.info("notify.push_skipped", extra={"reason": "fcm_not_configured"})
            return PushResult()

        device_tokens = [tokens] if isinstance(tokens, str) else [t for t in tokens if t]
        if not device_tokens:
            return PushResult(errors=["No device tokens provided"])

        errors: List[str] = []
        async with self._http() as client:
            outcomes = await asyncio.gather(
                *(self._send_one(client, token, self._message(token, title, body, data or {})) for token in device_tokens)
            )
        for index, outcome in enumerate(outcomes):
            if outcome is not None:
                errors.append(f"Token {index}: {outcome}")
        failure_count = len(errors)
        if failure_count:
            logger.warning("notify.push_failed", extra={"failed": failure_count, "total": len(device_tokens)})
        return PushResult(
            success_count=len(device_tokens) - failure_count,
            failure_count=failure_count,
            errors=errors,
        )
