"""Resend email client (httpx)."""

from __future__ import annotations

import asyncio
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

import httpx

from ingestion.utils.logging import get_logger
from publish.settings import PublishSettings, get_publish_settings

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class _NonRetryable(Exception):
    pass


def is_valid_email(address: str) -> bool:
    return bool(address) and EMAIL_PATTERN.match(address) is not None


class ResendMailer:
    """sendEmail 계약 구현. 4xx(429 제외)와 잘못된 주소/키는 재시도하지 않는다."""

    def __init__(
        self,
        settings: Optional[PublishSettings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or get_publish_settings()
        self._client = client
        self._max_attempts = max(1, max_attempts)
        self._sleep = sleep

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=float(self.settings.http_timeout_seconds)) as client:
            yield client

    def _api_key(self) -> Optional[str]:
        key = self.settings.resend_api_key
        value = key.get_secret_value() if key else ""
        return value or None

    async def _post(self, to: str, subject: str, html: str, text: str) -> str:
        api_key = self._api_key()
        if api_key is None:
            raise _NonRetryable("RESEND_API_KEY가 설정되지 않았습니다.")
        payload = {
            "from": self.settings.email_from,
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text,
        }
        async with self._http() as client:
            response = await client.post(
                f"{self.settings.resend_api_base.rstrip('/')}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {api_key}"},
            )
        if response.is_success:
            data = response.json()
            return str(data.get("id") or "")
        message = f"Resend 오류: {response.status_code} {response.text[:200]}"
        if 400 <= response.status_code < 500 and response.status_code != 429:
            raise _NonRetryable(message)
        raise httpx.HTTPStatusError(message, request=response.request, response=response)

    async def send_email(self, to: str, subject: str, html: str, text: str) -> EmailResult:
        if not is_valid_email(to):
            return EmailResult(success=False, error=f"Invalid email address: {to}")

        last_error = "unknown error"
        for attempt in range(1, self._max_attempts + 1):
            try:
                message_id = await self._post(to, subject, html, text)
            except _NonRetryable as exc:
                logger.warning("notify.email_rejected", extra={"error": str(exc)})
                return EmailResult(success=False, error=str(exc))
            except httpx.HTTPError as exc:
                last_error = str(exc) or exc.__class__.__name__
                if attempt < self._max_attempts:
                    delay = float(2 ** (attempt - 1))
                    logger.info("notify.email_retry", extra={"attempt": attempt, "delay": delay})
                    await self._sleep(delay)
                continue
            return EmailResult(success=True, message_id=message_id or None)

        logger.warning("notify.email_failed", extra={"attempts": self._max_attempts, "error": last_error})
        return EmailResult(success=False, error=f"Failed after {self._max_attempts} attempts: {last_error}")

