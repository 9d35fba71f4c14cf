"""Platform publisher interface and shared HTTP/error handling."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import httpx

from ingestion.utils.logging import get_logger
from publish.models import PLATFORM_CONFIGS, ErrorCode, FormattedContent, Platform, PlatformConfig, PublishResult
from publish.settings import PublishSettings, get_publish_settings

logger = get_logger(__name__)


class EditNotSupportedError(Exception):
    """플랫폼이 게시물 수정을 지원하지 않음."""

    def __init__(self, platform: Platform) -> None:
        super().__init__(f"{platform.value} does not support editing posts")
        self.platform = platform


def classify_status(status_code: int) -> ErrorCode:
    """플랫폼 공통 HTTP 상태 → ErrorCode 기본 매핑."""
    if status_code == 429:
        return ErrorCode.RATE_LIMIT
    if status_code >= 500:
        return ErrorCode.NETWORK_ERROR
    if status_code in (401, 403):
        return ErrorCode.AUTH_FAILED
    if 400 <= status_code < 500:
        return ErrorCode.INVALID_CONTENT
    return ErrorCode.UNKNOWN


def _json_or_text(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {"status_code": response.status_code, "text": response.text[:1000]}
    if isinstance(data, dict):
        return data
    return {"status_code": response.status_code, "data": data}


class PlatformPublisher(ABC):
    """플랫폼 어댑터 공통 계약.

    publish/edit은 HTTP/플랫폼 오류를 예외 대신 실패 PublishResult로 돌려준다.
    단, 수정 미지원 플랫폼의 edit은 EditNotSupportedError를 발생시킨다.
    """

    platform: Platform

    def __init__(
        self,
        settings: Optional[PublishSettings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or get_publish_settings()
        self._client = client

    @property
    def config(self) -> PlatformConfig:
        return PLATFORM_CONFIGS[self.platform]

    @property
    def supports_edit(self) -> bool:
        return self.config.supports_edit

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=float(self.settings.http_timeout_seconds)) as client:
            yield client

    @abstractmethod
    def is_configured(self) -> bool:
        """자격 증명이 설정되어 있는지."""

    @abstractmethod
    async def _send(self, client: httpx.AsyncClient, text: str) -> httpx.Response:
        """새 게시물 생성 요청."""

    async def _edit(self, client: httpx.AsyncClient, message_id: str, text: str) -> httpx.Response:
        raise EditNotSupportedError(self.platform)

    @abstractmethod
    def _extract_message_id(self, data: Dict[str, Any]) -> Optional[str]:
        """성공 응답에서 메시지 ID 추출."""

    def _classify_error(self, status_code: int, data: Dict[str, Any]) -> Tuple[ErrorCode, str]:
        return classify_status(status_code), str(data.get("message") or data.get("error") or data)[:500]

    def _is_success(self, response: httpx.Response, data: Dict[str, Any]) -> bool:
        return response.is_success

    def _failure(self, code: ErrorCode, message: str, raw: Optional[Dict[str, Any]] = None) -> PublishResult:
        return PublishResult(
            platform=self.platform,
            success=False,
            error_code=code,
            error=message,
            raw_response=raw,
        )

    def _precheck(self, content: FormattedContent) -> Optional[PublishResult]:
        if len(content.text) > self.config.max_length:
            return self._failure(
                ErrorCode.CONTENT_TOO_LONG,
                f"{len(content.text)} > {self.config.max_length} chars",
            )
        if not self.is_configured():
            return self._failure(ErrorCode.AUTH_FAILED, f"{self.platform.value} credentials are not configured")
        return None

    def _to_result(self, response: httpx.Response) -> PublishResult:
        data = _json_or_text(response)
        if self._is_success(response, data):
            return PublishResult(
                platform=self.platform,
                success=True,
                message_id=self._extract_message_id(data),
                raw_response=data,
            )
        code, message = self._classify_error(response.status_code, data)
        return self._failure(code, message, data)

    async def _call(self, request, content: FormattedContent) -> PublishResult:  # noqa: ANN001
        try:
            async with self._http() as client:
                response = await request(client)
        except httpx.TimeoutException as exc:
            return self._failure(ErrorCode.NETWORK_ERROR, f"timeout: {exc}")
        except httpx.HTTPError as exc:
            return self._failure(ErrorCode.NETWORK_ERROR, f"http error: {exc}")
        result = self._to_result(response)
        if not result.success:
            logger.info(
                "publish.platform_rejected",
                extra={
                    "platform": self.platform.value,
                    "status_code": response.status_code,
                    "error_code": result.error_code.value if result.error_code else None,
                    "chars": content.character_count,
                },
            )
        return result

    async def publish(self, content: FormattedContent) -> PublishResult:
        failed = self._precheck(content)
        if failed is not None:
            return failed
        return await self._call(lambda client: self._send(client, content.text), content)

    async def edit(self, message_id: str, content: FormattedContent) -> PublishResult:
        if not self.supports_edit:
            raise EditNotSupportedError(self.platform)
        failed = self._precheck(content)
        if failed is not None:
            return failed
        return await self._call(lambda client: self._edit(client, message_id, content.text), content)
