"""Publish-side DTOs shared by formatters, platform adapters and the dispatcher."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ingestion.db.models import PostStatus


class Platform(str, Enum):
    TELEGRAM = "telegram"
    TWITTER = "twitter"
    THREADS = "threads"
    TOSS = "toss"


class ErrorCode(str, Enum):
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_CONTENT = "INVALID_CONTENT"
    DUPLICATE_POST = "DUPLICATE_POST"
    AUTH_FAILED = "AUTH_FAILED"
    CONTENT_TOO_LONG = "CONTENT_TOO_LONG"
    UNKNOWN = "UNKNOWN"


RETRYABLE_ERRORS = frozenset({ErrorCode.RATE_LIMIT, ErrorCode.NETWORK_ERROR})


class PlatformConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Platform
    max_length: int
    supports_markdown: bool = False
    supports_hashtags: bool = True
    supports_edit: bool = False


PLATFORM_CONFIGS: Dict[Platform, PlatformConfig] = {
    Platform.TELEGRAM: PlatformConfig(
        name=Platform.TELEGRAM, max_length=4096, supports_markdown=True, supports_edit=True
    ),
    Platform.TWITTER: PlatformConfig(name=Platform.TWITTER, max_length=280, supports_edit=False),
    Platform.THREADS: PlatformConfig(name=Platform.THREADS, max_length=500, supports_edit=False),
    Platform.TOSS: PlatformConfig(
        name=Platform.TOSS, max_length=1000, supports_hashtags=False, supports_edit=True
    ),
}


class NewsContent(BaseModel):
    """발행 대상 기사 + 요약."""

    article_id: uuid.UUID
    ticker: str
    title: str
    summary: str
    url: str
    pub_date: datetime
    source_count: int = 1
    credibility: float = 0.5
    total_score: Optional[int] = None
    sentiment: Optional[int] = None


class FormattedContent(BaseModel):
    platform: Platform
    text: str
    hashtags: List[str] = Field(default_factory=list)
    truncated: bool = False

    @property
    def character_count(self) -> int:
        return len(self.text)


class PublishResult(BaseModel):
    platform: Platform
    success: bool
    message_id: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    error: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None
    attempts: int = 1
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def retryable(self) -> bool:
        return not self.success and self.error_code in RETRYABLE_ERRORS


class PublishSummary(BaseModel):
    post_id: uuid.UUID
    article_id: uuid.UUID
    status: PostStatus
    success_count: int
    failure_count: int
    results: List[PublishResult]
    created_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def errors(self) -> List[str]:
        return [
            f"{r.platform.value}: {r.error_code.value if r.error_code else 'UNKNOWN'} {r.error or ''}".strip()
            for r in self.results
            if not r.success
        ]


def parse_platforms(values: List[str]) -> List[Platform]:
    """중복 제거 + 순서 유지. 알 수 없는 값은 ValueError."""
    result: List[Platform] = []
    for value in values:
        platform = Platform(value)
        if platform not in result:
            result.append(platform)
    return result
