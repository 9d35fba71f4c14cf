"""Credentials/endpoints for social platforms and notification providers."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, PositiveInt, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class PublishSettings(BaseSettings):
    """모든 자격 증명은 선택값. 없으면 해당 채널 호출이 AUTH_FAILED(푸시는 no-op)로 처리된다."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    http_timeout_seconds: PositiveInt = Field(10, alias="PUBLISH_HTTP_TIMEOUT_SECONDS", description="플랫폼 HTTP 타임아웃(초)")

    telegram_bot_token: Optional[SecretStr] = Field(None, alias="TELEGRAM_BOT_TOKEN")
    telegram_chat_id: Optional[str] = Field(None, alias="TELEGRAM_CHAT_ID")
    telegram_api_base: str = Field("https://api.telegram.org", alias="TELEGRAM_API_BASE")

    twitter_consumer_key: Optional[SecretStr] = Field(None, alias="TWITTER_CONSUMER_KEY")
    twitter_consumer_secret: Optional[SecretStr] = Field(None, alias="TWITTER_CONSUMER_SECRET")
    twitter_access_token: Optional[SecretStr] = Field(None, alias="TWITTER_ACCESS_TOKEN")
    twitter_access_token_secret: Optional[SecretStr] = Field(None, alias="TWITTER_ACCESS_TOKEN_SECRET")
    twitter_api_base: str = Field("https://api.twitter.com", alias="TWITTER_API_BASE")

    threads_user_id: Optional[str] = Field(None, alias="THREADS_USER_ID")
    threads_access_token: Optional[SecretStr] = Field(None, alias="THREADS_ACCESS_TOKEN")
    threads_api_base: str = Field("https://graph.threads.net/v1.0", alias="THREADS_API_BASE")

    toss_api_endpoint: Optional[str] = Field(None, alias="TOSS_API_ENDPOINT")
    toss_api_token: Optional[SecretStr] = Field(None, alias="TOSS_API_TOKEN")

    resend_api_key: Optional[SecretStr] = Field(None, alias="RESEND_API_KEY")
    email_from: str = Field("주식 뉴스 <news@example.com>", alias="EMAIL_FROM")
    resend_api_base: str = Field("https://api.resend.com", alias="RESEND_API_BASE")

    fcm_project_id: Optional[str] = Field(None, alias="FCM_PROJECT_ID")
    fcm_access_token: Optional[SecretStr] = Field(None, alias="FCM_ACCESS_TOKEN")
    fcm_api_base: str = Field("https://fcm.googleapis.com", alias="FCM_API_BASE")

    app_base_url: str = Field("http://localhost:3000", alias="APP_BASE_URL", description="이메일 링크용 서비스 URL")


@lru_cache()
def get_publish_settings() -> PublishSettings:
    try:
        return PublishSettings()
    except ValidationError as exc:
        raise RuntimeError(f"발행 설정 검증 실패: {exc}") from exc


def reset_publish_settings_cache() -> None:
    get_publish_settings.cache_clear()  # type: ignore[attr-defined]
