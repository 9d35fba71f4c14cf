"""Configuration models for the news pipeline."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import (
    Field,
    PositiveInt,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """파이프라인 공통 환경 설정."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    redis_url: str = Field(..., alias="INGESTION_REDIS_URL", description="Celery 브로커/백엔드 Redis DSN.")
    postgres_dsn: str = Field(..., alias="POSTGRES_DSN", description="PostgreSQL 연결 문자열.")
    structlog_level: str = Field("INFO", alias="STRUCTLOG_LEVEL", description="구조화 로그 레벨.")
    log_json: bool = Field(False, alias="LOG_JSON", description="로그를 JSON 형식으로 출력할지 여부.")
    dedup_redis_ttl_seconds: PositiveInt = Field(86_400, alias="DEDUP_REDIS_TTL_SECONDS", description="URL 중복 캐시 TTL.")
    dedup_window_days: PositiveInt = Field(7, alias="DEDUP_WINDOW_DAYS", description="유사 기사 비교 기간(일).")

    scoring_batch_size: PositiveInt = Field(10, alias="SCORING_BATCH_SIZE", description="점수 산출 배치 크기.")
    scoring_batch_delay_seconds: float = Field(
        1.0,
        alias="SCORING_BATCH_DELAY_SECONDS",
        description="점수 산출 배치 사이 대기(초).",
    )
    auto_publish_threshold: PositiveInt = Field(80, alias="AUTO_PUBLISH_THRESHOLD", description="자동 발행 기준 점수.")

    publish_max_retries: PositiveInt = Field(3, alias="PUBLISH_MAX_RETRIES", description="플랫폼별 최대 시도 횟수.")
    retry_base_delay_seconds: float = Field(
        1.0,
        alias="RETRY_BASE_DELAY_SECONDS",
        description="지수 백오프 기본 대기(초).",
    )

    notify_since_minutes: PositiveInt = Field(30, alias="NOTIFY_SINCE_MINUTES", description="알림 대상 기사 조회 범위(분).")
    notify_article_limit: PositiveInt = Field(
        50,
        alias="NOTIFY_ARTICLE_LIMIT",
        description="알림 1회 실행에서 처리할 최대 기사 수.",
    )
    notify_batch_size: PositiveInt = Field(50, alias="NOTIFY_BATCH_SIZE", description="알림 사용자 배치 크기.")
    notify_batch_delay_seconds: float = Field(
        0.1,
        alias="NOTIFY_BATCH_DELAY_SECONDS",
        description="알림 사용자 배치 사이 대기(초).",
    )
    subscription_limit: PositiveInt = Field(5, alias="SUBSCRIPTION_LIMIT", description="사용자당 구독 종목 한도.")

    process_interval_minutes: PositiveInt = Field(10, alias="PROCESS_INTERVAL_MINUTES", description="기사 처리 주기(분).")
    notify_interval_minutes: PositiveInt = Field(30, alias="NOTIFY_INTERVAL_MINUTES", description="알림 발송 주기(분).")
    update_posts_interval_minutes: PositiveInt = Field(
        60,
        alias="UPDATE_POSTS_INTERVAL_MINUTES",
        description="게시물 업데이트 주기(분).",
    )
    process_batch_limit: PositiveInt = Field(50, alias="PROCESS_BATCH_LIMIT", description="1회 처리할 대기 기사 수.")

    cron_secret: Optional[SecretStr] = Field(None, alias="CRON_SECRET", description="크론 엔드포인트 Bearer 토큰.")

    celery_worker_concurrency: PositiveInt = Field(
        4,
        alias="CELERY_WORKER_CONCURRENCY",
        description="Celery 워커 동시 실행 수.",
    )
    celery_task_soft_time_limit: PositiveInt = Field(
        300,
        alias="CELERY_TASK_SOFT_TIME_LIMIT",
        description="Celery 태스크 소프트 타임아웃 (초).",
    )

    @field_validator("postgres_dsn")
    @classmethod
    def _validate_postgres_dsn(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError("POSTGRES_DSN은 유효한 DSN 문자열이어야 합니다.")
        return value

    @field_validator(
        "scoring_batch_delay_seconds",
        "retry_base_delay_seconds",
        "notify_batch_delay_seconds",
    )
    @classmethod
    def _validate_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("대기 시간은 0 이상이어야 합니다.")
        return value


@lru_cache()
def get_settings() -> Settings:
    """환경 변수를 기준으로 Settings 인스턴스를 반환한다."""
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"환경 변수 검증에 실패했습니다: {exc}") from exc


def reset_settings_cache() -> None:
    """Settings LRU 캐시를 초기화한다 (테스트 용도)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
