"""Settings for the scoring/summarization (OpenAI LLM) calls."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, PositiveFloat, PositiveInt, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalysisSettings(BaseSettings):
    """Environment-driven configuration for the LLM client."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    openai_api_key: str = Field(..., alias="OPENAI_API_KEY", description="OpenAI API key")
    analysis_model: str = Field("gpt-4o-mini", alias="ANALYSIS_MODEL", description="OpenAI model name")
    analysis_max_tokens: PositiveInt = Field(1024, alias="ANALYSIS_MAX_TOKENS", description="Max completion tokens")
    analysis_temperature: PositiveFloat = Field(0.2, alias="ANALYSIS_TEMPERATURE", description="Sampling temperature")
    analysis_cost_limit_usd: PositiveFloat = Field(0.02, alias="ANALYSIS_COST_LIMIT_USD", description="Per-request cost cap (USD)")
    analysis_request_timeout_seconds: PositiveInt = Field(
        30,
        alias="ANALYSIS_REQUEST_TIMEOUT_SECONDS",
        description="HTTP request timeout in seconds",
    )
    analysis_retry_max_attempts: PositiveInt = Field(3, alias="ANALYSIS_RETRY_MAX_ATTEMPTS", description="Max attempts per call")
    analysis_retry_base_delay_seconds: float = Field(
        1.0,
        alias="ANALYSIS_RETRY_BASE_DELAY_SECONDS",
        description="Exponential backoff base delay in seconds",
    )

    @field_validator("openai_api_key")
    @classmethod
    def _non_empty_api_key(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("OPENAI_API_KEY는 공백일 수 없습니다.")
        return s

    @field_validator("analysis_retry_base_delay_seconds")
    @classmethod
    def _non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("ANALYSIS_RETRY_BASE_DELAY_SECONDS는 0 이상이어야 합니다.")
        return v


@lru_cache()
def get_analysis_settings() -> AnalysisSettings:
    try:
        return AnalysisSettings()
    except ValidationError as exc:
        raise RuntimeError(f"분석 설정 검증 실패: {exc}") from exc


def reset_analysis_settings_cache() -> None:
    get_analysis_settings.cache_clear()  # type: ignore[attr-defined]
