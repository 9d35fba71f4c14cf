"""DTO/스키마: 점수 산출 입력/출력 정의.

LLM 응답은 신뢰할 수 없으므로 JSON 디코딩 후 Pydantic v2 스키마로 검증한다.
하위 점수는 범위를 벗어나도 거부하지 않고 1~10(감성은 -2~2)으로 보정한다.
"""

from __future__ import annotations

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SCORE_MIN = 1
SCORE_MAX = 10
SCORE_NEUTRAL = 5
SENTIMENT_MIN = -2
SENTIMENT_MAX = 2

VISIBLE_FIELDS = ("impact", "urgency", "certainty", "durability", "attention", "relevance")
HIDDEN_FIELDS = ("sector_impact", "institutional_interest", "volatility")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def clamp_score(value: Any) -> int:
    """숫자가 아니면 중립값 5, 그 외에는 반올림 후 1~10으로 보정."""
    number = _to_number(value)
    if number is None:
        return SCORE_NEUTRAL
    if math.isinf(number):
        return SCORE_MAX if number > 0 else SCORE_MIN
    return max(SCORE_MIN, min(SCORE_MAX, round_half_up(number)))


def clamp_sentiment(value: Any) -> int:
    number = _to_number(value)
    if number is None:
        return 0
    if math.isinf(number):
        return SENTIMENT_MAX if number > 0 else SENTIMENT_MIN
    return max(SENTIMENT_MIN, min(SENTIMENT_MAX, round_half_up(number)))


class SubScores(BaseModel):
    """9개 하위 점수 + 감성. LLM 응답의 camelCase 키도 허용한다."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    impact: int = SCORE_NEUTRAL
    urgency: int = SCORE_NEUTRAL
    certainty: int = SCORE_NEUTRAL
    durability: int = SCORE_NEUTRAL
    attention: int = SCORE_NEUTRAL
    relevance: int = SCORE_NEUTRAL
    sector_impact: int = Field(SCORE_NEUTRAL, alias="sectorImpact")
    institutional_interest: int = Field(SCORE_NEUTRAL, alias="institutionalInterest")
    volatility: int = SCORE_NEUTRAL
    sentiment: int = 0

    @field_validator(*VISIBLE_FIELDS, *HIDDEN_FIELDS, mode="before")
    @classmethod
    def _clamp_score(cls, v: Any) -> int:
        return clamp_score(v)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _clamp_sentiment(cls, v: Any) -> int:
        return clamp_sentiment(v)

    @classmethod
    def neutral(cls) -> "SubScores":
        return cls()

    def visible(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in VISIBLE_FIELDS}

    def hidden(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in HIDDEN_FIELDS}


class ScoreResponse(BaseModel):
    """점수 산출 LLM 응답. `scores` 객체가 없으면 검증 실패."""

    model_config = ConfigDict(extra="ignore")

    summary: Optional[str] = None
    scores: SubScores
    reasoning: Optional[str] = None

    @field_validator("summary", "reasoning", mode="before")
    @classmethod
    def _strip_optional(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        s = str(v).strip()
        return s or None


class FilterResponse(BaseModel):
    """유용성 판별 LLM 응답."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_useful: bool = Field(..., alias="isUseful")
    confidence: float = 0.5
    reasoning: str = "No reasoning provided"

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        number = _to_number(v)
        if not number or math.isinf(number):
            return 0.5
        return max(0.0, min(1.0, number))

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning_text(cls, v: Any) -> str:
        s = str(v or "").strip()
        return s or "No reasoning provided"


class ArticleInput(BaseModel):
    """점수 산출 대상 기사."""

    id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("title은 공백일 수 없습니다.")
        return s


class NewsScore(BaseModel):
    """산출된 점수. total_score는 항상 compute_total_score 결과."""

    scores: SubScores
    total_score: int = Field(..., ge=1, le=100)
    reasoning: Optional[str] = None
    summary: Optional[str] = None
    is_fallback: bool = False
    llm_model: Optional[str] = None


class FilterResult(BaseModel):
    is_useful: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str


class BatchScoreResult(BaseModel):
    article_id: str
    score: Optional[NewsScore] = None
    usefulness: Optional[FilterResult] = None
    error: Optional[str] = None
