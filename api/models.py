from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ingestion.db.models import PostStatus
from publish.models import ErrorCode, Platform


class PublishRequest(BaseModel):
    article_id: uuid.UUID = Field(..., alias="articleId")
    platforms: List[Platform] = Field(..., min_length=1)

    model_config = {"populate_by_name": True}


class PlatformResult(BaseModel):
    platform: Platform
    success: bool
    message_id: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    error: Optional[str] = None
    attempts: int = 1


class PublishResponse(BaseModel):
    post_id: uuid.UUID
    article_id: uuid.UUID
    status: PostStatus
    success_count: int
    failure_count: int
    results: List[PlatformResult]
    errors: List[str] = Field(default_factory=list)
    created_at: datetime
    completed_at: Optional[datetime] = None


class SummaryRequest(BaseModel):
    article_id: uuid.UUID = Field(..., alias="articleId")

    model_config = {"populate_by_name": True}


class SummaryResponse(BaseModel):
    article_id: uuid.UUID
    summary: str


class CronResponse(BaseModel):
    job: str
    result: Dict[str, Any]
