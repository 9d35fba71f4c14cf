from __future__ import annotations

import secrets
import uuid
from dataclasses import asdict
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from analysis.tasks.analyze import build_scoring_engine, ensure_summary
from ingestion.repositories.articles import NewsRepository, NotFoundError
from ingestion.settings import get_settings
from ingestion.tasks.deliver import (
    build_social_dispatcher,
    send_notifications_core,
    update_outdated_posts_core,
)
from ingestion.tasks.process import process_articles_core
from ingestion.utils.logging import get_logger
from publish.models import PublishSummary

from .database import session_dependency
from .models import (
    CronResponse,
    PlatformResult,
    PublishRequest,
    PublishResponse,
    SummaryRequest,
    SummaryResponse,
)

router = APIRouter(prefix="/api")
logger = get_logger(__name__)

SessionDep = Annotated[Session, Depends(session_dependency)]


def require_cron_secret(authorization: Annotated[Optional[str], Header()] = None) -> None:
    """CRON_SECRET이 설정된 경우에만 Bearer 토큰을 검사한다."""
    secret = get_settings().cron_secret
    if secret is None:
        return
    expected = f"Bearer {secret.get_secret_value()}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


CronAuth = Annotated[None, Depends(require_cron_secret)]


def _to_response(summary: PublishSummary) -> PublishResponse:
    return PublishResponse(
        post_id=summary.post_id,
        article_id=summary.article_id,
        status=summary.status,
        success_count=summary.success_count,
        failure_count=summary.failure_count,
        results=[
            PlatformResult(
                platform=r.platform,
                success=r.success,
                message_id=r.message_id,
                error_code=r.error_code,
                error=r.error,
                attempts=r.attempts,
            )
            for r in summary.results
        ],
        errors=summary.errors,
        created_at=summary.created_at,
        completed_at=summary.completed_at,
    )


@router.post("/social-media/publish", response_model=PublishResponse)
async def publish_route(payload: PublishRequest, session: SessionDep) -> PublishResponse:
    dispatcher = build_social_dispatcher(NewsRepository(session))
    try:
        summary = await dispatcher.publish(payload.article_id, payload.platforms)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _to_response(summary)


@router.get("/social-media/status/{post_id}", response_model=PublishResponse)
async def publish_status_route(post_id: uuid.UUID, session: SessionDep) -> PublishResponse:
    dispatcher = build_social_dispatcher(NewsRepository(session))
    try:
        summary = dispatcher.get_status(post_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _to_response(summary)


@router.post("/summaries/generate", response_model=SummaryResponse)
def generate_summary_route(payload: SummaryRequest, session: SessionDep) -> SummaryResponse:
    try:
        summary = ensure_summary(NewsRepository(session), build_scoring_engine(), payload.article_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return SummaryResponse(article_id=payload.article_id, summary=summary)


@router.get("/cron/process-articles", response_model=CronResponse)
def cron_process_articles(_: CronAuth, limit: Annotated[Optional[int], Query(ge=1, le=500)] = None) -> CronResponse:
    result = process_articles_core(limit)
    logger.info("cron.process_articles", extra={"scored": result.scored, "merged": result.merged})
    return CronResponse(job="process-articles", result=asdict(result))


@router.get("/cron/send-notifications", response_model=CronResponse)
def cron_send_notifications(
    _: CronAuth,
    since_minutes: Annotated[Optional[int], Query(alias="sinceMinutes", ge=1)] = None,
) -> CronResponse:
    result = send_notifications_core(since_minutes)
    return CronResponse(job="send-notifications", result=asdict(result))


@router.get("/cron/update-posts", response_model=CronResponse)
def cron_update_posts(_: CronAuth, limit: Annotated[int, Query(ge=1, le=200)] = 50) -> CronResponse:
    result = update_outdated_posts_core(limit)
    return CronResponse(job="update-posts", result=asdict(result))
