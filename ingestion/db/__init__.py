"""Database utilities for the news pipeline."""

from .models import (  # noqa: F401
    Article,
    ArticleStatus,
    Base,
    JobRun,
    JobStage,
    JobStatus,
    NotificationLogEntry,
    PublishLogEntry,
    PublishPost,
    Score,
    Subscription,
    User,
)
from .session import get_engine, get_sessionmaker, session_scope  # noqa: F401

__all__ = [
    "Article",
    "ArticleStatus",
    "Base",
    "JobRun",
    "JobStage",
    "JobStatus",
    "NotificationLogEntry",
    "PublishLogEntry",
    "PublishPost",
    "Score",
    "Subscription",
    "User",
    "get_engine",
    "get_sessionmaker",
    "session_scope",
]
