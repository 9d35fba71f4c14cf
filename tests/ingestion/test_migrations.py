from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import Session, sessionmaker

from ingestion.db.models import Article, ArticleStatus, JobRun, JobStage, JobStatus, Score

ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture()
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'migrated.db'}"


def _upgrade_database(db_url: str) -> None:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "ingestion" / "db" / "migrations"))
    cfg.attributes["dsn"] = db_url
    cfg.attributes["configure_logger"] = False
    command.upgrade(cfg, "head")


def test_migrations_create_expected_tables(sqlite_url: str) -> None:
    _upgrade_database(sqlite_url)
    inspector = inspect(create_engine(sqlite_url, future=True))

    tables = set(inspector.get_table_names())
    assert {
        "news_articles",
        "news_scores",
        "social_media_posts",
        "social_media_logs",
        "users",
        "subscriptions",
        "notification_logs",
        "job_runs",
    }.issubset(tables)

    article_columns = {column["name"] for column in inspector.get_columns("news_articles")}
    assert {"url_hash", "ticker", "status", "source_count", "source_urls", "credibility"}.issubset(article_columns)

    score_columns = {column["name"] for column in inspector.get_columns("news_scores")}
    assert {"total_score", "sentiment", "is_useful", "summary_text", "social_post_count"}.issubset(score_columns)

    log_uniques = {tuple(uc["column_names"]) for uc in inspector.get_unique_constraints("notification_logs")}
    assert ("user_id", "article_id", "channel") in log_uniques


def test_models_roundtrip_on_migrated_schema(sqlite_url: str) -> None:
    _upgrade_database(sqlite_url)
    SessionLocal = sessionmaker(bind=create_engine(sqlite_url, future=True), expire_on_commit=False, future=True)

    with SessionLocal() as session:  # type: Session
        article = Article(
            url="https://example.com/a",
            url_hash="a" * 64,
            title="삼성전자(005930) 실적 발표",
            pub_date=datetime.now(timezone.utc),
            ticker="005930",
            status=ArticleStatus.ADMITTED,
            source_urls=["https://example.com/a"],
        )
        job = JobRun(stage=JobStage.PROCESS, status=JobStatus.RUNNING, task_name="process_articles")
        session.add_all([article, job])
        session.flush()
        score = Score(
            article_id=article.id,
            impact=5,
            urgency=5,
            certainty=5,
            durability=5,
            attention=5,
            relevance=5,
            sector_impact=5,
            institutional_interest=5,
            volatility=5,
            total_score=50,
        )
        session.add(score)
        session.commit()

    assert article.source_count == 1
    assert article.credibility == 0.5
    assert score.social_post_count == 0
    assert score.is_useful is True
    assert job.retry_count == 0
    assert job.created_at is not None
