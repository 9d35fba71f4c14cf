from __future__ import annotations

import pytest

from analysis.tasks import analyze as analyze_mod
from conftest import fake_llm_provider, make_article, make_scored_article
from ingestion.db.models import Base
from ingestion.db.session import get_engine, session_scope
from ingestion.repositories.articles import NewsRepository, NotFoundError


@pytest.fixture(autouse=True)
def _provider(monkeypatch):
    monkeypatch.setattr(analyze_mod, "PROVIDER_FACTORY", lambda: fake_llm_provider(summary="새로 생성된 요약."))


def test_ensure_summary_returns_stored_summary(repo):
    article, _ = make_scored_article(repo, summary="저장된 요약.")
    engine = analyze_mod.build_scoring_engine()

    assert analyze_mod.ensure_summary(repo, engine, article.id) == "저장된 요약."


def test_ensure_summary_generates_and_persists(repo):
    article, score = make_scored_article(repo, summary=None)
    engine = analyze_mod.build_scoring_engine()

    assert analyze_mod.ensure_summary(repo, engine, str(article.id)) == "새로 생성된 요약."
    assert score.summary_text == "새로 생성된 요약."


def test_ensure_summary_requires_score(repo):
    article = make_article(repo)
    with pytest.raises(NotFoundError):
        analyze_mod.ensure_summary(repo, analyze_mod.build_scoring_engine(), article.id)


def test_build_scoring_engine_uses_settings(monkeypatch):
    monkeypatch.setenv("AUTO_PUBLISH_THRESHOLD", "70")
    monkeypatch.setenv("SCORING_BATCH_SIZE", "3")
    from ingestion.settings import reset_settings_cache

    reset_settings_cache()
    engine = analyze_mod.build_scoring_engine()
    assert engine.config.auto_publish_threshold == 70
    assert engine.batch_size == 3


def test_generate_summary_core_commits():
    Base.metadata.create_all(bind=get_engine())
    with session_scope() as session:
        article, _ = make_scored_article(NewsRepository(session), summary=None)
        article_id = str(article.id)

    assert analyze_mod.generate_summary_core(article_id) == "새로 생성된 요약."
    with session_scope() as session:
        assert NewsRepository(session).get_score(article_id).summary_text == "새로 생성된 요약."
