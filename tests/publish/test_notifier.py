from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from analysis.models.domain import NewsScore
from analysis.scoring import compute_total_score
from conftest import FakeEmailSender, FakePushSender, make_article, make_scored_article, make_user, scores_of
from ingestion.db.models import ArticleStatus, NotificationChannel, NotificationLogEntry, NotificationStatus
from ingestion.repositories.articles import NotFoundError
from publish.notifier import NotificationDispatcher


def _dispatcher(repo, email=None, push=None, **kwargs):
    email = email or FakeEmailSender()
    push = push or FakePushSender()
    return NotificationDispatcher(repo, email, push, **kwargs), email, push


def _seed(repo):
    first, _ = make_scored_article(repo, url="https://n/samsung-1", title="삼성전자 실적 발표")
    second, _ = make_scored_article(repo, url="https://n/samsung-2", title="삼성전자 배당 확대")
    hynix, _ = make_scored_article(repo, url="https://n/hynix-1", title="SK하이닉스 HBM 계약", ticker="000660")
    return first, second, hynix


def test_digest_and_single_notifications(repo, no_sleep):
    first, second, hynix = _seed(repo)
    alice = make_user(repo, email="alice@example.com", push_token="device-a", tickers=("005930",))
    make_user(repo, email="bob@example.com", tickers=("000660",))
    dispatcher, email, push = _dispatcher(repo, sleep=no_sleep)

    result = asyncio.run(dispatcher.dispatch(since_minutes=30))

    assert result.total_users == 2
    assert (result.emails_sent, result.emails_failed) == (2, 0)
    assert (result.push_sent, result.push_failed) == (1, 0)
    subjects = {mail["to"]: mail["subject"] for mail in email.sent}
    assert subjects["alice@example.com"] == "[005930] 새로운 뉴스 2건"
    assert subjects["bob@example.com"] == "[000660] SK하이닉스 HBM 계약"
    assert push.sent == [
        {
            "tokens": ["device-a"],
            "title": "📰 새로운 주식 뉴스",
            "body": "2건의 새로운 뉴스가 도착했습니다.",
            "data": {"type": "digest", "count": "2"},
        }
    ]

    logs = list(repo.session.scalars(select(NotificationLogEntry).where(NotificationLogEntry.user_id == alice.id)))
    assert len(logs) == 4
    assert {log.status for log in logs} == {NotificationStatus.SENT}


def test_second_run_sends_nothing_new(repo, no_sleep):
    _seed(repo)
    make_user(repo, email="alice@example.com", push_token="device-a", tickers=("005930", "000660"))
    dispatcher, email, push = _dispatcher(repo, sleep=no_sleep)

    asyncio.run(dispatcher.dispatch())
    again = asyncio.run(dispatcher.dispatch())

    assert len(email.sent) == 1
    assert len(push.sent) == 1
    assert (again.emails_sent, again.push_sent) == (0, 0)
    assert again.total_users == 1


def test_multi_ticker_digest_subject(repo, no_sleep):
    _seed(repo)
    make_user(repo, email="alice@example.com", tickers=("005930", "000660"))
    dispatcher, email, _ = _dispatcher(repo, sleep=no_sleep)

    asyncio.run(dispatcher.dispatch())

    assert email.sent[0]["subject"] == "새로운 주식 뉴스 3건 (2개 종목)"
    assert "📊 주식 뉴스 다이제스트" in email.sent[0]["text"]


def test_single_article_push_carries_article_id(repo, no_sleep):
    article, _ = make_scored_article(repo, url="https://n/one", title="삼성전자 신제품 공개", summary="갤럭시 신제품을 공개했다.")
    make_user(repo, email=None, push_token="device-a")
    dispatcher, email, push = _dispatcher(repo, sleep=no_sleep)

    asyncio.run(dispatcher.dispatch())

    assert email.sent == []
    assert push.sent[0]["title"] == "[005930] 삼성전자 신제품 공개"
    assert push.sent[0]["body"] == "갤럭시 신제품을 공개했다."
    assert push.sent[0]["data"]["articleId"] == str(article.id)


def test_failed_email_is_isolated_and_retried(repo, no_sleep):
    _seed(repo)
    make_user(repo, email="alice@example.com", tickers=("005930",))
    make_user(repo, email="bob@example.com", tickers=("005930",))
    email = FakeEmailSender(fail_for={"alice@example.com"})
    dispatcher, _, _ = _dispatcher(repo, email=email, sleep=no_sleep)

    first_run = asyncio.run(dispatcher.dispatch())
    assert (first_run.emails_sent, first_run.emails_failed) == (1, 1)
    assert first_run.errors == ["email alice@example.com: provider rejected"]

    email.fail_for.clear()
    second_run = asyncio.run(dispatcher.dispatch())
    assert (second_run.emails_sent, second_run.emails_failed) == (1, 0)
    assert [mail["to"] for mail in email.sent].count("bob@example.com") == 1

    statuses = {log.status for log in repo.session.scalars(select(NotificationLogEntry))}
    assert statuses == {NotificationStatus.SENT}


def test_push_failure_is_logged(repo, no_sleep):
    article, _ = make_scored_article(repo)
    user = make_user(repo, email=None, push_token="stale-token")
    dispatcher, _, _ = _dispatcher(repo, push=FakePushSender(fail=True), sleep=no_sleep)

    result = asyncio.run(dispatcher.dispatch())

    assert result.push_failed == 1
    assert repo.sent_notification_articles(user.id, [article.id], NotificationChannel.PUSH) == set()
    log = repo.session.scalar(select(NotificationLogEntry))
    assert log.status == NotificationStatus.FAILED
    assert log.error_message == "Token 0: unregistered"


def test_sender_exception_does_not_stop_other_users(repo, no_sleep):
    _seed(repo)
    make_user(repo, email="alice@example.com", tickers=("005930",))
    make_user(repo, email="bob@example.com", tickers=("000660",))

    class Flaky(FakeEmailSender):
        async def send_email(self, to, subject, html, text):
            if to == "alice@example.com":
                raise RuntimeError("connection reset")
            return await super().send_email(to, subject, html, text)

    dispatcher, email, _ = _dispatcher(repo, email=Flaky(), sleep=no_sleep)
    result = asyncio.run(dispatcher.dispatch())

    assert result.emails_sent == 1
    assert result.emails_failed == 1
    assert len(result.errors) == 1
    assert "connection reset" in result.errors[0]


def test_email_exception_does_not_skip_push(repo, no_sleep):
    make_scored_article(repo)
    make_user(repo, email="alice@example.com", push_token="device-1")

    class Broken(FakeEmailSender):
        async def send_email(self, to, subject, html, text):
            raise RuntimeError("connection reset")

    dispatcher, _, push = _dispatcher(repo, email=Broken(), sleep=no_sleep)
    result = asyncio.run(dispatcher.dispatch())

    assert (result.emails_sent, result.emails_failed) == (0, 1)
    assert (result.push_sent, result.push_failed) == (1, 0)
    assert push.sent[0]["tokens"] == ["device-1"]
    assert result.errors == ["email alice@example.com: connection reset"]


def test_push_exception_keeps_email_counted(repo, no_sleep):
    make_scored_article(repo)
    user = make_user(repo, email="alice@example.com", push_token="device-1")

    class Broken(FakePushSender):
        async def send_push(self, tokens, title, body, data=None):
            raise RuntimeError("fcm unavailable")

    dispatcher, email, _ = _dispatcher(repo, push=Broken(), sleep=no_sleep)
    result = asyncio.run(dispatcher.dispatch())

    assert (result.emails_sent, result.emails_failed) == (1, 0)
    assert (result.push_sent, result.push_failed) == (0, 1)
    assert len(email.sent) == 1
    assert result.errors == [f"push {user.id}: fcm unavailable"]


def test_batch_size_caps_articles_per_run(repo, no_sleep):
    for index in range(3):
        make_scored_article(repo, url=f"https://n/samsung-{index}", title=f"삼성전자 뉴스 {index}")
    make_user(repo, email="alice@example.com")
    dispatcher, email, _ = _dispatcher(repo, sleep=no_sleep)

    first = asyncio.run(dispatcher.dispatch(batch_size=1))
    assert first.emails_sent == 1
    assert "새로운 뉴스" not in email.sent[0]["subject"]

    asyncio.run(dispatcher.dispatch(batch_size=3))
    assert email.sent[1]["subject"] == "[005930] 새로운 뉴스 2건"


def test_users_are_processed_in_batches(repo, no_sleep):
    make_scored_article(repo)
    for index in range(5):
        make_user(repo, email=f"user{index}@example.com")
    dispatcher, email, _ = _dispatcher(repo, sleep=no_sleep, batch_size=2, batch_delay_seconds=0.25)

    result = asyncio.run(dispatcher.dispatch())

    assert result.emails_sent == 5
    assert no_sleep.delays == [0.25, 0.25]


def test_empty_summary_uses_fallback(repo, no_sleep):
    article = make_article(repo, url="https://n/nosummary", description="본문 " * 100)
    article.transition(ArticleStatus.ADMITTED)
    repo.upsert_score(article.id, NewsScore(scores=scores_of(8), total_score=compute_total_score(scores_of(8))))
    article.transition(ArticleStatus.SCORED)
    make_user(repo, email="alice@example.com")
    dispatcher, email, _ = _dispatcher(repo, sleep=no_sleep)

    asyncio.run(dispatcher.dispatch())

    assert ("본문 " * 100)[:150] + "..." in email.sent[0]["text"]


def test_window_excludes_old_scores(repo, no_sleep):
    make_scored_article(repo)
    make_user(repo)
    later = datetime.now(timezone.utc) + timedelta(hours=2)
    dispatcher, email, _ = _dispatcher(repo, sleep=no_sleep, clock=lambda: later)

    result = asyncio.run(dispatcher.dispatch(since_minutes=30))

    assert result.total_users == 0
    assert email.sent == []


def test_send_immediate(repo, no_sleep):
    article, _ = make_scored_article(repo)
    make_user(repo, email="alice@example.com")
    unscored = make_article(repo, url="https://n/unscored")
    dispatcher, email, _ = _dispatcher(repo, sleep=no_sleep)

    result = asyncio.run(dispatcher.send_immediate(article.id))

    assert (result.total_users, result.emails_sent) == (1, 1)
    assert email.sent[0]["subject"].startswith("[005930] ")
    with pytest.raises(NotFoundError):
        asyncio.run(dispatcher.send_immediate(unscored.id))
