from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select

from conftest import FakePublisher, make_article, make_scored_article
from ingestion.db.models import LogStatus, PostStatus, PublishPost
from ingestion.repositories.articles import NotFoundError
from publish.dispatcher import SocialDispatcher, aggregate_status
from publish.models import ErrorCode, Platform


def _dispatcher(repo, publishers, no_sleep, **kwargs) -> SocialDispatcher:
    return SocialDispatcher(repo, {p.platform: p for p in publishers}, sleep=no_sleep, **kwargs)


@pytest.mark.parametrize(
    "success,failure,status",
    [(2, 0, PostStatus.COMPLETED), (1, 1, PostStatus.PARTIAL_FAILURE), (0, 2, PostStatus.FAILED)],
)
def test_aggregate_status(success, failure, status):
    assert aggregate_status(success, failure) == status


def test_aggregate_status_requires_results():
    with pytest.raises(ValueError):
        aggregate_status(0, 0)


def test_partial_failure_is_recorded_per_platform(repo, no_sleep):
    article, _ = make_scored_article(repo)
    telegram = FakePublisher(Platform.TELEGRAM)
    twitter = FakePublisher(Platform.TWITTER, [ErrorCode.AUTH_FAILED])

    summary = asyncio.run(
        _dispatcher(repo, [telegram, twitter], no_sleep).publish(article.id, [Platform.TELEGRAM, Platform.TWITTER])
    )

    assert summary.status == PostStatus.PARTIAL_FAILURE
    assert (summary.success_count, summary.failure_count) == (1, 1)
    assert summary.errors == ["twitter: AUTH_FAILED AUTH_FAILED from fake"]
    assert no_sleep.delays == []

    logs = {log.platform: log for log in repo.list_publish_logs(summary.post_id)}
    assert len(logs) == 2
    assert logs["telegram"].status == LogStatus.SENT
    assert logs["telegram"].message_id == "telegram-msg-0"
    assert logs["telegram"].formatted_content.startswith("🏢 005930")
    assert logs["twitter"].status == LogStatus.FAILED
    assert logs["twitter"].error_code == "AUTH_FAILED"

    score = repo.get_score(article.id)
    assert score.social_posted is True
    assert score.social_post_count == 1


def test_rate_limit_is_retried_with_backoff(repo, no_sleep):
    article, _ = make_scored_article(repo)
    twitter = FakePublisher(Platform.TWITTER, [ErrorCode.RATE_LIMIT, ErrorCode.NETWORK_ERROR, None])

    summary = asyncio.run(_dispatcher(repo, [twitter], no_sleep).publish(article.id, [Platform.TWITTER]))

    assert summary.status == PostStatus.COMPLETED
    assert summary.results[0].attempts == 3
    assert no_sleep.delays == [1.0, 2.0]
    log = repo.list_publish_logs(summary.post_id)[0]
    assert log.status == LogStatus.SENT
    assert log.retry_count == 2


def test_retries_stop_at_max_attempts(repo, no_sleep):
    article, _ = make_scored_article(repo)
    toss = FakePublisher(Platform.TOSS, [ErrorCode.RATE_LIMIT])

    summary = asyncio.run(
        _dispatcher(repo, [toss], no_sleep, max_attempts=3, base_delay_seconds=0.5).publish(article.id, [Platform.TOSS])
    )

    assert summary.status == PostStatus.FAILED
    assert len(toss.published) == 3
    assert no_sleep.delays == [0.5, 1.0]
    assert repo.get_score(article.id).social_posted is False


def test_non_retryable_errors_are_not_retried(repo, no_sleep):
    article, _ = make_scored_article(repo)
    threads = FakePublisher(Platform.THREADS, [ErrorCode.CONTENT_TOO_LONG, None])

    summary = asyncio.run(_dispatcher(repo, [threads], no_sleep).publish(article.id, [Platform.THREADS]))

    assert summary.status == PostStatus.FAILED
    assert len(threads.published) == 1


def test_platform_exception_does_not_cancel_others(repo, no_sleep):
    article, _ = make_scored_article(repo)

    class Exploding(FakePublisher):
        async def publish(self, content):
            raise RuntimeError("socket closed")

    summary = asyncio.run(
        _dispatcher(repo, [Exploding(Platform.THREADS), FakePublisher(Platform.TOSS)], no_sleep).publish(
            article.id, [Platform.THREADS, Platform.TOSS]
        )
    )

    results = {r.platform: r for r in summary.results}
    assert results[Platform.THREADS].error_code == ErrorCode.UNKNOWN
    assert results[Platform.THREADS].error == "socket closed"
    assert results[Platform.TOSS].success is True
    assert summary.status == PostStatus.PARTIAL_FAILURE


def test_missing_publisher_is_a_failed_result(repo, no_sleep):
    article, _ = make_scored_article(repo)
    summary = asyncio.run(_dispatcher(repo, [], no_sleep).publish(article.id, [Platform.TELEGRAM]))
    assert summary.status == PostStatus.FAILED
    assert summary.results[0].error_code == ErrorCode.UNKNOWN


def test_duplicate_platforms_are_collapsed(repo, no_sleep):
    article, _ = make_scored_article(repo)
    telegram = FakePublisher(Platform.TELEGRAM)
    summary = asyncio.run(
        _dispatcher(repo, [telegram], no_sleep).publish(article.id, [Platform.TELEGRAM, Platform.TELEGRAM])
    )
    assert len(summary.results) == 1
    assert len(telegram.published) == 1


def test_publish_requires_summary_and_platforms(repo, no_sleep):
    unscored = make_article(repo, url="https://n/unscored")
    no_summary, _ = make_scored_article(repo, url="https://n/no-summary", summary=None)
    useful, _ = make_scored_article(repo, url="https://n/ok")
    dispatcher = _dispatcher(repo, [FakePublisher(Platform.TELEGRAM)], no_sleep)

    with pytest.raises(NotFoundError):
        asyncio.run(dispatcher.publish(unscored.id, [Platform.TELEGRAM]))
    with pytest.raises(NotFoundError):
        asyncio.run(dispatcher.publish(no_summary.id, [Platform.TELEGRAM]))
    with pytest.raises(ValueError):
        asyncio.run(dispatcher.publish(useful.id, []))


def test_get_status_reads_persisted_logs(repo, no_sleep):
    article, _ = make_scored_article(repo)
    twitter = FakePublisher(Platform.TWITTER, [ErrorCode.RATE_LIMIT, None])
    dispatcher = _dispatcher(repo, [twitter, FakePublisher(Platform.TELEGRAM)], no_sleep)
    published = asyncio.run(dispatcher.publish(article.id, [Platform.TWITTER, Platform.TELEGRAM]))

    status = dispatcher.get_status(published.post_id)

    assert status.status == PostStatus.COMPLETED
    assert [r.platform for r in status.results] == [Platform.TELEGRAM, Platform.TWITTER]
    assert [r.attempts for r in status.results] == [1, 2]
    assert dispatcher.message_ids(published.post_id) == {
        Platform.TELEGRAM: "telegram-msg-0",
        Platform.TWITTER: "twitter-msg-1",
    }
    with pytest.raises(NotFoundError):
        dispatcher.get_status("00000000-0000-0000-0000-000000000000")


class HangingPublisher(FakePublisher):
    """publish 호출 후 취소될 때까지 대기."""

    def __init__(self, platform: Platform) -> None:
        super().__init__(platform)
        self.started = asyncio.Event()

    async def publish(self, content):
        self.published.append(content)
        self.started.set()
        await asyncio.Event().wait()


def test_cancelled_dispatch_closes_post_and_logs(repo, no_sleep):
    article, _ = make_scored_article(repo)
    hanging = HangingPublisher(Platform.TWITTER)
    dispatcher = SocialDispatcher(repo, {Platform.TELEGRAM: FakePublisher(Platform.TELEGRAM), Platform.TWITTER: hanging}, sleep=no_sleep)

    async def run_and_cancel() -> bool:
        task = asyncio.create_task(dispatcher.publish(article.id, [Platform.TELEGRAM, Platform.TWITTER]))
        await hanging.started.wait()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            return True
        return False

    assert asyncio.run(run_and_cancel()) is True

    post = repo.session.scalar(select(PublishPost))
    assert post.status == PostStatus.PARTIAL_FAILURE
    assert (post.success_count, post.failure_count) == (1, 1)
    logs = {log.platform: log for log in repo.list_publish_logs(post.id)}
    assert logs["telegram"].status == LogStatus.SENT
    assert logs["twitter"].status == LogStatus.FAILED
    assert logs["twitter"].error_message == "dispatch cancelled"
