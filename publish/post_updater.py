"""Refresh live posts whose article changed (e.g. merged duplicate sources).

A flagged post is never mutated beyond clearing its flag: the edits run as a new
dispatch that supersedes it. Platforms without edit support are recorded as
failed entries of that dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from ingestion.repositories.articles import NewsRepository, NotFoundError
from ingestion.utils.logging import get_logger
from publish.dispatcher import SocialDispatcher
from publish.formatters import format_update
from publish.models import FormattedContent, Platform, PublishResult
from publish.platforms.base import PlatformPublisher

logger = get_logger(__name__)


@dataclass
class PostUpdateResult:
    updated: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


class PostUpdater:
    def __init__(self, repository: NewsRepository, dispatcher: SocialDispatcher) -> None:
        self._repo = repository
        self._dispatcher = dispatcher

    async def update_outdated_posts(self, limit: int = 50) -> PostUpdateResult:
        result = PostUpdateResult()
        for post in self._repo.list_posts_needing_update(limit):
            try:
                content = self._dispatcher.load_content(post.article_id)
            except NotFoundError as exc:
                post.needs_update = False
                result.failed += 1
                result.errors.append(f"Post {post.id}: {exc}")
                continue

            message_ids: Dict[Platform, str] = self._dispatcher.message_ids(post.id)
            if not message_ids:
                post.needs_update = False
                result.errors.append(f"Post {post.id}: no delivered messages to update")
                result.failed += 1
                continue

            async def _edit(platform: Platform, publisher: PlatformPublisher, formatted: FormattedContent) -> PublishResult:
                return await publisher.edit(message_ids[platform], formatted)

            summary = await self._dispatcher.dispatch(
                content,
                list(message_ids),
                formatter=format_update,
                sender=_edit,
                supersedes_id=post.id,
            )
            post.needs_update = False
            self._repo.session.flush()
            result.updated += summary.success_count
            result.failed += summary.failure_count
            result.errors.extend(f"Post {post.id}: {error}" for error in summary.errors)
            logger.info(
                "post_update.dispatched",
                extra={"post_id": str(post.id), "update_post_id": str(summary.post_id), "status": summary.status.value},
            )
        return result
