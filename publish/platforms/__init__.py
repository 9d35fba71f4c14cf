"""Platform publishers."""

from typing import Dict, Optional

import httpx

from publish.models import Platform
from publish.platforms.base import EditNotSupportedError, PlatformPublisher
from publish.platforms.telegram import TelegramPublisher
from publish.platforms.threads import ThreadsPublisher
from publish.platforms.toss import TossPublisher
from publish.platforms.twitter import TwitterPublisher
from publish.settings import PublishSettings

PUBLISHER_CLASSES = {
    Platform.TELEGRAM: TelegramPublisher,
    Platform.TWITTER: TwitterPublisher,
    Platform.THREADS: ThreadsPublisher,
    Platform.TOSS: TossPublisher,
}


def build_publishers(
    settings: Optional[PublishSettings] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[Platform, PlatformPublisher]:
    return {platform: cls(settings, client=client) for platform, cls in PUBLISHER_CLASSES.items()}


__all__ = [
    "EditNotSupportedError",
    "PlatformPublisher",
    "TelegramPublisher",
    "ThreadsPublisher",
    "TossPublisher",
    "TwitterPublisher",
    "build_publishers",
]
