from __future__ import annotations

import asyncio
import json

import pytest

pytest.importorskip("pytest_httpx")

from publish.push import FcmPushSender
from publish.settings import PublishSettings

FCM_URL = "https://fcm.googleapis.com/v1/projects/stock-news/messages:send"


def _sender(no_sleep) -> FcmPushSender:
    settings = PublishSettings(fcm_project_id="stock-news", fcm_access_token="fcm-token")
    return FcmPushSender(settings, sleep=no_sleep)


def test_unconfigured_sender_is_a_noop(no_sleep):
    result = asyncio.run(FcmPushSender(PublishSettings(), sleep=no_sleep).send_push(["device"], "t", "b"))
    assert result.success is True
    assert (result.success_count, result.failure_count) == (0, 0)


def test_no_tokens(no_sleep):
    result = asyncio.run(_sender(no_sleep).send_push([], "t", "b"))
    assert result.errors == ["No device tokens provided"]


def test_one_request_per_token(httpx_mock, no_sleep):
    httpx_mock.add_response(method="POST", url=FCM_URL, json={"name": "projects/stock-news/messages/1"})
    httpx_mock.add_response(method="POST", url=FCM_URL, json={"name": "projects/stock-news/messages/2"})

    result = asyncio.run(_sender(no_sleep).send_push(["device-a", "device-b"], "제목", "본문", {"type": "digest", "count": "2"}))

    assert (result.success_count, result.failure_count) == (2, 0)
    requests = httpx_mock.get_requests()
    assert requests[0].headers["Authorization"] == "Bearer fcm-token"
    message = json.loads(requests[0].content)["message"]
    assert message["notification"] == {"title": "제목", "body": "본문"}
    assert message["data"] == {"type": "digest", "count": "2"}
    assert {json.loads(r.content)["message"]["token"] for r in requests} == {"device-a", "device-b"}


def test_unregistered_token_fails_without_retry(httpx_mock, no_sleep):
    httpx_mock.add_response(method="POST", url=FCM_URL, status_code=404, json={"error": {"status": "NOT_FOUND"}})

    result = asyncio.run(_sender(no_sleep).send_push(["stale"], "t", "b"))

    assert result.failure_count == 1
    assert result.errors[0].startswith("Token 0: 404")
    assert no_sleep.delays == []


def test_server_errors_are_retried(httpx_mock, no_sleep):
    httpx_mock.add_response(method="POST", url=FCM_URL, status_code=503)
    httpx_mock.add_response(method="POST", url=FCM_URL, json={"name": "ok"})

    result = asyncio.run(_sender(no_sleep).send_push("device-a", "t", "b"))

    assert result.success is True
    assert no_sleep.delays == [1.0]
