"""Structured logging helpers for workers and the API.

모든 로그는 ``logger.info("dotted.event", extra={...})`` 형태로 남긴다.
작업 단위(trace_id)는 ``trace_context``로 묶으면 해당 구간의 모든 레코드에 붙는다.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

_TRACE_ID: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

# LogRecord 기본 속성: extra로 넘어온 값과 구분하기 위해 제외한다.
_RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class TraceIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "trace_id", None) is None:
            record.trace_id = _TRACE_ID.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_") or key in payload:
                continue
            if value is None and key == "trace_id":
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level_name: str = "INFO", json_enabled: bool = False) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    # 재설정 시 핸들러 중복 방지
    for h in list(root.handlers):
        root.removeHandler(h)
    handler = logging.StreamHandler()
    handler.addFilter(TraceIdFilter())
    if json_enabled:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(trace_id)s] %(message)s"))
    root.addHandler(handler)


@contextmanager
def trace_context(trace_id: str) -> Iterator[str]:
    """with 블록 안에서 남기는 로그에 trace_id를 붙인다."""
    token = _TRACE_ID.set(trace_id)
    try:
        yield trace_id
    finally:
        _TRACE_ID.reset(token)


def current_trace_id() -> Optional[str]:
    return _TRACE_ID.get()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
