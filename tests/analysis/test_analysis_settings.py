from __future__ import annotations

import pytest

from llm.settings import get_analysis_settings


def _set_env(monkeypatch, **overrides):
    defaults = {
        "OPENAI_API_KEY": "sk-test-123",
        "ANALYSIS_MODEL": "gpt-4o-mini",
        "ANALYSIS_MAX_TOKENS": "512",
        "ANALYSIS_TEMPERATURE": "0.2",
        "ANALYSIS_COST_LIMIT_USD": "0.02",
        "ANALYSIS_REQUEST_TIMEOUT_SECONDS": "15",
        "ANALYSIS_RETRY_MAX_ATTEMPTS": "2",
    }
    defaults.update(overrides)
    for k, v in defaults.items():
        monkeypatch.setenv(k, str(v))


def test_get_analysis_settings_reads_env(monkeypatch):
    _set_env(monkeypatch, ANALYSIS_TEMPERATURE="0.3")
    cfg = get_analysis_settings()
    assert cfg.openai_api_key.startswith("sk-")
    assert cfg.analysis_model == "gpt-4o-mini"
    assert cfg.analysis_max_tokens == 512
    assert cfg.analysis_temperature == 0.3
    assert cfg.analysis_retry_max_attempts == 2
    assert cfg.analysis_retry_base_delay_seconds == 0


def test_missing_api_key_raises(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", " ")
    with pytest.raises(RuntimeError):
        get_analysis_settings()


def test_negative_retry_delay_raises(monkeypatch):
    _set_env(monkeypatch, ANALYSIS_RETRY_BASE_DELAY_SECONDS="-1")
    with pytest.raises(RuntimeError):
        get_analysis_settings()
