"""Configuration tests."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from fastapi_printqueue.config import PrintQueueConfig


def test_default_pipeline_settings() -> None:
    config = PrintQueueConfig()
    assert config.max_retries == 3
    assert config.dispatch_batch_size == 5
    assert config.poll_page_size == 50
    assert config.dispatch_liveness == timedelta(minutes=2)
    assert config.display_liveness == timedelta(minutes=5)
    assert config.stale_after == timedelta(minutes=10)
    assert config.retention_days == 30
    assert config.workers_enabled is True


def test_env_prefix(monkeypatch) -> None:
    monkeypatch.setenv("PRINTQUEUE_MAX_RETRIES", "5")
    monkeypatch.setenv("PRINTQUEUE_WORKERS_ENABLED", "false")
    monkeypatch.setenv("PRINTQUEUE_MARKETPLACE_APP_KEY", "app-key")

    config = PrintQueueConfig()
    assert config.max_retries == 5
    assert config.workers_enabled is False
    assert config.marketplace_app_key == "app-key"


def test_custom_windows() -> None:
    config = PrintQueueConfig(
        retry_backoff_seconds=30,
        webhook_tolerance_seconds=60,
        oauth_state_ttl_seconds=120,
    )
    assert config.retry_backoff == timedelta(seconds=30)
    assert config.webhook_tolerance == timedelta(minutes=1)
    assert config.oauth_state_ttl == timedelta(minutes=2)


@pytest.mark.parametrize("page_size", [10, 101])
def test_poll_page_size_is_bounded(page_size) -> None:
    with pytest.raises(ValidationError):
        PrintQueueConfig(poll_page_size=page_size)
