"""Runtime configuration read from ``PRINTQUEUE_*`` environment variables."""

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PrintQueueConfig(BaseSettings):
    """Runtime config for the print pipeline."""

    model_config = SettingsConfigDict(env_prefix="PRINTQUEUE_")

    database_url: str = "sqlite+aiosqlite:///./printqueue.db"
    log_level: str = "INFO"
    workers_enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8000

    # Marketplace collaborator
    marketplace_app_key: str = ""
    marketplace_app_secret: str = ""
    marketplace_redirect_uri: str = ""
    marketplace_api_base_url: str = "https://open-api.tiktokglobalshop.com"
    marketplace_auth_base_url: str = "https://auth.tiktok-shops.com"
    api_timeout_seconds: float = 10.0
    webhook_tolerance_seconds: int = 300
    oauth_state_ttl_seconds: int = 300

    # Order polling
    poll_interval_seconds: int = 120
    poll_page_size: int = Field(default=50, ge=50, le=100)
    poll_max_pages: int = 20

    # Dispatch
    dispatch_interval_seconds: int = 30
    dispatch_batch_size: int = 5
    inter_job_delay_seconds: float = 1.0
    push_timeout_seconds: float = 5.0

    # Printer liveness
    dispatch_liveness_seconds: int = 120
    display_liveness_seconds: int = 300
    liveness_sweep_interval_seconds: int = 60

    # Completion, retry and cleanup
    max_retries: int = 3
    retry_backoff_seconds: int = 0
    stale_sweep_interval_seconds: int = 300
    stale_after_seconds: int = 600
    retention_days: int = 30
    cleanup_interval_seconds: int = 86400

    @property
    def dispatch_liveness(self) -> timedelta:
        return timedelta(seconds=self.dispatch_liveness_seconds)

    @property
    def display_liveness(self) -> timedelta:
        return timedelta(seconds=self.display_liveness_seconds)

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.stale_after_seconds)

    @property
    def retry_backoff(self) -> timedelta:
        return timedelta(seconds=self.retry_backoff_seconds)

    @property
    def webhook_tolerance(self) -> timedelta:
        return timedelta(seconds=self.webhook_tolerance_seconds)

    @property
    def oauth_state_ttl(self) -> timedelta:
        return timedelta(seconds=self.oauth_state_ttl_seconds)
