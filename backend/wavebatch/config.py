"""Runtime configuration read from environment variables."""

import os
from dataclasses import dataclass

_DEFAULT_ENGINE_SUBMIT_URL = "https://api.wavespeed.ai/api/v3/bytedance/seedream-v4.5/edit"
_DEFAULT_ENGINE_RESULT_URL = "https://api.wavespeed.ai/api/v3/predictions"
_DEFAULT_AIRTABLE_API_ROOT = "https://api.airtable.com/v0"


@dataclass(frozen=True)
class Settings:
    wavespeed_api_key: str
    airtable_token: str
    airtable_base_id: str
    airtable_table: str = "Generations"
    public_base_url: str = "http://localhost:3000"
    engine_submit_url: str = _DEFAULT_ENGINE_SUBMIT_URL
    engine_result_url: str = _DEFAULT_ENGINE_RESULT_URL
    airtable_api_root: str = _DEFAULT_AIRTABLE_API_ROOT
    # Poll budget: 170 attempts at 7-15 s apiece is roughly 40 minutes.
    poll_max_attempts: int = 170
    poll_initial_delay: float = 7.0
    poll_max_delay: float = 15.0
    poll_backoff_factor: float = 1.1
    submission_delay: float = 1.2
    batch_retention_seconds: float = 3600.0
    retention_sweep_interval: float = 300.0
    archive_finalize_attempts: int = 3
    http_timeout: float = 30.0

    @property
    def webhook_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/webhooks/wavespeed"

    @property
    def airtable_table_url(self) -> str:
        return f"{self.airtable_api_root}/{self.airtable_base_id}/{self.airtable_table}"


def _require(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise RuntimeError(f"{name} environment variable is not set")
    return value


def load_settings() -> Settings:
    """Build Settings from the environment.

    Raises RuntimeError if a mandatory credential is missing.
    """
    port = os.environ.get("PORT", "3000").strip() or "3000"
    return Settings(
        wavespeed_api_key=_require("WAVESPEED_API_KEY"),
        airtable_token=_require("AIRTABLE_TOKEN"),
        airtable_base_id=_require("AIRTABLE_BASE_ID"),
        airtable_table=os.environ.get("AIRTABLE_TABLE", "").strip() or "Generations",
        public_base_url=os.environ.get("PUBLIC_BASE_URL", "").strip() or f"http://localhost:{port}",
        poll_max_attempts=int(os.environ.get("POLL_MAX_ATTEMPTS", "170")),
        poll_initial_delay=float(os.environ.get("POLL_INITIAL_DELAY", "7")),
        poll_max_delay=float(os.environ.get("POLL_MAX_DELAY", "15")),
        poll_backoff_factor=float(os.environ.get("POLL_BACKOFF_FACTOR", "1.1")),
        submission_delay=float(os.environ.get("SUBMISSION_DELAY", "1.2")),
        batch_retention_seconds=float(os.environ.get("BATCH_RETENTION_SECONDS", "3600")),
        retention_sweep_interval=float(os.environ.get("RETENTION_SWEEP_INTERVAL", "300")),
        archive_finalize_attempts=int(os.environ.get("ARCHIVE_FINALIZE_ATTEMPTS", "3")),
        http_timeout=float(os.environ.get("HTTP_TIMEOUT", "30")),
    )
