"""SDK settings: loaded from environment variables."""

from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Remote API ──────────────────────────────────────────────
    RUNFLOW_BASE_URL: str = "https://apiv2.heyiris.io"
    RUNFLOW_API_KEY: str | None = None

    # Run endpoints are scoped per user:
    #   /api/v1/users/{RUNFLOW_USER_ID}/bloqs/workflow-runs/...
    RUNFLOW_USER_ID: int | None = None

    # ── HTTP transport ──────────────────────────────────────────
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Connection-level retries handled by the httpx transport.
    HTTP_RETRIES: int = 3

    # ── Polling ─────────────────────────────────────────────────
    # Delay between two status reads of the same run.
    POLL_INTERVAL_MS: int = 500

    # Wall-clock budget of one poll session.  Exceeding it raises
    # PollingTimeout; a new session gets a fresh budget.
    MAX_POLLING_DURATION_SECONDS: float = 300.0

    # ── Logging ─────────────────────────────────────────────────
    # When true the transport logs every request/response (secrets redacted).
    DEBUG: bool = False
    LOG_FORMAT: str = "text"  # text | json
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _normalise(self) -> "Settings":
        if self.POLL_INTERVAL_MS <= 0:
            raise ValueError("POLL_INTERVAL_MS must be positive")
        if self.MAX_POLLING_DURATION_SECONDS <= 0:
            raise ValueError("MAX_POLLING_DURATION_SECONDS must be positive")
        if self.HTTP_RETRIES < 0:
            raise ValueError("HTTP_RETRIES must not be negative")
        object.__setattr__(self, "RUNFLOW_BASE_URL", self.RUNFLOW_BASE_URL.rstrip("/"))
        return self

    @property
    def poll_interval_seconds(self) -> float:
        return self.POLL_INTERVAL_MS / 1000.0


settings = Settings()
