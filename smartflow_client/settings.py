import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # API Configuration
    api_url: str = Field(default="https://localhost:7149/api", alias="SMARTFLOW_API_URL")
    health_url: str | None = Field(default=None, alias="SMARTFLOW_HEALTH_URL")
    external_api_url: str | None = Field(default=None, alias="SMARTFLOW_EXTERNAL_API_URL")
    client_name: str = Field(default="SmartFlowPM.Client", alias="SMARTFLOW_CLIENT_NAME")
    client_version: str = Field(default="1.0.0", alias="SMARTFLOW_CLIENT_VERSION")
    enable_tracing: bool = Field(default=True, alias="SMARTFLOW_ENABLE_TRACING")

    # Timeouts (seconds)
    request_timeout: float = Field(default=30.0, gt=0, alias="SMARTFLOW_REQUEST_TIMEOUT")
    health_check_timeout: float = Field(default=10.0, gt=0, alias="SMARTFLOW_HEALTH_TIMEOUT")
    external_timeout: float = Field(default=60.0, gt=0, alias="SMARTFLOW_EXTERNAL_TIMEOUT")

    # Retry Configuration
    retry_max_attempts: int = Field(default=3, ge=0, alias="SMARTFLOW_RETRY_MAX_ATTEMPTS")
    retry_backoff_type: str = Field(default="exponential", alias="SMARTFLOW_RETRY_BACKOFF")
    retry_base_delay_ms: float = Field(default=1000, ge=0, alias="SMARTFLOW_RETRY_BASE_DELAY_MS")
    retry_max_delay_ms: float = Field(default=30000, ge=0, alias="SMARTFLOW_RETRY_MAX_DELAY_MS")
    retry_growth_factor: float = Field(default=2.0, ge=1, alias="SMARTFLOW_RETRY_GROWTH")
    retry_jitter: bool = Field(default=True, alias="SMARTFLOW_RETRY_JITTER")

    # Circuit Breaker Configuration
    circuit_failure_ratio: float = Field(default=0.5, gt=0, le=1, alias="SMARTFLOW_CIRCUIT_FAILURE_RATIO")
    circuit_break_duration: float = Field(default=30.0, ge=0, alias="SMARTFLOW_CIRCUIT_BREAK_DURATION")
    circuit_minimum_throughput: int = Field(default=3, ge=1, alias="SMARTFLOW_CIRCUIT_MIN_THROUGHPUT")
    circuit_sampling_duration: float = Field(default=60.0, gt=0, alias="SMARTFLOW_CIRCUIT_SAMPLING_DURATION")

    # Token Configuration
    refresh_buffer_seconds: float = Field(default=60.0, ge=0, alias="SMARTFLOW_REFRESH_BUFFER")
    token_storage: str = Field(default="memory", alias="SMARTFLOW_TOKEN_STORAGE")
    token_file: str = Field(default="~/.smartflow/tokens.json", alias="SMARTFLOW_TOKEN_FILE")

    # Logging
    log_level: str = Field(default="INFO", alias="SMARTFLOW_LOG_LEVEL")
    debug: bool = Field(default=False, alias="SMARTFLOW_DEBUG")

    @property
    def resolved_health_url(self) -> str:
        """Health endpoints live at the host root, not under /api."""
        if self.health_url:
            return self.health_url
        base = self.api_url.rstrip("/")
        return base[: -len("/api")] if base.endswith("/api") else base


def load_settings() -> Settings:
    """Read settings from the environment (and a .env file, if present)."""
    load_dotenv()
    return Settings.model_validate(dict(os.environ))
