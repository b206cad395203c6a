"""Application configuration using pydantic-settings.

Environment variable prefix: FLEETDASH_ (nested delimiter "__").
Each sub-config also reads its own prefix directly.
Example: FLEETDASH_CHANNEL__URL=ws://dev-box:8000/api/instances/ws
         CHANNEL_RECONNECT_MAX_ATTEMPTS=0
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiConfig(BaseSettings):
    """Command API (HTTP) configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    base_url: str = Field(default="http://127.0.0.1:8000/api")
    api_key: str = Field(default="")  # Sent as Bearer token when set
    timeout: float = Field(default=120.0)  # seconds (create pulls images)


class ChannelConfig(BaseSettings):
    """Push channel (WebSocket) configuration.

    Set reconnect_max_attempts=0 to stay disconnected after the first
    close or transport error.
    """

    model_config = SettingsConfigDict(env_prefix="CHANNEL_")

    url: str = Field(default="ws://127.0.0.1:8000/api/instances/ws")
    request_command: str = Field(default="request_inspect")

    ping_interval: float | None = Field(default=20.0)  # seconds
    ping_timeout: float | None = Field(default=20.0)  # seconds
    open_timeout: float = Field(default=10.0)  # seconds (handshake)
    max_size: int = Field(default=16 * 1024 * 1024)  # 16MB snapshots

    reconnect_base_delay: float = Field(default=1.0)  # seconds
    reconnect_max_delay: float = Field(default=30.0)  # seconds
    reconnect_max_attempts: int = Field(default=8, ge=0)  # 0 = never reconnect


class MetricsConfig(BaseSettings):
    """Prometheus metrics configuration."""

    model_config = SettingsConfigDict(env_prefix="METRICS_")

    enabled: bool = Field(default=False)
    port: int = Field(default=9108)


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Standard fields added to all logs:
    - schema_version: Log schema version for backwards compatibility
    - service: Service name (fleetdash)

    Rate limiting:
    - Prevents log storms from repeated messages (push floods)
    - ERROR logs bypass rate limiting (always logged)
    """

    model_config = SettingsConfigDict(env_prefix="LOGGING_")

    level: str = Field(default="INFO")
    format: str = Field(default="json")  # "json" or "text"
    schema_version: str = Field(default="1.0")
    rate_limit_per_minute: int = Field(default=100)
    service_name: str = Field(default="fleetdash")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FLEETDASH_",
        env_nested_delimiter="__",
    )

    api: ApiConfig = Field(default_factory=ApiConfig)
    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache
def get_settings() -> Settings:
    return Settings()
