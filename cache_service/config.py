from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------
# Application Settings
# ---------------------------------------------------------
class Settings(BaseSettings):
    """
    Application Settings managed by Pydantic.
    Reads configuration from environment variables and .env file.
    """

    # ---------------------------------------------------------
    # Redis Connection
    # ---------------------------------------------------------
    redis_host: Optional[str] = Field(
        default=None,
        validation_alias="REDIS_HOST",
        description="Hostname of the Redis server",
    )
    # Kept as text so a malformed port disables caching instead of failing settings load
    redis_port: Optional[str] = Field(
        default=None,
        validation_alias="REDIS_PORT",
        description="Port number of the Redis server",
    )
    redis_password: Optional[SecretStr] = Field(
        default=None,
        validation_alias="REDIS_PASSWORD",
        description="Password used to authenticate against Redis",
    )
    redis_tls_enabled: bool = Field(
        default=False,
        validation_alias="REDIS_TLS_ENABLED",
        description="Encrypt the connection with TLS (only the literal 'true' enables it)",
    )

    # ---------------------------------------------------------
    # Redis Client Tuning
    # ---------------------------------------------------------
    redis_max_retries_per_request: int = Field(
        default=3,
        validation_alias="REDIS_MAX_RETRIES_PER_REQUEST",
        description="Number of retries for a command before the error reaches the caller",
    )
    redis_socket_connect_timeout: float = Field(
        default=5.0,
        validation_alias="REDIS_SOCKET_CONNECT_TIMEOUT",
        description="Seconds to wait for the TCP connection to Redis",
    )
    redis_shutdown_timeout: float = Field(
        default=5.0,
        validation_alias="REDIS_SHUTDOWN_TIMEOUT",
        description="Seconds to wait for the Redis connection to close on shutdown",
    )

    # ---------------------------------------------------------
    # Runtime Environment
    # ---------------------------------------------------------
    app_env: str = Field(
        default="development",
        validation_alias="APP_ENV",
        description="Runtime environment (development, production, ...)",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # ---------------------------------------------------------
    # FastAPI Metadata
    # ---------------------------------------------------------
    api_title: str = Field(default="Cache Service API", validation_alias="API_TITLE")
    api_version: str = Field(default="0.1.0", validation_alias="API_VERSION")
    api_description: str = Field(
        default="API exposing the shared Redis cache connection",
        validation_alias="API_DESCRIPTION",
    )

    # ---------------------------------------------------------
    # Validators
    # ---------------------------------------------------------
    @field_validator("redis_tls_enabled", mode="before")
    @classmethod
    def parse_tls_flag(cls, value):
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)

    @field_validator("app_env", mode="after")
    @classmethod
    def normalize_app_env(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    # ---------------------------------------------------------
    # Pydantic Configuration
    # ---------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent / ".env"),
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        case_sensitive=False,
    )


# ---------------------------------------------------------
# Settings Provider
# ---------------------------------------------------------
@lru_cache()
def get_settings() -> Settings:
    """
    Creates and returns a cached Settings instance.
    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


# Global Settings Instance
settings = get_settings()
