"""Print bridge configuration using pydantic-settings.

All environment variables are read through the settings object rather than
os.getenv(). Every variable carries the PRINT_BRIDGE_ prefix, e.g.
PRINT_BRIDGE_PORT=9700 or PRINT_BRIDGE_REQUIRE_AUTH=true.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from printbridge import __version__

LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1")


class Settings(BaseSettings):
    """Bridge settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PRINT_BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Listener - loopback only unless explicitly overridden
    host: str = "127.0.0.1"
    port: int = 9638
    allow_remote: bool = False

    service_name: str = "Flowp Print Bridge"
    version: str = __version__

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Authentication - token is generated at startup when required but unset
    require_auth: bool = False
    auth_token: Optional[str] = None

    # Transport
    network_timeout: float = 5.0  # seconds, connect to write completion
    spool_timeout: float = 10.0  # seconds per OS print command
    spool_backend: Literal["auto", "windows", "cups"] = "auto"

    # Request limits
    max_raw_payload: int = 100_000  # base64 characters accepted by /print-raw
    max_body_bytes: int = 1024 * 1024

    # Optional JSON file the printer configuration is persisted to
    config_path: Optional[str] = None

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError(f"port must be between 1 and 65535 (got {v})")
        return v

    @field_validator("network_timeout", "spool_timeout")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @model_validator(mode="after")
    def validate_listener(self) -> "Settings":
        """Refuse to listen beyond the local machine unless allowed."""
        if self.host not in LOOPBACK_HOSTS and not self.allow_remote:
            raise ValueError(
                f"FATAL: refusing to bind print bridge to non-loopback host {self.host!r}. "
                "Set PRINT_BRIDGE_ALLOW_REMOTE=true to override."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
