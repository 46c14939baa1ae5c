"""
CertReload Configuration Module.

Centralizes all configuration settings using Pydantic Settings.
Requires Python 3.11+.
"""

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file into os.environ at module import time
# This ensures nested BaseSettings classes can read the values
_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    # Try current working directory
    load_dotenv()


class TLSSettings(BaseSettings):
    """TLS host configuration settings."""

    model_config = SettingsConfigDict(env_prefix="TLS_")

    base_dir: Path = Field(
        default_factory=Path.cwd,
        description="Directory relative certificate paths are resolved against",
    )
    host_name: str = Field(default="_default_", description="SNI host name of the config")
    certificate_file: str | None = Field(default=None, description="PEM certificate file")
    certificate_key_file: str | None = Field(default=None, description="PEM private key file")
    certificate_chain_file: str | None = Field(
        default=None, description="PEM chain file appended to the certificate"
    )
    certificate_key_password: str | None = Field(default=None)
    minimum_version: str = Field(default="TLSv1_2")
    ciphers: str | None = Field(default=None)

    @field_validator("minimum_version")
    @classmethod
    def validate_minimum_version(cls, v: str) -> str:
        """Normalize and check the minimum protocol version name."""
        normalized = v.replace(".", "_")
        if normalized not in ("TLSv1", "TLSv1_1", "TLSv1_2", "TLSv1_3"):
            raise ValueError(f"Unsupported TLS version: {v}")
        return normalized

    @property
    def is_configured(self) -> bool:
        """Check if a certificate file has been configured."""
        return bool(self.certificate_file)


class WatcherSettings(BaseSettings):
    """Certificate watcher configuration settings."""

    model_config = SettingsConfigDict(env_prefix="WATCHER_")

    # Issuers such as ACME clients write cert, key and chain with gaps between
    # them, often 10-20s apart. Raise this above the expected gap.
    settle_delay_ms: int = Field(default=3000, ge=0)
    enabled: bool = Field(default=True)


class ServerSettings(BaseSettings):
    """TLS server settings."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = Field(default="0.0.0.0")
    # 0 binds a free port
    port: int = Field(default=8443, ge=0, le=65535)
    enabled: bool = Field(default=True, description="Serve TLS from the admin app")


class APISettings(BaseSettings):
    """API server configuration settings."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    debug: bool = Field(default=False)
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Allowed CORS origins",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO")
    format: str = Field(default="json")  # "json" or "console"
    file_path: Path | None = Field(default=None)


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="CertReload")
    app_version: str = Field(default="0.1.0")
    environment: str = Field(default="development")

    # Sub-settings
    tls: TLSSettings = Field(default_factory=TLSSettings)
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() in ("development", "dev", "local")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are read from the environment once; later changes to the
    environment have no effect until the cache is cleared.
    """
    return Settings()
