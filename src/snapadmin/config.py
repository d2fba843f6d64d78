"""
SnapAdmin Configuration Management

Credentials are read from the environment (or a local .env file) and are
never committed. Dev ports are NOT configured here: the supervisor picks
them at runtime and hands them to its children.
"""

import sys
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # === SnapTrade Configuration ===
    snaptrade_client_id: str = Field(
        default="",
        description="SnapTrade partner client id"
    )
    snaptrade_consumer_key: str = Field(
        default="",
        description="SnapTrade consumer key used to sign requests"
    )
    snaptrade_base_url: str = Field(
        default="https://api.snaptrade.com",
        description="SnapTrade API base URL"
    )
    snaptrade_timeout: float = Field(default=30.0)

    # === Backend Configuration ===
    api_host: str = Field(default="0.0.0.0")
    # 0 lets the OS pick a port when the backend runs outside the supervisor
    backend_port: int = Field(default=0)
    front_end_url: str = Field(
        default="",
        description="Externally reachable frontend URL used for redirects"
    )

    # === Secret Store ===
    secret_store: str = Field(
        default="memory",
        description="Where user secrets are kept: memory | postgres"
    )
    local_secrets_path: str = Field(
        default="./.snapadmin/secrets.json",
        description="JSON file used by the admin console as local storage"
    )

    # === Database Configuration (postgres secret store) ===
    database_host: str = Field(default="localhost")
    database_port: int = Field(default=5432)
    database_name: str = Field(default="snapadmin_db")
    database_user: str = Field(default="snapadmin_user")
    database_password: str = Field(default="")
    database_ssl_mode: str = Field(default="prefer")

    @property
    def database_url(self) -> str:
        """Construct PostgreSQL connection URL."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
            f"?sslmode={self.database_ssl_mode}"
        )

    # === Dev Supervisor ===
    dev_preferred_backend_port: int = Field(default=3005)
    dev_preferred_frontend_port: int = Field(default=3000)
    dev_backend_range_start: int = Field(default=3001)
    dev_backend_range_end: int = Field(default=3999)
    dev_frontend_range_start: int = Field(default=3000)
    dev_frontend_range_end: int = Field(default=4999)
    dev_backend_command: str = Field(
        default=f'"{sys.executable}" -m snapadmin.main',
        description="Shell command that starts the backend"
    )
    dev_backend_cwd: str | None = Field(default=None)
    dev_frontend_command: str = Field(
        default="npm start",
        description="Shell command that starts the admin UI"
    )
    dev_frontend_cwd: str | None = Field(default=None)
    dev_health_path: str = Field(default="/api/status")
    dev_health_attempts: int = Field(default=30)
    dev_health_interval: float = Field(default=1.0)
    dev_shutdown_grace: float = Field(default=1.5)
    dev_settle_delay: float = Field(default=1.0)

    # === Logging ===
    log_level: str = Field(default="INFO")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
