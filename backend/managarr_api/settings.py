"""Runtime configuration for the Managarr API."""
from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

from .utils.paths import default_database_url


class ManagarrSettings(BaseSettings):
    """Environment-aware settings for the Managarr API service."""

    host: str = Field(default="0.0.0.0", description="Interface the API server binds to.")
    port: int = Field(default=3005, description="Port the API server listens on.")
    environment: Literal["development", "production"] = Field(
        default="development",
        description="Deployment mode; production accepts cross-origin requests from any origin.",
    )
    client_url: str = Field(
        default="http://localhost:5179",
        description="Origin allowed for cross-origin requests outside production.",
    )
    database_url: str | None = Field(
        default=None,
        description="Full SQLAlchemy connection URL. Overrides the discrete database fields.",
    )
    database_driver: str = Field(
        default="postgresql", description="SQLAlchemy driver used with the discrete database fields."
    )
    database_host: str | None = Field(default=None, description="Database host name.")
    database_port: int | None = Field(default=None, description="Database port.")
    database_user: str | None = Field(default=None, description="Database user name.")
    database_password: str | None = Field(default=None, description="Database password.")
    database_name: str = Field(default="managarr", description="Database name.")
    database_echo: bool = Field(
        default=False, description="Enable SQL echo for debugging queries."
    )
    upstream_timeout: float = Field(
        default=30.0, description="Seconds before a proxied upstream request is treated as failed."
    )
    connection_test_timeout: float = Field(
        default=10.0, description="Seconds allowed for a single connection test request."
    )
    tmdb_base_url: str = Field(
        default="https://api.themoviedb.org/3", description="Base URL of the TMDB v3 API."
    )
    tmdb_image_base_url: str = Field(
        default="https://image.tmdb.org/t/p/w300",
        description="Prefix prepended to TMDB poster paths.",
    )
    fanout_concurrency: int = Field(
        default=4, ge=1, description="Maximum number of instances queried at once by reports."
    )
    health_poll_interval: float = Field(
        default=30.0,
        ge=0,
        description="Seconds between background health checks; 0 disables the poller.",
    )
    log_level: str = Field(default="INFO", description="Root logging level.")

    model_config = SettingsConfigDict(
        env_prefix="MANAGARR_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def resolved_database_url(self) -> str:
        """Return the connection URL, assembling it from discrete fields when needed."""

        if self.database_url:
            return self.database_url
        if self.database_host:
            return URL.create(
                drivername=self.database_driver,
                username=self.database_user,
                password=self.database_password,
                host=self.database_host,
                port=self.database_port,
                database=self.database_name,
            ).render_as_string(hide_password=False)
        return default_database_url()
