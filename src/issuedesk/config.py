"""Configuration settings for IssueDesk."""

from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RateLimitConfig(BaseModel):
    """Configuration for GitHub rate limit tracking.

    Controls when the tracker warns that the hourly quota is running low.
    """

    warning_threshold: float = Field(
        default=0.2,
        gt=0.0,
        le=1.0,
        description="Fraction of quota remaining at or below which a warning fires",
    )


class RetryConfig(BaseModel):
    """Configuration for the exponential-backoff retry executor."""

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts per outbound call (including the first)",
    )
    initial_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Delay before the second attempt",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplier applied to the delay after each failure",
    )


class SyncConfig(BaseModel):
    """Configuration for sync queue draining.

    Controls how long failed queue entries wait before they are retried.
    """

    retry_backoff_base_seconds: int = Field(
        default=30,
        ge=1,
        description="Base delay for a failed entry (doubled per attempt)",
    )
    retry_backoff_max_seconds: int = Field(
        default=3600,
        ge=1,
        description="Upper bound for a failed entry's retry delay",
    )
    drain_batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Maximum queue entries replayed per drain cycle",
    )

    def backoff_for(self, attempts: int) -> timedelta:
        """Get the retry delay for an entry that has failed ``attempts`` times."""
        seconds = self.retry_backoff_base_seconds * (2 ** max(0, attempts - 1))
        return timedelta(seconds=min(seconds, self.retry_backoff_max_seconds))


class SessionConfig(BaseModel):
    """Configuration for backend sessions."""

    ttl_days: int = Field(
        default=30,
        ge=1,
        description="Sliding expiration window for sessions",
    )

    @property
    def ttl(self) -> timedelta:
        """Get the session TTL as a timedelta."""
        return timedelta(days=self.ttl_days)


class EdgeRateLimitConfig(BaseModel):
    """Configuration for the per-user request throttle of the auth service."""

    window_seconds: int = Field(
        default=60,
        ge=1,
        description="Sliding window length",
    )
    max_requests: int = Field(
        default=5,
        ge=1,
        description="Requests allowed per identifier per window",
    )


class AuthServiceConfig(BaseModel):
    """Secrets and HTTP settings for the GitHub App authentication service.

    The four GitHub App values are required; the service refuses requests
    until all of them are present and the private key is PEM encoded.
    """

    github_app_id: str = Field(default="", description="GitHub App ID")
    github_private_key: str = Field(default="", description="GitHub App private key (PEM)")
    github_client_id: str = Field(default="", description="GitHub App OAuth client ID")
    github_client_secret: str = Field(default="", description="GitHub App OAuth client secret")

    cors_origin: str = Field(
        default="electron://issuedesk",
        description="Origin allowed to call the service",
    )
    host: str = Field(default="127.0.0.1", description="Bind address for `issuedesk auth serve`")
    port: int = Field(default=8787, ge=1, le=65535, description="Bind port")
    prefer_installation_identity: bool = Field(
        default=True,
        description="Sign users in as their first installation account instead of fetching /user",
    )

    def missing_secrets(self) -> list[str]:
        """List required secrets that are not configured."""
        required = {
            "GITHUB_APP_ID": self.github_app_id,
            "GITHUB_PRIVATE_KEY": self.github_private_key,
            "GITHUB_CLIENT_ID": self.github_client_id,
            "GITHUB_CLIENT_SECRET": self.github_client_secret,
        }
        return [name for name, value in required.items() if not value]

    @property
    def has_pem_private_key(self) -> bool:
        """Whether the private key looks like PKCS8 or PKCS1 PEM."""
        key = self.github_private_key
        return "BEGIN PRIVATE KEY" in key or "BEGIN RSA PRIVATE KEY" in key


class LoggingConfig(BaseModel):
    """Configuration for logging behavior.

    Controls file logging, rotation, and output format.
    """

    log_file: str | None = Field(
        default=None,
        description="Optional path for file logging (enables rotation)",
    )
    rotation: str = Field(
        default="10 MB",
        description="When to rotate log file (e.g., '10 MB', '1 day')",
    )
    retention: str = Field(
        default="7 days",
        description="How long to keep rotated logs",
    )
    serialize: bool = Field(
        default=False,
        description="If True, output JSON format to file",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # --------------------------------------------------------------------------
    # Database
    # --------------------------------------------------------------------------
    database_url: str = Field(
        default="sqlite+aiosqlite:///./issuedesk.db",
        description="Async SQLite database connection string",
    )

    # --------------------------------------------------------------------------
    # GitHub API
    # --------------------------------------------------------------------------
    github_token: str = Field(
        default="",
        description="GitHub personal access token or installation token",
    )
    repository: str = Field(
        default="",
        description="Repository mirrored locally (owner/name)",
    )
    auth_service_url: str = Field(
        default="http://localhost:8787",
        description="Base URL of the authentication service",
    )

    # --------------------------------------------------------------------------
    # Application
    # --------------------------------------------------------------------------
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # --------------------------------------------------------------------------
    # Rate Limiting & Retry
    # --------------------------------------------------------------------------
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig,
        description="GitHub rate limit tracking configuration",
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Outbound call retry configuration",
    )

    # --------------------------------------------------------------------------
    # Sync Configuration
    # --------------------------------------------------------------------------
    sync: SyncConfig = Field(
        default_factory=SyncConfig,
        description="Sync queue behavior configuration",
    )

    # --------------------------------------------------------------------------
    # Authentication Service
    # --------------------------------------------------------------------------
    github_app_id: str = Field(default="", description="GitHub App ID")
    github_private_key: str = Field(default="", description="GitHub App private key (PEM)")
    github_client_id: str = Field(default="", description="GitHub App OAuth client ID")
    github_client_secret: str = Field(default="", description="GitHub App OAuth client secret")
    auth_cors_origin: str = Field(
        default="electron://issuedesk",
        description="Origin allowed to call the auth service",
    )
    auth_host: str = Field(default="127.0.0.1", description="Auth service bind address")
    auth_port: int = Field(default=8787, ge=1, le=65535, description="Auth service bind port")
    auth_prefer_installation_identity: bool = Field(
        default=True,
        description="Use the first installation account as the signed-in identity",
    )

    session: SessionConfig = Field(
        default_factory=SessionConfig,
        description="Backend session lifetime",
    )
    edge_rate_limit: EdgeRateLimitConfig = Field(
        default_factory=EdgeRateLimitConfig,
        description="Per-user request throttle for the auth service",
    )

    # --------------------------------------------------------------------------
    # Logging Configuration
    # --------------------------------------------------------------------------
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration (file output, rotation)",
    )

    @property
    def auth(self) -> AuthServiceConfig:
        """GitHub App secrets and HTTP binding for the auth service."""
        return AuthServiceConfig(
            github_app_id=self.github_app_id,
            # Secrets injected through env files often carry escaped newlines
            github_private_key=self.github_private_key.replace("\\n", "\n"),
            github_client_id=self.github_client_id,
            github_client_secret=self.github_client_secret,
            cors_origin=self.auth_cors_origin,
            host=self.auth_host,
            port=self.auth_port,
            prefer_installation_identity=self.auth_prefer_installation_identity,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
