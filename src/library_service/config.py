"""Configuration management for the Library Service.

A single ``ServiceConfig`` object is built at the entry point (environment,
``.env`` file or explicit keyword arguments) and handed to every component
that needs it. Nothing below the entry points reads the environment directly.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceConfig(BaseSettings):
    """Library Service configuration.

    Groups:
    - Storage: database URL
    - Circulation policy: loan/renewal periods and limits
    - Outbound channels: realtime sync, e-mail, auth service
    - Runtime: HTTP binding, logging, observability
    """

    model_config = SettingsConfigDict(
        # Use LIBRARY_ prefix for all env vars
        env_prefix="LIBRARY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Storage ===

    database_url: str = Field(
        default="sqlite:///data/library.db",
        description="SQLAlchemy database URL",
    )

    # === Circulation Policy ===

    loan_period_days: int = Field(
        default=14,
        description="Default loan period applied when a checkout has no explicit due date",
        ge=1,
        le=365,
    )

    renewal_period_days: int = Field(
        default=14,
        description="Days added to the current due date on each renewal",
        ge=1,
        le=365,
    )

    max_renewals: int = Field(
        default=2,
        description="Renewal cap stamped onto each new checkout",
        ge=0,
        le=10,
    )

    default_max_checkouts: int = Field(
        default=5,
        description="Loan limit for users created without an explicit one",
        ge=0,
        le=100,
    )

    # === Realtime Sync ===

    sync_base_url: str | None = Field(
        default=None,
        description="Base URL of the realtime-sync REST endpoint (sync disabled when unset)",
    )

    sync_service_key: str | None = Field(
        default=None,
        description="Service key sent to the realtime-sync endpoint",
        repr=False,
    )

    # === E-mail ===

    email_api_url: str = Field(
        default="https://api.resend.com/emails",
        description="Transactional e-mail provider endpoint",
    )

    email_api_key: str | None = Field(
        default=None,
        description="API key for the e-mail provider",
        repr=False,
    )

    email_from: str = Field(
        default="Library System <noreply@library.com>",
        description="Sender used for overdue notifications",
    )

    # === Authentication ===

    auth_service_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the token verification service",
    )

    # === Outbound HTTP / Workers ===

    http_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for calls to external collaborators",
        gt=0,
    )

    dispatcher_workers: int = Field(
        default=4,
        description="Worker threads used for post-commit side effects",
        ge=1,
        le=32,
    )

    # === HTTP Server ===

    http_host: str = Field(default="127.0.0.1", description="Bind address for the HTTP API")

    http_port: int = Field(
        default=8081,
        description="Port for the HTTP API",
        ge=1024,
        le=65535,
    )

    # === Logging / Observability ===

    debug: bool = Field(default=False, description="Enable debug logging")

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    logfire_enabled: bool = Field(
        default=False,
        description="Send spans and metrics to Logfire",
    )

    environment: str = Field(
        default="development",
        description="Deployment environment name reported to Logfire",
    )

    @field_validator("sync_base_url", "auth_service_url", "email_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        """Normalise base URLs so paths can be appended with a single slash."""
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must use http or https: {v}")
        return v.rstrip("/")

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    @property
    def sync_enabled(self) -> bool:
        """Realtime sync runs only when both URL and key are configured."""
        return bool(self.sync_base_url and self.sync_service_key)

    @property
    def is_development(self) -> bool:
        return self.debug or self.log_level == "DEBUG"


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: ServiceConfig | None = None


def get_config() -> ServiceConfig:
    """Get or create the process-wide configuration used by entry points."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = ServiceConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
