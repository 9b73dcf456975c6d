from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from typing import Literal
from urllib.parse import quote_plus

from pydantic import (
    AliasChoices,
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from tradeconnect.core.constants import (
    DEFAULT_ENV_FILE,
    JWT_ACCESS_AUDIENCE,
    JWT_ISSUER,
    JWT_REFRESH_AUDIENCE,
    SECRETS_DIR,
    SERVICE_NAME,
)


class Environment(StrEnum):
    """Deployment environments supported by the service."""

    DEVELOPMENT = "development"
    TEST = "test"
    STAGING = "staging"
    PRODUCTION = "production"


class AsyncPostgresDsn(AnyUrl):
    allowed_schemes = {"postgresql", "postgresql+asyncpg"}
    host_required = True


class DatabaseSettings(BaseModel):
    """Database connectivity configuration."""

    model_config = ConfigDict(extra="ignore")

    url: AsyncPostgresDsn | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "url", "DATABASE__URL", "database__url", "DATABASE_URL", "database_url"
        ),
    )
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: SecretStr = SecretStr("postgres")
    name: str = SERVICE_NAME
    echo: bool = False

    @computed_field
    @property
    def dsn(self) -> str:
        """Assemble the SQLAlchemy async DSN."""
        if self.url is not None:
            return str(self.url)

        password = quote_plus(self.password.get_secret_value())
        return (
            f"postgresql+asyncpg://{self.user}:{password}"
            f"@{self.host}:{self.port}/{self.name}"
        )


class RedisSettings(BaseSettings):
    """Redis connection configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS__", extra="ignore")

    url: str = "redis://localhost:6379/0"


class JWTSettings(BaseModel):
    """JWT issuance and cookie configuration."""

    model_config = ConfigDict(extra="ignore")

    secret: SecretStr = Field(
        default=SecretStr("change-me"),
        validation_alias=AliasChoices(
            "secret", "JWT__SECRET", "jwt__secret", "JWT_SECRET", "jwt_secret"
        ),
    )
    algorithm: str = Field(default="HS256")
    issuer: str = JWT_ISSUER
    access_audience: str = JWT_ACCESS_AUDIENCE
    refresh_audience: str = JWT_REFRESH_AUDIENCE
    access_token_exp_minutes: int = Field(default=15, ge=1)
    refresh_token_exp_days: int = Field(default=7, ge=1)
    remember_me_refresh_exp_days: int = Field(default=30, ge=1)
    cookie_secure: bool = True
    cookie_domain: str | None = None
    cookie_path: str = "/"
    cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    access_cookie_name: str = "access_token"
    refresh_cookie_name: str = "refresh_token"

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.access_token_exp_minutes * 60


class AuthSettings(BaseModel):
    """Account lockout, session capping and single-use token lifetimes."""

    model_config = ConfigDict(extra="ignore")

    max_failed_attempts: int = Field(default=5, ge=1)
    lockout_minutes: int = Field(default=30, ge=1)
    max_sessions_per_user: int = Field(default=10, ge=1)
    verification_token_ttl_hours: int = Field(default=24, ge=1)
    password_reset_ttl_minutes: int = Field(default=60, ge=5)
    require_email_verification: bool = True
    default_role: str = "user"
    seed_default_roles: bool = True


class TwoFactorSettings(BaseModel):
    """Second factor policy."""

    model_config = ConfigDict(extra="ignore")

    issuer_name: str = "TradeConnect"
    backup_codes_count: int = Field(default=10, ge=1, le=50)
    backup_code_length: int = Field(default=8, ge=6, le=16)
    code_length: int = Field(default=6, ge=4, le=10)
    code_ttl_seconds: int = Field(default=300, ge=30)
    max_failed_attempts: int = Field(default=5, ge=1)
    lockout_minutes: int = Field(default=30, ge=1)
    totp_valid_window: int = Field(default=1, ge=0, le=5)


class RateLimitSettings(BaseModel):
    """Per-IP and per-identity rate limiter configuration."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    global_requests: int = Field(
        default=1_000,
        ge=1,
        validation_alias=AliasChoices(
            "global_requests",
            "RATE_LIMIT__GLOBAL_REQUESTS",
            "rate_limit__global_requests",
        ),
    )
    global_window_seconds: int = Field(
        default=900,
        ge=1,
        validation_alias=AliasChoices(
            "global_window_seconds",
            "RATE_LIMIT__GLOBAL_WINDOW_SECONDS",
            "rate_limit__global_window_seconds",
        ),
    )
    login_attempts: int = Field(default=5, ge=1)
    login_window_seconds: int = Field(default=900, ge=1)
    password_reset_attempts: int = Field(default=3, ge=1)
    password_reset_window_seconds: int = Field(default=3_600, ge=1)


class AuditSettings(BaseModel):
    """Audit trail retention and export limits."""

    model_config = ConfigDict(extra="ignore")

    retention_days: int = Field(default=365, ge=1)
    export_max_rows: int = Field(default=10_000, ge=1)


class PrometheusSettings(BaseSettings):
    """Prometheus metrics configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PROMETHEUS__",
        extra="ignore",
        case_sensitive=False,
    )

    enabled: bool = True
    metrics_path: str = "/metrics"
    should_group_status_codes: bool = True
    should_ignore_untemplated: bool = True
    should_respect_env_var: bool = False
    excluded_handlers: list[str] = Field(
        default_factory=lambda: ["/metrics", "/health", "/docs", "/redoc"]
    )


class SentrySettings(BaseSettings):
    """Sentry error tracking configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SENTRY__",
        extra="ignore",
        case_sensitive=False,
    )

    enabled: bool = True
    dsn: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "SENTRY_DSN",
            "sentry__dsn",
        ),
    )
    environment: str | None = None
    release: str | None = None
    sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    send_default_pii: bool = False
    ignore_errors: list[str] = Field(default_factory=list)


class Settings(BaseSettings):
    """Application settings loaded from the environment or secret stores."""

    model_config = SettingsConfigDict(
        env_file=DEFAULT_ENV_FILE,
        env_nested_delimiter="__",
        secrets_dir=SECRETS_DIR,
        extra="ignore",
        validate_default=True,
        case_sensitive=False,
    )

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: str = "INFO"

    project_name: str = "TradeConnect Identity Service"
    project_description: str = (
        "Authentication, sessions, two-factor and audit trail for TradeConnect"
    )
    project_version: str = "0.1.0"
    docs_url: str | None = "/docs"
    redoc_url: str | None = "/redoc"
    openapi_url: str = "/openapi.json"
    frontend_url: str = "http://localhost:3000"

    cors_allow_origins: list[str] = Field(default_factory=list)

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    two_factor: TwoFactorSettings = Field(default_factory=TwoFactorSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    prometheus: PrometheusSettings = Field(default_factory=PrometheusSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @model_validator(mode="after")
    def _normalize(self) -> Settings:
        self.log_level = self.log_level.upper()
        self.frontend_url = self.frontend_url.rstrip("/")

        if self.environment in {Environment.DEVELOPMENT, Environment.TEST}:
            self.debug = True

        return self

    @computed_field
    @property
    def is_development(self) -> bool:
        return self.environment is Environment.DEVELOPMENT

    @computed_field
    @property
    def is_testing(self) -> bool:
        return self.environment is Environment.TEST

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment is Environment.PRODUCTION


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached instance of the application settings."""

    return Settings()
