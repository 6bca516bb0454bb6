"""
Application settings built on pydantic_settings
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr, field_validator
from typing import Optional, List, Dict, Tuple


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection settings"""

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    host: str = Field(
        default="localhost",
        description="PostgreSQL host"
    )

    port: int = Field(
        default=5432,
        description="PostgreSQL port"
    )

    user: str = Field(
        default="postgres",
        description="Database user"
    )

    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password"
    )

    database: str = Field(
        default="agenthub",
        description="Database name"
    )

    dsn: Optional[str] = Field(
        default=None,
        description="Full async SQLAlchemy URL, overrides host/port/user (e.g. sqlite+aiosqlite:///./dev.db)"
    )

    pool_size: int = Field(
        default=5,
        description="Connection pool size"
    )

    max_overflow: int = Field(
        default=10,
        description="Maximum pool overflow"
    )

    pool_timeout: int = Field(
        default=30,
        description="Seconds to wait for a pooled connection"
    )

    echo: bool = Field(
        default=False,
        description="Log SQL statements"
    )

    @property
    def url(self) -> str:
        """Sync connection URL (used by Alembic offline mode)"""
        password_value = self.password.get_secret_value() if self.password else ""
        return f"postgresql://{self.user}:{password_value}@{self.host}:{self.port}/{self.database}"

    @property
    def async_url(self) -> str:
        """Async connection URL"""
        if self.dsn:
            return self.dsn
        password_value = self.password.get_secret_value() if self.password else ""
        return f"postgresql+asyncpg://{self.user}:{password_value}@{self.host}:{self.port}/{self.database}"


class RedisSettings(BaseSettings):
    """Redis connection settings (shared rate limiter)"""

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    enabled: bool = Field(
        default=False,
        description="Use Redis for rate limiting instead of process memory"
    )

    host: str = Field(
        default="localhost",
        description="Redis host"
    )

    port: int = Field(
        default=6379,
        description="Redis port"
    )

    password: Optional[SecretStr] = Field(
        default=None,
        description="Redis password (optional)"
    )

    db: int = Field(
        default=0,
        description="Redis database number"
    )

    @property
    def url(self) -> str:
        """Redis connection URL"""
        password_value = self.password.get_secret_value() if self.password else ""
        if password_value:
            return f"redis://:{password_value}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class StripeSettings(BaseSettings):
    """Stripe API credentials"""

    model_config = SettingsConfigDict(
        env_prefix="STRIPE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    secret_key: Optional[SecretStr] = Field(
        default=None,
        description="Stripe secret key (sk_...)"
    )

    webhook_secret: Optional[SecretStr] = Field(
        default=None,
        description="Webhook signing secret (whsec_...)"
    )

    publishable_key: Optional[str] = Field(
        default=None,
        description="Publishable key handed to the frontend (pk_...)"
    )

    api_version: str = Field(
        default="2024-06-20",
        description="Pinned Stripe API version"
    )

    currency: str = Field(
        default="aed",
        description="Checkout currency"
    )

    @field_validator("secret_key")
    @classmethod
    def _check_secret_key(cls, value: Optional[SecretStr]) -> Optional[SecretStr]:
        if value is not None and value.get_secret_value():
            if not value.get_secret_value().startswith(("sk_", "rk_")):
                raise ValueError("STRIPE_SECRET_KEY does not appear to be a valid Stripe secret key")
        return value

    @field_validator("webhook_secret")
    @classmethod
    def _check_webhook_secret(cls, value: Optional[SecretStr]) -> Optional[SecretStr]:
        if value is not None and value.get_secret_value():
            if not value.get_secret_value().startswith("whsec_"):
                raise ValueError("STRIPE_WEBHOOK_SECRET does not appear to be a valid webhook secret")
        return value

    @field_validator("publishable_key")
    @classmethod
    def _check_publishable_key(cls, value: Optional[str]) -> Optional[str]:
        if value and not value.startswith("pk_"):
            raise ValueError("STRIPE_PUBLISHABLE_KEY does not appear to be a valid Stripe publishable key")
        return value

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key and self.secret_key.get_secret_value())


class AuthSettings(BaseSettings):
    """Verification of end-user JWTs issued by the external auth provider"""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    jwt_secret: SecretStr = Field(
        default=SecretStr("change-me-auth-jwt-secret"),
        description="Shared secret used by the auth provider to sign user tokens"
    )

    jwt_algorithm: str = Field(
        default="HS256",
        description="Token signature algorithm"
    )

    jwt_audience: Optional[str] = Field(
        default="authenticated",
        description="Expected aud claim (empty to skip the check)"
    )


class AdminSettings(BaseSettings):
    """Admin credentials"""

    model_config = SettingsConfigDict(
        env_prefix="ADMIN_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    username: Optional[str] = Field(
        default=None,
        description="Admin username"
    )

    password: Optional[SecretStr] = Field(
        default=None,
        description="Admin password"
    )

    token_ttl_hours: int = Field(
        default=24,
        description="Lifetime of issued admin tokens"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.username and self.password and self.password.get_secret_value())


class N8NSettings(BaseSettings):
    """n8n workflow webhooks, one URL per agent"""

    model_config = SettingsConfigDict(
        env_prefix="N8N_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    webhook_weather_reporter: Optional[str] = None
    webhook_job_posting_generator: Optional[str] = None
    webhook_data_analyzer: Optional[str] = None
    webhook_faq_generator: Optional[str] = None
    webhook_social_ads_generator: Optional[str] = None
    webhook_five_whys: Optional[str] = None

    timeout: int = Field(
        default=120,
        description="Workflow request timeout (seconds)"
    )

    allowed_domains: List[str] = Field(
        default=["n8n.cloud", "quantumtaskai.app.n8n.cloud", "webhook.site"],
        description="Hosts accepted as workflow endpoints"
    )

    def webhook_urls(self) -> Dict[str, str]:
        """Configured webhook URLs keyed by agent slug"""
        urls = {}
        for name, value in self.model_dump().items():
            if name.startswith("webhook_") and value:
                urls[name[len("webhook_"):].replace("_", "-")] = value
        return urls


class WalletSettings(BaseSettings):
    """Wallet behaviour and the payment reconciliation job"""

    model_config = SettingsConfigDict(
        env_prefix="WALLET_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    max_balance: int = Field(
        default=1000,
        description="Upper bound for a wallet balance reachable by top-up (AED)"
    )

    app_url: str = Field(
        default="http://localhost:3000",
        description="Public frontend URL used in checkout redirects"
    )

    reconcile_enabled: bool = Field(
        default=False,
        description="Run the periodic Stripe reconciliation task"
    )

    reconcile_interval: int = Field(
        default=300,
        description="Seconds between reconciliation runs"
    )

    reconcile_lookback_hours: int = Field(
        default=24,
        description="How far back reconciliation scans checkout sessions"
    )

    webhook_rate_limit: int = Field(
        default=100,
        description="Webhook requests allowed per client per window"
    )

    webhook_rate_window: int = Field(
        default=60,
        description="Rate limit window (seconds)"
    )


class Settings(BaseSettings):
    """Main application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    app_name: str = Field(
        default="AgentHub Wallet API",
        description="Application name"
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    debug: bool = Field(
        default=False,
        description="Debug mode"
    )

    environment: str = Field(
        default="development",
        description="development or production"
    )

    log_level: str = Field(
        default="INFO",
        description="Root logging level"
    )

    # Signs admin tokens
    secret: SecretStr = Field(
        default=SecretStr("default-secret-key-change-in-production"),
        description="Secret key for signing admin tokens"
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    admin: AdminSettings = Field(default_factory=AdminSettings)
    n8n: N8NSettings = Field(default_factory=N8NSettings)
    wallet: WalletSettings = Field(default_factory=WalletSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def validate_environment(self) -> Tuple[List[str], List[str]]:
        """
        Check required and optional configuration

        Returns:
            (errors, warnings) lists of human readable messages
        """
        errors: List[str] = []
        warnings: List[str] = []

        if not self.stripe.is_configured:
            warnings.append("Optional setting not configured: STRIPE_SECRET_KEY")
        if not self.stripe.webhook_secret:
            warnings.append("Optional setting not configured: STRIPE_WEBHOOK_SECRET")
        if not self.admin.is_configured:
            warnings.append("Admin credentials not configured: ADMIN_USERNAME / ADMIN_PASSWORD")

        configured = self.n8n.webhook_urls()
        for slug in ("data-analyzer", "five-whys", "job-posting-generator", "social-ads-generator", "faq-generator"):
            if slug not in configured:
                warnings.append(f"Optional setting not configured: N8N_WEBHOOK_{slug.upper().replace('-', '_')}")

        if self.is_production:
            if self.secret.get_secret_value() == "default-secret-key-change-in-production":
                errors.append("SECRET must be changed in production")
            if self.auth.jwt_secret.get_secret_value() == "change-me-auth-jwt-secret":
                errors.append("AUTH_JWT_SECRET must be set in production")
            if self.stripe.is_configured and self.stripe.secret_key.get_secret_value().startswith("sk_test_"):
                warnings.append("Stripe test key in use in production")

        return errors, warnings


__all__ = [
    "Settings",
    "DatabaseSettings",
    "RedisSettings",
    "StripeSettings",
    "AuthSettings",
    "AdminSettings",
    "N8NSettings",
    "WalletSettings",
]
