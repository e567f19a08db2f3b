"""Application settings using Pydantic BaseSettings."""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Administrator-facing bounds. Out-of-range values are clamped, never rejected.
BOUNDS: dict[str, tuple[float, float]] = {
    "login_max_attempts": (1, 20),
    "lockout_duration_seconds": (60, 3600),
    "login_page_rate_limit": (5, 100),
    "bot_activity_threshold": (1, 20),
    "bot_activity_window_seconds": (300, 86400),
    "bot_block_seconds": (300, 604800),
    "form_rate_limit": (1, 10),
    "form_rate_window_seconds": (30, 300),
    "form_min_fill_seconds": (0.0, 30.0),
    "violation_threshold": (3, 20),
    "violation_decay_seconds": (300, 604800),
    "blacklist_duration_seconds": (3600, 604800),
    "form_abuse_block_seconds": (300, 604800),
    "under_attack_threshold": (5, 50),
    "under_attack_window_seconds": (10, 3600),
    "under_attack_duration_seconds": (300, 7200),
    "captcha_ttl_seconds": (60, 3600),
    "captcha_rate_limit": (1, 60),
    "graphql_query_depth": (1, 20),
    "graphql_query_complexity": (10, 1000),
    "graphql_query_timeout": (1, 60),
    "graphql_alias_limit": (1, 50),
    "graphql_directive_limit": (1, 30),
    "graphql_field_duplicate_limit": (1, 20),
    "graphql_headless_multiplier": (1.5, 1000.0),
    "graphql_batch_limit": (1, 100),
}


def clamp(name: str, value):
    """Clamp ``value`` into the configured range for ``name``."""
    low, high = BOUNDS[name]
    if value < low:
        return type(value)(low)
    if value > high:
        return type(value)(high)
    return value


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    environment: str = Field(default="development")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    max_request_bytes: int = Field(default=1048576)

    # Admin API. Empty token disables the admin routes.
    admin_api_token: str = Field(default="")
    # Shared secret the host sends on /guard calls. Empty disables them.
    guard_api_token: str = Field(default="")

    # TTL store
    store_backend: str = Field(default="memory")
    store_prefix: str = Field(default="bastion:")
    memory_store_maxsize: int = Field(default=100_000)
    redis_url: str = Field(default="redis://localhost:6379/0")
    ip_key_secret: str = Field(default="")

    # Audit trail
    audit_log_enabled: bool = Field(default=False)
    database_url: str = Field(default="sqlite:///./data/bastion.db")

    # Forces every manually switchable defense off, regardless of stored flags.
    emergency_disable: bool = Field(default=False)

    # Login security
    login_max_attempts: int = Field(default=5)
    lockout_duration_seconds: int = Field(default=900)

    # Bot protection on the login page
    bot_protection_enabled: bool = Field(default=True)
    login_page_rate_limit: int = Field(default=15)
    bot_activity_threshold: int = Field(default=3)
    bot_activity_window_seconds: int = Field(default=3600)
    bot_block_seconds: int = Field(default=7200)

    # Form protection
    form_protection_enabled: bool = Field(default=True)
    form_rate_limit: int = Field(default=5)
    form_rate_window_seconds: int = Field(default=60)
    form_min_fill_seconds: float = Field(default=1.5)
    honeypot_enabled: bool = Field(default=True)
    timing_protection_enabled: bool = Field(default=True)
    obsolete_client_blocking_enabled: bool = Field(default=True)
    injection_protection_enabled: bool = Field(default=True)

    # IP reputation
    violation_threshold: int = Field(default=5)
    violation_decay_seconds: int = Field(default=86400)
    blacklist_duration_seconds: int = Field(default=86400)
    form_abuse_block_seconds: int = Field(default=3600)

    # Under Attack mode
    under_attack_enabled: bool = Field(default=True)
    under_attack_threshold: int = Field(default=10)
    under_attack_window_seconds: int = Field(default=60)
    under_attack_duration_seconds: int = Field(default=3600)
    captcha_difficulty: str = Field(default="medium")
    captcha_ttl_seconds: int = Field(default=600)
    # Challenges one address may request per minute outside form rendering.
    captcha_rate_limit: int = Field(default=10)

    # GraphQL
    graphql_headless_mode: bool = Field(default=False)
    graphql_query_depth: int = Field(default=8)
    graphql_query_complexity: int = Field(default=100)
    graphql_query_timeout: int = Field(default=30)
    graphql_alias_limit: int = Field(default=20)
    graphql_directive_limit: int = Field(default=15)
    graphql_field_duplicate_limit: int = Field(default=10)
    graphql_headless_multiplier: float = Field(default=2.5)
    graphql_introspection_enabled: bool = Field(default=False)
    graphql_debug_mode: bool = Field(default=False)
    graphql_endpoint_restricted: bool = Field(default=False)
    graphql_batch_enabled: bool = Field(default=True)
    graphql_batch_limit: int = Field(default=10)
    # Host execution ceiling in seconds; 0 means the host imposes none.
    host_max_execution_time: int = Field(default=30)

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def under_attack_available(self) -> bool:
        """Emergency override wins over the stored feature flag."""
        if self.emergency_disable:
            return False
        return self.under_attack_enabled

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"development", "staging", "production"}:
            raise ValueError("ENVIRONMENT must be one of: development, staging, production")
        return vv

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"memory", "redis"}:
            raise ValueError("STORE_BACKEND must be one of: memory, redis")
        return vv

    @field_validator("captcha_difficulty")
    @classmethod
    def validate_captcha_difficulty(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        return vv if vv in {"easy", "medium", "hard"} else "medium"

    @field_validator("host_max_execution_time")
    @classmethod
    def validate_host_max_execution_time(cls, v: int) -> int:
        return max(0, v)

    @field_validator(*BOUNDS.keys())
    @classmethod
    def clamp_to_bounds(cls, v, info):
        return clamp(info.field_name, v)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
