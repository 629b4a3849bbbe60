"""PatchMon-Engine configuration via pydantic-settings."""

import re
import warnings
from datetime import timedelta
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "jwt_secret": "insecure-jwt-secret-change-me",
}

_DURATION_RE = re.compile(r"^(\d+)([smhd])$")
_DURATION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def parse_duration(value: str) -> timedelta:
    """Parse a compact duration such as ``30s``, ``15m``, ``1h`` or ``7d``."""
    match = _DURATION_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid expiration format: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


class PatchmonSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PATCHMON_")

    environment: str = "development"
    log_level: str = "INFO"

    # Sessions / JWT
    jwt_secret: str = "insecure-jwt-secret-change-me"
    jwt_expires_in: str = "1h"
    jwt_refresh_expires_in: str = "7d"
    session_inactivity_timeout_minutes: int = 30
    session_cleanup_interval_hours: int = 24

    # Password / token hashing cost factors
    bcrypt_password_rounds: int = 12
    bcrypt_token_rounds: int = 10

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/patchmon.db"
    db_pool_size: int = 5
    db_max_overflow: int = 0
    db_pool_timeout: int = 10  # seconds
    db_connect_max_attempts: int = 30
    db_connect_wait_interval: float = 2.0  # seconds

    # API
    api_title: str = "PatchMon-Engine"
    api_version: str = "1.2.8"
    api_prefix: str = "/api/v1"
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: list[str] = ["http://localhost:3000"]
    trust_proxy: bool = False  # honour X-Forwarded-For for client IPs

    # Agent scripts and server defaults
    agents_dir: str = "./agents"
    default_server_url: str = "http://localhost:3001"
    stale_host_multiplier: int = 2

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_default: str = "100/15minutes"
    rate_limit_auth: str = "5/15minutes"
    rate_limit_agent: str = "1000/hour"

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.jwt_expires_in)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.jwt_refresh_expires_in)

    @property
    def inactivity_timeout(self) -> timedelta:
        return timedelta(minutes=self.session_inactivity_timeout_minutes)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        # Fail fast on malformed durations rather than at first login.
        parse_duration(self.jwt_expires_in)
        parse_duration(self.jwt_refresh_expires_in)

        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"PATCHMON_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default JWT secret; set PATCHMON_JWT_SECRET for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> PatchmonSettings:
    settings = PatchmonSettings()
    settings.validate_for_production()
    return settings
