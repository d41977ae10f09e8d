"""Environment-driven settings for the gateway.

Values are read once from the process environment and cached. Call
``reset_settings()`` to force a re-read (tests patch the environment and
reset).
"""

import logging
import os
import threading

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)
_settings_lock = threading.Lock()

DEFAULT_FRONTEND_URL = "http://localhost:3000"


class Settings(BaseModel):
    """Gateway configuration."""

    supabase_url: str | None = Field(default=None)
    supabase_anon_key: str | None = Field(default=None)
    supabase_service_role_key: str | None = Field(default=None)
    frontend_url: str = Field(default=DEFAULT_FRONTEND_URL)
    cors_origins: list[str] = Field(default_factory=list)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8001)
    redis_url: str | None = Field(default=None)

    # Requests per minute, keyed by subscription tier
    tier_rate_limits: dict[str, int] = Field(
        default_factory=lambda: {"free": 10, "pro": 60, "enterprise": 300}
    )
    default_tier: str = Field(default="free")

    @property
    def supabase_configured(self) -> bool:
        """Whether the public Supabase client can be built."""
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def admin_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    @property
    def password_reset_url(self) -> str:
        return f"{self.frontend_url.rstrip('/')}/reset-password"

    def rate_limit_for(self, tier: str | None) -> int:
        """Requests-per-minute budget for a tier, falling back to the default tier."""
        if tier and tier in self.tier_rate_limits:
            return self.tier_rate_limits[tier]
        return self.tier_rate_limits[self.default_tier]


_settings: Settings | None = None


def _split_origins(raw: str | None, fallback: str) -> list[str]:
    if not raw:
        return [fallback]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_settings() -> Settings:
    """Get the gateway settings from environment variables.

    Returns:
        Settings built from the current environment on first call, cached afterwards.
    """
    global _settings
    if _settings is not None:
        return _settings
    with _settings_lock:
        if _settings is not None:  # Double-check after acquiring lock
            return _settings

        frontend_url = os.environ.get("FRONTEND_URL") or DEFAULT_FRONTEND_URL
        _settings = Settings(
            supabase_url=os.environ.get("SUPABASE_URL") or None,
            supabase_anon_key=os.environ.get("SUPABASE_ANON_KEY") or None,
            supabase_service_role_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or None,
            frontend_url=frontend_url,
            cors_origins=_split_origins(os.environ.get("CORS_ORIGINS"), frontend_url),
            host=os.environ.get("GATEWAY_HOST", "0.0.0.0"),
            port=int(os.environ.get("GATEWAY_PORT", "8001")),
            redis_url=os.environ.get("REDIS_URL") or None,
            tier_rate_limits={
                "free": int(os.environ.get("RATE_LIMIT_FREE", "10")),
                "pro": int(os.environ.get("RATE_LIMIT_PRO", "60")),
                "enterprise": int(os.environ.get("RATE_LIMIT_ENTERPRISE", "300")),
            },
        )
        if not _settings.supabase_configured:
            logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY not set; backend calls will fail")
        return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    with _settings_lock:
        _settings = None
