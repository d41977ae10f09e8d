"""Tests for environment-driven settings."""

import pytest

from scriptor.config import Settings, get_settings, reset_settings


@pytest.fixture()
def env(monkeypatch):
    """Set environment variables, then drop the cached settings."""

    def _set(**values):
        for key, value in values.items():
            if value is None:
                monkeypatch.delenv(key, raising=False)
            else:
                monkeypatch.setenv(key, value)
        reset_settings()
        return get_settings()

    return _set


class TestGetSettings:
    def test_reads_supabase_settings(self):
        settings = get_settings()
        assert settings.supabase_url == "https://project.supabase.co"
        assert settings.supabase_configured is True
        assert settings.admin_configured is True

    def test_cached_until_reset(self, env):
        first = get_settings()
        assert get_settings() is first
        second = env(FRONTEND_URL="https://other.example.com")
        assert second is not first

    def test_missing_anon_key_not_configured(self, env):
        settings = env(SUPABASE_ANON_KEY=None)
        assert settings.supabase_configured is False

    def test_missing_service_key_not_admin(self, env):
        settings = env(SUPABASE_SERVICE_ROLE_KEY=None)
        assert settings.supabase_configured is True
        assert settings.admin_configured is False

    def test_cors_defaults_to_frontend(self, env):
        settings = env(CORS_ORIGINS=None)
        assert settings.cors_origins == ["https://app.example.com"]

    def test_cors_origins_split(self, env):
        settings = env(CORS_ORIGINS="https://a.example.com, https://b.example.com,")
        assert settings.cors_origins == ["https://a.example.com", "https://b.example.com"]

    def test_frontend_default(self, env):
        settings = env(FRONTEND_URL=None)
        assert settings.frontend_url == "http://localhost:3000"

    def test_gateway_bind(self, env):
        settings = env(GATEWAY_HOST="127.0.0.1", GATEWAY_PORT="9000")
        assert (settings.host, settings.port) == ("127.0.0.1", 9000)

    def test_tier_limits_from_env(self, env):
        settings = env(RATE_LIMIT_FREE="3", RATE_LIMIT_PRO="30", RATE_LIMIT_ENTERPRISE="3000")
        assert settings.tier_rate_limits == {"free": 3, "pro": 30, "enterprise": 3000}


class TestSettingsModel:
    def test_password_reset_url(self):
        settings = Settings(frontend_url="https://app.example.com/")
        assert settings.password_reset_url == "https://app.example.com/reset-password"

    @pytest.mark.parametrize("tier,expected", [("free", 10), ("pro", 60), ("enterprise", 300), ("gold", 10), (None, 10)])
    def test_rate_limit_for(self, tier, expected):
        assert Settings().rate_limit_for(tier) == expected
