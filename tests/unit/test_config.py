"""Tests for settings and duration parsing."""

from datetime import timedelta

import pytest

from patchmon_engine.common.config import PatchmonSettings, parse_duration


class TestParseDuration:
    @pytest.mark.parametrize("text,expected", [
        ("30s", timedelta(seconds=30)),
        ("15m", timedelta(minutes=15)),
        ("1h", timedelta(hours=1)),
        ("7d", timedelta(days=7)),
    ])
    def test_valid(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "1w", "h", "10", "-1h", "1.5h"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)


class TestSettings:
    def test_ttls(self):
        s = PatchmonSettings(jwt_expires_in="2h", jwt_refresh_expires_in="3d",
                             session_inactivity_timeout_minutes=45)
        assert s.access_token_ttl == timedelta(hours=2)
        assert s.refresh_token_ttl == timedelta(days=3)
        assert s.inactivity_timeout == timedelta(minutes=45)

    def test_production_rejects_default_secret(self):
        s = PatchmonSettings(environment="production", jwt_secret="insecure-jwt-secret-change-me")
        with pytest.raises(RuntimeError, match="PATCHMON_JWT_SECRET"):
            s.validate_for_production()

    def test_production_accepts_custom_secret(self):
        s = PatchmonSettings(environment="production", jwt_secret="a-real-secret")
        s.validate_for_production()

    def test_malformed_duration_fails_validation(self):
        s = PatchmonSettings(jwt_secret="x", jwt_expires_in="forever")
        with pytest.raises(ValueError):
            s.validate_for_production()

    def test_development_warns_on_default_secret(self):
        s = PatchmonSettings(environment="development", jwt_secret="insecure-jwt-secret-change-me")
        with pytest.warns(UserWarning):
            s.validate_for_production()
