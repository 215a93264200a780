"""Tests for configuration loading and validation."""

import dataclasses

import pytest

from altq.config import (
    AppConfig,
    AuthConfig,
    CheckoutConfig,
    _safe_bool,
    _safe_float,
    _safe_int,
    _validate_config,
)


def _with_auth(**changes) -> AppConfig:
    return AppConfig(auth=dataclasses.replace(AuthConfig(), **changes))


def _with_checkout(**changes) -> AppConfig:
    return AppConfig(checkout=dataclasses.replace(CheckoutConfig(), **changes))


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        _validate_config(AppConfig())  # should not raise

    def test_default_verification_limits(self):
        auth = AuthConfig()
        assert auth.otp_length == 6
        assert auth.otp_max_attempts == 3
        assert auth.resend_cooldown_seconds == 30

    def test_country_code_needs_plus(self):
        with pytest.raises(ValueError, match="COUNTRY_CODE"):
            _validate_config(_with_auth(country_code="91"))

    @pytest.mark.parametrize("length", [3, 9])
    def test_otp_length_range(self, length):
        with pytest.raises(ValueError, match="OTP_LENGTH"):
            _validate_config(_with_auth(otp_length=length))

    def test_attempts_at_least_one(self):
        with pytest.raises(ValueError, match="OTP_MAX_ATTEMPTS"):
            _validate_config(_with_auth(otp_max_attempts=0))

    def test_negative_cooldown(self):
        with pytest.raises(ValueError, match="OTP_RESEND_COOLDOWN"):
            _validate_config(_with_auth(resend_cooldown_seconds=-1))

    def test_negative_delay(self):
        with pytest.raises(ValueError, match="WELCOME_STEP_DURATION"):
            _validate_config(_with_auth(welcome_step_duration_sec=-0.5))

    def test_loyalty_percent_range(self):
        with pytest.raises(ValueError, match="LOYALTY_GOLD_PERCENT"):
            _validate_config(_with_checkout(gold_percent=120))

    def test_gold_above_silver(self):
        with pytest.raises(ValueError, match="LOYALTY_GOLD_POINTS"):
            _validate_config(_with_checkout(gold_points=50, silver_points=50))


class TestEnvParsing:
    def test_safe_int_parsing(self):
        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_float_parsing(self):
        assert _safe_float("NONEXISTENT_VAR_12345", "3.14") == pytest.approx(3.14)

    def test_safe_int_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("ALTQ_TEST_INT", "six")
        with pytest.raises(ValueError, match="ALTQ_TEST_INT"):
            _safe_int("ALTQ_TEST_INT", "6")

    @pytest.mark.parametrize("raw,expected", [
        ("1", True), ("true", True), ("Yes", True), ("on", True),
        ("0", False), ("false", False), ("no", False), ("", False),
    ])
    def test_safe_bool(self, monkeypatch, raw, expected):
        monkeypatch.setenv("ALTQ_TEST_FLAG", raw)
        assert _safe_bool("ALTQ_TEST_FLAG", "false") is expected

    def test_safe_bool_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("ALTQ_TEST_FLAG", "maybe")
        with pytest.raises(ValueError, match="ALTQ_TEST_FLAG"):
            _safe_bool("ALTQ_TEST_FLAG", "false")
