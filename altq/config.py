"""
Centralized configuration with environment variable overrides.

Verification limits, timer durations, loyalty tiers and redirect targets
are configurable here. Nothing is hardcoded in the auth or checkout logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag (1/0, true/false, yes/no, on/off)."""
    raw = os.getenv(env_var, default).strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class AuthConfig:
    """One-time-code and auth flow settings."""

    country_code: str = os.getenv("COUNTRY_CODE", "+91")
    otp_length: int = _safe_int("OTP_LENGTH", "6")
    otp_max_attempts: int = _safe_int("OTP_MAX_ATTEMPTS", "3")
    resend_cooldown_seconds: int = _safe_int("OTP_RESEND_COOLDOWN", "30")
    loading_delay_sec: float = _safe_float("AUTH_LOADING_DELAY", "0.1")
    welcome_step_duration_sec: float = _safe_float("WELCOME_STEP_DURATION", "1.0")
    welcome_final_delay_sec: float = _safe_float("WELCOME_FINAL_DELAY", "0.5")
    # Non-production aid: surface the backend's echoed code to the user
    show_development_code: bool = _safe_bool("SHOW_DEV_OTP", "false")
    min_password_length: int = _safe_int("MIN_PASSWORD_LENGTH", "6")


@dataclass(frozen=True)
class ApiConfig:
    """Remote API transport settings."""

    base_url: str = os.getenv("API_BASE_URL", "http://localhost:5000")
    timeout_sec: float = _safe_float("API_TIMEOUT", "10.0")


@dataclass(frozen=True)
class CheckoutConfig:
    """Loyalty tier thresholds used by the discount calculator."""

    silver_points: int = _safe_int("LOYALTY_SILVER_POINTS", "50")
    silver_percent: int = _safe_int("LOYALTY_SILVER_PERCENT", "10")
    gold_points: int = _safe_int("LOYALTY_GOLD_POINTS", "100")
    gold_percent: int = _safe_int("LOYALTY_GOLD_PERCENT", "20")


@dataclass(frozen=True)
class RedirectConfig:
    """Terminal redirect destinations of the auth flow."""

    management_path: str = os.getenv("MANAGEMENT_PATH", "/dashboard")
    default_path: str = os.getenv("DEFAULT_PATH", "/")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    auth: AuthConfig = field(default_factory=AuthConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    checkout: CheckoutConfig = field(default_factory=CheckoutConfig)
    redirects: RedirectConfig = field(default_factory=RedirectConfig)
    session_file: str = os.getenv("SESSION_FILE", ".altq_session.json")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "AltQ")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not config.auth.country_code.startswith("+"):
        raise ValueError(
            f"COUNTRY_CODE must start with '+', got {config.auth.country_code!r}"
        )
    if not 4 <= config.auth.otp_length <= 8:
        raise ValueError(
            f"OTP_LENGTH must be between 4 and 8, got {config.auth.otp_length}"
        )
    if config.auth.otp_max_attempts < 1:
        raise ValueError(
            f"OTP_MAX_ATTEMPTS must be >= 1, got {config.auth.otp_max_attempts}"
        )
    if config.auth.resend_cooldown_seconds < 0:
        raise ValueError(
            "OTP_RESEND_COOLDOWN must be >= 0, "
            f"got {config.auth.resend_cooldown_seconds}"
        )

    for name, value in [
        ("AUTH_LOADING_DELAY", config.auth.loading_delay_sec),
        ("WELCOME_STEP_DURATION", config.auth.welcome_step_duration_sec),
        ("WELCOME_FINAL_DELAY", config.auth.welcome_final_delay_sec),
    ]:
        if value < 0:
            raise ValueError(f"{name} must be >= 0, got {value}")

    if config.api.timeout_sec <= 0:
        raise ValueError(f"API_TIMEOUT must be > 0, got {config.api.timeout_sec}")

    for pct_name, pct in [
        ("LOYALTY_SILVER_PERCENT", config.checkout.silver_percent),
        ("LOYALTY_GOLD_PERCENT", config.checkout.gold_percent),
    ]:
        if not 0 <= pct <= 100:
            raise ValueError(f"{pct_name} must be between 0 and 100, got {pct}")

    if config.checkout.gold_points <= config.checkout.silver_points:
        raise ValueError(
            "LOYALTY_GOLD_POINTS must be greater than LOYALTY_SILVER_POINTS, "
            f"got {config.checkout.gold_points} <= {config.checkout.silver_points}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()
