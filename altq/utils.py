"""Shared utilities for destination handling."""

import re
from typing import Optional

from altq.config import settings

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
LOCAL_PHONE_PATTERN = re.compile(r"^[6-9]\d{9}$")


def normalize_phone(value: str) -> str:
    """Drop spaces, dashes and brackets from a typed mobile number.

    Only a leading + survives: "+91 98765-43210" becomes "+919876543210"
    and "98765 43210" becomes "9876543210".
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def to_local_digits(value: str) -> str:
    """Strip separators and the country code, leaving the local digits."""
    cleaned = normalize_phone(value)
    prefix = settings.auth.country_code
    if cleaned.startswith(prefix):
        return cleaned[len(prefix):]
    bare_prefix = prefix.lstrip("+")
    # "91" followed by 10 digits is a prefixed number, not a local one
    if cleaned.startswith(bare_prefix) and len(cleaned) == len(bare_prefix) + 10:
        return cleaned[len(bare_prefix):]
    return cleaned.lstrip("+")


def to_e164(value: str) -> Optional[str]:
    """Return the fully prefixed number, or None when it is not a valid mobile.

    A valid local number is exactly 10 digits and starts with 6-9.

    Examples:
        >>> to_e164("98765 43210")
        '+919876543210'
        >>> to_e164("12345 67890") is None
        True
    """
    digits = to_local_digits(value)
    if not LOCAL_PHONE_PATTERN.match(digits):
        return None
    return f"{settings.auth.country_code}{digits}"


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value.strip()))


def mask_destination(destination: str) -> str:
    """Mask a phone number or email for display and logs.

    Examples:
        >>> mask_destination("+919876543210")
        '+91******3210'
        >>> mask_destination("priya@example.com")
        'p****@example.com'
    """
    if "@" in destination:
        local, _, domain = destination.partition("@")
        return f"{local[:1]}{'*' * max(len(local) - 1, 0)}@{domain}"
    if len(destination) <= 4:
        return destination
    country = destination[:3]
    last_four = destination[-4:]
    masked = re.sub(r"\d", "*", destination[3:-4])
    return f"{country}{masked}{last_four}"
