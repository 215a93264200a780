"""
Centralized inline messages for every auth and checkout step.

Each failure is shown as contextual text next to the active step.
The app name is injected from configuration, not hardcoded.
"""

from typing import Optional

from altq.config import settings

_app = settings.app_name

GENERIC_ERROR = "Something went wrong. Please try again."
INVALID_INPUT = "Please check the details you entered."
INVALID_PHONE = "Please enter a valid phone number"
INVALID_EMAIL = "Invalid email address"
NAME_REQUIRED = "Name is required"

INCOMPLETE_CODE = f"Please enter the complete {settings.auth.otp_length}-digit code"
INVALID_CODE = "Invalid code. Please try again."
CODE_EXPIRED = "This code has expired. Please request a new one."
TOO_MANY_ATTEMPTS = "Too many failed attempts. Please request a new code."
RESEND_NOT_READY = "Please wait before requesting another code."
NO_PENDING_CODE = "Request a verification code first."
NO_ACCOUNT_FOR_EMAIL_CODE = "Email codes can only be sent to a registered account."

INVALID_CREDENTIAL = "Invalid email or password. Please try again."
ADMIN_ONLY = "This login is for salon owners only. Please use customer login instead."
VERIFICATION_REQUIRED = "Please complete your email and phone verification."
VERIFIED_PLEASE_LOGIN = "Verification complete! Please login with your credentials to continue."
FEDERATED_FAILED = "Failed to sign in with Google"

NETWORK_ERROR = "Failed to reach the server. Please try again."
SIGN_IN_REQUIRED = "Please sign in to continue."
PROFILE_COMPLETION_REQUIRED = "Please complete your profile to continue."

WELCOME_STEPS: tuple[str, ...] = (
    "Setting up your account",
    "Finding nearby salons",
    "Preparing your dashboard",
)


def role_conflict(existing_role: str) -> str:
    """Inline message directing the user to the flow of their existing role."""
    other_flow = "salon owner" if existing_role == "salon_owner" else "customer"
    return f"Account already exists as {existing_role}. Please use the {other_flow} login instead."


def code_sent(masked_destination: str, echo_code: Optional[str] = None) -> str:
    """Confirmation text after a code is sent or resent."""
    if echo_code:
        return f"Your verification code is: {echo_code}"
    return f"Verification code sent to {masked_destination}"


def welcome_title(name: Optional[str]) -> str:
    return f"Welcome{' ' + name if name else ''} to {_app}!"


def resend_countdown(seconds: int, medium: str = "SMS") -> str:
    if seconds <= 0:
        return f"Resend {medium}"
    return f"Resend {medium} in {seconds}s"
