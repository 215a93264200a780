"""
Typed failure taxonomy for the auth layer.

The API boundary raises these; the verifier, gate and orchestrator catch
them and hand them back to callers inside typed results. Each class
carries the inline text shown next to the active step.
"""

from typing import Optional

from altq.prompts import messages


class AuthError(Exception):
    """Base class for every failure surfaced by the auth layer."""

    code = "auth_error"
    user_message = messages.GENERIC_ERROR

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.user_message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed destination, code or form field. Shown inline, never a fault."""

    code = "validation_error"
    user_message = messages.INVALID_INPUT


class IncompleteCode(ValidationError):
    code = "incomplete_code"
    user_message = messages.INCOMPLETE_CODE


class InvalidCode(AuthError):
    code = "invalid_code"
    user_message = messages.INVALID_CODE


class Expired(AuthError):
    code = "expired"
    user_message = messages.CODE_EXPIRED


class VerificationRejected(AuthError):
    """Attempts exhausted; a fresh code must be requested."""

    code = "verification_rejected"
    user_message = messages.TOO_MANY_ATTEMPTS


class InvalidCredential(AuthError):
    code = "invalid_credential"
    user_message = messages.INVALID_CREDENTIAL


class AccessDenied(AuthError):
    code = "access_denied"
    user_message = messages.ADMIN_ONLY


class Unverified(AuthError):
    """Login refused because the account has not finished verification."""

    code = "unverified"
    user_message = messages.VERIFICATION_REQUIRED

    def __init__(self, identity_id: Optional[str] = None, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.identity_id = identity_id


class RoleConflict(AuthError):
    """The asserted identity already exists under a different role."""

    code = "role_conflict"

    def __init__(self, existing_role: str, requested_role: str, message: Optional[str] = None) -> None:
        super().__init__(message or messages.role_conflict(existing_role))
        self.existing_role = existing_role
        self.requested_role = requested_role


class ChannelError(AuthError):
    """Network or transport failure. The same action may be retried."""

    code = "channel_error"
    user_message = messages.NETWORK_ERROR


class Unauthenticated(AuthError):
    """No usable session. Callers redirect to the flow entry point."""

    code = "unauthenticated"
    user_message = messages.SIGN_IN_REQUIRED
