"""
One-time-code verifier: send, verify and resend for one pending credential.

State graph:
    idle -> sending -> sent -> verifying -> verified | rejected
    sent -> resending -> sent
    verifying -> sent            (wrong code, attempts left)

At most one PendingVerification exists per verifier. Requesting a new
code or cancelling bumps a generation counter, and any network result
that resolves for an older generation is discarded, so a code typed into
a superseded flow can never complete a login.

Usage:
    verifier = OtpVerifier(api, scheduler)
    await verifier.request_code("98765 43210")
    result = await verifier.input_code("123456")   # auto-submits
    if result.ok:
        store.set(result.auth.identity, result.auth.token)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from altq.auth.errors import (
    AuthError,
    ChannelError,
    Expired,
    IncompleteCode,
    InvalidCode,
    ValidationError,
    VerificationRejected,
)
from altq.auth.timers import Countdown, Scheduler, TimerGroup
from altq.config import AuthConfig, settings
from altq.logging_context import get_flow_logger
from altq.prompts import messages
from altq.schemas.identity_schema import AuthResult, Channel, SendCodeResult
from altq.tools.auth_api import AuthApi
from altq.utils import is_valid_email, mask_destination, to_e164

logger = get_flow_logger(__name__)


class VerifierState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    SENT = "sent"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    REJECTED = "rejected"
    RESENDING = "resending"


_BUSY_STATES = frozenset({VerifierState.SENDING, VerifierState.VERIFYING, VerifierState.RESENDING})


@dataclass
class PendingVerification:
    """The single in-flight one-time-code challenge."""
    channel: Channel
    destination: str
    code_length: int
    max_attempts: int
    resend_cooldown_seconds: int
    generation: int
    attempts_made: int = 0
    development_echo_code: Optional[str] = None
    identity_id: Optional[str] = None

    @property
    def attempts_left(self) -> int:
        return max(self.max_attempts - self.attempts_made, 0)

    @property
    def exhausted(self) -> bool:
        return self.attempts_made >= self.max_attempts


@dataclass(frozen=True)
class VerifierResult:
    """Typed outcome of a verifier operation."""
    state: VerifierState
    auth: Optional[AuthResult] = None
    error: Optional[AuthError] = None
    notice: Optional[str] = None
    ignored: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.ignored

    @property
    def verified(self) -> bool:
        """Email codes verify an account without returning a session."""
        return self.ok and self.state == VerifierState.VERIFIED


class OtpVerifier:
    """Drives one PendingVerification through send, verify and resend."""

    def __init__(
        self,
        api: AuthApi,
        scheduler: Scheduler,
        config: Optional[AuthConfig] = None,
    ) -> None:
        self._api = api
        self._config = config or settings.auth
        self._timers = TimerGroup(scheduler)
        self._cooldown = Countdown(self._timers, name="resend-cooldown")
        self._generation = 0
        self.state = VerifierState.IDLE
        self.pending: Optional[PendingVerification] = None
        self.entered_code = ""
        self.focus_index = 0

    # ------------------------------------------------------------------ #
    # Read-only views
    # ------------------------------------------------------------------ #

    @property
    def code_length(self) -> int:
        return self._config.otp_length

    @property
    def busy(self) -> bool:
        return self.state in _BUSY_STATES

    @property
    def cooldown_remaining(self) -> int:
        return self._cooldown.remaining if self.pending else 0

    @property
    def can_resend(self) -> bool:
        return (
            self.pending is not None
            and self._cooldown.finished
            and self.state in (VerifierState.SENT, VerifierState.REJECTED)
        )

    @property
    def resend_label(self) -> str:
        medium = "email" if self.pending and self.pending.channel == Channel.EMAIL else "SMS"
        return messages.resend_countdown(self.cooldown_remaining, medium)

    @property
    def display_code(self) -> Optional[str]:
        """Echoed development code, only when the environment allows showing it."""
        if self.pending is None or not self._config.show_development_code:
            return None
        return self.pending.development_echo_code

    def _result(self, **kwargs: object) -> VerifierResult:
        return VerifierResult(state=self.state, **kwargs)  # type: ignore[arg-type]

    def _ignored(self) -> VerifierResult:
        return VerifierResult(state=self.state, ignored=True)

    # ------------------------------------------------------------------ #
    # Destination validation
    # ------------------------------------------------------------------ #

    @staticmethod
    def normalize_destination(destination: str, channel: Channel) -> str:
        """Validate and normalize a destination before any network call.

        Raises:
            ValidationError: If the destination is malformed.
        """
        if channel == Channel.PHONE:
            normalized = to_e164(destination)
            if normalized is None:
                raise ValidationError(messages.INVALID_PHONE)
            return normalized
        if not is_valid_email(destination):
            raise ValidationError(messages.INVALID_EMAIL)
        return destination.strip().lower()

    # ------------------------------------------------------------------ #
    # Send
    # ------------------------------------------------------------------ #

    async def request_code(
        self,
        destination: str,
        channel: Channel = Channel.PHONE,
        identity_id: Optional[str] = None,
    ) -> VerifierResult:
        """Create a fresh PendingVerification, replacing any previous one.

        Email codes are addressed to an existing account, so the email
        channel needs ``identity_id``.
        """
        if self.busy:
            return self._ignored()
        try:
            normalized = self.normalize_destination(destination, channel)
        except ValidationError as exc:
            logger.debug("Rejected destination format for %s channel", channel.value)
            return self._result(error=exc)
        if channel == Channel.EMAIL and not identity_id:
            return self._result(error=ValidationError(messages.NO_ACCOUNT_FOR_EMAIL_CODE))

        self._discard_pending()
        generation = self._generation
        self.state = VerifierState.SENDING
        try:
            response = await self._send(channel, normalized, identity_id)
        except AuthError as exc:
            if generation != self._generation:
                return self._ignored()
            self.state = VerifierState.IDLE
            logger.warning("Code request failed for %s: %s", mask_destination(normalized), exc.code)
            return self._result(error=exc)

        if generation != self._generation:
            return self._ignored()
        if not response.accepted:
            self.state = VerifierState.IDLE
            return self._result(error=ChannelError())

        self.pending = PendingVerification(
            channel=channel,
            destination=normalized,
            code_length=self._config.otp_length,
            max_attempts=self._config.otp_max_attempts,
            resend_cooldown_seconds=self._config.resend_cooldown_seconds,
            generation=generation,
            development_echo_code=response.development_echo_code,
            identity_id=identity_id,
        )
        self._clear_input()
        self._cooldown.start(self._config.resend_cooldown_seconds)
        self.state = VerifierState.SENT
        logger.info("Code sent to %s", mask_destination(normalized))
        return self._result(
            notice=messages.code_sent(mask_destination(normalized), self.display_code)
        )

    # ------------------------------------------------------------------ #
    # Input and verification
    # ------------------------------------------------------------------ #

    async def input_code(self, value: str) -> VerifierResult:
        """Update the entered code; submits automatically at full length.

        Input is disabled while a verification is in flight, so extra
        keystrokes during that window are dropped.
        """
        if self.pending is None or self.state not in (VerifierState.SENT, VerifierState.REJECTED):
            return self._ignored()
        digits = "".join(ch for ch in value if ch.isdigit())[: self.code_length]
        self.entered_code = digits
        self.focus_index = len(digits)
        if len(digits) < self.code_length:
            return self._result()
        return await self.submit_code(digits)

    async def input_digit(self, digit: str) -> VerifierResult:
        return await self.input_code(self.entered_code + digit)

    def backspace(self) -> None:
        if self.state in (VerifierState.SENT, VerifierState.REJECTED):
            self.entered_code = self.entered_code[:-1]
            self.focus_index = len(self.entered_code)

    async def autofill_development_code(self) -> VerifierResult:
        """One-tap fill with the echoed code, which then auto-submits."""
        code = self.display_code
        if code is None:
            return self._ignored()
        return await self.input_code(code)

    async def submit_code(self, code: str) -> VerifierResult:
        pending = self.pending
        if pending is None:
            return self._result(error=ValidationError(messages.NO_PENDING_CODE))
        if self.state == VerifierState.REJECTED:
            self._clear_input()
            return self._result(error=VerificationRejected())
        if self.state != VerifierState.SENT:
            return self._ignored()
        if len(code) != pending.code_length or not code.isdigit():
            return self._result(error=IncompleteCode())

        # Counted before the round-trip so an interrupted call still uses an attempt
        pending.attempts_made += 1
        generation = self._generation
        self.state = VerifierState.VERIFYING
        try:
            auth = await self._verify(pending, code)
        except AuthError as exc:
            if generation != self._generation:
                return self._ignored()
            return self._on_verify_failed(pending, exc)

        if generation != self._generation:
            logger.info("Discarding verification result for a superseded code")
            return self._ignored()

        self._discard_pending()
        self.state = VerifierState.VERIFIED
        logger.info("Code verified for %s", mask_destination(pending.destination))
        return self._result(auth=auth)

    async def _send(self, channel: Channel, destination: str, identity_id: Optional[str]) -> SendCodeResult:
        if channel == Channel.EMAIL:
            return await self._api.send_email_code(identity_id, destination)
        return await self._api.send_code(destination)

    async def _verify(self, pending: PendingVerification, code: str) -> Optional[AuthResult]:
        if pending.channel == Channel.EMAIL:
            await self._api.verify_email_code(pending.identity_id, code)
            return None
        return await self._api.verify_code(pending.destination, code)

    def _on_verify_failed(self, pending: PendingVerification, exc: AuthError) -> VerifierResult:
        self._clear_input()
        if isinstance(exc, ChannelError):
            logger.warning("Verification call failed: %s", exc.code)
        elif isinstance(exc, (InvalidCode, Expired)):
            logger.info(
                "Wrong code for %s (%d/%d)",
                mask_destination(pending.destination), pending.attempts_made, pending.max_attempts,
            )
        if pending.exhausted:
            self.state = VerifierState.REJECTED
            return self._result(error=VerificationRejected())
        self.state = VerifierState.SENT
        return self._result(error=exc)

    # ------------------------------------------------------------------ #
    # Resend
    # ------------------------------------------------------------------ #

    async def resend_code(self) -> VerifierResult:
        pending = self.pending
        if pending is None:
            return self._result(error=ValidationError(messages.NO_PENDING_CODE))
        if self.busy:
            return self._ignored()
        if not self.can_resend:
            return self._result(error=ValidationError(messages.RESEND_NOT_READY))

        previous = self.state
        generation = self._generation
        self.state = VerifierState.RESENDING
        try:
            response = await self._send(pending.channel, pending.destination, pending.identity_id)
        except AuthError as exc:
            if generation != self._generation:
                return self._ignored()
            self.state = previous
            return self._result(error=exc)

        if generation != self._generation:
            return self._ignored()
        if not response.accepted:
            self.state = previous
            return self._result(error=ChannelError())

        # The old echo code stays visible until this response replaces it
        pending.development_echo_code = response.development_echo_code
        pending.attempts_made = 0
        self._clear_input()
        self._cooldown.start(pending.resend_cooldown_seconds)
        self.state = VerifierState.SENT
        logger.info("Code resent to %s", mask_destination(pending.destination))
        return self._result(
            notice=messages.code_sent(mask_destination(pending.destination), self.display_code)
        )

    # ------------------------------------------------------------------ #
    # Teardown
    # ------------------------------------------------------------------ #

    def cancel(self) -> None:
        """Drop the pending verification and stop its timers."""
        if self.pending is not None:
            logger.debug("Pending verification cancelled")
        self._discard_pending()
        self._timers.cancel_all()
        self.state = VerifierState.IDLE

    def _discard_pending(self) -> None:
        self._generation += 1
        self._cooldown.cancel()
        self.pending = None
        self._clear_input()

    def _clear_input(self) -> None:
        self.entered_code = ""
        self.focus_index = 0
