"""
Authentication flow orchestrator.

Drives the AuthFlowStateMachine through the customer phone flow, the
administrative password flow, federated sign-in, unverified-account
recovery and the welcome sequence. Credential collection is delegated
to the OtpVerifier; successful sign-ins are written to the SessionStore.

Every public operation returns a FlowOutcome. Failures from the API are
converted to typed errors on the outcome and never escape this class.

Usage:
    flow = AuthFlowOrchestrator(api, store, AsyncioScheduler(), on_redirect=navigate)
    flow.mount()
    await flow.submit_phone("98765 43210")
    await flow.input_code("123456")
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional
from urllib.parse import parse_qs, urlparse

from pydantic import ValidationError as SchemaValidationError

from altq.auth.errors import (
    AccessDenied,
    AuthError,
    RoleConflict,
    Unauthenticated,
    Unverified,
    ValidationError,
)
from altq.auth.otp_verifier import OtpVerifier, VerifierResult
from altq.auth.state_machine import AuthFlowState, AuthFlowStateMachine, FlowTrigger
from altq.auth.timers import Scheduler, TimerGroup
from altq.config import AppConfig, settings
from altq.logging_context import get_flow_logger, new_flow_id, set_flow_id
from altq.prompts import messages
from altq.schemas.identity_schema import (
    AuthResult,
    Channel,
    Identity,
    LoginCredential,
    RegistrationDraft,
    Role,
)
from altq.session.store import SessionStore
from altq.tools.auth_api import AuthApi
from altq.utils import is_valid_email, to_e164

logger = get_flow_logger(__name__)


class FlowHint(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


def flow_hint_from_url(url: str) -> FlowHint:
    """Derive the entry flow from ``?flow=admin`` or an ``/admin`` path."""
    parsed = urlparse(url)
    values = parse_qs(parsed.query).get("flow", [])
    if values and values[0].lower() == FlowHint.ADMIN.value:
        return FlowHint.ADMIN
    segments = [s for s in parsed.path.lower().split("/") if s]
    if FlowHint.ADMIN.value in segments:
        return FlowHint.ADMIN
    return FlowHint.CUSTOMER


def _first_error(exc: SchemaValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return messages.INVALID_INPUT
    return str(errors[0].get("msg", messages.INVALID_INPUT)).removeprefix("Value error, ")


def needs_login_profile(identity: Identity) -> bool:
    """Federated sign-ins must carry both a name and a phone number."""
    return not (identity.name and identity.name.strip() and identity.phone)


@dataclass(frozen=True)
class FlowOutcome:
    """Typed outcome of an orchestrator operation."""
    state: AuthFlowState
    error: Optional[AuthError] = None
    redirect: Optional[str] = None
    notice: Optional[str] = None
    ignored: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.ignored


class AuthFlowOrchestrator:
    """Owns the screen sequence of one sign-in flow instance."""

    def __init__(
        self,
        api: AuthApi,
        store: SessionStore,
        scheduler: Scheduler,
        flow_hint: FlowHint = FlowHint.CUSTOMER,
        on_redirect: Optional[Callable[[str], None]] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._api = api
        self._store = store
        self._config = config or settings
        self._on_redirect = on_redirect
        self._timers = TimerGroup(scheduler)
        self.machine = AuthFlowStateMachine()
        self.verifier = OtpVerifier(api, scheduler, self._config.auth)
        self.flow_hint = flow_hint
        self.flow_id = new_flow_id()
        self.redirect_target: Optional[str] = None
        self.phone_number: Optional[str] = None
        self.prefill_email: Optional[str] = None
        self.prefill_password: Optional[str] = None
        self.welcome_completed_steps: list[str] = []
        self.recovery_attempted = False
        self._recovery_credential: Optional[LoginCredential] = None
        self._recovery_identity_id: Optional[str] = None
        self._epoch = 0
        self._in_flight: Optional[int] = None
        self._torn_down = False

    @property
    def state(self) -> AuthFlowState:
        return self.machine.current_state

    @property
    def busy(self) -> bool:
        return self._in_flight == self._epoch

    def _outcome(self, **kwargs: object) -> FlowOutcome:
        return FlowOutcome(state=self.state, **kwargs)  # type: ignore[arg-type]

    def _ignored(self) -> FlowOutcome:
        return FlowOutcome(state=self.state, ignored=True)

    def _accepts(self, *states: AuthFlowState) -> bool:
        return not self._torn_down and self.state in states

    async def _guarded(self, call: Callable[[], Awaitable[FlowOutcome]]) -> FlowOutcome:
        """Run a network-backed operation unless one is already outstanding.

        The operation sees ``epoch`` changes (switch, teardown) and must
        discard its result when the flow moved on while it was waiting.
        """
        if self.busy:
            return self._ignored()
        epoch = self._epoch
        self._in_flight = epoch
        try:
            return await call()
        finally:
            if self._in_flight == epoch:
                self._in_flight = None

    def _stale(self, epoch: int, origin: AuthFlowState) -> bool:
        return self._torn_down or epoch != self._epoch or self.state != origin

    # ------------------------------------------------------------------ #
    # Entry
    # ------------------------------------------------------------------ #

    def mount(self) -> FlowOutcome:
        """Reconcile an existing session, else arm the loading delay."""
        if self._torn_down or self.state != AuthFlowState.IDLE:
            return self._ignored()
        set_flow_id(self.flow_id)

        # Runs before the loading timer is armed: no screen is ever shown
        session = self._store.get()
        if session is not None:
            logger.info("Existing session found at entry, redirecting")
            self.machine.transition(FlowTrigger.SESSION_FOUND)
            return self._redirect(session.identity)

        self.machine.transition(FlowTrigger.MOUNTED)
        self._timers.schedule(
            self._config.auth.loading_delay_sec, self._finish_loading, name="auth-loading"
        )
        return self._outcome()

    def _finish_loading(self) -> None:
        if self.state != AuthFlowState.LOADING:
            return
        if self.flow_hint == FlowHint.ADMIN:
            self.machine.transition(FlowTrigger.ADMIN_FLOW_SELECTED)
        else:
            self.machine.transition(FlowTrigger.CUSTOMER_FLOW_SELECTED)

    def _redirect(self, identity: Identity) -> FlowOutcome:
        redirects = self._config.redirects
        target = redirects.management_path if identity.role == Role.SALON_OWNER else redirects.default_path
        self.redirect_target = target
        self._timers.cancel_all()
        self.verifier.cancel()
        self._recovery_credential = None
        self._recovery_identity_id = None
        logger.info("Terminal redirect to %s", target)
        if self._on_redirect is not None:
            self._on_redirect(target)
        return self._outcome(redirect=target)

    # ------------------------------------------------------------------ #
    # Channel switching
    # ------------------------------------------------------------------ #

    def _reset_channel(self) -> None:
        self._epoch += 1
        self.verifier.cancel()
        self._recovery_credential = None
        self._recovery_identity_id = None
        self.phone_number = None

    def switch_to_admin(self) -> FlowOutcome:
        if self._torn_down or not self.machine.can(FlowTrigger.SWITCH_TO_ADMIN):
            return self._ignored()
        self._reset_channel()
        self.flow_hint = FlowHint.ADMIN
        self.machine.transition(FlowTrigger.SWITCH_TO_ADMIN)
        return self._outcome()

    def switch_to_customer(self) -> FlowOutcome:
        if self._torn_down or not self.machine.can(FlowTrigger.SWITCH_TO_CUSTOMER):
            return self._ignored()
        self._reset_channel()
        self.flow_hint = FlowHint.CUSTOMER
        self.machine.transition(FlowTrigger.SWITCH_TO_CUSTOMER)
        return self._outcome()

    # ------------------------------------------------------------------ #
    # Customer phone flow
    # ------------------------------------------------------------------ #

    async def submit_phone(self, number: str) -> FlowOutcome:
        if not self._accepts(AuthFlowState.PHONE_INPUT):
            return self._ignored()

        async def call() -> FlowOutcome:
            epoch = self._epoch
            result = await self.verifier.request_code(number, Channel.PHONE)
            if result.ignored or self._stale(epoch, AuthFlowState.PHONE_INPUT):
                return self._ignored()
            if result.error is not None:
                return self._outcome(error=result.error)
            self.phone_number = self.verifier.pending.destination if self.verifier.pending else None
            self.machine.transition(FlowTrigger.CODE_SENT)
            return self._outcome(notice=result.notice)

        return await self._guarded(call)

    def edit_destination(self) -> FlowOutcome:
        """Back from the code screen to the phone form, dropping the code."""
        if not self._accepts(AuthFlowState.OTP_VERIFICATION):
            return self._ignored()
        self._epoch += 1
        self.verifier.cancel()
        self.machine.transition(FlowTrigger.EDIT_DESTINATION)
        return self._outcome()

    async def input_code(self, value: str) -> FlowOutcome:
        return await self._drive_verifier(lambda: self.verifier.input_code(value))

    async def input_digit(self, digit: str) -> FlowOutcome:
        return await self._drive_verifier(lambda: self.verifier.input_digit(digit))

    async def autofill_development_code(self) -> FlowOutcome:
        return await self._drive_verifier(self.verifier.autofill_development_code)

    async def resend_code(self) -> FlowOutcome:
        if not self._accepts(AuthFlowState.OTP_VERIFICATION, AuthFlowState.ACCOUNT_VERIFICATION):
            return self._ignored()
        if (
            self.state == AuthFlowState.ACCOUNT_VERIFICATION
            and self.verifier.pending is None
            and self._recovery_credential is not None
        ):
            credential = self._recovery_credential
            result = await self.verifier.request_code(
                credential.email, Channel.EMAIL, self._recovery_identity_id
            )
        else:
            result = await self.verifier.resend_code()
        if result.ignored:
            return self._ignored()
        return self._outcome(error=result.error, notice=result.notice)

    async def _drive_verifier(self, step: Callable[[], Awaitable[VerifierResult]]) -> FlowOutcome:
        if not self._accepts(AuthFlowState.OTP_VERIFICATION, AuthFlowState.ACCOUNT_VERIFICATION):
            return self._ignored()
        origin = self.state
        epoch = self._epoch
        result = await step()
        if result.ignored or self._stale(epoch, origin):
            return self._ignored()
        if result.error is not None:
            return self._outcome(error=result.error)
        if not result.verified:
            return self._outcome(notice=result.notice)

        # Email verification confirms the account only; the login follows
        if origin == AuthFlowState.ACCOUNT_VERIFICATION:
            return await self._guarded(self._recovery_login)
        return self._complete_phone_sign_in(result.auth)

    def _complete_phone_sign_in(self, auth: AuthResult) -> FlowOutcome:
        self._store.set(auth.identity, auth.token)
        self.machine.transition(FlowTrigger.CODE_VERIFIED)
        self._start_welcome()
        return self._outcome(notice=messages.welcome_title(auth.identity.name))

    # ------------------------------------------------------------------ #
    # Welcome sequence
    # ------------------------------------------------------------------ #

    def _start_welcome(self) -> None:
        self.welcome_completed_steps = []
        self._schedule_welcome_step(0)

    def _schedule_welcome_step(self, index: int) -> None:
        steps = messages.WELCOME_STEPS
        if index < len(steps):
            self._timers.schedule(
                self._config.auth.welcome_step_duration_sec,
                lambda: self._complete_welcome_step(index),
                name=f"welcome-step-{index}",
            )
        else:
            self._timers.schedule(
                self._config.auth.welcome_final_delay_sec,
                self._finish_welcome,
                name="welcome-finish",
            )

    def _complete_welcome_step(self, index: int) -> None:
        if self.state != AuthFlowState.WELCOME_LOADING:
            return
        self.welcome_completed_steps.append(messages.WELCOME_STEPS[index])
        self._schedule_welcome_step(index + 1)

    def _finish_welcome(self) -> None:
        if self.state != AuthFlowState.WELCOME_LOADING:
            return
        self.machine.transition(FlowTrigger.WELCOME_FINISHED)
        session = self._store.get()
        if session is None:
            # Signed out from elsewhere during the welcome screen
            self.redirect_target = self._config.redirects.default_path
            if self._on_redirect is not None:
                self._on_redirect(self.redirect_target)
            return
        self._redirect(session.identity)

    # ------------------------------------------------------------------ #
    # Administrative password flow
    # ------------------------------------------------------------------ #

    async def password_login(self, email: str, password: str) -> FlowOutcome:
        if not self._accepts(AuthFlowState.ADMIN_LOGIN):
            return self._ignored()
        try:
            credential = LoginCredential(email=email, password=password)
        except SchemaValidationError as exc:
            return self._outcome(error=ValidationError(_first_error(exc)))

        async def call() -> FlowOutcome:
            epoch = self._epoch
            try:
                auth = await self._api.login(credential)
            except Unverified as exc:
                if self._stale(epoch, AuthFlowState.ADMIN_LOGIN):
                    return self._ignored()
                logger.info("Login refused for unverified account %s", exc.identity_id)
                return await self._start_recovery(credential, exc.identity_id)
            except AuthError as exc:
                if self._stale(epoch, AuthFlowState.ADMIN_LOGIN):
                    return self._ignored()
                logger.info("Admin login failed: %s", exc.code)
                return self._outcome(error=exc)

            if self._stale(epoch, AuthFlowState.ADMIN_LOGIN):
                return self._ignored()
            if auth.identity.role != Role.SALON_OWNER:
                logger.info("Non-admin identity %s refused at admin login", auth.identity.id)
                return self._outcome(error=AccessDenied())
            self._store.set(auth.identity, auth.token)
            self.machine.transition(FlowTrigger.LOGIN_SUCCEEDED)
            return self._redirect(auth.identity)

        return await self._guarded(call)

    async def register_admin(
        self,
        name: str,
        email: str,
        password: str,
        phone: Optional[str] = None,
    ) -> FlowOutcome:
        """Create a salon-owner account, then verify it and log in once."""
        if not self._accepts(AuthFlowState.ADMIN_LOGIN):
            return self._ignored()
        try:
            draft = RegistrationDraft(
                name=name, email=email, password=password, phone=phone, role=Role.SALON_OWNER
            )
        except SchemaValidationError as exc:
            return self._outcome(error=ValidationError(_first_error(exc)))

        async def call() -> FlowOutcome:
            epoch = self._epoch
            try:
                auth = await self._api.register(draft)
            except AuthError as exc:
                if self._stale(epoch, AuthFlowState.ADMIN_LOGIN):
                    return self._ignored()
                return self._outcome(error=exc)
            if self._stale(epoch, AuthFlowState.ADMIN_LOGIN):
                return self._ignored()
            logger.info("Admin account registered, verification pending")
            return await self._start_recovery(draft.credential(), auth.identity.id)

        return await self._guarded(call)

    # ------------------------------------------------------------------ #
    # Unverified-account recovery
    # ------------------------------------------------------------------ #

    async def _start_recovery(
        self, credential: LoginCredential, identity_id: Optional[str]
    ) -> FlowOutcome:
        self.machine.transition(FlowTrigger.VERIFICATION_REQUIRED)
        self._recovery_credential = credential
        self._recovery_identity_id = identity_id
        self.recovery_attempted = False
        epoch = self._epoch
        result = await self.verifier.request_code(credential.email, Channel.EMAIL, identity_id)
        if result.ignored or self._stale(epoch, AuthFlowState.ACCOUNT_VERIFICATION):
            return self._ignored()
        return self._outcome(
            error=result.error,
            notice=result.notice or messages.VERIFICATION_REQUIRED,
        )

    async def _recovery_login(self) -> FlowOutcome:
        """The single automatic login after the account was verified."""
        credential = self._recovery_credential
        if credential is None:
            return self._ignored()
        self.recovery_attempted = True
        epoch = self._epoch
        try:
            auth = await self._api.login(credential)
        except AuthError as exc:
            if self._stale(epoch, AuthFlowState.ACCOUNT_VERIFICATION):
                return self._ignored()
            logger.info("Login after verification failed: %s", exc.code)
            return self._recovery_failed(credential, exc)

        if self._stale(epoch, AuthFlowState.ACCOUNT_VERIFICATION):
            return self._ignored()
        if auth.identity.role != Role.SALON_OWNER:
            return self._recovery_failed(credential, AccessDenied())
        self._store.set(auth.identity, auth.token)
        self.machine.transition(FlowTrigger.RECOVERY_LOGIN_SUCCEEDED)
        return self._redirect(auth.identity)

    def _recovery_failed(self, credential: LoginCredential, error: AuthError) -> FlowOutcome:
        self.verifier.cancel()
        self._recovery_credential = None
        self._recovery_identity_id = None
        self.prefill_email = credential.email
        self.prefill_password = credential.password
        self.machine.transition(FlowTrigger.RECOVERY_LOGIN_FAILED)
        return self._outcome(error=error, notice=messages.VERIFIED_PLEASE_LOGIN)

    def cancel_recovery(self) -> FlowOutcome:
        if not self._accepts(AuthFlowState.ACCOUNT_VERIFICATION):
            return self._ignored()
        credential = self._recovery_credential
        self._epoch += 1
        self.verifier.cancel()
        self._recovery_credential = None
        self._recovery_identity_id = None
        if credential is not None:
            self.prefill_email = credential.email
        self.machine.transition(FlowTrigger.RECOVERY_CANCELLED)
        return self._outcome()

    # ------------------------------------------------------------------ #
    # Federated sign-in
    # ------------------------------------------------------------------ #

    async def federated_login(self, assertion: str) -> FlowOutcome:
        if not self._accepts(AuthFlowState.PHONE_INPUT, AuthFlowState.ADMIN_LOGIN):
            return self._ignored()
        if not assertion or not assertion.strip():
            return self._outcome(error=ValidationError(messages.FEDERATED_FAILED))
        origin = self.state
        requested = Role.SALON_OWNER if origin == AuthFlowState.ADMIN_LOGIN else Role.CUSTOMER

        async def call() -> FlowOutcome:
            epoch = self._epoch
            try:
                auth = await self._api.federated_login(assertion, requested)
            except RoleConflict as exc:
                if self._stale(epoch, origin):
                    return self._ignored()
                logger.info(
                    "Federated role conflict: existing=%s requested=%s",
                    exc.existing_role, exc.requested_role,
                )
                return self._outcome(error=exc)
            except AuthError as exc:
                if self._stale(epoch, origin):
                    return self._ignored()
                return self._outcome(error=exc)

            if self._stale(epoch, origin):
                return self._ignored()
            self._store.set(auth.identity, auth.token)
            if needs_login_profile(auth.identity):
                self.machine.transition(FlowTrigger.FEDERATED_INCOMPLETE)
                return self._outcome(notice=messages.PROFILE_COMPLETION_REQUIRED)
            self.machine.transition(FlowTrigger.FEDERATED_SUCCEEDED)
            return self._redirect(auth.identity)

        return await self._guarded(call)

    async def complete_login_profile(
        self,
        name: str,
        phone: str,
        email: Optional[str] = None,
    ) -> FlowOutcome:
        """Fill in the fields a federated sign-in was missing, then redirect."""
        if not self._accepts(AuthFlowState.PROFILE_COMPLETION):
            return self._ignored()
        name = name.strip()
        if not name:
            return self._outcome(error=ValidationError(messages.NAME_REQUIRED))
        normalized_phone = to_e164(phone)
        if normalized_phone is None:
            return self._outcome(error=ValidationError(messages.INVALID_PHONE))
        if email and not is_valid_email(email):
            return self._outcome(error=ValidationError(messages.INVALID_EMAIL))
        session = self._store.get()
        if session is None:
            return self._outcome(error=Unauthenticated())

        async def call() -> FlowOutcome:
            epoch = self._epoch
            try:
                identity = await self._api.update_profile(
                    session.token, name, email or None, normalized_phone
                )
            except AuthError as exc:
                if self._stale(epoch, AuthFlowState.PROFILE_COMPLETION):
                    return self._ignored()
                return self._outcome(error=exc)
            if self._stale(epoch, AuthFlowState.PROFILE_COMPLETION):
                return self._ignored()
            try:
                self._store.update(identity)
            except Unauthenticated as exc:
                logger.info("Session ended before the profile update landed")
                return self._outcome(error=exc)
            self.machine.transition(FlowTrigger.PROFILE_COMPLETED)
            return self._redirect(identity)

        return await self._guarded(call)

    def skip_profile_completion(self) -> FlowOutcome:
        if not self._accepts(AuthFlowState.PROFILE_COMPLETION) or self.busy:
            return self._ignored()
        session = self._store.get()
        self.machine.transition(FlowTrigger.PROFILE_SKIPPED)
        if session is None:
            self.redirect_target = self._config.redirects.default_path
            if self._on_redirect is not None:
                self._on_redirect(self.redirect_target)
            return self._outcome(redirect=self.redirect_target)
        return self._redirect(session.identity)

    # ------------------------------------------------------------------ #
    # Teardown
    # ------------------------------------------------------------------ #

    def teardown(self) -> None:
        """Cancel every timer and the pending verification of this flow."""
        if self._torn_down:
            return
        self._torn_down = True
        self._epoch += 1
        self._timers.cancel_all()
        self.verifier.cancel()
        self._recovery_credential = None
        self._recovery_identity_id = None
        logger.debug("Auth flow torn down in state %s", self.state.value)
