"""
Profile completeness gate in front of irreversible booking actions.

Joining a queue, applying a discount or submitting a booking requires an
identity with a name and at least one contact channel. When that is
missing the action is parked as the single PendingCompletionAction and
the caller is told to show the completion prompt; the action runs once
the profile update succeeds, or is dropped if the prompt is cancelled.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from altq.auth.errors import AuthError, Unauthenticated, ValidationError
from altq.prompts import messages
from altq.schemas.identity_schema import Session
from altq.session.store import SessionStore
from altq.tools.auth_api import AuthApi
from altq.utils import is_valid_email

logger = logging.getLogger(__name__)

GatedAction = Callable[[], Any]


def is_complete(session: Optional[Session]) -> bool:
    """True iff the identity has a name and a phone or email."""
    if session is None:
        return False
    identity = session.identity
    has_name = bool(identity.name and identity.name.strip())
    has_contact = bool(identity.phone) or bool(identity.email)
    return has_name and has_contact


class GateStatus(str, Enum):
    RAN = "ran"
    COMPLETION_REQUIRED = "completion_required"
    UNAUTHENTICATED = "unauthenticated"
    COMPLETED = "completed"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class GateResult:
    status: GateStatus
    value: Any = None
    error: Optional[AuthError] = None

    @property
    def ran(self) -> bool:
        """True when the gated action was invoked by this call."""
        return self.status in (GateStatus.RAN, GateStatus.COMPLETED)


class ProfileGate:
    """Runs or parks gated actions depending on profile completeness."""

    def __init__(self, store: SessionStore, api: AuthApi) -> None:
        self._store = store
        self._api = api
        self._pending: Optional[GatedAction] = None
        self._submitting = False

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    @property
    def prompt_open(self) -> bool:
        """The completion prompt is shown while an action is parked."""
        return self._pending is not None

    def require_completion(self, session: Optional[Session], action: GatedAction) -> GateResult:
        if session is None:
            logger.debug("Gated action requested without a session")
            return GateResult(GateStatus.UNAUTHENTICATED, error=Unauthenticated())
        if not is_complete(session):
            if self._pending is not None:
                logger.debug("Replacing previously parked action")
            self._pending = action
            return GateResult(
                GateStatus.COMPLETION_REQUIRED,
                error=ValidationError(messages.PROFILE_COMPLETION_REQUIRED),
            )
        return GateResult(GateStatus.RAN, value=action())

    def require(self, action: GatedAction) -> GateResult:
        """Same as require_completion, using the store's current session."""
        return self.require_completion(self._store.get(), action)

    async def submit_completion(self, name: str, email: Optional[str] = None) -> GateResult:
        """Update the profile, then run the parked action exactly once."""
        if self._submitting:
            return GateResult(GateStatus.IGNORED)
        session = self._store.get()
        if session is None:
            return GateResult(GateStatus.UNAUTHENTICATED, error=Unauthenticated())

        name = name.strip()
        email = email.strip() if email else None
        if not name:
            return GateResult(GateStatus.FAILED, error=ValidationError(messages.NAME_REQUIRED))
        if email and not is_valid_email(email):
            return GateResult(GateStatus.FAILED, error=ValidationError(messages.INVALID_EMAIL))

        self._submitting = True
        try:
            identity = await self._api.update_profile(session.token, name, email)
        except AuthError as exc:
            logger.info("Profile completion failed: %s", exc.code)
            return GateResult(GateStatus.FAILED, error=exc)
        finally:
            self._submitting = False

        try:
            self._store.update(identity)
        except Unauthenticated as exc:
            # Signed out while the update was in flight; the action stays parked
            logger.info("Session ended before profile completion was saved")
            return GateResult(GateStatus.UNAUTHENTICATED, error=exc)
        action, self._pending = self._pending, None
        logger.info("Profile completed for identity %s", identity.id)
        if action is None:
            return GateResult(GateStatus.COMPLETED)
        return GateResult(GateStatus.COMPLETED, value=action())

    def cancel_completion(self) -> None:
        """Abandon the parked action without running it."""
        if self._pending is not None:
            logger.debug("Parked action discarded")
        self._pending = None
