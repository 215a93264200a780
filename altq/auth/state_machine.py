"""
Finite state machine for the sign-in screen sequence.

Every sign-in follows an explicit path through the state graph below,
so the screen shown to the visitor is always one value with one
transition function, testable without rendering anything.

Usage:
    sm = AuthFlowStateMachine()
    sm.transition(FlowTrigger.MOUNTED)
    sm.transition(FlowTrigger.CUSTOMER_FLOW_SELECTED)
    assert sm.current_state == AuthFlowState.PHONE_INPUT
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class AuthFlowState(str, Enum):
    """All states of one sign-in flow instance."""
    IDLE = "idle"
    LOADING = "loading"
    PHONE_INPUT = "phone_input"
    OTP_VERIFICATION = "otp_verification"
    WELCOME_LOADING = "welcome_loading"
    ADMIN_LOGIN = "admin_login"
    ACCOUNT_VERIFICATION = "account_verification"
    PROFILE_COMPLETION = "profile_completion"
    TERMINAL_REDIRECT = "terminal_redirect"


class FlowTrigger(str, Enum):
    """Events that cause state transitions."""
    SESSION_FOUND = "session_found"
    MOUNTED = "mounted"
    CUSTOMER_FLOW_SELECTED = "customer_flow_selected"
    ADMIN_FLOW_SELECTED = "admin_flow_selected"
    CODE_SENT = "code_sent"
    CODE_VERIFIED = "code_verified"
    EDIT_DESTINATION = "edit_destination"
    WELCOME_FINISHED = "welcome_finished"
    SWITCH_TO_ADMIN = "switch_to_admin"
    SWITCH_TO_CUSTOMER = "switch_to_customer"
    LOGIN_SUCCEEDED = "login_succeeded"
    FEDERATED_SUCCEEDED = "federated_succeeded"
    FEDERATED_INCOMPLETE = "federated_incomplete"
    VERIFICATION_REQUIRED = "verification_required"
    RECOVERY_LOGIN_SUCCEEDED = "recovery_login_succeeded"
    RECOVERY_LOGIN_FAILED = "recovery_login_failed"
    RECOVERY_CANCELLED = "recovery_cancelled"
    PROFILE_COMPLETED = "profile_completed"
    PROFILE_SKIPPED = "profile_skipped"


@dataclass
class Transition:
    """A single valid state transition."""
    from_state: AuthFlowState
    to_state: AuthFlowState
    trigger: FlowTrigger


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: AuthFlowState
    entered_at: datetime
    trigger: Optional[FlowTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


_S = AuthFlowState
_T = FlowTrigger


class AuthFlowStateMachine:
    """
    Deterministic state machine controlling the sign-in screens.

    Once past entry there is no way back to ``loading``; only the
    explicit switch triggers reset to ``phone_input`` / ``admin_login``.
    """

    TRANSITIONS: list[Transition] = [
        # --- Entry ---
        Transition(_S.IDLE, _S.TERMINAL_REDIRECT, _T.SESSION_FOUND),
        Transition(_S.IDLE, _S.LOADING, _T.MOUNTED),
        Transition(_S.LOADING, _S.PHONE_INPUT, _T.CUSTOMER_FLOW_SELECTED),
        Transition(_S.LOADING, _S.ADMIN_LOGIN, _T.ADMIN_FLOW_SELECTED),

        # --- Customer phone flow ---
        Transition(_S.PHONE_INPUT, _S.OTP_VERIFICATION, _T.CODE_SENT),
        Transition(_S.OTP_VERIFICATION, _S.WELCOME_LOADING, _T.CODE_VERIFIED),
        Transition(_S.OTP_VERIFICATION, _S.PHONE_INPUT, _T.EDIT_DESTINATION),
        Transition(_S.WELCOME_LOADING, _S.TERMINAL_REDIRECT, _T.WELCOME_FINISHED),
        Transition(_S.PHONE_INPUT, _S.TERMINAL_REDIRECT, _T.FEDERATED_SUCCEEDED),
        Transition(_S.PHONE_INPUT, _S.PROFILE_COMPLETION, _T.FEDERATED_INCOMPLETE),

        # --- Administrative flow ---
        Transition(_S.ADMIN_LOGIN, _S.TERMINAL_REDIRECT, _T.LOGIN_SUCCEEDED),
        Transition(_S.ADMIN_LOGIN, _S.TERMINAL_REDIRECT, _T.FEDERATED_SUCCEEDED),
        Transition(_S.ADMIN_LOGIN, _S.PROFILE_COMPLETION, _T.FEDERATED_INCOMPLETE),
        Transition(_S.ADMIN_LOGIN, _S.ACCOUNT_VERIFICATION, _T.VERIFICATION_REQUIRED),

        # --- Unverified-account recovery ---
        Transition(_S.ACCOUNT_VERIFICATION, _S.TERMINAL_REDIRECT, _T.RECOVERY_LOGIN_SUCCEEDED),
        Transition(_S.ACCOUNT_VERIFICATION, _S.ADMIN_LOGIN, _T.RECOVERY_LOGIN_FAILED),
        Transition(_S.ACCOUNT_VERIFICATION, _S.ADMIN_LOGIN, _T.RECOVERY_CANCELLED),

        # --- Federated profile completion ---
        Transition(_S.PROFILE_COMPLETION, _S.TERMINAL_REDIRECT, _T.PROFILE_COMPLETED),
        Transition(_S.PROFILE_COMPLETION, _S.TERMINAL_REDIRECT, _T.PROFILE_SKIPPED),

        # --- Channel switch ---
        Transition(_S.PHONE_INPUT, _S.ADMIN_LOGIN, _T.SWITCH_TO_ADMIN),
        Transition(_S.OTP_VERIFICATION, _S.ADMIN_LOGIN, _T.SWITCH_TO_ADMIN),
        Transition(_S.ADMIN_LOGIN, _S.PHONE_INPUT, _T.SWITCH_TO_CUSTOMER),
        Transition(_S.ACCOUNT_VERIFICATION, _S.PHONE_INPUT, _T.SWITCH_TO_CUSTOMER),
    ]

    def __init__(self) -> None:
        self._current_state = AuthFlowState.IDLE
        self._history: list[StateEntry] = [
            StateEntry(state=AuthFlowState.IDLE, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_state(self) -> AuthFlowState:
        return self._current_state

    def can(self, trigger: FlowTrigger) -> bool:
        return trigger in self.get_valid_triggers()

    def transition(self, trigger: FlowTrigger) -> AuthFlowState:
        """
        Execute a state transition.

        Args:
            trigger: The event triggering the transition.

        Returns:
            The new flow state.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.trigger == trigger:
                old_state = self._current_state
                self._current_state = t.to_state
                self._history.append(StateEntry(
                    state=self._current_state,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                logger.debug(
                    "State transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def get_valid_triggers(self) -> list[FlowTrigger]:
        """Return all triggers valid from the current state."""
        return [t.trigger for t in self.TRANSITIONS if t.from_state == self._current_state]

    def get_history(self) -> list[StateEntry]:
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._current_state == AuthFlowState.TERMINAL_REDIRECT
