"""Tests for the sign-in flow state machine."""

import pytest

from altq.auth.state_machine import (
    AuthFlowState,
    AuthFlowStateMachine,
    FlowTrigger,
    InvalidTransitionError,
)


def _to(sm: AuthFlowStateMachine, *triggers: FlowTrigger) -> AuthFlowStateMachine:
    for trigger in triggers:
        sm.transition(trigger)
    return sm


class TestInitialState:
    def test_starts_idle(self, state_machine):
        assert state_machine.current_state == AuthFlowState.IDLE

    def test_initial_history_has_one_entry(self, state_machine):
        assert len(state_machine.get_history()) == 1

    def test_not_terminal_at_start(self, state_machine):
        assert not state_machine.is_terminal()

    def test_valid_entry_triggers(self, state_machine):
        assert set(state_machine.get_valid_triggers()) == {
            FlowTrigger.SESSION_FOUND, FlowTrigger.MOUNTED,
        }


class TestEntry:
    def test_session_found_goes_straight_to_redirect(self, state_machine):
        new = state_machine.transition(FlowTrigger.SESSION_FOUND)
        assert new == AuthFlowState.TERMINAL_REDIRECT
        assert state_machine.is_terminal()

    def test_mount_then_customer(self, state_machine):
        _to(state_machine, FlowTrigger.MOUNTED, FlowTrigger.CUSTOMER_FLOW_SELECTED)
        assert state_machine.current_state == AuthFlowState.PHONE_INPUT

    def test_mount_then_admin(self, state_machine):
        _to(state_machine, FlowTrigger.MOUNTED, FlowTrigger.ADMIN_FLOW_SELECTED)
        assert state_machine.current_state == AuthFlowState.ADMIN_LOGIN

    def test_no_return_to_loading(self, state_machine):
        _to(state_machine, FlowTrigger.MOUNTED, FlowTrigger.CUSTOMER_FLOW_SELECTED)
        with pytest.raises(InvalidTransitionError):
            state_machine.transition(FlowTrigger.MOUNTED)


class TestCustomerPath:
    def test_happy_path_trace(self, state_machine):
        _to(
            state_machine,
            FlowTrigger.MOUNTED,
            FlowTrigger.CUSTOMER_FLOW_SELECTED,
            FlowTrigger.CODE_SENT,
            FlowTrigger.CODE_VERIFIED,
            FlowTrigger.WELCOME_FINISHED,
        )
        assert state_machine.get_state_trace() == [
            "idle", "loading", "phone_input", "otp_verification",
            "welcome_loading", "terminal_redirect",
        ]

    def test_edit_destination(self, state_machine):
        _to(state_machine, FlowTrigger.MOUNTED, FlowTrigger.CUSTOMER_FLOW_SELECTED, FlowTrigger.CODE_SENT)
        assert state_machine.transition(FlowTrigger.EDIT_DESTINATION) == AuthFlowState.PHONE_INPUT

    def test_welcome_cannot_switch(self, state_machine):
        _to(
            state_machine,
            FlowTrigger.MOUNTED, FlowTrigger.CUSTOMER_FLOW_SELECTED,
            FlowTrigger.CODE_SENT, FlowTrigger.CODE_VERIFIED,
        )
        assert not state_machine.can(FlowTrigger.SWITCH_TO_ADMIN)


class TestAdminPath:
    def test_verification_then_recovery_login(self, state_machine):
        _to(
            state_machine,
            FlowTrigger.MOUNTED, FlowTrigger.ADMIN_FLOW_SELECTED,
            FlowTrigger.VERIFICATION_REQUIRED,
        )
        assert state_machine.current_state == AuthFlowState.ACCOUNT_VERIFICATION
        state_machine.transition(FlowTrigger.RECOVERY_LOGIN_SUCCEEDED)
        assert state_machine.is_terminal()

    def test_failed_recovery_back_to_login(self, state_machine):
        _to(
            state_machine,
            FlowTrigger.MOUNTED, FlowTrigger.ADMIN_FLOW_SELECTED,
            FlowTrigger.VERIFICATION_REQUIRED, FlowTrigger.RECOVERY_LOGIN_FAILED,
        )
        assert state_machine.current_state == AuthFlowState.ADMIN_LOGIN

    def test_federated_incomplete_to_profile_completion(self, state_machine):
        _to(
            state_machine,
            FlowTrigger.MOUNTED, FlowTrigger.ADMIN_FLOW_SELECTED, FlowTrigger.FEDERATED_INCOMPLETE,
        )
        assert state_machine.current_state == AuthFlowState.PROFILE_COMPLETION
        assert set(state_machine.get_valid_triggers()) == {
            FlowTrigger.PROFILE_COMPLETED, FlowTrigger.PROFILE_SKIPPED,
        }


class TestChannelSwitch:
    @pytest.mark.parametrize("setup,trigger,expected", [
        ((FlowTrigger.CUSTOMER_FLOW_SELECTED,), FlowTrigger.SWITCH_TO_ADMIN, AuthFlowState.ADMIN_LOGIN),
        ((FlowTrigger.CUSTOMER_FLOW_SELECTED, FlowTrigger.CODE_SENT), FlowTrigger.SWITCH_TO_ADMIN,
         AuthFlowState.ADMIN_LOGIN),
        ((FlowTrigger.ADMIN_FLOW_SELECTED,), FlowTrigger.SWITCH_TO_CUSTOMER, AuthFlowState.PHONE_INPUT),
        ((FlowTrigger.ADMIN_FLOW_SELECTED, FlowTrigger.VERIFICATION_REQUIRED), FlowTrigger.SWITCH_TO_CUSTOMER,
         AuthFlowState.PHONE_INPUT),
    ])
    def test_switches(self, state_machine, setup, trigger, expected):
        _to(state_machine, FlowTrigger.MOUNTED, *setup)
        assert state_machine.transition(trigger) == expected


class TestTerminal:
    def test_nothing_leaves_terminal_redirect(self, state_machine):
        state_machine.transition(FlowTrigger.SESSION_FOUND)
        assert state_machine.get_valid_triggers() == []
        for trigger in FlowTrigger:
            with pytest.raises(InvalidTransitionError):
                state_machine.transition(trigger)

    def test_error_lists_valid_triggers(self, state_machine):
        with pytest.raises(InvalidTransitionError, match="mounted"):
            state_machine.transition(FlowTrigger.CODE_SENT)


class TestHistory:
    def test_history_records_triggers(self, state_machine):
        _to(state_machine, FlowTrigger.MOUNTED, FlowTrigger.CUSTOMER_FLOW_SELECTED)
        history = state_machine.get_history()
        assert [entry.trigger for entry in history] == [
            None, FlowTrigger.MOUNTED, FlowTrigger.CUSTOMER_FLOW_SELECTED,
        ]
        assert all(entry.entered_at.tzinfo is not None for entry in history)
