"""Shared test fixtures and helpers."""

import dataclasses
from typing import Callable, Optional

import pytest

from altq.auth.flow import AuthFlowOrchestrator, FlowHint
from altq.auth.otp_verifier import OtpVerifier
from altq.auth.profile_gate import ProfileGate
from altq.auth.state_machine import AuthFlowStateMachine
from altq.config import AppConfig, AuthConfig, settings
from altq.schemas.identity_schema import Identity, Role
from altq.session.store import InMemorySessionPersistence, SessionStore
from altq.tools.auth_api import MockAuthApi

TEST_CODE = "123456"
TEST_PHONE = "+919876543210"


class ManualHandle:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by virtual time. ``advance`` fires due callbacks in order."""

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = 0
        self._handles: list[ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        self._seq += 1
        handle = ManualHandle(self.now + delay, self._seq, callback)
        self._handles.append(handle)
        return handle

    def pending(self) -> int:
        return sum(1 for h in self._handles if not h.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def mock_api():
    return MockAuthApi(code_factory=lambda: TEST_CODE)


@pytest.fixture
def persistence():
    return InMemorySessionPersistence()


@pytest.fixture
def store(persistence):
    return SessionStore(persistence)


@pytest.fixture
def state_machine():
    return AuthFlowStateMachine()


@pytest.fixture
def echo_config():
    return dataclasses.replace(settings.auth, show_development_code=True)


@pytest.fixture
def verifier(mock_api, scheduler):
    return OtpVerifier(mock_api, scheduler, dataclasses.replace(settings.auth, show_development_code=False))


@pytest.fixture
def gate(store, mock_api):
    return ProfileGate(store, mock_api)


@pytest.fixture
def redirects():
    return []


@pytest.fixture
def make_flow(mock_api, store, scheduler, redirects):
    """Factory for orchestrators sharing the test's api, store and clock."""

    def factory(hint: FlowHint = FlowHint.CUSTOMER, auth: Optional[AuthConfig] = None) -> AuthFlowOrchestrator:
        config = AppConfig(auth=auth or dataclasses.replace(settings.auth, show_development_code=False))
        return AuthFlowOrchestrator(
            mock_api, store, scheduler, flow_hint=hint, on_redirect=redirects.append, config=config,
        )

    return factory


def make_identity(
    identity_id: str = "usr-1",
    name: Optional[str] = "Priya Sharma",
    phone: Optional[str] = TEST_PHONE,
    email: Optional[str] = None,
    role: Role = Role.CUSTOMER,
    **kwargs,
) -> Identity:
    """Helper to create an Identity with sensible defaults."""
    return Identity(id=identity_id, name=name, phone=phone, email=email, role=role, **kwargs)


def sign_in(store: SessionStore, api: MockAuthApi, identity: Identity) -> str:
    """Seed the account in the mock API and put a live session in the store."""
    api.add_identity(identity)
    token = api.issue_token(identity.id)
    store.set(identity, token)
    return token
