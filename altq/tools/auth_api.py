"""
Remote auth API boundary and an in-memory mock.

In production the HttpAuthApi (altq.tools.http_auth_api) talks to the
booking backend. The mock implements the same contract with in-memory
accounts so flows can be exercised without a server.
"""

import asyncio
import logging
import secrets
import uuid
from typing import Callable, Optional, Protocol

from altq.auth.errors import (
    AuthError,
    Expired,
    InvalidCode,
    InvalidCredential,
    RoleConflict,
    Unauthenticated,
    Unverified,
    ValidationError,
)
from altq.schemas.identity_schema import (
    AuthResult,
    Identity,
    LoginCredential,
    RegistrationDraft,
    Role,
    SendCodeResult,
)
from altq.utils import is_valid_email, mask_destination

logger = logging.getLogger(__name__)


class AuthApi(Protocol):
    """Operations the auth layer consumes from the remote API."""

    async def send_code(self, destination: str) -> SendCodeResult: ...

    async def verify_code(self, destination: str, code: str) -> AuthResult: ...

    async def send_email_code(self, identity_id: str, email: str) -> SendCodeResult: ...

    async def verify_email_code(self, identity_id: str, code: str) -> None: ...

    async def login(self, credential: LoginCredential) -> AuthResult: ...

    async def register(self, draft: RegistrationDraft) -> AuthResult: ...

    async def federated_login(self, assertion: str, requested_role: Role) -> AuthResult: ...

    async def update_profile(
        self,
        token: str,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Identity: ...

    async def get_profile(self, token: str) -> Identity: ...


def _random_code() -> str:
    return f"{secrets.randbelow(10**6):06d}"


class MockAuthApi:
    """In-memory AuthApi with failure injection for tests.

    Every call is recorded in ``calls`` as ``(method, *args)``.
    ``fail_next(method, error)`` makes the next call of that method raise.
    ``hold(method)`` parks calls of that method until ``release(method)``.
    """

    def __init__(
        self,
        echo_codes: bool = False,
        code_factory: Callable[[], str] = _random_code,
    ) -> None:
        self.echo_codes = echo_codes
        self._code_factory = code_factory
        self.calls: list[tuple] = []
        self.issued_codes: dict[str, str] = {}
        self.expired_codes: set[str] = set()
        self._identities: dict[str, Identity] = {}
        self._passwords: dict[str, str] = {}
        self._unverified: set[str] = set()
        self._federated: dict[str, str] = {}
        self._tokens: dict[str, str] = {}
        self._failures: dict[str, list[AuthError]] = {}
        self._holds: dict[str, asyncio.Event] = {}

    # ------------------------------------------------------------------ #
    # Test controls
    # ------------------------------------------------------------------ #

    def add_identity(
        self,
        identity: Identity,
        password: Optional[str] = None,
        verified: bool = True,
        assertion: Optional[str] = None,
    ) -> Identity:
        """Seed an account, optionally with a password or federated assertion."""
        self._identities[identity.id] = identity
        if password is not None:
            self._passwords[identity.id] = password
        if not verified:
            self._unverified.add(identity.id)
        if assertion is not None:
            self._federated[assertion] = identity.id
        return identity

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        return self._identities.get(identity_id)

    def issue_token(self, identity_id: str) -> str:
        token = f"tok-{uuid.uuid4().hex[:12]}"
        self._tokens[token] = identity_id
        return token

    def revoke_token(self, token: str) -> None:
        self._tokens.pop(token, None)

    def fail_next(self, method: str, error: AuthError) -> None:
        self._failures.setdefault(method, []).append(error)

    def hold(self, method: str) -> None:
        self._holds[method] = asyncio.Event()

    def release(self, method: str) -> None:
        event = self._holds.pop(method, None)
        if event is not None:
            event.set()

    def call_count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    async def _enter(self, method: str, *args: object) -> None:
        self.calls.append((method, *args))
        event = self._holds.get(method)
        if event is not None:
            await event.wait()
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def _consume_code(self, key: str, code: str) -> None:
        expected = self.issued_codes.get(key)
        if expected is None or expected in self.expired_codes:
            raise Expired()
        if code != expected:
            raise InvalidCode()
        del self.issued_codes[key]

    def _find_by(self, field: str, value: str) -> Optional[Identity]:
        for identity in self._identities.values():
            if getattr(identity, field) == value:
                return identity
        return None

    def _result(self, identity: Identity, is_new_user: bool = False) -> AuthResult:
        return AuthResult(
            identity=identity.model_copy(deep=True),
            token=self.issue_token(identity.id),
            is_new_user=is_new_user,
        )

    # ------------------------------------------------------------------ #
    # AuthApi
    # ------------------------------------------------------------------ #

    async def send_code(self, destination: str) -> SendCodeResult:
        await self._enter("send_code", destination)
        code = self._code_factory()
        self.issued_codes[destination] = code
        logger.debug("Mock code issued for %s", mask_destination(destination))
        return SendCodeResult(
            accepted=True,
            development_echo_code=code if self.echo_codes else None,
        )

    async def verify_code(self, destination: str, code: str) -> AuthResult:
        await self._enter("verify_code", destination, code)
        self._consume_code(destination, code)
        identity = self._find_by("phone", destination)
        if identity is None:
            identity = Identity(id=f"usr-{uuid.uuid4().hex[:8]}", phone=destination)
            self._identities[identity.id] = identity
            return self._result(identity, is_new_user=True)
        return self._result(identity)

    async def send_email_code(self, identity_id: str, email: str) -> SendCodeResult:
        await self._enter("send_email_code", identity_id, email)
        if identity_id not in self._identities:
            raise ValidationError("User not found")
        code = self._code_factory()
        self.issued_codes[identity_id] = code
        logger.debug("Mock email code issued for %s", mask_destination(email))
        return SendCodeResult(
            accepted=True,
            development_echo_code=code if self.echo_codes else None,
        )

    async def verify_email_code(self, identity_id: str, code: str) -> None:
        """Marks the account verified; no session is issued."""
        await self._enter("verify_email_code", identity_id, code)
        self._consume_code(identity_id, code)
        self._unverified.discard(identity_id)

    async def login(self, credential: LoginCredential) -> AuthResult:
        await self._enter("login", credential.email)
        identity = self._find_by("email", credential.email)
        if identity is None or self._passwords.get(identity.id) != credential.password:
            raise InvalidCredential()
        if identity.id in self._unverified:
            raise Unverified(identity_id=identity.id)
        return self._result(identity)

    async def register(self, draft: RegistrationDraft) -> AuthResult:
        await self._enter("register", draft.email)
        if self._find_by("email", draft.email) is not None:
            raise ValidationError("An account with this email already exists")
        identity = Identity(
            id=f"usr-{uuid.uuid4().hex[:8]}",
            name=draft.name,
            email=draft.email,
            phone=draft.phone,
            role=draft.role,
        )
        self.add_identity(identity, password=draft.password, verified=False)
        return self._result(identity, is_new_user=True)

    async def federated_login(self, assertion: str, requested_role: Role) -> AuthResult:
        await self._enter("federated_login", assertion, requested_role)
        identity_id = self._federated.get(assertion)
        if identity_id is None:
            raise InvalidCredential()
        identity = self._identities[identity_id]
        if identity.role != requested_role:
            raise RoleConflict(
                existing_role=identity.role.value,
                requested_role=requested_role.value,
            )
        return self._result(identity)

    async def update_profile(
        self,
        token: str,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Identity:
        await self._enter("update_profile", name, email, phone)
        identity_id = self._tokens.get(token)
        if identity_id is None:
            raise Unauthenticated()
        if not name.strip():
            raise ValidationError("Name is required")
        if email is not None and not is_valid_email(email):
            raise ValidationError("Invalid email address")
        changes: dict[str, object] = {"name": name.strip()}
        if email:
            changes["email"] = email
        if phone:
            changes["phone"] = phone
        updated = self._identities[identity_id].model_copy(update=changes)
        self._identities[identity_id] = updated
        return updated.model_copy(deep=True)

    async def get_profile(self, token: str) -> Identity:
        await self._enter("get_profile")
        identity_id = self._tokens.get(token)
        if identity_id is None:
            raise Unauthenticated()
        return self._identities[identity_id].model_copy(deep=True)
