"""
HTTP implementation of the AuthApi contract.

Talks to the booking backend's REST routes with httpx and converts
transport and HTTP failures into the typed auth error taxonomy. No
retries are attempted here: a failed call surfaces immediately.
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError as SchemaValidationError

from altq.auth.errors import (
    AuthError,
    ChannelError,
    Expired,
    InvalidCode,
    InvalidCredential,
    RoleConflict,
    Unauthenticated,
    Unverified,
    ValidationError,
)
from altq.config import settings
from altq.schemas.identity_schema import (
    AuthResult,
    Identity,
    LoginCredential,
    RegistrationDraft,
    Role,
    SendCodeResult,
)
from altq.utils import mask_destination

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_UNPROCESSABLE = 422
HTTP_SERVER_ERROR_MIN = 500

VERIFY_ROUTES = frozenset({"verify-otp", "verify-email-otp"})


def _error_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text}
    return body if isinstance(body, dict) else {"message": str(body)}


def _map_error(response: httpx.Response, route: str) -> AuthError:
    """Translate a non-2xx response into the matching typed error."""
    status = response.status_code
    body = _error_body(response)
    message = body.get("message") or None

    # Role conflicts arrive as 403 or 409; the body keys decide
    if body.get("existingRole") and body.get("requestedRole"):
        return RoleConflict(
            existing_role=body["existingRole"],
            requested_role=body["requestedRole"],
        )
    if status >= HTTP_SERVER_ERROR_MIN:
        return ChannelError()
    if status == HTTP_FORBIDDEN and body.get("requiresVerification"):
        return Unverified(identity_id=body.get("userId"), message=message)
    if route in VERIFY_ROUTES and status in (HTTP_BAD_REQUEST, HTTP_UNAUTHORIZED):
        if message and "expired" in message.lower():
            return Expired(message)
        return InvalidCode(message)
    if status == HTTP_UNAUTHORIZED:
        if route in ("login", "google"):
            return InvalidCredential(message)
        return Unauthenticated()
    if status in (HTTP_BAD_REQUEST, HTTP_UNPROCESSABLE):
        return ValidationError(message)
    if status == HTTP_FORBIDDEN:
        return InvalidCredential(message)
    return ChannelError(message)


class HttpAuthApi:
    """AuthApi backed by ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        timeout = httpx.Timeout(timeout_sec or settings.api.timeout_sec)
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.api.base_url).rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpAuthApi":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> dict[str, Any]:
        route = path.rsplit("/", 1)[-1]
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Transport failure on %s %s: %s", method, path, exc)
            raise ChannelError() from exc

        if response.is_error:
            error = _map_error(response, route)
            logger.debug("%s %s -> %d (%s)", method, path, response.status_code, error.code)
            raise error

        try:
            body = response.json()
        except ValueError as exc:
            raise ChannelError("Unexpected response from server") from exc
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _auth_result(body: dict[str, Any]) -> AuthResult:
        try:
            return AuthResult.model_validate(body)
        except SchemaValidationError as exc:
            raise ChannelError("Unexpected response from server") from exc

    @staticmethod
    def _identity(body: dict[str, Any]) -> Identity:
        try:
            return Identity.model_validate(body.get("user", body))
        except SchemaValidationError as exc:
            raise ChannelError("Unexpected response from server") from exc

    async def send_code(self, destination: str) -> SendCodeResult:
        body = await self._request("POST", "/api/auth/send-otp", json={"phoneNumber": destination})
        debug = body.get("debug") or {}
        logger.debug("Code requested for %s", mask_destination(destination))
        return SendCodeResult(
            accepted=body.get("success", True),
            development_echo_code=debug.get("otp"),
        )

    async def verify_code(self, destination: str, code: str) -> AuthResult:
        body = await self._request(
            "POST", "/api/auth/verify-otp", json={"phoneNumber": destination, "otp": code}
        )
        return self._auth_result(body)

    async def send_email_code(self, identity_id: str, email: str) -> SendCodeResult:
        """Email codes are addressed by account id; the server knows the address."""
        body = await self._request("POST", "/api/auth/send-email-otp", json={"userId": identity_id})
        debug = body.get("debug") or {}
        logger.debug("Email code requested for %s", mask_destination(email))
        return SendCodeResult(accepted=True, development_echo_code=debug.get("otp"))

    async def verify_email_code(self, identity_id: str, code: str) -> None:
        await self._request(
            "POST", "/api/auth/verify-email-otp", json={"userId": identity_id, "otp": code}
        )

    async def login(self, credential: LoginCredential) -> AuthResult:
        body = await self._request("POST", "/api/auth/login", json=credential.model_dump())
        return self._auth_result(body)

    async def register(self, draft: RegistrationDraft) -> AuthResult:
        payload = draft.model_dump(mode="json", exclude_none=True)
        body = await self._request("POST", "/api/auth/register", json=payload)
        return self._auth_result(body)

    async def federated_login(self, assertion: str, requested_role: Role) -> AuthResult:
        body = await self._request(
            "POST",
            "/api/auth/google",
            json={"credential": assertion, "role": requested_role.value},
        )
        return self._auth_result(body)

    async def update_profile(
        self,
        token: str,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Identity:
        payload: dict[str, Any] = {"name": name}
        if email:
            payload["email"] = email
        if phone:
            payload["phone"] = phone
        body = await self._request("PUT", "/api/user/complete", json=payload, token=token)
        return self._identity(body)

    async def get_profile(self, token: str) -> Identity:
        body = await self._request("GET", "/api/auth/profile", token=token)
        return self._identity(body)
