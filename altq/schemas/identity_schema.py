"""Identity, session and auth payload models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from altq.config import settings
from altq.utils import is_valid_email, to_e164


class Role(str, Enum):
    CUSTOMER = "customer"
    SALON_OWNER = "salon_owner"


class Channel(str, Enum):
    """Where a one-time code is delivered."""
    PHONE = "phone"
    EMAIL = "email"


class _ApiModel(BaseModel):
    """Accepts both snake_case and the API's camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Identity(_ApiModel):
    """The authenticated account as returned by the remote API."""
    id: str
    phone: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    role: Role = Role.CUSTOMER
    favorite_salons: set[str] = Field(default_factory=set)
    loyalty_points: int = 0
    salon_loyalty_points: dict[str, int] = Field(default_factory=dict)


class Session(BaseModel):
    """Identity plus its opaque bearer token. Owned by the SessionStore."""
    identity: Identity
    token: str = Field(min_length=1)


class AuthResult(_ApiModel):
    """Successful verification, login, registration or federated sign-in."""
    identity: Identity = Field(alias="user")
    token: str
    is_new_user: bool = False


class SendCodeResult(_ApiModel):
    accepted: bool = True
    development_echo_code: Optional[str] = None


class LoginCredential(BaseModel):
    """Administrative email + password credential."""
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        if not is_valid_email(value):
            raise ValueError("Invalid email address")
        return value.lower()

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        minimum = settings.auth.min_password_length
        if len(value) < minimum:
            raise ValueError(f"Password must be at least {minimum} characters")
        return value


class RegistrationDraft(LoginCredential):
    """Fields collected by the administrative sign-up form."""
    name: str
    phone: Optional[str] = None
    role: Role = Role.SALON_OWNER

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        normalized = to_e164(value)
        if normalized is None:
            raise ValueError("Please enter a valid phone number")
        return normalized

    def credential(self) -> LoginCredential:
        return LoginCredential(email=self.email, password=self.password)
