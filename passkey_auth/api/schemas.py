"""Request / response schemas for the passkey API.

Field names are camelCase on the wire to match the browser-side
WebAuthn JSON.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from passkey_auth.models import Credential, DeviceType, User


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterBeginRequest(_CamelModel):
    """Start registration for a user (created on first use)."""

    user_id: str = Field(alias="userId", min_length=1, max_length=255)
    username: str = Field(min_length=1, max_length=255)
    display_name: str = Field(alias="displayName", min_length=1, max_length=255)


class RegisterFinishRequest(_CamelModel):
    """Attestation response from navigator.credentials.create()."""

    user_id: str = Field(alias="userId", min_length=1, max_length=255)
    response: dict[str, Any]


class AuthenticateBeginRequest(_CamelModel):
    """Start authentication; omit userId for discoverable credentials."""

    user_id: str | None = Field(default=None, alias="userId", max_length=255)


class AuthenticateFinishRequest(_CamelModel):
    """Assertion response from navigator.credentials.get()."""

    response: dict[str, Any]
    user_id: str | None = Field(default=None, alias="userId", max_length=255)
    ceremony_id: str | None = Field(default=None, alias="ceremonyId", max_length=255)


class CredentialMetadataRequest(_CamelModel):
    """Mutable credential metadata."""

    name: str | None = Field(default=None, max_length=255)


class CredentialInfo(_CamelModel):
    """Public info about a credential. Never includes key material."""

    id: str
    name: str | None = None
    device_type: DeviceType = Field(alias="deviceType")
    backed_up: bool = Field(alias="backedUp")
    transports: list[str] | None = None
    sign_count: int = Field(alias="signCount")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    last_used_at: datetime | None = Field(default=None, alias="lastUsedAt")

    @classmethod
    def from_credential(cls, credential: Credential) -> "CredentialInfo":
        return cls(
            id=credential.id,
            name=credential.name,
            device_type=credential.device_type,
            backed_up=credential.backed_up,
            transports=credential.transports,
            sign_count=credential.sign_count,
            created_at=credential.created_at,
            last_used_at=credential.last_used_at,
        )


class UserInfo(_CamelModel):
    """Public info about a user."""

    id: str
    username: str
    display_name: str = Field(alias="displayName")
    credential_count: int = Field(alias="credentialCount")

    @classmethod
    def from_user(cls, user: User) -> "UserInfo":
        return cls(
            id=user.id,
            username=user.username,
            display_name=user.display_name,
            credential_count=len(user.credentials),
        )


class AuthenticateBeginResponse(_CamelModel):
    """Request options plus the ceremony id for discoverable logins."""

    options: dict[str, Any]
    ceremony_id: str | None = Field(default=None, alias="ceremonyId")


class RegisterFinishResponse(_CamelModel):
    success: bool
    message: str
    credential: CredentialInfo


class AuthenticateFinishResponse(_CamelModel):
    success: bool
    message: str
    user: UserInfo
    credential_id: str = Field(alias="credentialId")


class CredentialListResponse(_CamelModel):
    credentials: list[CredentialInfo]
