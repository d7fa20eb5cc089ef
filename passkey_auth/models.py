"""Domain models for users, bound credentials and ceremony results."""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

DeviceType = Literal["singleDevice", "multiDevice"]


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)


class Credential(BaseModel):
    """One authenticator bound to a user.

    ``id`` is the base64url credential ID and is unique across all users,
    since discoverable login resolves the user from it alone.
    ``public_key`` is the COSE key returned by registration and never changes.
    """

    id: str
    public_key: bytes
    sign_count: int = Field(default=0, ge=0)
    device_type: DeviceType = "singleDevice"
    backed_up: bool = False
    transports: list[str] | None = None
    aaguid: str | None = None
    name: str | None = None
    created_at: datetime | None = None
    last_used_at: datetime | None = None

    def descriptor(self) -> dict[str, Any]:
        """Credential descriptor for allow/exclude lists."""
        return {"id": self.id, "type": "public-key", "transports": self.transports}


class User(BaseModel):
    """Identity record owning an ordered set of credentials."""

    id: str
    username: str
    display_name: str
    credentials: list[Credential] = Field(default_factory=list)

    def find_credential(self, credential_id: str) -> Credential | None:
        """Return the credential with ``credential_id`` or None."""
        for credential in self.credentials:
            if credential.id == credential_id:
                return credential
        return None


class AuthenticationCeremony(BaseModel):
    """Options for an authentication ceremony.

    ``ceremony_id`` is set only when no user was named; the client hands it
    back on finish so the server can find the challenge.
    """

    options: dict[str, Any]
    ceremony_id: str | None = None


class RegistrationResult(BaseModel):
    """Outcome of a registration ceremony."""

    verified: bool
    credential: Credential | None = None
    error: str | None = None
    error_code: str | None = None


class AuthenticationResult(BaseModel):
    """Outcome of an authentication ceremony."""

    verified: bool
    user: User | None = None
    credential: Credential | None = None
    error: str | None = None
    error_code: str | None = None
