"""WebAuthn verifier fake and credential fixtures.

Drives ceremonies deterministically without a browser or authenticator.
"""

from typing import Any

from passkey_auth.exceptions import VerificationError
from passkey_auth.models import Credential
from passkey_auth.verifier import (
    AuthenticationVerification,
    RegistrationVerification,
    WebAuthnVerifier,
)


class FakeVerifier(WebAuthnVerifier):
    """Verifier that approves or rejects on demand and records its calls.

    Registration approves with ``registration_credential_id`` (and
    ``registration_public_key`` when set) unless ``reject_registration`` is
    set. Authentication reports ``next_sign_count`` unless
    ``reject_authentication`` is set. A response carrying a ``challenge``
    key is rejected when it doesn't match the expected challenge.
    """

    def __init__(self) -> None:
        self.registration_credential_id = "c1"
        self.registration_public_key: bytes | None = None
        self.registration_sign_count = 0
        self.next_sign_count = 0
        self.reject_registration = False
        self.reject_authentication = False
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def build_registration_options(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("build_registration_options", kwargs))
        return {
            "rp": {"name": kwargs["rp_name"], "id": kwargs["rp_id"]},
            "user": {
                "id": kwargs["user_id"],
                "name": kwargs["username"],
                "displayName": kwargs["display_name"],
            },
            "challenge": kwargs["challenge"],
            "timeout": kwargs["timeout_ms"],
            "excludeCredentials": [c.descriptor() for c in kwargs["exclude_credentials"]],
            "authenticatorSelection": {"userVerification": kwargs["user_verification"]},
        }

    def verify_registration(self, **kwargs: Any) -> RegistrationVerification:
        self.calls.append(("verify_registration", kwargs))
        self._check_challenge(kwargs)
        if self.reject_registration:
            raise VerificationError("attestation rejected")
        return RegistrationVerification(
            credential_id=self.registration_credential_id,
            public_key=self.registration_public_key
            or b"public-key-" + self.registration_credential_id.encode(),
            sign_count=self.registration_sign_count,
            device_type="multiDevice",
            backed_up=True,
        )

    def build_authentication_options(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("build_authentication_options", kwargs))
        options: dict[str, Any] = {
            "challenge": kwargs["challenge"],
            "timeout": kwargs["timeout_ms"],
            "rpId": kwargs["rp_id"],
            "userVerification": kwargs["user_verification"],
        }
        if kwargs["allow_credentials"]:
            options["allowCredentials"] = [c.descriptor() for c in kwargs["allow_credentials"]]
        return options

    def verify_authentication(self, **kwargs: Any) -> AuthenticationVerification:
        self.calls.append(("verify_authentication", kwargs))
        self._check_challenge(kwargs)
        if self.reject_authentication:
            raise VerificationError("signature invalid")
        return AuthenticationVerification(
            credential_id=kwargs["credential"].id,
            new_sign_count=self.next_sign_count,
            device_type=kwargs["credential"].device_type,
            backed_up=kwargs["credential"].backed_up,
            user_verified=True,
        )

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        """Keyword arguments of every call to ``name``."""
        return [kwargs for called, kwargs in self.calls if called == name]

    @staticmethod
    def _check_challenge(kwargs: dict[str, Any]) -> None:
        sent = kwargs["response"].get("challenge")
        if sent is not None and sent != kwargs["expected_challenge"]:
            raise VerificationError("challenge mismatch")


def make_credential(credential_id: str = "c1", **overrides: Any) -> Credential:
    """Build a stored credential with test defaults."""
    data: dict[str, Any] = {
        "id": credential_id,
        "public_key": b"public-key-" + credential_id.encode(),
        "sign_count": 0,
        "device_type": "multiDevice",
        "backed_up": True,
        "transports": ["internal", "hybrid"],
    }
    data.update(overrides)
    return Credential(**data)


def registration_response(credential_id: str = "c1", **extra: Any) -> dict[str, Any]:
    """Minimal browser attestation response."""
    response: dict[str, Any] = {
        "id": credential_id,
        "rawId": credential_id,
        "type": "public-key",
        "response": {
            "clientDataJSON": "e30",
            "attestationObject": "o2NmbXRkbm9uZQ",
            "transports": ["internal", "hybrid"],
        },
    }
    response.update(extra)
    return response


def authentication_response(credential_id: str = "c1", **extra: Any) -> dict[str, Any]:
    """Minimal browser assertion response."""
    response: dict[str, Any] = {
        "id": credential_id,
        "rawId": credential_id,
        "type": "public-key",
        "response": {
            "clientDataJSON": "e30",
            "authenticatorData": "AAAA",
            "signature": "AAAA",
        },
    }
    response.update(extra)
    return response
