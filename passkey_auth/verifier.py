"""WebAuthn verification boundary.

The orchestrator never touches CBOR, COSE or signatures. It hands
client responses and expected parameters to a :class:`WebAuthnVerifier`
and gets back parsed ceremony results. :class:`PyWebAuthnVerifier` is the
default implementation on top of py_webauthn.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url
from webauthn.helpers.cose import COSEAlgorithmIdentifier
from webauthn.helpers.exceptions import (
    InvalidAuthenticationResponse,
    InvalidAuthenticatorDataStructure,
    InvalidCBORData,
    InvalidJSONStructure,
    InvalidRegistrationResponse,
)
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorAttachment,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    CredentialDeviceType,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from passkey_auth.exceptions import VerificationError
from passkey_auth.models import Credential, DeviceType

logger = logging.getLogger(__name__)

# ES256, RS256
SUPPORTED_ALGORITHMS = [
    COSEAlgorithmIdentifier.ECDSA_SHA_256,
    COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256,
]

_REJECTIONS = (
    InvalidRegistrationResponse,
    InvalidAuthenticationResponse,
    InvalidJSONStructure,
    InvalidCBORData,
    InvalidAuthenticatorDataStructure,
)


@dataclass(frozen=True)
class RegistrationVerification:
    """Parsed output of a verified registration."""

    credential_id: str
    public_key: bytes
    sign_count: int
    device_type: DeviceType
    backed_up: bool
    aaguid: str | None = None


@dataclass(frozen=True)
class AuthenticationVerification:
    """Parsed output of a verified authentication."""

    credential_id: str
    new_sign_count: int
    device_type: DeviceType
    backed_up: bool
    user_verified: bool = False


class WebAuthnVerifier(ABC):
    """Builds ceremony options and verifies client responses.

    Verification methods raise :class:`VerificationError` when the response
    is rejected. Any other exception is an unexpected fault.
    """

    @abstractmethod
    def build_registration_options(
        self,
        *,
        rp_id: str,
        rp_name: str,
        user_id: str,
        username: str,
        display_name: str,
        challenge: str,
        timeout_ms: int,
        user_verification: str,
        exclude_credentials: list[Credential],
    ) -> dict[str, Any]:
        """Return JSON-ready creation options."""

    @abstractmethod
    def verify_registration(
        self,
        *,
        response: dict[str, Any],
        expected_challenge: str,
        expected_origin: str,
        expected_rp_id: str,
        require_user_verification: bool,
    ) -> RegistrationVerification:
        """Verify an attestation response."""

    @abstractmethod
    def build_authentication_options(
        self,
        *,
        rp_id: str,
        challenge: str,
        timeout_ms: int,
        user_verification: str,
        allow_credentials: list[Credential] | None,
    ) -> dict[str, Any]:
        """Return JSON-ready request options."""

    @abstractmethod
    def verify_authentication(
        self,
        *,
        response: dict[str, Any],
        expected_challenge: str,
        expected_origin: str,
        expected_rp_id: str,
        credential: Credential,
        require_user_verification: bool,
    ) -> AuthenticationVerification:
        """Verify an assertion against a stored credential."""


class PyWebAuthnVerifier(WebAuthnVerifier):
    """WebAuthnVerifier backed by py_webauthn.

    Challenges travel as base64url strings and are decoded to bytes only
    at this boundary.
    """

    def build_registration_options(
        self,
        *,
        rp_id: str,
        rp_name: str,
        user_id: str,
        username: str,
        display_name: str,
        challenge: str,
        timeout_ms: int,
        user_verification: str,
        exclude_credentials: list[Credential],
    ) -> dict[str, Any]:
        options = generate_registration_options(
            rp_id=rp_id,
            rp_name=rp_name,
            user_id=user_id.encode(),
            user_name=username,
            user_display_name=display_name,
            challenge=base64url_to_bytes(challenge),
            timeout=timeout_ms,
            attestation=AttestationConveyancePreference.NONE,
            exclude_credentials=[_descriptor(c) for c in exclude_credentials],
            authenticator_selection=AuthenticatorSelectionCriteria(
                authenticator_attachment=AuthenticatorAttachment.PLATFORM,
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=UserVerificationRequirement(user_verification),
            ),
            supported_pub_key_algs=SUPPORTED_ALGORITHMS,
        )
        return _options_to_dict(options)

    def verify_registration(
        self,
        *,
        response: dict[str, Any],
        expected_challenge: str,
        expected_origin: str,
        expected_rp_id: str,
        require_user_verification: bool,
    ) -> RegistrationVerification:
        try:
            verification = verify_registration_response(
                credential=response,
                expected_challenge=base64url_to_bytes(expected_challenge),
                expected_rp_id=expected_rp_id,
                expected_origin=expected_origin,
                require_user_verification=require_user_verification,
                supported_pub_key_algs=SUPPORTED_ALGORITHMS,
            )
        except _REJECTIONS as e:
            raise VerificationError(str(e)) from e

        return RegistrationVerification(
            credential_id=bytes_to_base64url(verification.credential_id),
            public_key=verification.credential_public_key,
            sign_count=verification.sign_count,
            device_type=_device_type(verification.credential_device_type),
            backed_up=verification.credential_backed_up,
            aaguid=verification.aaguid or None,
        )

    def build_authentication_options(
        self,
        *,
        rp_id: str,
        challenge: str,
        timeout_ms: int,
        user_verification: str,
        allow_credentials: list[Credential] | None,
    ) -> dict[str, Any]:
        options = generate_authentication_options(
            rp_id=rp_id,
            challenge=base64url_to_bytes(challenge),
            timeout=timeout_ms,
            allow_credentials=(
                [_descriptor(c) for c in allow_credentials] if allow_credentials else None
            ),
            user_verification=UserVerificationRequirement(user_verification),
        )
        return _options_to_dict(options)

    def verify_authentication(
        self,
        *,
        response: dict[str, Any],
        expected_challenge: str,
        expected_origin: str,
        expected_rp_id: str,
        credential: Credential,
        require_user_verification: bool,
    ) -> AuthenticationVerification:
        try:
            verification = verify_authentication_response(
                credential=response,
                expected_challenge=base64url_to_bytes(expected_challenge),
                expected_rp_id=expected_rp_id,
                expected_origin=expected_origin,
                credential_public_key=credential.public_key,
                credential_current_sign_count=credential.sign_count,
                require_user_verification=require_user_verification,
            )
        except _REJECTIONS as e:
            raise VerificationError(str(e)) from e

        return AuthenticationVerification(
            credential_id=bytes_to_base64url(verification.credential_id),
            new_sign_count=verification.new_sign_count,
            device_type=_device_type(verification.credential_device_type),
            backed_up=verification.credential_backed_up,
            user_verified=verification.user_verified,
        )


def _descriptor(credential: Credential) -> PublicKeyCredentialDescriptor:
    return PublicKeyCredentialDescriptor(
        id=base64url_to_bytes(credential.id),
        transports=_transports(credential.transports),
    )


def _transports(values: list[str] | None) -> list[AuthenticatorTransport] | None:
    """Map transport hints to enum members, skipping ones py_webauthn doesn't know."""
    if not values:
        return None
    transports = []
    for value in values:
        try:
            transports.append(AuthenticatorTransport(value))
        except ValueError:
            logger.debug("Ignoring unknown authenticator transport %r", value)
    return transports or None


def _device_type(device_type: CredentialDeviceType) -> DeviceType:
    if device_type == CredentialDeviceType.MULTI_DEVICE:
        return "multiDevice"
    return "singleDevice"


def _options_to_dict(options: Any) -> dict[str, Any]:
    """Convert py_webauthn options to a JSON-serializable dict.

    Binary fields come back base64url-encoded for the browser.
    """
    return json.loads(options_to_json(options))
