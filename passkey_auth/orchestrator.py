"""Registration and authentication ceremony orchestration.

Drives both WebAuthn ceremonies end to end:

Registration:
1. begin_registration  -> resolve/create user, issue challenge under reg_<user>
2. finish_registration -> take challenge, verify, store credential

Authentication:
1. begin_authentication  -> allow-list for a named user, or a discoverable
   ceremony keyed by a server-generated ceremony id
2. finish_authentication -> resolve user + credential, take challenge,
   verify, persist counter and last use

Cryptographic checks belong to the WebAuthnVerifier; this layer owns the
challenge lifecycle, user binding and counter bookkeeping.
"""

import logging
import secrets
from typing import Any
from urllib.parse import urlsplit

from passkey_auth.challenges import ChallengeEntry, ChallengeLedger
from passkey_auth.dal.base import CredentialRepository, RemovableCredentialRepository
from passkey_auth.exceptions import (
    AuthenticationRejected,
    CeremonyError,
    ChallengeExpiredOrMissing,
    ConfigurationError,
    CredentialAlreadyRegistered,
    CredentialNotFound,
    RegistrationRejected,
    UnsupportedOperation,
    UserNotFound,
    UsernameTaken,
    VerificationError,
)
from passkey_auth.models import (
    AuthenticationCeremony,
    AuthenticationResult,
    Credential,
    RegistrationResult,
    User,
    utcnow,
)
from passkey_auth.settings import Settings
from passkey_auth.verifier import WebAuthnVerifier

logger = logging.getLogger(__name__)

CHALLENGE_BYTES = 32


# reg_, auth_ and ceremony_ never prefix one another, whatever the user id
def registration_key(user_id: str) -> str:
    return f"reg_{user_id}"


def authentication_key(user_id: str) -> str:
    return f"auth_{user_id}"


def ceremony_key(ceremony_id: str) -> str:
    return f"ceremony_{ceremony_id}"


class CeremonyOrchestrator:
    """Coordinates the challenge ledger, repository and verifier.

    Holds no locks of its own. Replay protection comes from ``take`` on
    the ledger: of two finishers racing on one challenge, only one gets it.

    Args:
        settings: Relying party, timeout and user-verification configuration
        repository: Where users and credentials live
        ledger: Challenge storage
        verifier: WebAuthn option builder and response verifier

    Raises:
        ConfigurationError: the origin host is neither the RP ID nor a subdomain of it
    """

    def __init__(
        self,
        settings: Settings,
        repository: CredentialRepository,
        ledger: ChallengeLedger,
        verifier: WebAuthnVerifier,
    ):
        _check_relying_party(settings)
        self.settings = settings
        self.repository = repository
        self.ledger = ledger
        self.verifier = verifier

    # =========================================================================
    # Registration
    # =========================================================================

    async def begin_registration(
        self, user_id: str, username: str, display_name: str
    ) -> dict[str, Any]:
        """Start a registration ceremony and return creation options.

        Creates the user on first use. Existing credentials go into the
        exclusion list so an authenticator cannot be registered twice.

        Raises:
            UsernameTaken: username already belongs to a different user id
        """
        user = await self.repository.get_user_by_id(user_id)
        if user is None:
            owner = await self.repository.get_user_by_username(username)
            if owner is not None:
                logger.warning("Username collision for user %s", user_id)
                raise UsernameTaken(username)
            user = await self.repository.create_user(user_id, username, display_name)

        challenge = _new_challenge()
        options = self.verifier.build_registration_options(
            rp_id=self.settings.webauthn_rp_id,
            rp_name=self.settings.webauthn_rp_name,
            user_id=user.id,
            username=user.username,
            display_name=user.display_name,
            challenge=challenge,
            timeout_ms=self.settings.webauthn_timeout_ms,
            user_verification=self.settings.webauthn_user_verification,
            exclude_credentials=list(user.credentials),
        )
        self.ledger.issue(registration_key(user_id), challenge, self.settings.challenge_ttl_ms)
        return options

    async def finish_registration(
        self, user_id: str, response: dict[str, Any]
    ) -> RegistrationResult:
        """Verify a registration response and bind the new credential.

        A rejected response leaves the challenge in place so the same
        ceremony can be retried until it expires. A credential id that is
        already bound to any user is refused; stored key material and
        counters are never replaced by a new registration.
        """
        key = registration_key(user_id)
        try:
            entry = self._take_challenge(key)
            try:
                verification = self.verifier.verify_registration(
                    response=response,
                    expected_challenge=entry.value,
                    expected_origin=self.settings.webauthn_origin,
                    expected_rp_id=self.settings.webauthn_rp_id,
                    require_user_verification=self.settings.require_user_verification,
                )
            except VerificationError as e:
                self.ledger.restore(key, entry)
                raise RegistrationRejected(f"Registration verification failed: {e}") from e

            if await self.repository.find_by_credential_id(verification.credential_id) is not None:
                self.ledger.restore(key, entry)
                raise CredentialAlreadyRegistered(verification.credential_id)
        except CeremonyError as e:
            logger.warning("Registration failed for user %s: %s", user_id, e.code)
            return RegistrationResult(verified=False, error=str(e), error_code=e.code)

        now = utcnow()
        credential = Credential(
            id=verification.credential_id,
            public_key=verification.public_key,
            sign_count=verification.sign_count,
            device_type=verification.device_type,
            backed_up=verification.backed_up,
            transports=_response_transports(response),
            aaguid=verification.aaguid,
            created_at=now,
            last_used_at=now,
        )
        try:
            await self.repository.add_credential(user_id, credential)
        except Exception:
            self.ledger.restore(key, entry)
            raise

        logger.info("Registered credential for user %s", user_id)
        return RegistrationResult(verified=True, credential=credential)

    # =========================================================================
    # Authentication
    # =========================================================================

    async def begin_authentication(self, user_id: str | None = None) -> AuthenticationCeremony:
        """Start an authentication ceremony.

        With a known user that has credentials, the options carry an
        allow-list. Otherwise any discoverable credential may answer and
        the challenge is filed under a fresh ceremony id, returned to the
        caller for the finish step.
        """
        allow_credentials = None
        if user_id:
            user = await self.repository.get_user_by_id(user_id)
            if user is not None and user.credentials:
                allow_credentials = list(user.credentials)

        challenge = _new_challenge()
        options = self.verifier.build_authentication_options(
            rp_id=self.settings.webauthn_rp_id,
            challenge=challenge,
            timeout_ms=self.settings.webauthn_timeout_ms,
            user_verification=self.settings.webauthn_user_verification,
            allow_credentials=allow_credentials,
        )

        ceremony_id = None
        if user_id:
            key = authentication_key(user_id)
        else:
            ceremony_id = secrets.token_urlsafe(16)
            key = ceremony_key(ceremony_id)
        self.ledger.issue(key, challenge, self.settings.challenge_ttl_ms)

        return AuthenticationCeremony(options=options, ceremony_id=ceremony_id)

    async def finish_authentication(
        self,
        response: dict[str, Any],
        user_id: str | None = None,
        ceremony_id: str | None = None,
    ) -> AuthenticationResult:
        """Verify an authentication response.

        With ``user_id`` the credential must belong to that user; without
        it the user is resolved from the credential id alone and the
        challenge is found through ``ceremony_id``.
        """
        try:
            user, credential = await self._resolve_credential(response, user_id)

            if user_id:
                key = authentication_key(user_id)
            elif ceremony_id:
                key = ceremony_key(ceremony_id)
            else:
                raise ChallengeExpiredOrMissing()
            entry = self._take_challenge(key)

            try:
                verification = self.verifier.verify_authentication(
                    response=response,
                    expected_challenge=entry.value,
                    expected_origin=self.settings.webauthn_origin,
                    expected_rp_id=self.settings.webauthn_rp_id,
                    credential=credential,
                    require_user_verification=self.settings.require_user_verification,
                )
            except VerificationError as e:
                self.ledger.restore(key, entry)
                raise AuthenticationRejected(f"Authentication verification failed: {e}") from e
        except CeremonyError as e:
            logger.warning("Authentication failed: %s", e.code)
            return AuthenticationResult(verified=False, error=str(e), error_code=e.code)

        _reconcile_counter(credential, verification.new_sign_count)
        credential.backed_up = verification.backed_up
        credential.last_used_at = utcnow()
        try:
            user = await self.repository.update_user(user)
        except Exception:
            self.ledger.restore(key, entry)
            raise

        stored = user.find_credential(credential.id) or credential
        logger.info("Authenticated user %s", user.id)
        return AuthenticationResult(verified=True, user=user, credential=stored)

    async def _resolve_credential(
        self, response: dict[str, Any], user_id: str | None
    ) -> tuple[User, Credential]:
        credential_id = response.get("id")
        if not credential_id:
            raise CredentialNotFound("")

        if user_id:
            user = await self.repository.get_user_by_id(user_id)
            if user is None:
                raise UserNotFound(user_id)
            credential = user.find_credential(credential_id)
            if credential is None:
                raise CredentialNotFound(credential_id)
            return user, credential

        found = await self.repository.find_by_credential_id(credential_id)
        if found is None:
            raise CredentialNotFound(credential_id)
        return found

    def _take_challenge(self, key: str) -> ChallengeEntry:
        entry = self.ledger.take(key)
        if entry is None:
            raise ChallengeExpiredOrMissing()
        return entry

    # =========================================================================
    # Users and credential management
    # =========================================================================

    async def get_user(self, user_id: str) -> User | None:
        """Get a user by id."""
        return await self.repository.get_user_by_id(user_id)

    async def get_user_by_username(self, username: str) -> User | None:
        """Get a user by username."""
        return await self.repository.get_user_by_username(username)

    async def list_credentials(self, user_id: str) -> list[Credential]:
        """All credentials of a user; empty for an unknown user."""
        user = await self.repository.get_user_by_id(user_id)
        return user.credentials if user else []

    async def get_credential(self, user_id: str, credential_id: str) -> Credential | None:
        """One credential of a user, or None."""
        user = await self.repository.get_user_by_id(user_id)
        if user is None:
            return None
        return user.find_credential(credential_id)

    async def count_credentials(self, user_id: str) -> int:
        """Number of credentials bound to a user."""
        return len(await self.list_credentials(user_id))

    async def remove_credential(self, user_id: str, credential_id: str) -> bool:
        """Remove a credential.

        Returns False when the repository fails to remove it.

        Raises:
            UnsupportedOperation: the repository cannot remove credentials
        """
        if not isinstance(self.repository, RemovableCredentialRepository):
            raise UnsupportedOperation(
                f"{type(self.repository).__name__} does not support credential removal",
                operation="remove_credential",
            )

        try:
            await self.repository.remove_credential(user_id, credential_id)
        except Exception:
            logger.exception("Failed to remove credential for user %s", user_id)
            return False
        return True

    async def update_credential_metadata(
        self, user_id: str, credential_id: str, name: str | None = None
    ) -> bool:
        """Update the user-facing name of a credential.

        Key material and counter are never touched. Returns False when the
        user or credential does not exist.
        """
        user = await self.repository.get_user_by_id(user_id)
        if user is None:
            return False
        credential = user.find_credential(credential_id)
        if credential is None:
            return False

        if name is not None:
            credential.name = name
        await self.repository.update_user(user)
        return True


def _new_challenge() -> str:
    """Fresh base64url challenge with CHALLENGE_BYTES of entropy."""
    return secrets.token_urlsafe(CHALLENGE_BYTES)


def _response_transports(response: dict[str, Any]) -> list[str] | None:
    inner = response.get("response")
    if not isinstance(inner, dict):
        return None
    transports = inner.get("transports")
    return list(transports) if transports else None


def _reconcile_counter(credential: Credential, new_count: int) -> None:
    """Persist an advancing signature counter; never move it backwards.

    Authenticators without counters always report 0, which must not
    overwrite a stored value.
    """
    if new_count > credential.sign_count:
        credential.sign_count = new_count
    elif new_count != 0 and credential.sign_count != 0:
        logger.warning(
            "Signature counter did not advance for credential (stored=%d, reported=%d)",
            credential.sign_count,
            new_count,
        )


def _check_relying_party(settings: Settings) -> None:
    """Browsers only accept an RP ID equal to the origin host or a parent domain of it."""
    host = urlsplit(settings.webauthn_origin).hostname or ""
    rp_id = settings.webauthn_rp_id
    if host != rp_id and not host.endswith(f".{rp_id}"):
        raise ConfigurationError(
            f"RP ID {rp_id!r} does not match origin {settings.webauthn_origin!r}"
        )
