"""passkey-auth exception hierarchy.

Base exceptions for all layers with correlation ID support.

Ceremony errors end a registration or authentication ceremony and are
turned into unverified results by the orchestrator. Everything else
propagates to the caller.

Usage:
    from passkey_auth.exceptions import CeremonyError, UnsupportedOperation

    try:
        await orchestrator.remove_credential(user_id, credential_id)
    except UnsupportedOperation as e:
        logger.error("Removal unavailable", extra={"correlation_id": e.correlation_id})
"""

import uuid


class PasskeyAuthError(Exception):
    """Base exception for all passkey-auth errors.

    Carries a correlation_id for tracing errors across layers and a
    stable machine-readable code.
    """

    code = "passkey_auth_error"

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class CeremonyError(PasskeyAuthError):
    """A ceremony could not complete. Never leaves the orchestrator."""

    code = "ceremony_error"


class ChallengeExpiredOrMissing(CeremonyError):
    """No live challenge for the ceremony; restart with a begin call."""

    code = "challenge_expired_or_missing"

    def __init__(self, message: str = "Challenge not found or expired", **kwargs):
        super().__init__(message, **kwargs)


class RegistrationRejected(CeremonyError):
    """The verifier declined a registration response."""

    code = "registration_rejected"


class AuthenticationRejected(CeremonyError):
    """The verifier declined an authentication response."""

    code = "authentication_rejected"


class UserNotFound(CeremonyError):
    """No user with the requested id."""

    code = "user_not_found"

    def __init__(self, user_id: str, **kwargs):
        self.user_id = user_id
        super().__init__(f"User {user_id!r} not found", **kwargs)


class CredentialNotFound(CeremonyError):
    """No credential with the requested id (for the user, if one was given)."""

    code = "credential_not_found"

    def __init__(self, credential_id: str, **kwargs):
        self.credential_id = credential_id
        super().__init__("Credential not found", **kwargs)


class CredentialAlreadyRegistered(CeremonyError):
    """The verified credential id is already bound to a user."""

    code = "credential_already_registered"

    def __init__(self, credential_id: str, **kwargs):
        self.credential_id = credential_id
        super().__init__("Credential is already registered", **kwargs)


class UnsupportedOperation(PasskeyAuthError):
    """The bound repository lacks an optional capability."""

    code = "unsupported_operation"

    def __init__(self, message: str, *, operation: str | None = None, **kwargs):
        self.operation = operation
        super().__init__(message, **kwargs)


class UsernameTaken(PasskeyAuthError):
    """The username already belongs to a different user id."""

    code = "username_taken"

    def __init__(self, username: str, **kwargs):
        self.username = username
        super().__init__(f"Username {username!r} is already taken", **kwargs)


class VerificationError(PasskeyAuthError):
    """A WebAuthn verifier rejected a client response."""

    code = "verification_error"


class RepositoryError(PasskeyAuthError):
    """Errors from credential repository operations."""

    code = "repository_error"


class ConfigurationError(PasskeyAuthError):
    """Errors from application configuration."""

    code = "configuration_error"
