"""WebAuthn passkey registration and authentication.

Orchestrates challenge issuance, delegates ceremony verification to
py_webauthn and persists credentials through a pluggable repository.

Usage:
    from passkey_auth import (
        CeremonyOrchestrator,
        InMemoryChallengeLedger,
        InMemoryCredentialRepository,
        PyWebAuthnVerifier,
        Settings,
    )

    orchestrator = CeremonyOrchestrator(
        settings=Settings(webauthn_rp_id="example.com", webauthn_origin="https://example.com"),
        repository=InMemoryCredentialRepository(),
        ledger=InMemoryChallengeLedger(),
        verifier=PyWebAuthnVerifier(),
    )
    options = await orchestrator.begin_registration("u1", "alice", "Alice A")
"""

from passkey_auth.challenges import ChallengeLedger, InMemoryChallengeLedger
from passkey_auth.dal import (
    AppendOnlyCredentialRepository,
    CredentialRepository,
    InMemoryCredentialRepository,
    RemovableCredentialRepository,
    SQLCredentialRepository,
)
from passkey_auth.models import (
    AuthenticationCeremony,
    AuthenticationResult,
    Credential,
    RegistrationResult,
    User,
)
from passkey_auth.orchestrator import CeremonyOrchestrator
from passkey_auth.settings import Settings, get_settings
from passkey_auth.verifier import PyWebAuthnVerifier, WebAuthnVerifier

__all__ = [
    "AppendOnlyCredentialRepository",
    "AuthenticationCeremony",
    "AuthenticationResult",
    "CeremonyOrchestrator",
    "ChallengeLedger",
    "Credential",
    "CredentialRepository",
    "InMemoryChallengeLedger",
    "InMemoryCredentialRepository",
    "PyWebAuthnVerifier",
    "RegistrationResult",
    "RemovableCredentialRepository",
    "SQLCredentialRepository",
    "Settings",
    "User",
    "WebAuthnVerifier",
    "get_settings",
]
