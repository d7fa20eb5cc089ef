"""WebAuthn passkey routes.

Registration flow:
1. POST /passkey/register/begin  -> creation options (creates the user)
2. POST /passkey/register/finish -> stores credential

Authentication flow:
1. POST /passkey/authenticate/begin  -> request options (+ ceremonyId when no user)
2. POST /passkey/authenticate/finish -> verified user

Management:
- GET    /passkey/user/{user_id}
- GET    /passkey/user/{user_id}/credentials
- GET    /passkey/user/{user_id}/credentials/{credential_id}
- PATCH  /passkey/user/{user_id}/credentials/{credential_id}
- DELETE /passkey/user/{user_id}/credentials/{credential_id}

This layer performs no session or caller authentication of its own.
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from passkey_auth.api.deps import OrchestratorDep
from passkey_auth.api.schemas import (
    AuthenticateBeginRequest,
    AuthenticateBeginResponse,
    AuthenticateFinishRequest,
    AuthenticateFinishResponse,
    CredentialInfo,
    CredentialListResponse,
    CredentialMetadataRequest,
    RegisterBeginRequest,
    RegisterFinishRequest,
    RegisterFinishResponse,
    UserInfo,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/passkey", tags=["Passkey"])


# =============================================================================
# Registration Endpoints
# =============================================================================


@router.post("/register/begin")
async def register_begin(
    body: RegisterBeginRequest, orchestrator: OrchestratorDep
) -> dict[str, Any]:
    """Generate registration options for navigator.credentials.create()."""
    return await orchestrator.begin_registration(body.user_id, body.username, body.display_name)


@router.post("/register/finish")
async def register_finish(
    body: RegisterFinishRequest, orchestrator: OrchestratorDep
) -> RegisterFinishResponse:
    """Verify the attestation response and store the credential."""
    result = await orchestrator.finish_registration(body.user_id, body.response)
    if not result.verified or result.credential is None:
        raise HTTPException(status_code=400, detail=result.error or "Registration failed")

    return RegisterFinishResponse(
        success=True,
        message="Passkey registered successfully",
        credential=CredentialInfo.from_credential(result.credential),
    )


# =============================================================================
# Authentication Endpoints
# =============================================================================


@router.post("/authenticate/begin")
async def authenticate_begin(
    body: AuthenticateBeginRequest, orchestrator: OrchestratorDep
) -> AuthenticateBeginResponse:
    """Generate request options for navigator.credentials.get()."""
    ceremony = await orchestrator.begin_authentication(body.user_id)
    return AuthenticateBeginResponse(options=ceremony.options, ceremony_id=ceremony.ceremony_id)


@router.post("/authenticate/finish")
async def authenticate_finish(
    body: AuthenticateFinishRequest, orchestrator: OrchestratorDep
) -> AuthenticateFinishResponse:
    """Verify the assertion response."""
    result = await orchestrator.finish_authentication(
        body.response, user_id=body.user_id, ceremony_id=body.ceremony_id
    )
    if not result.verified or result.user is None or result.credential is None:
        raise HTTPException(status_code=401, detail=result.error or "Authentication failed")

    return AuthenticateFinishResponse(
        success=True,
        message="Authentication successful",
        user=UserInfo.from_user(result.user),
        credential_id=result.credential.id,
    )


# =============================================================================
# User and Credential Management Endpoints
# =============================================================================


@router.get("/user/{user_id}")
async def get_user(user_id: str, orchestrator: OrchestratorDep) -> UserInfo:
    """Get a user summary."""
    user = await orchestrator.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserInfo.from_user(user)


@router.get("/user/{user_id}/credentials")
async def list_credentials(user_id: str, orchestrator: OrchestratorDep) -> CredentialListResponse:
    """List a user's credentials (empty for an unknown user)."""
    credentials = await orchestrator.list_credentials(user_id)
    return CredentialListResponse(
        credentials=[CredentialInfo.from_credential(c) for c in credentials]
    )


@router.get("/user/{user_id}/credentials/{credential_id}")
async def get_credential(
    user_id: str, credential_id: str, orchestrator: OrchestratorDep
) -> CredentialInfo:
    """Get one credential."""
    credential = await orchestrator.get_credential(user_id, credential_id)
    if credential is None:
        raise HTTPException(status_code=404, detail="Credential not found")
    return CredentialInfo.from_credential(credential)


@router.patch("/user/{user_id}/credentials/{credential_id}")
async def update_credential(
    user_id: str,
    credential_id: str,
    body: CredentialMetadataRequest,
    orchestrator: OrchestratorDep,
) -> CredentialInfo:
    """Rename a credential."""
    updated = await orchestrator.update_credential_metadata(user_id, credential_id, name=body.name)
    credential = await orchestrator.get_credential(user_id, credential_id) if updated else None
    if credential is None:
        raise HTTPException(status_code=404, detail="Credential not found")
    return CredentialInfo.from_credential(credential)


@router.delete("/user/{user_id}/credentials/{credential_id}")
async def delete_credential(
    user_id: str, credential_id: str, orchestrator: OrchestratorDep
) -> dict[str, str]:
    """Remove a credential."""
    if await orchestrator.get_credential(user_id, credential_id) is None:
        raise HTTPException(status_code=404, detail="Credential not found")

    if not await orchestrator.remove_credential(user_id, credential_id):
        raise HTTPException(status_code=404, detail="Credential could not be removed")

    logger.info("Removed credential for user %s", user_id)
    return {"status": "ok", "message": "Passkey deleted"}
