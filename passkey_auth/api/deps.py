"""Shared FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from passkey_auth.orchestrator import CeremonyOrchestrator


def get_orchestrator(request: Request) -> CeremonyOrchestrator:
    """Return the orchestrator owned by the running application."""
    return request.app.state.orchestrator


OrchestratorDep = Annotated[CeremonyOrchestrator, Depends(get_orchestrator)]
