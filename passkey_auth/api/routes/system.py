"""System routes."""

from fastapi import APIRouter

router = APIRouter(tags=["System"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "healthy"}
