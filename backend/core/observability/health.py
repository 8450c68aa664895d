"""Health endpoint."""

from fastapi import APIRouter

router = APIRouter()


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Liveness endpoint - always OK if service is running."""
    return {"status": "OK"}
