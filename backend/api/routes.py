"""API route handlers."""
from fastapi import APIRouter

from location_core.store import get_all
from schemas.health import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(active_sessions=len(get_all()))
