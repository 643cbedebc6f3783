# Schemas package
from .health import HealthResponse
from .locations import SavedLocationResponse, SessionResponse, SessionStart

__all__ = [
    "HealthResponse",
    "SavedLocationResponse",
    "SessionResponse",
    "SessionStart",
]
