"""Pydantic schemas for saved-location session API."""
from typing import Literal

from pydantic import BaseModel, Field


class SessionStart(BaseModel):
    """Payload for starting a session: owner and what the device reported about its position."""

    owner_id: str = Field(min_length=1, max_length=255)
    language: Literal["en", "ar"] = "en"
    permission_granted: bool = True
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class LocationNameSubmit(BaseModel):
    """Name for the current position. Emptiness is checked by the session, not here."""

    name: str = ""


class DefaultLocationUpdate(BaseModel):
    location_id: str


class PositionResponse(BaseModel):
    latitude: float
    longitude: float


class SavedLocationResponse(BaseModel):
    """Saved location in API responses. address is a display value, never persisted."""

    id: str
    name: str
    latitude: float
    longitude: float
    is_default: bool
    address: str
    address_resolved: bool = False
    is_rtl: bool = False


class SessionResponse(BaseModel):
    owner_id: str
    language: str
    position_state: str  # "idle" | "acquiring" | "ready" | "error"
    position: PositionResponse | None = None
    position_error: str | None = None
    list_state: str  # "idle" | "loading" | "ready" | "error"
    list_error: str | None = None
    modal_state: str  # "closed" | "open" | "submitting"
    draft_name: str = ""
    can_save: bool
    needs_default_selection: bool
    pending_delete_id: str | None = None
    selected_location_id: str | None = None
    locations: list[SavedLocationResponse]
    message: str | None = None


class ConfirmationPrompt(BaseModel):
    location_id: str
    message: str


class ErrorDetail(BaseModel):
    code: str
    message: str
