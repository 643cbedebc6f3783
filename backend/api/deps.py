"""Shared dependencies for the location session API."""
from typing import Optional

from location_core.invariants import DefaultInvariantManager, DeletePolicy, RepairPolicy
from location_core.providers import GeocodingProvider, NominatimGeocoder
from repositories.location_repository import LocationRepository
from utils.config import (
    DEFAULT_LANGUAGE,
    DEFAULT_REPAIR_POLICY,
    DELETE_DEFAULT_POLICY,
    GEOCODER_TIMEOUT_S,
    GEOCODER_URL,
    GEOCODER_USER_AGENT,
    MAX_SAVED_LOCATIONS,
)

_geocoder: Optional[NominatimGeocoder] = None


def get_geocoder() -> GeocodingProvider:
    """FastAPI dependency: process-wide reverse geocoder (one HTTP client)."""
    global _geocoder
    if _geocoder is None:
        _geocoder = NominatimGeocoder(
            base_url=GEOCODER_URL,
            language=DEFAULT_LANGUAGE,
            timeout=GEOCODER_TIMEOUT_S,
            user_agent=GEOCODER_USER_AGENT,
        )
    return _geocoder


async def close_geocoder() -> None:
    """Close the shared geocoder's HTTP client (shutdown)."""
    global _geocoder
    if _geocoder is not None:
        await _geocoder.aclose()
        _geocoder = None


def build_manager(repository: LocationRepository) -> DefaultInvariantManager:
    """Invariant manager configured from environment."""
    return DefaultInvariantManager(
        repository,
        capacity=MAX_SAVED_LOCATIONS,
        repair_policy=RepairPolicy(DEFAULT_REPAIR_POLICY),
        delete_policy=DeletePolicy(DELETE_DEFAULT_POLICY),
    )
