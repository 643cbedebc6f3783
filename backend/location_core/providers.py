"""Device position and reverse-geocoding providers consumed by the session core."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Self

import httpx

from location_core.errors import EnrichmentError, PositionUnavailable

LOG = logging.getLogger(__name__)


class PermissionStatus(str, enum.Enum):
    granted = "granted"
    denied = "denied"


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class AddressComponents:
    street: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None


def format_address(components: Optional[AddressComponents]) -> str:
    """Join street, district, city, region (skipping blanks) with ', '. Empty string if none."""
    if components is None:
        return ""
    parts = (components.street, components.district, components.city, components.region)
    return ", ".join(p.strip() for p in parts if p and p.strip())


class GeoProvider(Protocol):
    """Current device coordinates and permission state."""

    async def request_permission(self) -> PermissionStatus: ...

    async def get_current_position(self) -> Position: ...


class GeocodingProvider(Protocol):
    """Resolves coordinates to address components; None when nothing is known there."""

    async def reverse_geocode(self, latitude: float, longitude: float) -> Optional[AddressComponents]: ...


class ReportedPositionProvider:
    """GeoProvider built from what the client device reported with the session request."""

    def __init__(
        self,
        permission_granted: bool,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> None:
        self._granted = permission_granted
        self._latitude = latitude
        self._longitude = longitude

    async def request_permission(self) -> PermissionStatus:
        return PermissionStatus.granted if self._granted else PermissionStatus.denied

    async def get_current_position(self) -> Position:
        if self._latitude is None or self._longitude is None:
            raise PositionUnavailable("device did not report a position fix")
        return Position(latitude=float(self._latitude), longitude=float(self._longitude))


# Nominatim address keys, most specific first.
_DISTRICT_KEYS = ("suburb", "neighbourhood", "city_district", "quarter")
_CITY_KEYS = ("city", "town", "village", "municipality")


def _first(address: dict[str, Any], keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = address.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


class NominatimGeocoder:
    """
    Async reverse geocoder for a Nominatim-compatible /reverse endpoint using httpx.

    Usage:
        async with NominatimGeocoder(base_url="https://nominatim.openstreetmap.org") as geo:
            components = await geo.reverse_geocode(24.70, 46.60)
    """

    def __init__(
        self,
        *,
        base_url: str,
        language: str = "en",
        timeout: float = 10.0,
        user_agent: str = "saved-locations/0.1",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url: str = base_url.rstrip("/")
        self.language: str = language
        self.timeout: float = timeout
        self.user_agent: str = user_agent
        self._client: httpx.AsyncClient | None = client
        self._owns_client: bool = client is None

    async def __aenter__(self) -> Self:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers={"User-Agent": self.user_agent})
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers={"User-Agent": self.user_agent})
            self._owns_client = True
        return self._client

    async def reverse_geocode(self, latitude: float, longitude: float) -> Optional[AddressComponents]:
        params: dict[str, str | float] = {
            "format": "jsonv2",
            "lat": latitude,
            "lon": longitude,
            "addressdetails": 1,
            "accept-language": self.language,
        }
        try:
            response = await self._get_client().get(f"{self.base_url}/reverse", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise EnrichmentError(f"reverse geocode failed for ({latitude}, {longitude}): {exc}") from exc
        except ValueError as exc:
            raise EnrichmentError(f"reverse geocode returned invalid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise EnrichmentError(f"unexpected reverse geocode payload: {type(payload).__name__}")
        if "error" in payload:
            LOG.debug("No address at (%s, %s): %s", latitude, longitude, payload["error"])
            return None
        address = payload.get("address")
        if not isinstance(address, dict):
            return None
        components = AddressComponents(
            street=_first(address, ("road", "pedestrian", "footway")),
            district=_first(address, _DISTRICT_KEYS),
            city=_first(address, _CITY_KEYS),
            region=_first(address, ("state", "region", "province")),
        )
        if not format_address(components):
            return None
        return components
