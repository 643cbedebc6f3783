"""Best-effort display addresses for saved locations, kept apart from persistence."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from location_core.providers import GeocodingProvider, format_address
from location_core.records import SavedLocation

LOG = logging.getLogger(__name__)


class AddressEnrichmentService:
    """
    Resolves an address per location, one concurrent reverse-geocode call each.

    Results live in a cache keyed by location id for the lifetime of the current list.
    A failed or empty lookup is omitted from the cache and never raised. invalidate()
    starts a new generation; replies belonging to an older generation are dropped.
    """

    def __init__(self, geocoder: GeocodingProvider) -> None:
        self._geocoder = geocoder
        self._cache: dict[str, str] = {}
        self._generation = 0
        self.failures = 0

    @property
    def addresses(self) -> dict[str, str]:
        return dict(self._cache)

    def address_for(self, location_id: str, placeholder: str = "") -> str:
        return self._cache.get(location_id) or placeholder

    def invalidate(self) -> None:
        self._cache = {}
        self._generation += 1

    async def _resolve(self, location: SavedLocation) -> Optional[str]:
        try:
            components = await self._geocoder.reverse_geocode(location.latitude, location.longitude)
            address = format_address(components)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failures += 1
            LOG.warning("Address lookup failed for location %s: %s", location.id, exc)
            return None
        if not address:
            LOG.info("No address found for location %s", location.id)
            return None
        return address

    async def enrich(self, locations: Sequence[SavedLocation], *, replace: bool = True) -> dict[str, str]:
        """
        Look up addresses for locations concurrently and return id -> address for the ones found.

        replace=True treats locations as a freshly fetched list and rebuilds the whole cache;
        replace=False merges into the current cache.
        """
        if replace:
            self.invalidate()
        generation = self._generation
        results = await asyncio.gather(*(self._resolve(loc) for loc in locations))
        found = {loc.id: address for loc, address in zip(locations, results) if address}
        if generation != self._generation:
            LOG.debug("Discarding %d addresses from an invalidated list", len(found))
            return found
        self._cache.update(found)
        return found
