"""
Capacity and single-default rules around raw repository calls.

The manager keeps the last list it fetched per owner. Capacity is checked against that
list, so callers refresh before creating. Default swaps are two independent writes; if
the second fails the owner is left without a default and DefaultSwapIncomplete is raised.
The next refresh detects that state and applies the repair policy.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from location_core.errors import (
    CapacityExceeded,
    DefaultSwapIncomplete,
    RecordNotFound,
    RepositoryError,
)
from location_core.records import SavedLocation, SavedLocationDraft, new_draft

LOG = logging.getLogger(__name__)

DEFAULT_CAPACITY = 3


class Repository(Protocol):
    async def fetch_all(self, owner_id: str) -> list[SavedLocation]: ...

    async def create(self, draft: SavedLocationDraft) -> str: ...

    async def update(self, location_id: str, patch: dict[str, Any]) -> None: ...

    async def delete(self, location_id: str) -> None: ...


class RepairPolicy(str, enum.Enum):
    """What refresh does when the default flags are inconsistent."""

    promote_earliest = "promote_earliest"
    reoffer = "reoffer"


class DeletePolicy(str, enum.Enum):
    """What happens to the default flag when the default location is deleted."""

    keep = "keep"
    promote_earliest = "promote_earliest"


MISSING_DEFAULT = "missing_default"
MULTIPLE_DEFAULTS = "multiple_defaults"


@dataclass(frozen=True)
class FetchResult:
    locations: list[SavedLocation]
    anomaly: Optional[str] = None


def default_anomaly(locations: Sequence[SavedLocation]) -> Optional[str]:
    """MISSING_DEFAULT, MULTIPLE_DEFAULTS, or None when the default flags are consistent."""
    defaults = sum(1 for loc in locations if loc.is_default)
    if locations and defaults == 0:
        return MISSING_DEFAULT
    if defaults > 1:
        return MULTIPLE_DEFAULTS
    return None


def _by_age(locations: Sequence[SavedLocation]) -> list[SavedLocation]:
    return sorted(locations, key=lambda loc: (loc.created_at, loc.id))


class DefaultInvariantManager:
    """
    Guarantees the capacity limit and the single-default rule for each owner's saved locations.

    Operations for one owner run one at a time: each holds the owner's lock across all of
    its repository writes.
    """

    def __init__(
        self,
        repository: Repository,
        *,
        capacity: int = DEFAULT_CAPACITY,
        repair_policy: RepairPolicy = RepairPolicy.promote_earliest,
        delete_policy: DeletePolicy = DeletePolicy.keep,
    ) -> None:
        self._repository = repository
        self.capacity = capacity
        self.repair_policy = RepairPolicy(repair_policy)
        self.delete_policy = DeletePolicy(delete_policy)
        self._known: dict[str, list[SavedLocation]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def known(self, owner_id: str) -> list[SavedLocation]:
        """Last known list for an owner (empty if never fetched)."""
        return list(self._known.get(owner_id, []))

    def _lock(self, owner_id: str) -> asyncio.Lock:
        lock = self._locks.get(owner_id)
        if lock is None:
            lock = self._locks[owner_id] = asyncio.Lock()
        return lock

    def _owner_of(self, location_id: str) -> tuple[str, SavedLocation]:
        for owner_id, locations in self._known.items():
            for loc in locations:
                if loc.id == location_id:
                    return owner_id, loc
        raise RecordNotFound(location_id)

    def _replace(self, owner_id: str, updated: SavedLocation) -> None:
        self._known[owner_id] = [updated if loc.id == updated.id else loc for loc in self._known.get(owner_id, [])]

    async def refresh(self, owner_id: str) -> FetchResult:
        """Fetch the owner's list, then detect and (per repair policy) fix inconsistent default flags."""
        async with self._lock(owner_id):
            locations = await self._repository.fetch_all(owner_id)
            self._known[owner_id] = list(locations)
            anomaly = default_anomaly(locations)
            if anomaly is None:
                return FetchResult(self.known(owner_id))
            LOG.warning(
                "Owner %s has inconsistent defaults (%s) across %d locations", owner_id, anomaly, len(locations)
            )
            if self.repair_policy is RepairPolicy.reoffer:
                return FetchResult(self.known(owner_id), anomaly)
            try:
                await self._repair(owner_id, anomaly)
            except RepositoryError as exc:
                LOG.warning("Default repair for owner %s failed: %s", owner_id, exc)
                return FetchResult(self.known(owner_id), anomaly)
            return FetchResult(self.known(owner_id))

    async def _repair(self, owner_id: str, anomaly: str) -> None:
        ordered = _by_age(self._known[owner_id])
        if anomaly == MISSING_DEFAULT:
            keeper = ordered[0]
            await self._repository.update(keeper.id, {"isDefault": True})
            self._replace(owner_id, keeper.with_default(True))
            LOG.info("Promoted earliest location %s to default for owner %s", keeper.id, owner_id)
            return
        defaults = [loc for loc in ordered if loc.is_default]
        for extra in defaults[1:]:
            await self._repository.update(extra.id, {"isDefault": False})
            self._replace(owner_id, extra.with_default(False))
        LOG.info("Kept %s as the only default for owner %s", defaults[0].id, owner_id)

    async def create_location(self, owner_id: str, name: str, latitude: float, longitude: float) -> SavedLocation:
        """
        Create a location for owner_id. The first location becomes the default.

        Raises ValidationError for an empty name and CapacityExceeded when the last
        known list is full; neither makes a repository call.
        """
        async with self._lock(owner_id):
            current = self._known.get(owner_id, [])
            if len(current) >= self.capacity:
                raise CapacityExceeded(owner_id, self.capacity)
            draft = new_draft(owner_id, name, latitude, longitude, is_default=not current)
            location_id = await self._repository.create(draft)
            created = SavedLocation.from_draft(location_id, draft)
            self._known[owner_id] = [*self._known.get(owner_id, []), created]
            LOG.info("Created location %s for owner %s (default=%s)", location_id, owner_id, created.is_default)
            return created

    async def set_default(self, target_id: str) -> SavedLocation:
        """Make target_id the only default: clear the current default, then set the target."""
        owner_id, _ = self._owner_of(target_id)
        async with self._lock(owner_id):
            owner_id, target = self._owner_of(target_id)
            previous = [loc for loc in self._known[owner_id] if loc.is_default and loc.id != target_id]
            if target.is_default and not previous:
                return target

            # Step 1: a failure here leaves the store untouched.
            for prev in previous:
                await self._repository.update(prev.id, {"isDefault": False})
                self._replace(owner_id, prev.with_default(False))

            # Step 2
            try:
                await self._repository.update(target_id, {"isDefault": True})
            except RepositoryError as exc:
                if not previous:
                    raise
                LOG.warning(
                    "Default swap for owner %s incomplete: cleared %s, failed to set %s: %s",
                    owner_id, previous[0].id, target_id, exc,
                )
                raise DefaultSwapIncomplete(previous[0].id, target_id) from exc

            updated = target.with_default(True)
            self._replace(owner_id, updated)
            return updated

    async def delete_location(self, location_id: str) -> Optional[SavedLocation]:
        """
        Delete a location. Returns the record promoted to default, if the delete policy promoted one.

        With DeletePolicy.keep, deleting the default leaves the owner without a default.
        """
        owner_id, _ = self._owner_of(location_id)
        async with self._lock(owner_id):
            owner_id, doomed = self._owner_of(location_id)
            await self._repository.delete(location_id)
            remaining = [loc for loc in self._known.get(owner_id, []) if loc.id != location_id]
            self._known[owner_id] = remaining
            LOG.info("Deleted location %s for owner %s", location_id, owner_id)

            if not doomed.is_default or not remaining or self.delete_policy is DeletePolicy.keep:
                return None
            heir = _by_age(remaining)[0]
            try:
                await self._repository.update(heir.id, {"isDefault": True})
            except RepositoryError as exc:
                LOG.warning("Could not promote %s after deleting default %s: %s", heir.id, location_id, exc)
                return None
            promoted = heir.with_default(True)
            self._replace(owner_id, promoted)
            return promoted

    def forget(self, owner_id: str) -> None:
        """Drop the cached list for an owner."""
        self._known.pop(owner_id, None)
