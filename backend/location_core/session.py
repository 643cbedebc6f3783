"""Saved-locations screen session: position fix, list, naming flow, default and delete actions."""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

from location_core.enrichment import AddressEnrichmentService
from location_core.errors import (
    CapacityExceeded,
    DefaultSwapIncomplete,
    InvalidSessionState,
    LocationStoreError,
    PermissionDenied,
    PositionUnavailable,
    RecordNotFound,
    SessionClosed,
)
from location_core.invariants import DefaultInvariantManager, default_anomaly
from location_core.messages import message_for, normalize_language
from location_core.providers import GeoProvider, PermissionStatus, Position
from location_core.records import SavedLocation, contains_arabic, normalize_name

LOG = logging.getLogger(__name__)


class PositionState(str, enum.Enum):
    idle = "idle"
    acquiring = "acquiring"
    ready = "ready"
    error = "error"


class ListState(str, enum.Enum):
    idle = "idle"
    loading = "loading"
    ready = "ready"
    error = "error"


class ModalState(str, enum.Enum):
    closed = "closed"
    open = "open"
    submitting = "submitting"


@dataclass(frozen=True)
class LocationView:
    id: str
    name: str
    latitude: float
    longitude: float
    is_default: bool
    address: str
    address_resolved: bool
    is_rtl: bool


@dataclass(frozen=True)
class SessionSnapshot:
    owner_id: str
    language: str
    position_state: PositionState
    position: Optional[Position]
    position_error: Optional[str]
    list_state: ListState
    list_error: Optional[str]
    modal_state: ModalState
    draft_name: str
    can_save: bool
    needs_default_selection: bool
    pending_delete_id: Optional[str]
    selected_location_id: Optional[str]
    locations: list[LocationView] = field(default_factory=list)


class LocationSessionController:
    """
    One owner's saved-locations session.

    start() acquires the position and loads the list concurrently. When the list is
    ready, addresses are filled in by background tasks owned by the session; close()
    cancels them. User actions go through the DefaultInvariantManager and update the
    in-memory list without refetching.
    """

    def __init__(
        self,
        owner_id: str,
        geo: GeoProvider,
        manager: DefaultInvariantManager,
        enrichment: AddressEnrichmentService,
        *,
        language: str = "en",
    ) -> None:
        self.owner_id = owner_id
        self.language = normalize_language(language)
        self._geo = geo
        self._manager = manager
        self._enrichment = enrichment
        self.position_state = PositionState.idle
        self.position: Optional[Position] = None
        self.position_error: Optional[str] = None
        self.list_state = ListState.idle
        self.list_error: Optional[str] = None
        self.modal_state = ModalState.closed
        self.draft_name = ""
        self.pending_delete_id: Optional[str] = None
        self.needs_default_selection = False
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    # -- observable state ---------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def locations(self) -> list[SavedLocation]:
        return self._manager.known(self.owner_id)

    @property
    def selected_location(self) -> Optional[SavedLocation]:
        return next((loc for loc in self.locations if loc.is_default), None)

    @property
    def can_save(self) -> bool:
        return (
            not self._closed
            and self.position_state is PositionState.ready
            and self.list_state is ListState.ready
            and len(self.locations) < self._manager.capacity
        )

    def message(self, code: str) -> str:
        return message_for(code, self.language)

    def snapshot(self) -> SessionSnapshot:
        placeholder = self.message("address_loading")
        views = [
            LocationView(
                id=loc.id,
                name=loc.name,
                latitude=loc.latitude,
                longitude=loc.longitude,
                is_default=loc.is_default,
                address=self._enrichment.address_for(loc.id, placeholder),
                address_resolved=loc.id in self._enrichment.addresses,
                is_rtl=contains_arabic(loc.name),
            )
            for loc in self.locations
        ]
        selected = self.selected_location
        return SessionSnapshot(
            owner_id=self.owner_id,
            language=self.language,
            position_state=self.position_state,
            position=self.position,
            position_error=self.position_error,
            list_state=self.list_state,
            list_error=self.list_error,
            modal_state=self.modal_state,
            draft_name=self.draft_name,
            can_save=self.can_save,
            needs_default_selection=self.needs_default_selection,
            pending_delete_id=self.pending_delete_id,
            selected_location_id=selected.id if selected else None,
            locations=views,
        )

    # -- lifecycle ----------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosed(f"session for owner {self.owner_id!r} is closed")

    def _ensure_list_ready(self) -> None:
        self._ensure_open()
        if self.list_state is not ListState.ready:
            raise InvalidSessionState(f"saved locations are {self.list_state.value}")

    async def start(self) -> None:
        """Acquire the position and load the list concurrently; failures are recorded in the state."""
        self._ensure_open()
        LOG.info("Starting location session for owner %s", self.owner_id)
        results = await asyncio.gather(self.acquire_position(), self.load_list(), return_exceptions=True)
        for result in results:
            if isinstance(result, LocationStoreError):
                LOG.info("Session start for owner %s: %s", self.owner_id, result.code)
            elif isinstance(result, BaseException):
                raise result

    async def close(self) -> None:
        """Cancel pending address lookups and end the session."""
        if self._closed:
            return
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._enrichment.invalidate()
        self._manager.forget(self.owner_id)
        LOG.info("Closed location session for owner %s", self.owner_id)

    async def wait_for_enrichment(self) -> None:
        """Wait until outstanding address lookups finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _start_enrichment(self, locations: list[SavedLocation], *, replace: bool) -> None:
        if replace:
            for task in self._tasks:
                task.cancel()
            self._tasks.clear()
            self._enrichment.invalidate()
        if not locations:
            return
        task = asyncio.create_task(self._enrichment.enrich(locations, replace=False))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # -- position and list --------------------------------------------------

    async def acquire_position(self) -> Position:
        """Ask for permission and a position fix. Raises PermissionDenied or PositionUnavailable."""
        self._ensure_open()
        self.position_state = PositionState.acquiring
        self.position_error = None
        try:
            status = await self._geo.request_permission()
            if status != PermissionStatus.granted:
                raise PermissionDenied("location permission was denied")
            position = await self._geo.get_current_position()
        except LocationStoreError as exc:
            self.position_state = PositionState.error
            self.position_error = exc.code
            raise
        except Exception as exc:
            LOG.exception("Position fix failed for owner %s", self.owner_id)
            self.position_state = PositionState.error
            self.position_error = PositionUnavailable.code
            raise PositionUnavailable(str(exc)) from exc
        self.position = position
        self.position_state = PositionState.ready
        return position

    async def load_list(self) -> list[SavedLocation]:
        """Fetch the saved list, rebuild the address cache and start filling it in the background."""
        self._ensure_open()
        self.list_state = ListState.loading
        self.list_error = None
        try:
            result = await self._manager.refresh(self.owner_id)
        except LocationStoreError as exc:
            self.list_state = ListState.error
            self.list_error = exc.code
            raise
        self.needs_default_selection = result.anomaly is not None
        self.list_state = ListState.ready
        self._start_enrichment(result.locations, replace=True)
        return result.locations

    async def refresh(self) -> list[SavedLocation]:
        return await self.load_list()

    # -- naming flow --------------------------------------------------------

    def open_name_modal(self) -> None:
        self._ensure_list_ready()
        if self.position_state is not PositionState.ready or self.position is None:
            raise PositionUnavailable("no position fix")
        if len(self.locations) >= self._manager.capacity:
            raise CapacityExceeded(self.owner_id, self._manager.capacity)
        self.modal_state = ModalState.open
        self.draft_name = ""

    def cancel_name_modal(self) -> None:
        self._ensure_open()
        if self.modal_state is ModalState.submitting:
            raise InvalidSessionState("a save is in progress")
        self.modal_state = ModalState.closed
        self.draft_name = ""

    async def submit_name(self, name: str) -> SavedLocation:
        """Save the current position under name. On failure the modal stays open."""
        self._ensure_open()
        if self.modal_state is not ModalState.open:
            raise InvalidSessionState(f"name modal is {self.modal_state.value}")
        self.draft_name = name or ""
        trimmed = normalize_name(name)
        position = self.position
        if position is None:
            raise PositionUnavailable("no position fix")
        self.modal_state = ModalState.submitting
        try:
            created = await self._manager.create_location(
                self.owner_id, trimmed, position.latitude, position.longitude
            )
        except LocationStoreError:
            self.modal_state = ModalState.open
            raise
        self.modal_state = ModalState.closed
        self.draft_name = ""
        self._start_enrichment([created], replace=False)
        return created

    # -- default and delete -------------------------------------------------

    async def set_default(self, location_id: str) -> SavedLocation:
        self._ensure_list_ready()
        try:
            updated = await self._manager.set_default(location_id)
        except DefaultSwapIncomplete:
            self.needs_default_selection = True
            raise
        self.needs_default_selection = False
        return updated

    def request_delete(self, location_id: str) -> None:
        """First step of delete: remember the target until confirmed or cancelled."""
        self._ensure_list_ready()
        if all(loc.id != location_id for loc in self.locations):
            raise RecordNotFound(location_id)
        self.pending_delete_id = location_id

    def cancel_delete(self) -> None:
        self._ensure_open()
        self.pending_delete_id = None

    async def confirm_delete(self) -> Optional[SavedLocation]:
        """Delete the pending target. Returns the location promoted to default, if any."""
        self._ensure_list_ready()
        location_id = self.pending_delete_id
        if location_id is None:
            raise InvalidSessionState("no delete pending")
        self.pending_delete_id = None
        promoted = await self._manager.delete_location(location_id)
        self.needs_default_selection = default_anomaly(self.locations) is not None
        return promoted
