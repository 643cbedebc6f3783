"""Unit tests: location_core.session (screen session state machine)."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from location_core.enrichment import AddressEnrichmentService
from location_core.errors import (
    CapacityExceeded,
    DefaultSwapIncomplete,
    InvalidSessionState,
    PermissionDenied,
    PositionUnavailable,
    RecordNotFound,
    RepositoryError,
    SessionClosed,
    ValidationError,
)
from location_core.invariants import DefaultInvariantManager, RepairPolicy
from location_core.providers import AddressComponents, Position, ReportedPositionProvider
from location_core.session import ListState, LocationSessionController, ModalState, PositionState

pytestmark = pytest.mark.unit

OWNER = "user-u"


def _controller(fake_repo, fake_geocoder, *, geo=None, language="en", manager=None) -> LocationSessionController:
    return LocationSessionController(
        OWNER,
        geo or ReportedPositionProvider(True, 24.70, 46.60),
        manager or DefaultInvariantManager(fake_repo),
        AddressEnrichmentService(fake_geocoder),
        language=language,
    )


@pytest.fixture
async def session(fake_repo, fake_geocoder):
    """Started session with a position fix and an empty list; closed on teardown."""
    controller = _controller(fake_repo, fake_geocoder)
    await controller.start()
    yield controller
    await controller.close()


class TestStart:
    """start(): concurrent position fix and list load."""

    async def test_position_and_list_ready(self, fake_repo, fake_geocoder):
        """Both branches succeed: position and list ready, saving enabled."""
        fake_repo.seed(OWNER, "Home", is_default=True)
        controller = _controller(fake_repo, fake_geocoder)
        await controller.start()
        assert controller.position_state is PositionState.ready
        assert controller.list_state is ListState.ready
        assert controller.position.latitude == 24.70
        assert [loc.name for loc in controller.locations] == ["Home"]
        assert controller.selected_location.name == "Home"
        assert controller.can_save is True
        await controller.close()

    async def test_position_and_list_start_concurrently(self, fake_repo, fake_geocoder):
        """The list fetch starts even while the position fix is still pending."""
        fix = asyncio.Event()
        geo = AsyncMock()
        geo.request_permission.return_value = "granted"

        async def slow_fix():
            await fix.wait()
            raise PositionUnavailable("no satellites")

        geo.get_current_position.side_effect = slow_fix
        controller = _controller(fake_repo, fake_geocoder, geo=geo)
        task = asyncio.create_task(controller.start())
        await asyncio.sleep(0.01)
        assert controller.list_state is ListState.ready
        assert controller.position_state is PositionState.acquiring
        fix.set()
        await task
        assert controller.position_state is PositionState.error
        await controller.close()

    async def test_permission_denied_recorded(self, fake_repo, fake_geocoder):
        """Denied permission is recorded; the list still loads and saving stays disabled."""
        controller = _controller(fake_repo, fake_geocoder, geo=ReportedPositionProvider(False))
        await controller.start()
        assert controller.position_state is PositionState.error
        assert controller.position_error == PermissionDenied.code
        assert controller.list_state is ListState.ready
        assert controller.can_save is False
        with pytest.raises(PositionUnavailable):
            controller.open_name_modal()
        await controller.close()

    async def test_retry_position_raises_and_recovers(self, fake_repo, fake_geocoder):
        """acquire_position can be retried after a denial."""
        geo = AsyncMock()
        geo.request_permission.side_effect = ["denied", "granted"]
        geo.get_current_position.return_value = Position(1.0, 2.0)
        controller = _controller(fake_repo, fake_geocoder, geo=geo)
        await controller.start()
        assert controller.position_error == PermissionDenied.code
        position = await controller.acquire_position()
        assert position.latitude == 1.0
        assert controller.position_state is PositionState.ready
        await controller.close()

    async def test_unexpected_position_failure_is_position_unavailable(self, fake_repo, fake_geocoder):
        """Provider errors outside the taxonomy surface as PositionUnavailable."""
        geo = AsyncMock()
        geo.request_permission.return_value = "granted"
        geo.get_current_position.side_effect = OSError("gps off")
        controller = _controller(fake_repo, fake_geocoder, geo=geo)
        with pytest.raises(PositionUnavailable):
            await controller.acquire_position()
        assert controller.position_error == PositionUnavailable.code

    async def test_list_failure_recorded(self, fake_repo, fake_geocoder):
        """A failed fetch puts the list in error; refresh recovers it."""
        fake_repo.fail("fetch_all")
        controller = _controller(fake_repo, fake_geocoder)
        await controller.start()
        assert controller.list_state is ListState.error
        assert controller.list_error == RepositoryError.code
        assert controller.position_state is PositionState.ready
        assert controller.can_save is False
        await controller.refresh()
        assert controller.list_state is ListState.ready
        await controller.close()

    async def test_repaired_on_load(self, fake_repo, fake_geocoder):
        """A list without a default is repaired on load; no selection prompt."""
        home = fake_repo.seed(OWNER, "Home", age_minutes=1)
        fake_repo.seed(OWNER, "Work", age_minutes=2)
        controller = _controller(fake_repo, fake_geocoder)
        await controller.start()
        assert controller.selected_location.id == home
        assert controller.needs_default_selection is False
        await controller.close()

    async def test_reoffer_asks_for_default(self, fake_repo, fake_geocoder):
        """Under reoffer the session asks for a default until one is set."""
        fake_repo.seed(OWNER, "Home")
        manager = DefaultInvariantManager(fake_repo, repair_policy=RepairPolicy.reoffer)
        controller = _controller(fake_repo, fake_geocoder, manager=manager)
        await controller.start()
        assert controller.needs_default_selection is True
        assert controller.selected_location is None
        await controller.set_default(controller.locations[0].id)
        assert controller.needs_default_selection is False
        await controller.close()


class TestEnrichmentInSession:
    """Background address fill owned by the session."""

    async def test_addresses_fill_in_background(self, fake_repo, fake_geocoder):
        """ListReady is observable before addresses resolve; placeholder until then."""
        fake_repo.seed(OWNER, "Home", is_default=True, lat=24.70, lng=46.60)
        gate = asyncio.Event()
        fake_geocoder.gate = gate
        controller = _controller(fake_repo, fake_geocoder)
        await controller.start()
        view = controller.snapshot().locations[0]
        assert controller.list_state is ListState.ready
        assert view.address == "Loading address..."
        assert view.address_resolved is False
        gate.set()
        await controller.wait_for_enrichment()
        view = controller.snapshot().locations[0]
        assert view.address == "Street 24.70, Riyadh"
        assert view.address_resolved is True
        await controller.close()

    async def test_one_failed_lookup_keeps_placeholder(self, fake_repo, fake_geocoder):
        """An empty lookup keeps the localized placeholder; the other address resolves."""
        fake_repo.seed(OWNER, "Home", is_default=True, lat=24.70, lng=46.60)
        fake_repo.seed(OWNER, "Work", lat=24.75, lng=46.65, age_minutes=1)
        fake_geocoder.results[(24.70, 46.60)] = None
        controller = _controller(fake_repo, fake_geocoder, language="ar")
        await controller.start()
        await controller.wait_for_enrichment()
        home, work = controller.snapshot().locations
        assert home.address == "جاري تحميل العنوان..."
        assert work.address == "Street 24.75, Riyadh"
        await controller.close()

    async def test_close_cancels_pending_lookups(self, fake_repo, fake_geocoder):
        """close() cancels in-flight lookups and later actions raise SessionClosed."""
        fake_repo.seed(OWNER, "Home", is_default=True)
        fake_geocoder.gate = asyncio.Event()
        controller = _controller(fake_repo, fake_geocoder)
        await controller.start()
        await asyncio.sleep(0)
        await controller.close()
        assert controller.closed
        fake_geocoder.gate.set()
        await asyncio.sleep(0)
        assert controller.snapshot().locations == []
        with pytest.raises(SessionClosed):
            await controller.refresh()

    async def test_created_location_is_enriched(self, session, fake_geocoder):
        """A newly saved location gets its address without a full reload."""
        session.open_name_modal()
        created = await session.submit_name("Home")
        await session.wait_for_enrichment()
        assert session.snapshot().locations[0].id == created.id
        assert session.snapshot().locations[0].address_resolved is True


class TestNamingFlow:
    """Name modal: open, submit, cancel."""

    async def test_save_first_location(self, session, fake_repo):
        """Submitting a name saves the current position as the default."""
        session.open_name_modal()
        assert session.modal_state is ModalState.open
        created = await session.submit_name("  Home ")
        assert created.name == "Home"
        assert created.is_default is True
        assert (created.latitude, created.longitude) == (24.70, 46.60)
        assert session.modal_state is ModalState.closed
        assert session.selected_location.id == created.id
        assert fake_repo.count(OWNER) == 1

    @pytest.mark.parametrize("name", ["", "   "])
    async def test_blank_name_rejected_locally(self, session, fake_repo, name):
        """Blank names raise ValidationError, keep the modal open and make no create call."""
        session.open_name_modal()
        with pytest.raises(ValidationError):
            await session.submit_name(name)
        assert session.modal_state is ModalState.open
        assert fake_repo.counts.get("create", 0) == 0

    async def test_repository_failure_keeps_modal_open(self, session, fake_repo):
        """A failed create returns to the open modal with the draft name kept."""
        session.open_name_modal()
        fake_repo.fail("create")
        with pytest.raises(RepositoryError):
            await session.submit_name("Home")
        assert session.modal_state is ModalState.open
        assert session.draft_name == "Home"
        assert session.locations == []

    async def test_submitting_state_during_create(self, session, fake_repo):
        """While the create is in flight the modal is submitting and cannot be cancelled."""
        release = asyncio.Event()
        create = fake_repo.create

        async def slow_create(draft):
            await release.wait()
            return await create(draft)

        fake_repo.create = slow_create
        session.open_name_modal()
        task = asyncio.create_task(session.submit_name("Home"))
        await asyncio.sleep(0)
        assert session.modal_state is ModalState.submitting
        with pytest.raises(InvalidSessionState):
            session.cancel_name_modal()
        release.set()
        await task
        assert session.modal_state is ModalState.closed

    async def test_cancel_clears_draft(self, session):
        """Cancelling closes the modal and clears the draft name."""
        session.open_name_modal()
        with pytest.raises(ValidationError):
            await session.submit_name(" ")
        session.cancel_name_modal()
        assert session.modal_state is ModalState.closed
        assert session.draft_name == ""

    async def test_submit_without_open_modal(self, session):
        """submit_name needs an open modal."""
        with pytest.raises(InvalidSessionState):
            await session.submit_name("Home")

    async def test_save_disabled_when_full(self, session, fake_repo):
        """At three locations saving is disabled and the modal will not open."""
        for name in ["Home", "Work", "Gym"]:
            session.open_name_modal()
            await session.submit_name(name)
        assert session.can_save is False
        with pytest.raises(CapacityExceeded):
            session.open_name_modal()
        assert fake_repo.count(OWNER) == 3


class TestDefaultAndDelete:
    """Default selection and two-step delete from a ready list."""

    async def _two(self, session):
        session.open_name_modal()
        home = await session.submit_name("Home")
        session.open_name_modal()
        work = await session.submit_name("Work")
        return home, work

    async def test_set_default_updates_list_without_refetch(self, session, fake_repo):
        """set_default re-renders from memory; no extra fetch."""
        home, work = await self._two(session)
        fetches = fake_repo.counts["fetch_all"]
        await session.set_default(work.id)
        assert session.selected_location.id == work.id
        assert {l.id: l.is_default for l in session.locations} == {home.id: False, work.id: True}
        assert fake_repo.counts["fetch_all"] == fetches

    async def test_overlapping_set_default_keeps_one_default(self, fake_repo, fake_geocoder):
        """Two default changes in flight at once leave exactly one default, in store and session."""
        fake_repo.seed(OWNER, "Home", is_default=True, age_minutes=0)
        work = fake_repo.seed(OWNER, "Work", age_minutes=1)
        gym = fake_repo.seed(OWNER, "Gym", age_minutes=2)
        fake_repo.yield_control = True
        controller = _controller(fake_repo, fake_geocoder)
        await controller.start()
        await asyncio.gather(controller.set_default(work), controller.set_default(gym))
        assert len(fake_repo.defaults(OWNER)) == 1
        assert [l.id for l in controller.locations if l.is_default] == fake_repo.defaults(OWNER)
        assert controller.needs_default_selection is False
        await controller.close()

    async def test_incomplete_swap_asks_for_default(self, session, fake_repo):
        """A half-done swap leaves no default and prompts for one until set."""
        _, work = await self._two(session)
        fake_repo.fail("update", 2)
        with pytest.raises(DefaultSwapIncomplete):
            await session.set_default(work.id)
        assert session.needs_default_selection is True
        assert session.selected_location is None
        await session.set_default(work.id)
        assert session.needs_default_selection is False

    async def test_delete_requires_confirmation(self, session, fake_repo):
        """request_delete only records the target; cancel drops it."""
        home, work = await self._two(session)
        session.request_delete(work.id)
        assert session.pending_delete_id == work.id
        assert fake_repo.count(OWNER) == 2
        session.cancel_delete()
        assert session.pending_delete_id is None
        with pytest.raises(InvalidSessionState):
            await session.confirm_delete()

    async def test_delete_default_leaves_no_default(self, session, fake_repo):
        """Confirmed delete of the default promotes nothing and asks for a new default."""
        home, work = await self._two(session)
        session.request_delete(home.id)
        assert await session.confirm_delete() is None
        assert [l.id for l in session.locations] == [work.id]
        assert session.selected_location is None
        assert session.needs_default_selection is True
        assert fake_repo.defaults(OWNER) == []

    async def test_delete_unknown(self, session):
        """request_delete of an unknown id raises RecordNotFound."""
        with pytest.raises(RecordNotFound):
            session.request_delete("nope")

    async def test_delete_failure_keeps_record(self, session, fake_repo):
        """A failed delete keeps the record and clears the pending target."""
        home, _ = await self._two(session)
        session.request_delete(home.id)
        fake_repo.fail("delete")
        with pytest.raises(RepositoryError):
            await session.confirm_delete()
        assert len(session.locations) == 2
        assert session.pending_delete_id is None

    async def test_actions_need_ready_list(self, fake_repo, fake_geocoder):
        """Default and save actions raise InvalidSessionState while the list is in error."""
        fake_repo.fail("fetch_all")
        controller = _controller(fake_repo, fake_geocoder)
        await controller.start()
        with pytest.raises(InvalidSessionState):
            await controller.set_default("loc-1")
        with pytest.raises(InvalidSessionState):
            controller.open_name_modal()
        await controller.close()


async def test_snapshot_marks_arabic_names(fake_repo, fake_geocoder):
    """Arabic names are flagged right-to-left and addresses follow the session language."""
    fake_repo.seed(OWNER, "المنزل", is_default=True)
    fake_geocoder.results[(24.7, 46.6)] = AddressComponents(city="الرياض")
    controller = _controller(fake_repo, fake_geocoder, language="ar")
    await controller.start()
    await controller.wait_for_enrichment()
    snap = controller.snapshot()
    assert snap.language == "ar"
    assert snap.locations[0].is_rtl is True
    assert snap.locations[0].address == "الرياض"
    assert snap.selected_location_id == snap.locations[0].id
    await controller.close()


def test_unsupported_language_falls_back_to_english(fake_repo, fake_geocoder):
    """Unknown languages fall back to English messages."""
    controller = _controller(fake_repo, fake_geocoder, language="fr")
    assert controller.language == "en"
    assert controller.message("validation_error") == "Please enter a location name"
