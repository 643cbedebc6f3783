"""Saved-location session API routes."""
import logging
from typing import Callable, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.deps import build_manager, get_geocoder
from db import get_session_factory
from location_core import store
from location_core.enrichment import AddressEnrichmentService
from location_core.errors import (
    CapacityExceeded,
    DefaultSwapIncomplete,
    InvalidSessionState,
    LocationStoreError,
    PermissionDenied,
    PositionUnavailable,
    RecordNotFound,
    RepositoryError,
    SessionClosed,
    ValidationError,
)
from location_core.messages import message_for
from location_core.providers import GeocodingProvider, ReportedPositionProvider
from location_core.records import contains_arabic
from location_core.session import LocationSessionController
from repositories.location_repository import LocationRepository
from schemas.locations import (
    ConfirmationPrompt,
    DefaultLocationUpdate,
    LocationNameSubmit,
    PositionResponse,
    SavedLocationResponse,
    SessionResponse,
    SessionStart,
)

LOG = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

# Most specific first.
_STATUS_BY_ERROR: list[tuple[type[LocationStoreError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (CapacityExceeded, status.HTTP_409_CONFLICT),
    (PositionUnavailable, status.HTTP_409_CONFLICT),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (InvalidSessionState, status.HTTP_409_CONFLICT),
    (SessionClosed, status.HTTP_410_GONE),
    (RecordNotFound, status.HTTP_404_NOT_FOUND),
    (RepositoryError, status.HTTP_502_BAD_GATEWAY),
]

# Start-up position failures read as "could not get your location".
_POSITION_MESSAGE = {"permission_denied": "permission_denied", "position_unavailable": "position_error"}


def _raise_http(
    exc: LocationStoreError,
    language: str,
    failure_code: Optional[str] = None,
    *,
    message_code: Optional[str] = None,
) -> NoReturn:
    """
    Translate a core error into an HTTPException with a localized {code, message} detail.
    failure_code names the message for a plain RepositoryError; message_code overrides it for any error.
    """
    code = exc.code
    if failure_code and type(exc) is RepositoryError:
        code = failure_code
    if message_code:
        code = message_code
    http_status = next(
        (s for cls, s in _STATUS_BY_ERROR if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    raise HTTPException(
        status_code=http_status,
        detail={"code": exc.code, "message": message_for(code, language)},
    ) from exc


def _get_session(owner_id: str) -> LocationSessionController:
    session = store.get(owner_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


def _session_response(session: LocationSessionController, message: Optional[str] = None) -> SessionResponse:
    snap = session.snapshot()
    if message is None and snap.needs_default_selection:
        message = session.message("choose_default")
    return SessionResponse(
        owner_id=snap.owner_id,
        language=snap.language,
        position_state=snap.position_state.value,
        position=(
            PositionResponse(latitude=snap.position.latitude, longitude=snap.position.longitude)
            if snap.position else None
        ),
        position_error=snap.position_error,
        list_state=snap.list_state.value,
        list_error=snap.list_error,
        modal_state=snap.modal_state.value,
        draft_name=snap.draft_name,
        can_save=snap.can_save,
        needs_default_selection=snap.needs_default_selection,
        pending_delete_id=snap.pending_delete_id,
        selected_location_id=snap.selected_location_id,
        locations=[
            SavedLocationResponse(
                id=v.id,
                name=v.name,
                latitude=v.latitude,
                longitude=v.longitude,
                is_default=v.is_default,
                address=v.address,
                address_resolved=v.address_resolved,
                is_rtl=v.is_rtl,
            )
            for v in snap.locations
        ],
        message=message,
    )


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def start_session(
    body: SessionStart,
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    geocoder: GeocodingProvider = Depends(get_geocoder),
) -> SessionResponse:
    """Start (or restart) an owner's session: position fix and list load run concurrently."""
    controller = LocationSessionController(
        body.owner_id,
        ReportedPositionProvider(body.permission_granted, body.latitude, body.longitude),
        build_manager(LocationRepository(session_factory)),
        AddressEnrichmentService(geocoder),
        language=body.language,
    )
    await store.replace(controller)
    await controller.start()
    message = None
    if controller.position_error:
        message = controller.message(_POSITION_MESSAGE.get(controller.position_error, "position_error"))
    elif controller.list_error:
        message = controller.message(controller.list_error)
    return _session_response(controller, message)


@router.get("/{owner_id}", response_model=SessionResponse)
async def get_session(owner_id: str) -> SessionResponse:
    """Current session state; addresses show a placeholder until resolved."""
    return _session_response(_get_session(owner_id))


@router.delete("/{owner_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(owner_id: str) -> None:
    """Close a session and cancel its pending address lookups."""
    if not await store.remove(owner_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")


@router.post("/{owner_id}/refresh", response_model=SessionResponse)
async def refresh_session(owner_id: str) -> SessionResponse:
    """Refetch the saved list and rebuild the address cache."""
    session = _get_session(owner_id)
    try:
        await session.refresh()
    except LocationStoreError as exc:
        _raise_http(exc, session.language)
    return _session_response(session)


@router.post("/{owner_id}/position", response_model=SessionResponse)
async def retry_position(owner_id: str) -> SessionResponse:
    """Ask for permission and a fix again (after a denial or failure)."""
    session = _get_session(owner_id)
    try:
        await session.acquire_position()
    except LocationStoreError as exc:
        _raise_http(exc, session.language, message_code=_POSITION_MESSAGE.get(exc.code))
    return _session_response(session)


@router.post("/{owner_id}/name-modal", response_model=SessionResponse)
async def open_name_modal(owner_id: str) -> SessionResponse:
    """Open the naming step for saving the current position."""
    session = _get_session(owner_id)
    try:
        session.open_name_modal()
    except LocationStoreError as exc:
        _raise_http(exc, session.language)
    return _session_response(session)


@router.delete("/{owner_id}/name-modal", response_model=SessionResponse)
async def cancel_name_modal(owner_id: str) -> SessionResponse:
    session = _get_session(owner_id)
    try:
        session.cancel_name_modal()
    except LocationStoreError as exc:
        _raise_http(exc, session.language)
    return _session_response(session)


@router.post(
    "/{owner_id}/name-modal/submit",
    response_model=SavedLocationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_location_name(owner_id: str, body: LocationNameSubmit) -> SavedLocationResponse:
    """Save the current position under the given name."""
    session = _get_session(owner_id)
    try:
        created = await session.submit_name(body.name)
    except LocationStoreError as exc:
        _raise_http(exc, session.language, "save_failed")
    return SavedLocationResponse(
        id=created.id,
        name=created.name,
        latitude=created.latitude,
        longitude=created.longitude,
        is_default=created.is_default,
        address=session.message("address_loading"),
        is_rtl=contains_arabic(created.name),
    )


@router.put("/{owner_id}/default", response_model=SessionResponse)
async def set_default_location(owner_id: str, body: DefaultLocationUpdate) -> SessionResponse:
    """Make a saved location the owner's default."""
    session = _get_session(owner_id)
    try:
        await session.set_default(body.location_id)
    except DefaultSwapIncomplete as exc:
        LOG.warning("Owner %s left without a default: %s", owner_id, exc)
        _raise_http(exc, session.language)
    except LocationStoreError as exc:
        _raise_http(exc, session.language, "default_failed")
    return _session_response(session, session.message("default_success"))


@router.post(
    "/{owner_id}/locations/{location_id}/delete",
    response_model=ConfirmationPrompt,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_delete(owner_id: str, location_id: str) -> ConfirmationPrompt:
    """First step of deleting: returns the confirmation prompt."""
    session = _get_session(owner_id)
    try:
        session.request_delete(location_id)
    except LocationStoreError as exc:
        _raise_http(exc, session.language)
    return ConfirmationPrompt(location_id=location_id, message=session.message("delete_confirm"))


@router.post("/{owner_id}/pending-delete/confirm", response_model=SessionResponse)
async def confirm_delete(owner_id: str) -> SessionResponse:
    session = _get_session(owner_id)
    try:
        await session.confirm_delete()
    except LocationStoreError as exc:
        _raise_http(exc, session.language, "delete_failed")
    return _session_response(session, session.message("delete_success"))


@router.delete("/{owner_id}/pending-delete", response_model=SessionResponse)
async def cancel_delete(owner_id: str) -> SessionResponse:
    session = _get_session(owner_id)
    try:
        session.cancel_delete()
    except LocationStoreError as exc:
        _raise_http(exc, session.language)
    return _session_response(session)
