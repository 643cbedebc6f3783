"""Saved location repository: session-level list, get, insert, update, delete and the async remote facade."""
import asyncio
import logging
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from location_core.errors import RecordNotFound, RepositoryError
from location_core.records import SavedLocation, SavedLocationDraft
from models.saved_location import SavedLocationRow

LOG = logging.getLogger(__name__)

# Document field -> column, for fields a patch may change.
_PATCHABLE = {"name": "name", "isDefault": "is_default"}


def list_locations_for_owner(session: Session, owner_id: str) -> list[SavedLocationRow]:
    """Return an owner's locations ordered by creation (id breaks ties)."""
    result = session.execute(
        select(SavedLocationRow)
        .where(SavedLocationRow.user_id == owner_id)
        .order_by(SavedLocationRow.created_at, SavedLocationRow.id)
    )
    return list(result.scalars().all())


def get_saved_location(session: Session, location_id: str) -> Optional[SavedLocationRow]:
    """Return a location by id or None."""
    return session.get(SavedLocationRow, location_id)


def insert_saved_location(session: Session, draft: SavedLocationDraft, location_id: str | None = None) -> SavedLocationRow:
    """Insert a draft, commit, and return the row. Id is generated if not provided."""
    row = SavedLocationRow(
        user_id=draft.owner_id,
        name=draft.name,
        latitude=draft.latitude,
        longitude=draft.longitude,
        is_default=draft.is_default,
        created_at=draft.created_at,
    )
    if location_id is not None:
        row.id = location_id
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def update_saved_location(session: Session, location_id: str, patch: dict[str, Any]) -> Optional[SavedLocationRow]:
    """Apply a document patch (name, isDefault) and commit. Returns updated row or None if not found."""
    unknown = set(patch) - set(_PATCHABLE)
    if unknown:
        raise ValueError(f"fields not updatable: {sorted(unknown)}")
    row = get_saved_location(session, location_id)
    if row is None:
        return None
    for field, column in _PATCHABLE.items():
        if field in patch:
            setattr(row, column, patch[field])
    session.commit()
    session.refresh(row)
    return row


def delete_saved_location(session: Session, location_id: str) -> bool:
    """Delete a location by id. Returns True if deleted, False if not found."""
    row = get_saved_location(session, location_id)
    if row is None:
        return False
    session.delete(row)
    session.commit()
    return True


class LocationRepository:
    """
    Async access to the user_locations collection.

    Every call is one remote operation: it runs in a worker thread with a fresh session
    from session_factory and commits on its own. Store failures surface as RepositoryError;
    nothing is retried.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    async def _call(self, op: str, fn: Callable[[Session], Any]) -> Any:
        def run() -> Any:
            session = self._session_factory()
            try:
                return fn(session)
            except SQLAlchemyError:
                session.rollback()
                raise
            finally:
                session.close()

        try:
            return await asyncio.to_thread(run)
        except SQLAlchemyError as exc:
            LOG.error("user_locations %s failed: %s", op, exc)
            raise RepositoryError(f"{op} failed: {exc}") from exc

    async def fetch_all(self, owner_id: str) -> list[SavedLocation]:
        """Owner's locations ordered by creation. Malformed documents raise MalformedRecord."""
        rows = await self._call(
            "fetch_all",
            lambda s: [(row.id, row.to_document()) for row in list_locations_for_owner(s, owner_id)],
        )
        return [SavedLocation.from_document(doc_id, doc) for doc_id, doc in rows]

    async def create(self, draft: SavedLocationDraft) -> str:
        """Persist a draft and return the id assigned by the store."""
        return await self._call("create", lambda s: insert_saved_location(s, draft).id)

    async def update(self, location_id: str, patch: dict[str, Any]) -> None:
        """Apply a partial update (name, isDefault)."""
        found = await self._call("update", lambda s: update_saved_location(s, location_id, patch) is not None)
        if not found:
            raise RecordNotFound(location_id)

    async def delete(self, location_id: str) -> None:
        if not await self._call("delete", lambda s: delete_saved_location(s, location_id)):
            raise RecordNotFound(location_id)
