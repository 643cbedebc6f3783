# Set test environment before any application or db imports.
import os

os.environ["TESTING"] = "true"
os.environ["TESTING_DATABASE_URL"] = "sqlite:///:memory:"

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from api.deps import get_geocoder
from db import SessionLocal, get_session_factory
from location_core import store
from location_core.errors import RecordNotFound, RepositoryError
from location_core.providers import AddressComponents
from location_core.records import SavedLocation
from main import app
from models import Base
from models.saved_location import SavedLocationRow  # noqa: F401 - register with Base

BASE_TIME = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)


class FakeLocationRepository:
    """In-memory user_locations with per-operation failure injection."""

    def __init__(self) -> None:
        self.docs: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.counts: dict[str, int] = {}
        self.failing: dict[str, set[int]] = {}
        self.yield_control = False
        self._seq = 0

    def fail(self, op: str, *call_numbers: int) -> None:
        """Make the given (1-based, counted from now) calls of op raise RepositoryError."""
        done = self.counts.get(op, 0)
        self.failing.setdefault(op, set()).update(done + n for n in (call_numbers or (1,)))

    def _enter(self, op: str, *args) -> None:
        self.counts[op] = self.counts.get(op, 0) + 1
        self.calls.append((op, *args))
        if self.counts[op] in self.failing.get(op, set()):
            raise RepositoryError(f"{op} unavailable")

    async def _pause(self) -> None:
        """Suspend once per call, like a remote store does."""
        if self.yield_control:
            await asyncio.sleep(0)

    def _next_id(self) -> str:
        self._seq += 1
        return f"loc-{self._seq}"

    def seed(self, owner_id: str, name: str, *, is_default: bool = False, lat: float = 24.7,
             lng: float = 46.6, age_minutes: int = 0) -> str:
        """Insert a document directly, bypassing any rules."""
        doc_id = self._next_id()
        self.docs[doc_id] = {
            "userId": owner_id,
            "name": name,
            "latitude": lat,
            "longitude": lng,
            "isDefault": is_default,
            "createdAt": BASE_TIME + timedelta(minutes=age_minutes),
        }
        return doc_id

    def defaults(self, owner_id: str) -> list[str]:
        return [i for i, d in self.docs.items() if d["userId"] == owner_id and d["isDefault"]]

    def count(self, owner_id: str) -> int:
        return sum(1 for d in self.docs.values() if d["userId"] == owner_id)

    async def fetch_all(self, owner_id: str) -> list[SavedLocation]:
        await self._pause()
        self._enter("fetch_all", owner_id)
        owned = [(i, d) for i, d in self.docs.items() if d["userId"] == owner_id]
        owned.sort(key=lambda item: (item[1]["createdAt"], item[0]))
        return [SavedLocation.from_document(i, d) for i, d in owned]

    async def create(self, draft) -> str:
        await self._pause()
        self._enter("create", draft.name)
        doc_id = self._next_id()
        self.docs[doc_id] = draft.to_document()
        return doc_id

    async def update(self, location_id: str, patch: dict) -> None:
        await self._pause()
        self._enter("update", location_id, dict(patch))
        if location_id not in self.docs:
            raise RecordNotFound(location_id)
        self.docs[location_id].update(patch)

    async def delete(self, location_id: str) -> None:
        await self._pause()
        self._enter("delete", location_id)
        if self.docs.pop(location_id, None) is None:
            raise RecordNotFound(location_id)


class FakeGeocoder:
    """Reverse geocoder keyed by (lat, lng). Values: AddressComponents, None, or an exception to raise."""

    def __init__(self, results: dict | None = None, *, gate: asyncio.Event | None = None) -> None:
        self.results = results or {}
        self.gate = gate
        self.calls: list[tuple[float, float]] = []

    async def reverse_geocode(self, latitude: float, longitude: float):
        self.calls.append((latitude, longitude))
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.get(
            (latitude, longitude),
            AddressComponents(street=f"Street {latitude:.2f}", city="Riyadh"),
        )
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fake_repo():
    return FakeLocationRepository()


@pytest.fixture
def fake_geocoder():
    return FakeGeocoder()


def _get_engine():
    """Engine used by the app (in-memory when TESTING=true)."""
    return SessionLocal.kw["bind"]


@pytest.fixture(scope="session")
def engine():
    """One in-memory engine per test run; create tables once."""
    eng = _get_engine()
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture
def connection(engine):
    """Connection whose outer transaction is rolled back after each test."""
    conn = engine.connect()
    trans = conn.begin()
    try:
        yield conn
    finally:
        if trans.is_active:
            trans.rollback()
        conn.close()


@pytest.fixture
def db_session(connection):
    """Function-scoped session inside the test transaction."""
    session = Session(bind=connection)
    session.begin_nested()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory(connection):
    """Factory of sessions joined to the test transaction (commits never reach the database)."""
    return lambda: Session(bind=connection)


@pytest.fixture
def client(session_factory, fake_geocoder):
    """API test client; overrides DB and geocoder dependencies, cleared on teardown."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_geocoder] = lambda: fake_geocoder
    store.clear()
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
        store.clear()
