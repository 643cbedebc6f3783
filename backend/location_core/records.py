"""Saved location records and the validated constructor used at the repository boundary."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from location_core.errors import MalformedRecord, ValidationError

_ARABIC = re.compile(r"[\u0600-\u06FF]")


def normalize_name(name: str | None) -> str:
    """Trim a user-supplied name. Empty or whitespace-only names are rejected."""
    trimmed = (name or "").strip()
    if not trimmed:
        raise ValidationError("location name must not be empty")
    return trimmed


def contains_arabic(text: str) -> bool:
    """True if text contains Arabic script (names rendered right-to-left)."""
    return bool(_ARABIC.search(text or ""))


def _utc(ts: datetime) -> datetime:
    # SQLite drops tzinfo; stored values are always UTC.
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)


def _coordinate(doc: Mapping[str, Any], key: str, bound: float) -> float:
    v = doc.get(key)
    # bool is an int subclass; a flag is never a coordinate.
    if v is None or isinstance(v, bool) or not isinstance(v, (int, float)):
        raise MalformedRecord(f"{key} must be a number, got {v!r}")
    f = float(v)
    if math.isnan(f) or not -bound <= f <= bound:
        raise MalformedRecord(f"{key} out of range: {v!r}")
    return f


def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return _utc(value)
    if isinstance(value, str):
        try:
            return _utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            pass
    raise MalformedRecord(f"createdAt must be a timestamp, got {value!r}")


@dataclass(frozen=True)
class SavedLocationDraft:
    """A saved location before the store assigns its id."""

    owner_id: str
    name: str
    latitude: float
    longitude: float
    is_default: bool
    created_at: datetime

    def to_document(self) -> dict[str, Any]:
        """Document fields as persisted in user_locations."""
        return {
            "userId": self.owner_id,
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "isDefault": self.is_default,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class SavedLocation:
    """A persisted saved location. Address is not part of the record."""

    id: str
    owner_id: str
    name: str
    latitude: float
    longitude: float
    is_default: bool
    created_at: datetime

    @classmethod
    def from_draft(cls, location_id: str, draft: SavedLocationDraft) -> SavedLocation:
        return cls(
            id=location_id,
            owner_id=draft.owner_id,
            name=draft.name,
            latitude=draft.latitude,
            longitude=draft.longitude,
            is_default=draft.is_default,
            created_at=draft.created_at,
        )

    @classmethod
    def from_document(cls, doc_id: str, doc: Mapping[str, Any]) -> SavedLocation:
        """
        Build a record from a stored document, rejecting malformed shapes.

        Raises MalformedRecord for a missing owner or name, missing/non-numeric/out-of-range
        coordinates, a non-boolean isDefault, or a createdAt that is not a timestamp.
        """
        if not doc_id:
            raise MalformedRecord("document id is required")
        owner_id = doc.get("userId")
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise MalformedRecord(f"document {doc_id!r}: userId is required")
        name = doc.get("name")
        if not isinstance(name, str) or not name.strip():
            raise MalformedRecord(f"document {doc_id!r}: name is required")
        is_default = doc.get("isDefault")
        if not isinstance(is_default, bool):
            raise MalformedRecord(f"document {doc_id!r}: isDefault must be a boolean, got {is_default!r}")
        try:
            latitude = _coordinate(doc, "latitude", 90.0)
            longitude = _coordinate(doc, "longitude", 180.0)
            created_at = _timestamp(doc.get("createdAt"))
        except MalformedRecord as exc:
            raise MalformedRecord(f"document {doc_id!r}: {exc}") from exc
        return cls(
            id=str(doc_id),
            owner_id=owner_id,
            name=name.strip(),
            latitude=latitude,
            longitude=longitude,
            is_default=is_default,
            created_at=created_at,
        )

    def with_default(self, flag: bool) -> SavedLocation:
        """Copy with is_default set to flag."""
        return replace(self, is_default=flag)


def new_draft(owner_id: str, name: str, latitude: float, longitude: float, *, is_default: bool) -> SavedLocationDraft:
    """Draft stamped with the current UTC time; name is normalized."""
    return SavedLocationDraft(
        owner_id=owner_id,
        name=normalize_name(name),
        latitude=float(latitude),
        longitude=float(longitude),
        is_default=is_default,
        created_at=datetime.now(timezone.utc),
    )
