"""Error taxonomy for saved locations."""
from typing import Optional


class LocationStoreError(Exception):
    """Base exception for the saved-location core. `code` is stable for clients and messages."""

    code = "location_error"


class PermissionDenied(LocationStoreError):
    """Raised when the device refused location permission."""

    code = "permission_denied"


class PositionUnavailable(LocationStoreError):
    """Raised when no position fix is available (fix failed or not acquired yet)."""

    code = "position_unavailable"


class CapacityExceeded(LocationStoreError):
    """Raised when an owner already has the maximum number of saved locations."""

    code = "capacity_exceeded"

    def __init__(self, owner_id: str, limit: int) -> None:
        super().__init__(f"owner {owner_id!r} already has {limit} saved locations")
        self.owner_id = owner_id
        self.limit = limit


class ValidationError(LocationStoreError):
    """Raised when user input is rejected before any remote call."""

    code = "validation_error"


class RepositoryError(LocationStoreError):
    """Raised when a remote read or write fails."""

    code = "repository_error"


class RecordNotFound(RepositoryError):
    """Raised when a location id is unknown."""

    code = "record_not_found"

    def __init__(self, location_id: str) -> None:
        super().__init__(f"saved location {location_id!r} not found")
        self.location_id = location_id


class MalformedRecord(RepositoryError):
    """Raised when a stored document does not describe a valid saved location."""

    code = "malformed_record"


class DefaultSwapIncomplete(RepositoryError):
    """
    Raised when the previous default was cleared but the new default could not be written.
    The owner is left without a default until repaired.
    """

    code = "default_swap_incomplete"

    def __init__(self, previous_default_id: Optional[str], target_id: str) -> None:
        super().__init__(
            f"cleared default {previous_default_id!r} but failed to set {target_id!r}; owner has no default"
        )
        self.previous_default_id = previous_default_id
        self.target_id = target_id


class EnrichmentError(LocationStoreError):
    """Raised by geocoding providers; absorbed by the enrichment service."""

    code = "enrichment_error"


class SessionClosed(LocationStoreError):
    """Raised when an action is attempted on a closed session."""

    code = "session_closed"


class InvalidSessionState(LocationStoreError):
    """Raised when an action is not allowed in the current session state."""

    code = "invalid_state"
