"""In-memory session registry: one active location session per owner."""
from typing import Optional

from location_core.session import LocationSessionController

_sessions: dict[str, LocationSessionController] = {}


def get(owner_id: str) -> Optional[LocationSessionController]:
    """Active session for owner or None."""
    return _sessions.get(owner_id)


def get_all() -> list[LocationSessionController]:
    """List all active sessions."""
    return list(_sessions.values())


async def replace(session: LocationSessionController) -> None:
    """Register session for its owner, closing any session it replaces."""
    previous = _sessions.get(session.owner_id)
    _sessions[session.owner_id] = session
    if previous is not None and previous is not session:
        await previous.close()


async def remove(owner_id: str) -> bool:
    """Close and remove owner's session. Returns True if there was one."""
    session = _sessions.pop(owner_id, None)
    if session is None:
        return False
    await session.close()
    return True


async def close_all() -> None:
    """Close every session (shutdown)."""
    sessions = list(_sessions.values())
    _sessions.clear()
    for session in sessions:
        await session.close()


def clear() -> None:
    """Forget all sessions without closing them (tests)."""
    _sessions.clear()
