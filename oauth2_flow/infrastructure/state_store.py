"""
StateStore implementations.

SessionStateStore keeps the pending CSRF state in the Starlette session,
which SessionMiddleware serializes into an itsdangerous-signed cookie.
InMemoryStateStore is for tests and for embedding the engine outside a web
request.
"""

import time
from typing import Any, MutableMapping


SESSION_KEY_PREFIX = "oauth2_state"
DEFAULT_STATE_TTL = 600


class SessionStateStore:
    """
    Pending-state storage in a request session.

    One slot per provider, so starting a login with one provider does not
    invalidate a login in progress with another. The issue time is stored
    next to the value; a state older than ``ttl`` seconds is treated as
    absent.
    """

    def __init__(
        self,
        session: MutableMapping[str, Any],
        provider: str,
        ttl: int = DEFAULT_STATE_TTL,
    ):
        self._session = session
        self._key = f"{SESSION_KEY_PREFIX}:{provider}"
        self.ttl = ttl

    def store(self, state: str) -> None:
        self._session[self._key] = {"value": state, "issued_at": int(time.time())}

    def load_and_clear(self) -> str | None:
        entry = self._session.pop(self._key, None)
        if not isinstance(entry, dict):
            return None

        issued_at = entry.get("issued_at")
        if not isinstance(issued_at, int) or time.time() - issued_at > self.ttl:
            return None

        value = entry.get("value")
        return value if isinstance(value, str) else None


class InMemoryStateStore:
    """Single-slot state store held in memory."""

    def __init__(self) -> None:
        self._state: str | None = None

    def store(self, state: str) -> None:
        self._state = state

    def load_and_clear(self) -> str | None:
        state, self._state = self._state, None
        return state
