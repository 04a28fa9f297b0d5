"""
One-time OAuth state values for the GitHub authorize/callback round trip.

The state is random and only meaningful to this process: it maps to the user
who started the flow, so the callback never has to trust anything in the URL
beyond the opaque value. In-memory, so a multi-instance deployment needs a
shared store.
"""

from threading import Lock
from typing import Dict, Optional, Tuple
import secrets
import time


class OAuthStateManager:
    def __init__(self):
        self._states: Dict[str, Tuple[str, float]] = {}  # {state: (user_id, expires_at)}
        self._lock = Lock()

    def issue_state(self, user_id: str, ttl_seconds: int = 300) -> str:
        state = secrets.token_urlsafe(32)
        with self._lock:
            self._purge_expired()
            self._states[state] = (user_id, time.time() + ttl_seconds)
        return state

    def consume_state(self, state: str) -> Optional[str]:
        """Return the user id bound to the state and forget it; None if unknown or expired."""
        if not state:
            return None
        with self._lock:
            entry = self._states.pop(state, None)
        if entry is None:
            return None
        user_id, expires_at = entry
        if time.time() > expires_at:
            return None
        return user_id

    def _purge_expired(self) -> None:
        now = time.time()
        for state in [s for s, (_, expires_at) in self._states.items() if now > expires_at]:
            del self._states[state]

    def clear(self) -> None:
        with self._lock:
            self._states.clear()


oauth_state_manager = OAuthStateManager()
