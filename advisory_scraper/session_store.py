from __future__ import annotations

import threading
from typing import Any, Dict, Optional


class SessionStore:
    """Domain-keyed cache of HTTP sessions (cookies + connection affinity).

    The store never creates sessions. The fetcher puts one after the first
    successful request to a domain and reuses it afterwards; clear() closes
    and forgets all of them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, Any] = {}

    def get(self, domain: str) -> Optional[Any]:
        with self._lock:
            return self._sessions.get(domain.lower())

    def put(self, domain: str, session: Any) -> None:
        """Store ``session`` for ``domain``, closing a different one it replaces."""
        with self._lock:
            previous = self._sessions.get(domain.lower())
            self._sessions[domain.lower()] = session
        if previous is not None and previous is not session:
            _close(previous)

    def clear(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            _close(session)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, domain: str) -> bool:
        return self.get(domain) is not None


def _close(session: Any) -> None:
    close = getattr(session, "close", None)
    if callable(close):
        close()
