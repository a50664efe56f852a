"""In-memory survey session registry with idle expiry and max-size eviction."""

import logging
import time
from collections import OrderedDict

from nps_api.services.post_submit import SurveySession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Keeps open survey sessions, closing the ones that go idle.

    Usage::

        registry = SessionRegistry(ttl=1800, max_size=10_000)
        registry.add(session)
        session = registry.get(session_id)  # None if unknown or expired
    """

    def __init__(self, ttl: float = 1800, max_size: int = 10_000) -> None:
        self._ttl = ttl
        self._max_size = max_size
        # OrderedDict keeps least-recently-used sessions first
        self._store: OrderedDict[str, tuple[SurveySession, float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._store)

    def add(self, session: SurveySession) -> SurveySession:
        """Register *session*, evicting the least recently used if at capacity."""
        self._purge_expired()
        self._store[session.session_id] = (session, time.time())
        self._store.move_to_end(session.session_id)
        while len(self._store) > self._max_size:
            _sid, (evicted, _ts) = self._store.popitem(last=False)
            logger.info("Evicting survey session %s (registry full)", evicted.session_id)
            evicted.close()
        return session

    def get(self, session_id: str) -> SurveySession | None:
        """Return the session and refresh its idle timer, or None if expired."""
        entry = self._store.get(session_id)
        if entry is None:
            return None
        session, ts = entry
        if time.time() - ts > self._ttl:
            self.discard(session_id)
            return None
        self._store[session_id] = (session, time.time())
        self._store.move_to_end(session_id)
        return session

    def discard(self, session_id: str) -> None:
        """Close and forget a session (no-op if unknown)."""
        entry = self._store.pop(session_id, None)
        if entry is not None:
            entry[0].close()

    def close_all(self) -> None:
        for session, _ts in self._store.values():
            session.close()
        self._store.clear()

    def _purge_expired(self) -> None:
        now = time.time()
        expired = [sid for sid, (_s, ts) in self._store.items() if now - ts > self._ttl]
        for sid in expired:
            logger.info("Survey session %s expired", sid)
            self.discard(sid)
