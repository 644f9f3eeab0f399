"""
In-process rate sessions.

Quotes are transient: they live here, keyed by (proposal, user), between
rate shopping and label purchase. A session remembers which quotes were
offered, which one the user reviewed, and the address pair they were
priced for. Purchase is only possible for the reviewed quote of a live
session, and buying claims the session so that quote is bought once.
Expired sessions are swept whenever a new one is stored.
"""

import time
from dataclasses import dataclass, field
from threading import Lock

from cardswap.config import settings
from cardswap.models.shipping import RateQuote


@dataclass
class RateSession:
    """Quotes offered to one party for one proposal."""

    proposal_id: str
    user_id: str
    from_address_id: str
    to_address_id: str
    quotes: list[RateQuote] = field(default_factory=list)
    selected_quote_id: str | None = None
    created_at: float = field(default_factory=time.monotonic)

    def quote(self, quote_id: str) -> RateQuote | None:
        return next((q for q in self.quotes if q.id == quote_id), None)

    @property
    def selected_quote(self) -> RateQuote | None:
        if self.selected_quote_id is None:
            return None
        return self.quote(self.selected_quote_id)


class RateSessionStore:
    """Thread-safe TTL store of rate sessions."""

    def __init__(self, ttl_seconds: float | None = None) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.rate_session_ttl_seconds
        self._sessions: dict[tuple[str, str], RateSession] = {}
        self._lock = Lock()

    def _expired(self, session: RateSession) -> bool:
        return time.monotonic() - session.created_at > self.ttl_seconds

    def _live(self, key: tuple[str, str]) -> RateSession | None:
        # Caller holds the lock
        session = self._sessions.get(key)
        if session is not None and self._expired(session):
            del self._sessions[key]
            return None
        return session

    def _sweep(self) -> None:
        # Caller holds the lock
        expired = [key for key, session in self._sessions.items() if self._expired(session)]
        for key in expired:
            del self._sessions[key]

    def put(self, session: RateSession) -> None:
        """Start (or restart) the session for its proposal and user."""
        with self._lock:
            self._sweep()
            self._sessions[(session.proposal_id, session.user_id)] = session

    def restore(self, session: RateSession) -> None:
        """Put a claimed session back unless a newer one has replaced it."""
        with self._lock:
            self._sessions.setdefault((session.proposal_id, session.user_id), session)

    def get(self, proposal_id: str, user_id: str) -> RateSession | None:
        """The live session, or None if absent or expired."""
        with self._lock:
            return self._live((proposal_id, user_id))

    def select(self, proposal_id: str, user_id: str, quote_id: str) -> RateQuote | None:
        """
        Mark an offered quote as reviewed.

        Returns the quote, or None if the session is gone or never offered it.
        """
        with self._lock:
            session = self._live((proposal_id, user_id))
            if session is None:
                return None
            quote = session.quote(quote_id)
            if quote is not None:
                session.selected_quote_id = quote.id
            return quote

    def claim(self, proposal_id: str, user_id: str) -> RateSession | None:
        """
        Take the live session out of the store if it has a reviewed quote.

        Only one caller can claim a session, so one reviewed quote is bought
        at most once per process.
        """
        key = (proposal_id, user_id)
        with self._lock:
            session = self._live(key)
            if session is None or session.selected_quote is None:
                return None
            del self._sessions[key]
            return session

    def discard(self, proposal_id: str, user_id: str) -> None:
        with self._lock:
            self._sessions.pop((proposal_id, user_id), None)

    def discard_proposal(self, proposal_id: str) -> None:
        """Forget every party's session for a proposal."""
        with self._lock:
            for key in [key for key in self._sessions if key[0] == proposal_id]:
                del self._sessions[key]

    def count(self) -> int:
        """Sessions currently held, live or not yet swept."""
        with self._lock:
            return len(self._sessions)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


# Default store instance
_store: RateSessionStore | None = None


def get_rate_sessions() -> RateSessionStore:
    """Get the process-wide rate session store."""
    global _store
    if _store is None:
        _store = RateSessionStore()
    return _store
