"""Tests for rate filtering and the rate session store."""

import time

from conftest import make_quote

from cardswap.models.shipping import ServiceTier
from cardswap.services.rate_sessions import RateSession, RateSessionStore
from cardswap.services.rate_shopping import eligible_quotes

ALLOWED = {
    "usps_ground_advantage": "economy",
    "usps_priority": "priority",
    "usps_priority_express": "express",
}


class TestEligibleQuotes:
    def test_filters_and_sorts_by_price(self) -> None:
        quotes = [
            make_quote("express", "28.75", "usps_priority_express"),
            make_quote("cheap-ups", "3.10", "ups_ground"),
            make_quote("ground", "4.85", "usps_ground_advantage"),
            make_quote("priority", "9.20", "usps_priority"),
        ]

        result = eligible_quotes(quotes, ALLOWED)

        assert [q.id for q in result] == ["ground", "priority", "express"]

    def test_tags_tiers(self) -> None:
        result = eligible_quotes([make_quote("ground", "4.85", "usps_ground_advantage")], ALLOWED)

        assert result[0].tier is ServiceTier.ECONOMY

    def test_price_ties_break_by_tier(self) -> None:
        """Equal prices list the slower tier first so the order is stable."""
        quotes = [
            make_quote("express", "5.00", "usps_priority_express"),
            make_quote("ground", "5.00", "usps_ground_advantage"),
        ]

        assert [q.id for q in eligible_quotes(quotes, ALLOWED)] == ["ground", "express"]

    def test_nothing_allowed(self) -> None:
        assert eligible_quotes([make_quote("ups", "3.10", "ups_ground")], ALLOWED) == []

    def test_defaults_to_settings(self) -> None:
        result = eligible_quotes([make_quote("ground", "4.85", "usps_ground_advantage")])

        assert [q.id for q in result] == ["ground"]


class TestRateSessionStore:
    def make_session(self, **fields) -> RateSession:
        values = {
            "proposal_id": "p1",
            "user_id": "alice",
            "from_address_id": "a1",
            "to_address_id": "b1",
            "quotes": [make_quote("ground", "4.85")],
        }
        values.update(fields)
        return RateSession(**values)

    def test_put_and_get(self) -> None:
        store = RateSessionStore(ttl_seconds=60)
        session = self.make_session()

        store.put(session)

        assert store.get("p1", "alice") is session
        assert store.get("p1", "bob") is None

    def test_expired_session_is_dropped(self) -> None:
        store = RateSessionStore(ttl_seconds=60)
        store.put(self.make_session(created_at=time.monotonic() - 120))

        assert store.get("p1", "alice") is None

    def test_put_replaces(self) -> None:
        """Shopping again starts a fresh session and forgets the reviewed quote."""
        store = RateSessionStore(ttl_seconds=60)
        store.put(self.make_session(selected_quote_id="ground"))
        store.put(self.make_session())

        session = store.get("p1", "alice")
        assert session is not None
        assert session.selected_quote is None

    def test_discard(self) -> None:
        store = RateSessionStore(ttl_seconds=60)
        store.put(self.make_session())

        store.discard("p1", "alice")
        store.discard("p1", "alice")

        assert store.get("p1", "alice") is None

    def test_selected_quote_lookup(self) -> None:
        session = self.make_session(selected_quote_id="ground")

        assert session.selected_quote is not None
        assert session.selected_quote.id == "ground"
        assert session.quote("missing") is None

    def test_put_sweeps_expired_sessions(self) -> None:
        """Abandoned sessions are dropped even if nobody reads them again."""
        store = RateSessionStore(ttl_seconds=60)
        stale = time.monotonic() - 120
        for n in range(50):
            store.put(self.make_session(proposal_id=f"p{n}", created_at=stale))

        store.put(self.make_session(proposal_id="fresh"))

        assert store.count() == 1
        assert store.get("fresh", "alice") is not None

    def test_select_marks_offered_quote(self) -> None:
        store = RateSessionStore(ttl_seconds=60)
        store.put(self.make_session())

        quote = store.select("p1", "alice", "ground")

        assert quote is not None and quote.id == "ground"
        session = store.get("p1", "alice")
        assert session is not None
        assert session.selected_quote_id == "ground"

    def test_select_unknown_quote_or_session(self) -> None:
        store = RateSessionStore(ttl_seconds=60)
        store.put(self.make_session())

        assert store.select("p1", "alice", "express") is None
        assert store.select("p1", "bob", "ground") is None
        session = store.get("p1", "alice")
        assert session is not None
        assert session.selected_quote_id is None

    def test_claim_is_single_use(self) -> None:
        """Only the first claim gets the reviewed quote."""
        store = RateSessionStore(ttl_seconds=60)
        store.put(self.make_session(selected_quote_id="ground"))

        first = store.claim("p1", "alice")
        second = store.claim("p1", "alice")

        assert first is not None
        assert second is None
        assert store.get("p1", "alice") is None

    def test_claim_needs_review(self) -> None:
        store = RateSessionStore(ttl_seconds=60)
        store.put(self.make_session())

        assert store.claim("p1", "alice") is None
        assert store.get("p1", "alice") is not None

    def test_restore_keeps_newer_session(self) -> None:
        store = RateSessionStore(ttl_seconds=60)
        store.put(self.make_session(selected_quote_id="ground"))
        claimed = store.claim("p1", "alice")
        assert claimed is not None
        newer = self.make_session()
        store.put(newer)

        store.restore(claimed)

        assert store.get("p1", "alice") is newer

    def test_restore_after_failed_purchase(self) -> None:
        store = RateSessionStore(ttl_seconds=60)
        store.put(self.make_session(selected_quote_id="ground"))
        claimed = store.claim("p1", "alice")
        assert claimed is not None

        store.restore(claimed)

        assert store.get("p1", "alice") is claimed

    def test_discard_proposal(self) -> None:
        store = RateSessionStore(ttl_seconds=60)
        store.put(self.make_session())
        store.put(self.make_session(user_id="bob"))
        store.put(self.make_session(proposal_id="p2"))

        store.discard_proposal("p1")

        assert store.get("p1", "alice") is None
        assert store.get("p1", "bob") is None
        assert store.get("p2", "alice") is not None
