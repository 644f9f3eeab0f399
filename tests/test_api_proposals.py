"""Tests for trade proposal API endpoints."""

from typing import Any

from conftest import ALICE, BOB, FakeGateway, seed_match
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.db.operations import delete_card

ADDRESS = {
    "address_name": "Home",
    "street1": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip": "62701",
}


async def propose(client: AsyncClient, match_id: str = "m1", user_id: str = ALICE) -> dict:
    response = await client.post("/proposals", json={"match_id": match_id, "user_id": user_id})
    assert response.status_code == 201
    return response.json()


async def intent(
    client: AsyncClient, proposal_id: str, user_id: str, name: str, **values: Any
) -> dict:
    response = await client.post(
        f"/proposals/{proposal_id}/intents",
        json={"user_id": user_id, "intent": name, **values},
    )
    assert response.status_code == 200, response.json()
    return response.json()


async def confirmed_mail_trade(client: AsyncClient) -> str:
    proposal_id = (await propose(client))["id"]
    await intent(client, proposal_id, BOB, "accept")
    await intent(client, proposal_id, ALICE, "confirm")
    await intent(client, proposal_id, BOB, "select_shipping_method", shipping_method="mail")
    for user in (ALICE, BOB):
        response = await client.post(f"/users/{user}/addresses", json=ADDRESS)
        assert response.status_code == 201
    return proposal_id


class TestProposeTrade:
    async def test_propose(self, client: AsyncClient, session: AsyncSession) -> None:
        await seed_match(session)

        data = await propose(client)

        assert data["role"] == "proposer"
        assert data["status"] == "proposed"
        assert data["current_step"] == "await_response"
        assert data["recipient_id"] == BOB

    async def test_recipient_sees_respond(self, client: AsyncClient, session: AsyncSession) -> None:
        await seed_match(session)
        proposal_id = (await propose(client))["id"]

        response = await client.get(f"/proposals/{proposal_id}", params={"user_id": BOB})

        data = response.json()
        assert data["role"] == "recipient"
        assert data["current_step"] == "respond"
        assert "accept" in data["available_actions"]
        assert "decline" in data["available_actions"]

    async def test_duplicate_proposal(self, client: AsyncClient, session: AsyncSession) -> None:
        """A second proposal for the same match is refused with 409."""
        await seed_match(session)
        existing = await propose(client)

        response = await client.post("/proposals", json={"match_id": "m1", "user_id": BOB})

        assert response.status_code == 409
        failure = response.json()["failure"]
        assert failure["kind"] == "duplicate_proposal"
        assert existing["id"] in failure["detail"]

    async def test_unknown_match(self, client: AsyncClient) -> None:
        response = await client.post("/proposals", json={"match_id": "nope", "user_id": ALICE})

        assert response.status_code == 404
        assert response.json()["failure"]["kind"] == "not_found"

    async def test_match_with_missing_card(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        match = await seed_match(session)
        assert match.user2_card_id is not None
        await delete_card(session, match.user2_card_id)
        await session.commit()

        response = await client.post("/proposals", json={"match_id": "m1", "user_id": ALICE})

        assert response.status_code == 422
        assert response.json()["failure"]["kind"] == "data_integrity"

    async def test_outsider_cannot_propose(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        await seed_match(session)

        response = await client.post("/proposals", json={"match_id": "m1", "user_id": "mallory"})

        assert response.status_code == 403
        assert response.json()["outcome"] == "refusal"


class TestViewAndList:
    async def test_outsider_cannot_view(self, client: AsyncClient, session: AsyncSession) -> None:
        await seed_match(session)
        proposal_id = (await propose(client))["id"]

        response = await client.get(f"/proposals/{proposal_id}", params={"user_id": "mallory"})

        assert response.status_code == 403
        assert response.json()["failure"]["kind"] == "not_permitted"

    async def test_unknown_proposal(self, client: AsyncClient) -> None:
        response = await client.get("/proposals/missing", params={"user_id": ALICE})

        assert response.status_code == 404

    async def test_list_for_both_parties(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        await seed_match(session)
        proposal_id = (await propose(client))["id"]

        for user, role in ((ALICE, "proposer"), (BOB, "recipient")):
            response = await client.get("/proposals", params={"user_id": user})
            data = response.json()
            assert [p["id"] for p in data["proposals"]] == [proposal_id]
            assert data["proposals"][0]["role"] == role

    async def test_list_hides_broken_match(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        """Listing leaves out proposals whose cards are gone; reconcile removes them."""
        match = await seed_match(session)
        await propose(client)
        assert match.user1_card_id is not None
        await delete_card(session, match.user1_card_id)
        await session.commit()

        listed = await client.get("/proposals", params={"user_id": ALICE})
        assert listed.json()["proposals"] == []

        reconciled = await client.post("/maintenance/reconcile")
        assert reconciled.json()["pruned"] == 1

        again = await client.post("/maintenance/reconcile")
        assert again.json()["pruned"] == 0


class TestLifecycleIntents:
    async def test_accept_then_confirm(self, client: AsyncClient, session: AsyncSession) -> None:
        await seed_match(session)
        proposal_id = (await propose(client))["id"]

        accepted = await intent(client, proposal_id, BOB, "accept")
        assert accepted["effective_status"] == "accepted_by_recipient"
        assert accepted["status"] == "proposed"

        confirmed = await intent(client, proposal_id, ALICE, "confirm")
        assert confirmed["effective_status"] == "confirmed"
        assert confirmed["current_step"] == "select_method"

    async def test_proposer_cannot_accept_first(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        await seed_match(session)
        proposal_id = (await propose(client))["id"]

        response = await client.post(
            f"/proposals/{proposal_id}/intents", json={"user_id": ALICE, "intent": "accept"}
        )

        assert response.status_code == 409
        assert response.json()["failure"]["kind"] == "invalid_transition"

    async def test_decline_then_repropose(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        """A declined proposal releases its match."""
        await seed_match(session)
        proposal_id = (await propose(client))["id"]

        declined = await intent(client, proposal_id, BOB, "decline")
        assert declined["status"] == "declined"
        assert declined["current_step"] == "closed"
        assert declined["available_actions"] == []

        again = await propose(client, user_id=BOB)
        assert again["id"] != proposal_id

    async def test_missing_shipping_method(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        await seed_match(session)
        proposal_id = (await propose(client))["id"]

        response = await client.post(
            f"/proposals/{proposal_id}/intents",
            json={"user_id": ALICE, "intent": "select_shipping_method"},
        )

        assert response.status_code == 400
        assert response.json()["failure"]["kind"] == "invalid_input"

    async def test_unknown_intent_rejected(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        await seed_match(session)
        proposal_id = (await propose(client))["id"]

        response = await client.post(
            f"/proposals/{proposal_id}/intents", json={"user_id": ALICE, "intent": "teleport"}
        )

        assert response.status_code == 422


class TestDelete:
    async def test_delete(self, client: AsyncClient, session: AsyncSession) -> None:
        await seed_match(session)
        proposal_id = (await propose(client))["id"]

        response = await client.delete(f"/proposals/{proposal_id}", params={"user_id": ALICE})

        assert response.status_code == 200
        assert response.json() == {"proposal_id": proposal_id, "deleted": True}
        missing = await client.get(f"/proposals/{proposal_id}", params={"user_id": ALICE})
        assert missing.status_code == 404

    async def test_delete_intent_rejected(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        await seed_match(session)
        proposal_id = (await propose(client))["id"]

        response = await client.post(
            f"/proposals/{proposal_id}/intents", json={"user_id": ALICE, "intent": "delete"}
        )

        assert response.status_code == 400

    async def test_confirmed_trade_cannot_be_deleted(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        await seed_match(session)
        proposal_id = (await propose(client))["id"]
        await intent(client, proposal_id, BOB, "accept")
        await intent(client, proposal_id, ALICE, "confirm")

        response = await client.delete(f"/proposals/{proposal_id}", params={"user_id": BOB})

        assert response.status_code == 409


class TestMailFlow:
    async def test_full_mail_trade(
        self, client: AsyncClient, session: AsyncSession, gateway: FakeGateway
    ) -> None:
        """Both parties buy labels, then delivery completes the trade."""
        await seed_match(session)
        proposal_id = await confirmed_mail_trade(client)

        for user in (ALICE, BOB):
            shopped = await intent(client, proposal_id, user, "shop_rates")
            assert [q["id"] for q in shopped["quotes"]] == [
                "rate-ground",
                "rate-priority",
                "rate-express",
            ]
            assert shopped["quotes"][0]["amount"] == "4.85"

            reviewed = await intent(client, proposal_id, user, "select_rate", quote_id="rate-ground")
            assert reviewed["current_step"] == "review_rate"

            bought = await intent(client, proposal_id, user, "purchase_label")
            assert bought["my_tracking_number"]
            assert bought["my_label_url"]

        view = await client.get(f"/proposals/{proposal_id}", params={"user_id": ALICE})
        data = view.json()
        assert data["status"] == "shipping_confirmed"
        assert data["effective_status"] == "completed"
        assert data["current_step"] == "confirm_delivery"
        assert data["their_tracking_number"] == "9400TRACK2"

        done = await intent(client, proposal_id, ALICE, "confirm_delivery")
        assert done["status"] == "completed"
        assert done["current_step"] == "complete"
        assert done["completed_at"] is not None
        assert gateway.purchases == ["rate-ground", "rate-ground"]

    async def test_tracking(
        self, client: AsyncClient, session: AsyncSession, gateway: FakeGateway
    ) -> None:
        await seed_match(session)
        proposal_id = await confirmed_mail_trade(client)
        await intent(client, proposal_id, ALICE, "shop_rates")
        await intent(client, proposal_id, ALICE, "select_rate", quote_id="rate-ground")
        await intent(client, proposal_id, ALICE, "purchase_label")

        response = await client.get(
            f"/proposals/{proposal_id}/tracking", params={"user_id": BOB, "party": "proposer"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "TRANSIT"
        assert data["eta"] == "2026-01-05"
        assert gateway.tracked == [("USPS", "9400TRACK1")]

    async def test_label_failure_is_explained(
        self, client: AsyncClient, session: AsyncSession, gateway: FakeGateway
    ) -> None:
        """A failed purchase returns 502 and the party can still buy later."""
        await seed_match(session)
        proposal_id = await confirmed_mail_trade(client)
        await intent(client, proposal_id, ALICE, "shop_rates")
        await intent(client, proposal_id, ALICE, "select_rate", quote_id="rate-ground")
        gateway.fail_purchase = True

        response = await client.post(
            f"/proposals/{proposal_id}/intents",
            json={"user_id": ALICE, "intent": "purchase_label"},
        )

        assert response.status_code == 502
        assert response.json()["failure"]["kind"] == "external_api_error"

        gateway.fail_purchase = False
        bought = await intent(client, proposal_id, ALICE, "purchase_label")
        assert bought["my_shipping_confirmed"] is True

    async def test_no_eligible_rates(
        self, client: AsyncClient, session: AsyncSession, gateway: FakeGateway
    ) -> None:
        await seed_match(session)
        proposal_id = await confirmed_mail_trade(client)
        gateway.quotes = []

        response = await client.post(
            f"/proposals/{proposal_id}/intents", json={"user_id": ALICE, "intent": "shop_rates"}
        )

        assert response.status_code == 422
        assert response.json()["failure"]["kind"] == "no_rates_available"


class TestMeetupFlow:
    async def test_meetup_trade(self, client: AsyncClient, session: AsyncSession) -> None:
        await seed_match(session)
        proposal_id = (await propose(client))["id"]
        await intent(client, proposal_id, BOB, "accept")
        await intent(client, proposal_id, ALICE, "confirm")
        chosen = await intent(
            client, proposal_id, ALICE, "select_shipping_method", shipping_method="local_meetup"
        )
        assert chosen["current_step"] == "arrange_meetup"

        first = await intent(client, proposal_id, BOB, "confirm_meetup")
        assert first["effective_status"] == "shipping_pending"
        assert first["current_step"] == "await_counterparty_confirmation"

        second = await intent(client, proposal_id, ALICE, "confirm_meetup")
        assert second["effective_status"] == "completed"
        assert second["current_step"] == "confirm_delivery"
