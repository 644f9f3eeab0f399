"""Tests for effective status derivation and the fulfillment gate."""

import pytest

from cardswap.models.proposal import (
    AckPair,
    MailConfirmation,
    MeetupConfirmation,
    Party,
    ProposalStatus,
    ShippingMethod,
    TradeProposal,
    derive_status,
    foreign_fields,
    status_after_fulfillment,
)

NONE = AckPair()
ONE = AckPair(recipient=True)
BOTH = AckPair(True, True)


def make_proposal(**fields) -> TradeProposal:
    values = {
        "id": "p1",
        "match_id": "m1",
        "proposer_id": "alice",
        "recipient_id": "bob",
        "status": ProposalStatus.PROPOSED,
    }
    values.update(fields)
    return TradeProposal(**values)


class TestDeriveStatus:
    def test_proposed_without_acceptance(self) -> None:
        """No flags leaves proposed as is."""
        assert derive_status(ProposalStatus.PROPOSED, NONE, NONE) is ProposalStatus.PROPOSED

    def test_one_acceptance_is_accepted_by_recipient(self) -> None:
        """Exactly one acceptance flag derives accepted_by_recipient."""
        assert (
            derive_status(ProposalStatus.PROPOSED, ONE, NONE)
            is ProposalStatus.ACCEPTED_BY_RECIPIENT
        )
        assert (
            derive_status(ProposalStatus.PROPOSED, AckPair(proposer=True), NONE)
            is ProposalStatus.ACCEPTED_BY_RECIPIENT
        )

    def test_both_acceptances_confirm(self) -> None:
        """Both acceptance flags derive confirmed."""
        assert derive_status(ProposalStatus.PROPOSED, BOTH, NONE) is ProposalStatus.CONFIRMED

    def test_shipping_confirmed_with_one_flag_is_pending(self) -> None:
        """One fulfillment flag under shipping_confirmed derives shipping_pending."""
        assert (
            derive_status(ProposalStatus.SHIPPING_CONFIRMED, BOTH, ONE)
            is ProposalStatus.SHIPPING_PENDING
        )

    def test_shipping_confirmed_with_both_flags_is_completed(self) -> None:
        """Both fulfillment flags under shipping_confirmed derive completed."""
        assert (
            derive_status(ProposalStatus.SHIPPING_CONFIRMED, BOTH, BOTH)
            is ProposalStatus.COMPLETED
        )

    @pytest.mark.parametrize(
        "raw",
        [
            ProposalStatus.CONFIRMED,
            ProposalStatus.SHIPPING_PENDING,
            ProposalStatus.COMPLETED,
            ProposalStatus.DECLINED,
            ProposalStatus.CANCELLED,
        ],
    )
    def test_other_statuses_pass_through(self, raw: ProposalStatus) -> None:
        """Statuses without a flag rule are shown as stored."""
        assert derive_status(raw, BOTH, ONE) is raw

    def test_confirmed_requires_both_flags(self) -> None:
        """No single flag combination short of both reaches confirmed."""
        for acceptance in (NONE, ONE, AckPair(proposer=True)):
            assert derive_status(ProposalStatus.PROPOSED, acceptance, NONE) is not (
                ProposalStatus.CONFIRMED
            )

    def test_effective_status_recomputed_from_snapshot(self) -> None:
        """The snapshot property reflects its own flags."""
        proposal = make_proposal(recipient_confirmed=True)
        assert proposal.effective_status is ProposalStatus.ACCEPTED_BY_RECIPIENT


class TestStatusAfterFulfillment:
    def test_first_acknowledgement(self) -> None:
        assert status_after_fulfillment(ONE) is ProposalStatus.SHIPPING_PENDING

    def test_second_acknowledgement(self) -> None:
        assert status_after_fulfillment(BOTH) is ProposalStatus.SHIPPING_CONFIRMED


class TestFulfillmentConfirmation:
    def test_mail_confirmation_needs_label_record(self) -> None:
        """A bare flag without tracking data does not count as shipped."""
        proposal = make_proposal(
            shipping_method=ShippingMethod.MAIL,
            proposer_shipping_confirmed=True,
        )
        assert proposal.fulfillment_confirmation(Party.PROPOSER) is None

    def test_mail_confirmation_with_label(self) -> None:
        proposal = make_proposal(
            shipping_method=ShippingMethod.MAIL,
            proposer_shipping_confirmed=True,
            proposer_tracking_number="9400",
            proposer_carrier="USPS",
            proposer_label_url="https://labels.example.com/1.pdf",
        )
        assert proposal.fulfillment_confirmation(Party.PROPOSER) == MailConfirmation(
            "9400", "USPS", "https://labels.example.com/1.pdf"
        )

    def test_meetup_confirmation_is_flag_only(self) -> None:
        proposal = make_proposal(
            shipping_method=ShippingMethod.LOCAL_MEETUP,
            recipient_shipping_confirmed=True,
        )
        assert proposal.fulfillment_confirmation(Party.RECIPIENT) == MeetupConfirmation()

    def test_fulfilled_by_both(self) -> None:
        """The completion gate needs a confirmation from each side."""
        one_side = make_proposal(
            shipping_method=ShippingMethod.LOCAL_MEETUP,
            proposer_shipping_confirmed=True,
        )
        both_sides = make_proposal(
            shipping_method=ShippingMethod.LOCAL_MEETUP,
            proposer_shipping_confirmed=True,
            recipient_shipping_confirmed=True,
        )
        assert not one_side.fulfilled_by_both()
        assert both_sides.fulfilled_by_both()


class TestFieldOwnership:
    def test_own_fields_allowed(self) -> None:
        assert foreign_fields(Party.PROPOSER, {"proposer_confirmed", "status"}) == set()

    def test_counterparty_fields_rejected(self) -> None:
        """The proposer may not write the recipient's flags."""
        assert foreign_fields(
            Party.PROPOSER, {"recipient_confirmed", "recipient_shipping_confirmed"}
        ) == {"recipient_confirmed", "recipient_shipping_confirmed"}

    def test_party_lookup(self) -> None:
        proposal = make_proposal()
        assert proposal.party_of("alice") is Party.PROPOSER
        assert proposal.party_of("bob") is Party.RECIPIENT
        assert proposal.party_of("mallory") is None
        assert Party.PROPOSER.other is Party.RECIPIENT
