"""
Trade proposal lifecycle engine.

Every mutation of a proposal goes through here. Each operation:

1. Re-reads the proposal (never trusts a caller's snapshot)
2. Authorizes the actor as a party
3. Validates the transition against the EFFECTIVE status
4. Writes only the fields it owns, conditioned on the version it read

A write that loses a race raises ConflictError from the store; the engine
re-reads and retries once, then surfaces the conflict.

IMPORTANT: Re-invoking an operation whose effect already holds (accepting
twice, confirming delivery twice) is a successful no-op, not an error.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.db.operations import (
    create_proposal,
    delete_proposal,
    get_match,
    get_proposal,
    list_proposals_for_user,
    match_to_model,
    proposal_to_model,
    update_proposal_fields,
)
from cardswap.models.failure import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    MatchNotFoundError,
    ProposalNotFoundError,
)
from cardswap.models.proposal import (
    RELEASED_STATUSES,
    AckPair,
    Party,
    ProposalStatus,
    ShippingMethod,
    TradeProposal,
    foreign_fields,
    status_after_fulfillment,
)
from cardswap.services import notifier
from cardswap.services.match_integrity import ensure_resolvable, unresolvable_proposals

logger = logging.getLogger(__name__)

# One retry after a fresh re-read
MAX_WRITE_ATTEMPTS = 2

# Effective statuses from which either party may still walk away
CANCELLABLE_STATUSES = frozenset(
    {
        ProposalStatus.PROPOSED,
        ProposalStatus.ACCEPTED_BY_RECIPIENT,
        ProposalStatus.CONFIRMED,
        ProposalStatus.SHIPPING_PENDING,
    }
)

DECLINABLE_STATUSES = frozenset({ProposalStatus.PROPOSED, ProposalStatus.ACCEPTED_BY_RECIPIENT})

# A plan inspects a fresh snapshot and returns the fields to write, or None
# when the requested effect already holds.
Plan = Callable[[TradeProposal, Party], dict[str, Any] | None]


def check_field_ownership(party: Party, fields: dict[str, Any]) -> None:
    """
    Reject writes to the other party's fields.

    Raises:
        AuthorizationError: If `fields` names a field `party` does not own
    """
    foreign = foreign_fields(party, set(fields))
    if foreign:
        raise AuthorizationError(f"{party.value} cannot write {', '.join(sorted(foreign))}")


def _acceptance_patch(proposal: TradeProposal, party: Party) -> dict[str, Any]:
    patch: dict[str, Any] = {f"{party.value}_confirmed": True}
    if proposal.acceptance.of(party.other):
        patch["status"] = ProposalStatus.CONFIRMED.value
    return patch


class TradeProposalEngine:
    """Lifecycle operations for trade proposals, bound to one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def load(self, proposal_id: str) -> TradeProposal:
        db_proposal = await get_proposal(self.session, proposal_id)
        if db_proposal is None:
            raise ProposalNotFoundError(proposal_id)
        return proposal_to_model(db_proposal)

    async def load_for(self, proposal_id: str, actor_id: str) -> tuple[TradeProposal, Party]:
        """
        Load a proposal and the actor's role in it.

        Raises:
            ProposalNotFoundError: If the proposal does not exist
            AuthorizationError: If the actor is not a party
        """
        proposal = await self.load(proposal_id)
        party = proposal.party_of(actor_id)
        if party is None:
            raise AuthorizationError(f"user {actor_id} is not a party to proposal {proposal_id}")
        return proposal, party

    async def list_for_user(self, user_id: str) -> list[TradeProposal]:
        """
        Proposals where `user_id` is a party, newest first.

        Proposals whose match no longer resolves are left out. This is a
        pure read; pruning them is the reconciliation job's work.
        """
        proposals = [proposal_to_model(p) for p in await list_proposals_for_user(self.session, user_id)]
        invalid = await unresolvable_proposals(self.session, proposals)
        for proposal_id, reason in invalid.items():
            logger.debug("Hiding unresolvable proposal %s: %s", proposal_id, reason)
        return [p for p in proposals if p.id not in invalid]

    # -------------------------------------------------------------------------
    # Write helper
    # -------------------------------------------------------------------------

    async def apply(
        self,
        proposal_id: str,
        actor_id: str,
        plan: Plan,
        attempts: int = MAX_WRITE_ATTEMPTS,
    ) -> tuple[TradeProposal, bool]:
        """
        Run `plan` against a fresh snapshot and persist its patch.

        Returns:
            (proposal after the operation, whether anything was written)

        Raises:
            ConflictError: If every attempt lost a concurrent write race
        """
        for attempt in range(1, attempts + 1):
            proposal, party = await self.load_for(proposal_id, actor_id)
            patch = plan(proposal, party)
            if patch is None:
                return proposal, False

            check_field_ownership(party, patch)
            try:
                db_proposal = await update_proposal_fields(
                    self.session, proposal_id, proposal.version, patch
                )
            except ConflictError:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Write conflict on proposal %s (attempt %d of %d), re-reading",
                    proposal_id,
                    attempt,
                    attempts,
                )
                continue
            return proposal_to_model(db_proposal), True

        raise ConflictError(proposal_id)

    # -------------------------------------------------------------------------
    # Lifecycle operations
    # -------------------------------------------------------------------------

    async def propose(self, match_id: str, proposer_id: str) -> TradeProposal:
        """
        Create a proposal for a match on behalf of one of its parties.

        Raises:
            MatchNotFoundError: If the match does not exist
            AuthorizationError: If the proposer is not in the match
            DataIntegrityError: If the match's cards cannot be resolved
            DuplicateProposalError: If the match already has an active proposal
        """
        db_match = await get_match(self.session, match_id)
        if db_match is None:
            raise MatchNotFoundError(match_id)
        match = match_to_model(db_match)

        if not match.is_party(proposer_id):
            raise AuthorizationError(f"user {proposer_id} is not part of match {match_id}")
        await ensure_resolvable(self.session, match)

        recipient_id = match.counterparty_of(proposer_id)
        db_proposal = await create_proposal(self.session, match_id, proposer_id, recipient_id)
        proposal = proposal_to_model(db_proposal)

        await notifier.notify_proposed(self.session, proposal, bundle=match.bundled)
        logger.info(
            "Proposal %s created for match %s by %s (bundle=%s)",
            proposal.id,
            match_id,
            proposer_id,
            match.bundled,
        )
        return proposal

    async def accept(self, proposal_id: str, actor_id: str) -> TradeProposal:
        """
        Record the actor's acceptance.

        The recipient accepts first. A proposer accepting after the
        recipient has the same effect as confirm.
        """

        def plan(proposal: TradeProposal, party: Party) -> dict[str, Any] | None:
            current = proposal.effective_status
            if proposal.is_terminal:
                raise InvalidTransitionError(current.value, "accept")
            if proposal.acceptance.of(party):
                return None
            if proposal.status is not ProposalStatus.PROPOSED:
                raise InvalidTransitionError(current.value, "accept")
            if party is Party.PROPOSER and not proposal.acceptance.recipient:
                raise InvalidTransitionError(
                    current.value, "accept", "the recipient has not responded yet"
                )
            return _acceptance_patch(proposal, party)

        proposal, changed = await self.apply(proposal_id, actor_id, plan)
        if changed:
            await self._announce_acceptance(proposal, actor_id)
        return proposal

    async def confirm(self, proposal_id: str, actor_id: str) -> TradeProposal:
        """Record the actor's confirmation of a proposal the other side accepted."""

        def plan(proposal: TradeProposal, party: Party) -> dict[str, Any] | None:
            current = proposal.effective_status
            if proposal.is_terminal:
                raise InvalidTransitionError(current.value, "confirm")
            if proposal.acceptance.of(party):
                return None
            if current is not ProposalStatus.ACCEPTED_BY_RECIPIENT:
                raise InvalidTransitionError(current.value, "confirm")
            return _acceptance_patch(proposal, party)

        proposal, changed = await self.apply(proposal_id, actor_id, plan)
        if changed:
            await self._announce_acceptance(proposal, actor_id)
        return proposal

    async def _announce_acceptance(self, proposal: TradeProposal, actor_id: str) -> None:
        if proposal.effective_status is ProposalStatus.CONFIRMED:
            await notifier.notify_confirmed(self.session, proposal)
            logger.info("Proposal %s confirmed by both parties", proposal.id)
        else:
            await notifier.notify_accepted(self.session, proposal, actor_id)
            logger.info("Proposal %s accepted by %s", proposal.id, actor_id)

    async def decline(self, proposal_id: str, actor_id: str) -> TradeProposal:
        """Reject a proposal that has not been confirmed yet."""

        def plan(proposal: TradeProposal, party: Party) -> dict[str, Any] | None:
            current = proposal.effective_status
            if proposal.is_terminal or current not in DECLINABLE_STATUSES:
                raise InvalidTransitionError(current.value, "decline")
            return {"status": ProposalStatus.DECLINED.value}

        proposal, _ = await self.apply(proposal_id, actor_id, plan)
        logger.info("Proposal %s declined by %s", proposal_id, actor_id)
        return proposal

    async def cancel(self, proposal_id: str, actor_id: str) -> TradeProposal:
        """Withdraw from a trade before both parties have fulfilled it."""

        def plan(proposal: TradeProposal, party: Party) -> dict[str, Any] | None:
            current = proposal.effective_status
            if (
                proposal.is_terminal
                or proposal.status is ProposalStatus.SHIPPING_CONFIRMED
                or current not in CANCELLABLE_STATUSES
            ):
                raise InvalidTransitionError(current.value, "cancel")
            return {"status": ProposalStatus.CANCELLED.value}

        proposal, _ = await self.apply(proposal_id, actor_id, plan)
        logger.info("Proposal %s cancelled by %s", proposal_id, actor_id)
        return proposal

    async def delete(self, proposal_id: str, actor_id: str) -> None:
        """
        Remove a proposal that has not been accepted by both parties.

        Raises:
            InvalidTransitionError: If the proposal has progressed too far
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            proposal, _ = await self.load_for(proposal_id, actor_id)
            if proposal.status is not ProposalStatus.PROPOSED or proposal.acceptance.both:
                raise InvalidTransitionError(proposal.effective_status.value, "delete")
            try:
                await delete_proposal(self.session, proposal_id, expected_version=proposal.version)
            except ConflictError:
                if attempt >= MAX_WRITE_ATTEMPTS:
                    raise
                continue
            logger.info("Proposal %s deleted by %s", proposal_id, actor_id)
            return

    async def select_shipping_method(
        self, proposal_id: str, method: ShippingMethod, actor_id: str
    ) -> TradeProposal:
        """
        Choose mail or meetup for a confirmed trade.

        The choice is made once. Choosing the same method again is a no-op.
        """

        def plan(proposal: TradeProposal, party: Party) -> dict[str, Any] | None:
            current = proposal.effective_status
            if proposal.shipping_method is method:
                return None
            if proposal.shipping_method is not None:
                raise InvalidTransitionError(
                    current.value,
                    "change the shipping method of",
                    f"shipping method is already {proposal.shipping_method.value}",
                )
            if proposal.is_terminal or current is not ProposalStatus.CONFIRMED:
                raise InvalidTransitionError(current.value, "choose a shipping method for")
            return {"shipping_method": method.value}

        proposal, changed = await self.apply(proposal_id, actor_id, plan)
        if changed:
            logger.info(
                "Proposal %s will be exchanged by %s (chosen by %s)",
                proposal_id,
                method.value,
                actor_id,
            )
        return proposal

    async def snapshot_address(
        self, proposal_id: str, actor_id: str, address_id: str
    ) -> TradeProposal:
        """Pin the address the actor ships from and receives at for this trade."""

        def plan(proposal: TradeProposal, party: Party) -> dict[str, Any] | None:
            current = proposal.effective_status
            if proposal.address_id_of(party) == address_id:
                return None
            if proposal.shipping_method is not ShippingMethod.MAIL or current not in (
                ProposalStatus.CONFIRMED,
                ProposalStatus.SHIPPING_PENDING,
            ):
                raise InvalidTransitionError(current.value, "set a shipping address for")
            if proposal.fulfillment.of(party):
                raise InvalidTransitionError(
                    current.value, "change the address of", "your label is already purchased"
                )
            return {f"{party.value}_address_id": address_id}

        proposal, _ = await self.apply(proposal_id, actor_id, plan)
        return proposal

    async def record_fulfillment(
        self,
        proposal_id: str,
        actor_id: str,
        method: ShippingMethod,
        artifacts: dict[str, Any] | None = None,
        attempts: int = MAX_WRITE_ATTEMPTS,
    ) -> tuple[TradeProposal, bool]:
        """
        Record that the actor shipped (mail) or handed over (meetup) their cards.

        `artifacts` are the actor's own fulfillment fields without the party
        prefix, e.g. {"tracking_number": ..., "carrier": ..., "label_url": ...}.

        Returns:
            (proposal, whether the acknowledgement was newly recorded)
        """
        extra = artifacts or {}

        def plan(proposal: TradeProposal, party: Party) -> dict[str, Any] | None:
            current = proposal.effective_status
            if proposal.status in RELEASED_STATUSES:
                raise InvalidTransitionError(current.value, "confirm fulfillment of")
            if proposal.fulfillment.of(party):
                return None
            if proposal.is_terminal:
                raise InvalidTransitionError(current.value, "confirm fulfillment of")
            if proposal.shipping_method is not method:
                chosen = proposal.shipping_method.value if proposal.shipping_method else "not chosen"
                raise InvalidTransitionError(
                    current.value, "confirm fulfillment of", f"shipping method is {chosen}"
                )
            if current not in (ProposalStatus.CONFIRMED, ProposalStatus.SHIPPING_PENDING):
                raise InvalidTransitionError(current.value, "confirm fulfillment of")

            prefix = party.value
            after = AckPair(
                proposer=True if party is Party.PROPOSER else proposal.fulfillment.proposer,
                recipient=True if party is Party.RECIPIENT else proposal.fulfillment.recipient,
            )
            patch: dict[str, Any] = {f"{prefix}_{name}": value for name, value in extra.items()}
            patch[f"{prefix}_shipping_confirmed"] = True
            patch["status"] = status_after_fulfillment(after).value
            return patch

        proposal, changed = await self.apply(proposal_id, actor_id, plan, attempts=attempts)
        if changed:
            await notifier.notify_fulfilled(self.session, proposal, actor_id)
            logger.info(
                "Proposal %s: %s fulfilled by %s (status %s)",
                proposal_id,
                method.value,
                actor_id,
                proposal.effective_status.value,
            )
        return proposal, changed

    async def complete_delivery(self, proposal_id: str, actor_id: str) -> TradeProposal:
        """
        Close the trade once both parties have fulfilled it.

        Calling again after completion is a no-op.
        """

        def plan(proposal: TradeProposal, party: Party) -> dict[str, Any] | None:
            current = proposal.effective_status
            if proposal.status is ProposalStatus.COMPLETED:
                return None
            if proposal.is_terminal:
                raise InvalidTransitionError(current.value, "complete")
            if not proposal.fulfillment.both:
                raise InvalidTransitionError(
                    current.value, "complete", "both parties must confirm their side first"
                )
            if not proposal.fulfilled_by_both():
                raise InvalidTransitionError(
                    current.value, "complete", "shipping records are incomplete"
                )
            return {
                "status": ProposalStatus.COMPLETED.value,
                "completed_at": datetime.now(UTC),
            }

        proposal, changed = await self.apply(proposal_id, actor_id, plan)
        if changed:
            await notifier.notify_completed(self.session, proposal)
            logger.info("Proposal %s completed (confirmed by %s)", proposal_id, actor_id)
        return proposal
