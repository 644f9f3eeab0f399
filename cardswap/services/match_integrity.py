"""
Match integrity checks.

A proposal is only valid while its match resolves: the match row exists,
it is structurally sound (single XOR bundle, cards on both sides), and
every card it references still exists.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.db.operations import existing_card_ids, get_matches, match_to_model
from cardswap.models.failure import DataIntegrityError
from cardswap.models.match import Match
from cardswap.models.proposal import TradeProposal


async def ensure_resolvable(session: AsyncSession, match: Match) -> None:
    """
    Raise DataIntegrityError unless `match` can back a proposal.
    """
    problem = match.structural_problem()
    if problem:
        raise DataIntegrityError(match.id, problem)

    card_ids = match.card_ids()
    missing = card_ids - await existing_card_ids(session, card_ids)
    if missing:
        raise DataIntegrityError(match.id, f"missing cards: {', '.join(sorted(missing))}")


async def unresolvable_proposals(
    session: AsyncSession, proposals: list[TradeProposal]
) -> dict[str, str]:
    """
    Find proposals whose match cannot be resolved.

    Returns:
        Dict mapping proposal id to the reason it is invalid
    """
    db_matches = await get_matches(session, {p.match_id for p in proposals})
    matches = {mid: match_to_model(m) for mid, m in db_matches.items()}

    all_card_ids: set[str] = set()
    for match in matches.values():
        all_card_ids |= match.card_ids()
    found_cards = await existing_card_ids(session, all_card_ids)

    invalid: dict[str, str] = {}
    for proposal in proposals:
        match = matches.get(proposal.match_id)
        if match is None:
            invalid[proposal.id] = "match missing"
            continue
        problem = match.structural_problem()
        if problem:
            invalid[proposal.id] = problem
            continue
        missing = match.card_ids() - found_cards
        if missing:
            invalid[proposal.id] = f"missing cards: {', '.join(sorted(missing))}"
    return invalid
