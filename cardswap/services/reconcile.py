"""
Proposal reconciliation.

Removes proposals whose match no longer resolves (missing match, broken
bundle structure, or deleted cards). Listing never deletes; this does, and
only when invoked explicitly. Running it twice prunes nothing the second
time.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.db.operations import delete_proposals, list_all_proposals, proposal_to_model
from cardswap.services.match_integrity import unresolvable_proposals

logger = logging.getLogger(__name__)


async def reconcile_invalid_proposals(session: AsyncSession) -> list[str]:
    """
    Delete every proposal whose match cannot be resolved.

    Returns:
        Ids of the pruned proposals
    """
    proposals = [proposal_to_model(p) for p in await list_all_proposals(session)]
    invalid = await unresolvable_proposals(session, proposals)

    for proposal_id, reason in invalid.items():
        logger.warning("Pruning proposal %s: %s", proposal_id, reason)

    pruned = list(invalid)
    deleted = await delete_proposals(session, pruned)
    logger.info("Reconciled %d proposals, pruned %d", len(proposals), deleted)
    return pruned
