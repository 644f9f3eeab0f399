"""
Scheduled job to prune invalid trade proposals.

Deletes proposals whose match or cards no longer exist.
Can be run as a standalone script or called from a scheduler.
"""

import asyncio
import logging

from cardswap.db.database import async_session_factory
from cardswap.services.reconcile import reconcile_invalid_proposals

logger = logging.getLogger(__name__)


async def run_reconciliation() -> list[str]:
    """
    Run one reconciliation pass in its own transaction.

    Returns:
        Ids of the pruned proposals
    """
    async with async_session_factory() as session:
        pruned = await reconcile_invalid_proposals(session)
        await session.commit()

    logger.info("Proposal reconciliation complete. Pruned %d", len(pruned))
    return pruned


def main() -> None:
    """CLI entry point for running reconciliation."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_reconciliation())


if __name__ == "__main__":
    main()
