"""
Rate shopping rules.

Only allow-listed service levels are offered, cheapest first. The
allow-list maps carrier tokens to generic tiers so callers never depend on
one carrier's product names.
"""

from collections.abc import Iterable, Mapping
from dataclasses import replace

from cardswap.config import settings
from cardswap.models.shipping import RateQuote, ServiceTier


def eligible_quotes(
    quotes: Iterable[RateQuote],
    allowed_service_levels: Mapping[str, str] | None = None,
) -> list[RateQuote]:
    """
    Keep allow-listed quotes, tag them with their tier, sort by price.

    Ties on price are broken by tier (economy before express) so the order
    is stable across calls.
    """
    allowed = allowed_service_levels or settings.allowed_service_levels
    tier_order = {tier: i for i, tier in enumerate(ServiceTier)}

    tagged: list[RateQuote] = []
    for quote in quotes:
        tier_name = allowed.get(quote.service_token)
        if tier_name is None:
            continue
        tagged.append(replace(quote, tier=ServiceTier(tier_name)))

    return sorted(
        tagged,
        key=lambda q: (q.amount, tier_order[q.tier] if q.tier else len(tier_order)),
    )
