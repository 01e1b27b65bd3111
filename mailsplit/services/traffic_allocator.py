"""
Traffic allocator - weighted random choice of the variant for the next send.

Linear scan over cumulative allocation percentages; tests carry 2-5 variants so
nothing fancier is needed.
"""
import logging
import random
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from mailsplit.errors import NoVariantsAvailable
from mailsplit.models.ab_test import ABTestVariant
from mailsplit.services.lifecycle import get_test
from mailsplit.services.variant_store import IdLike, list_variants

logger = logging.getLogger(__name__)


def pick_weighted(variants: Sequence, r: float):
    """
    Walk variants in order accumulating traffic_allocation and return the first
    whose cumulative allocation reaches r. Falls back to the first variant so
    allocation rounding never fails a send.

    Args:
        variants: Variants in stable order
        r: Uniform draw in [0, 100)

    Returns:
        Selected variant, or None for an empty sequence
    """
    if not variants:
        return None

    cumulative = 0
    for variant in variants:
        cumulative += variant.traffic_allocation
        if cumulative >= r and variant.traffic_allocation > 0:
            return variant

    return variants[0]


async def select_variant(
    db: AsyncSession,
    test_id: IdLike,
    rng: Optional[random.Random] = None,
) -> ABTestVariant:
    """
    Choose which variant's subject/body the next outgoing email uses.

    Raises:
        ABTestNotFound: unknown test
        NoVariantsAvailable: the test has no variants - do not send
    """
    test = await get_test(db, test_id)
    variants = await list_variants(db, test.id)
    if not variants:
        raise NoVariantsAvailable(f"A/B test {str(test.id)[:8]} has no variants")

    r = (rng or random).random() * 100
    variant = pick_weighted(variants, r)

    logger.debug(
        "A/B test %s routed send to variant %s (r=%.2f)",
        str(test.id)[:8], variant.label, r,
    )
    return variant
