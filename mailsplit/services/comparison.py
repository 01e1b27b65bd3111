"""
Comparison view for reporting - all variants, the current winner, the full
pairwise significance matrix, and the per-variant engagement funnel.
"""
from itertools import combinations

from sqlalchemy.ext.asyncio import AsyncSession

from mailsplit.services.lifecycle import get_test
from mailsplit.services.significance import compare_proportions, lift
from mailsplit.services.variant_store import IdLike, list_variants, percent
from mailsplit.services.winner import rank_by_conversion


def significance_matrix(variants) -> dict:
    """Pairwise results keyed "<label>_vs_<label>" in variant order."""
    matrix = {}
    for first, second in combinations(variants, 2):
        matrix[f"{first.label}_vs_{second.label}"] = compare_proportions(first, second)
    return matrix


async def get_test_comparison(db: AsyncSession, test_id: IdLike) -> dict:
    """
    Returns:
        {"test", "variants", "winner", "significance_matrix", "leader"}
        leader is None with fewer than 2 variants, otherwise the current
        leader/runner-up labels and the leader's relative lift.
    """
    test = await get_test(db, test_id)
    variants = await list_variants(db, test.id)
    winner = next((v for v in variants if v.is_winner), None)

    leader = None
    ranked = rank_by_conversion(variants)
    if len(ranked) >= 2:
        leader = {
            "label": ranked[0].label,
            "runner_up_label": ranked[1].label,
            "lift": lift(ranked[0], ranked[1]),
        }

    return {
        "test": test,
        "variants": variants,
        "winner": winner,
        "significance_matrix": significance_matrix(variants),
        "leader": leader,
    }


# (stage name, counter column) in funnel order
FUNNEL_STAGES = (
    ("sent", "sent_count"),
    ("opened", "open_count"),
    ("clicked", "click_count"),
    ("converted", "conversion_count"),
)


def conversion_funnel(variants) -> list[dict]:
    """Per-variant stage counts, each with its share of sent (integer percent)."""
    funnels = []
    for variant in variants:
        stages = []
        for stage, column in FUNNEL_STAGES:
            count = getattr(variant, column) or 0
            stages.append({
                "stage": stage,
                "count": count,
                "percent_of_sent": percent(count, variant.sent_count),
            })
        funnels.append({"variant_id": variant.id, "label": variant.label, "stages": stages})
    return funnels


async def get_conversion_funnel(db: AsyncSession, test_id: IdLike) -> list[dict]:
    """
    Raises:
        ABTestNotFound: unknown test
    """
    test = await get_test(db, test_id)
    return conversion_funnel(await list_variants(db, test.id))
