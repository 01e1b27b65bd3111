"""
Significance calculator - two-proportion Z-test over variant conversion rates.

Pure functions only: no database, no logging, no shared state.

Statistical method:
    p_a, p_b   = conversion_count / sent_count per variant
    pooled     = (conv_a + conv_b) / (sent_a + sent_b)
    SE         = sqrt(pooled * (1 - pooled) * (1/sent_a + 1/sent_b))
    Z          = |p_a - p_b| / SE
    p-value    = 2 * (1 - PHI(Z))            two-tailed
    confidence = round((1 - p-value) * 100)
    significant when p-value < 0.05
"""
import math
from dataclasses import asdict, dataclass
from typing import Optional

# Below this many sends per variant the result is always "not significant"
MIN_SAMPLE_SIZE = 30
SIGNIFICANCE_ALPHA = 0.05

# Abramowitz & Stegun 26.2.17 coefficients (|error| < 7.5e-8)
_P = 0.2316419
_B1 = 0.319381530
_B2 = -0.356563782
_B3 = 1.781477937
_B4 = -1.821255978
_B5 = 1.330274429
_INV_SQRT_2PI = 0.3989422804014327


@dataclass(frozen=True)
class SignificanceResult:
    p_value: float
    confidence_level: int
    is_significant: bool

    def to_dict(self) -> dict:
        return asdict(self)


NOT_SIGNIFICANT = SignificanceResult(p_value=1.0, confidence_level=0, is_significant=False)


def normal_cdf(x: float) -> float:
    """Standard normal cumulative distribution function (rational approximation)."""
    t = 1.0 / (1.0 + _P * abs(x))
    density = _INV_SQRT_2PI * math.exp(-x * x / 2.0)
    poly = t * (_B1 + t * (_B2 + t * (_B3 + t * (_B4 + t * _B5))))
    tail = density * poly
    return 1.0 - tail if x > 0 else tail


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 away from zero (positive inputs)."""
    return int(math.floor(value + 0.5))


def conversion_proportion(variant) -> float:
    if not variant.sent_count:
        return 0.0
    return variant.conversion_count / variant.sent_count


def compare_proportions(variant_a, variant_b) -> SignificanceResult:
    """
    Two-proportion Z-test on conversion rate between two variants.

    Args:
        variant_a: Anything exposing sent_count and conversion_count
        variant_b: Same

    Returns:
        SignificanceResult. Symmetric in its arguments.
    """
    n_a = variant_a.sent_count or 0
    n_b = variant_b.sent_count or 0

    # Minimum sample gate - small runs never produce a winner
    if n_a < MIN_SAMPLE_SIZE or n_b < MIN_SAMPLE_SIZE:
        return NOT_SIGNIFICANT

    conv_a = variant_a.conversion_count or 0
    conv_b = variant_b.conversion_count or 0

    pooled = (conv_a + conv_b) / (n_a + n_b)
    se = math.sqrt(pooled * (1 - pooled) * (1 / n_a + 1 / n_b))
    if se == 0:
        # Both at 0% or both at 100% - nothing to distinguish
        return NOT_SIGNIFICANT

    z = abs(conv_a / n_a - conv_b / n_b) / se
    p_value = min(1.0, max(0.0, 2 * (1 - normal_cdf(z))))

    return SignificanceResult(
        p_value=p_value,
        confidence_level=round_half_up((1 - p_value) * 100),
        is_significant=p_value < SIGNIFICANCE_ALPHA,
    )


def lift(variant_a, variant_b) -> Optional[float]:
    """Relative improvement of a's conversion proportion over b's (0.25 = +25%)."""
    baseline = conversion_proportion(variant_b)
    if baseline == 0:
        return None
    return (conversion_proportion(variant_a) - baseline) / baseline
