"""
Trust score maintenance.

Trust score (0-5) = 0.30 * SLA + 0.25 * quality + 0.20 * experience
                  + 0.25 * reliability

- SLA: on-time deliveries / completed orders, scaled to 5
- quality: average review rating (already 0-5)
- experience: log(completed + 1) / log(500), capped at 1, scaled to 5
- reliability: 1 - cancellation rate, scaled to 5; perfect without metrics

The score is recomputed when an order is delivered. Ranking only reads the
stored value.
"""

import math
from typing import Optional

from database.models import ProviderMetrics
from database.models.enums import VisibilityTier

SLA_WEIGHT = 0.30
QUALITY_WEIGHT = 0.25
EXPERIENCE_WEIGHT = 0.20
RELIABILITY_WEIGHT = 0.25

EXPERIENCE_SATURATION_ORDERS = 500
MAX_SCORE = 5.0


def calculate_trust_score(metrics: Optional[ProviderMetrics]) -> float:
    if metrics is None:
        return round(MAX_SCORE * RELIABILITY_WEIGHT, 2)

    completed = metrics.completed_orders or 0

    sla = 0.0
    experience = 0.0
    if completed > 0:
        sla = (metrics.on_time_deliveries or 0) / completed * MAX_SCORE
        experience = min(
            math.log(completed + 1) / math.log(EXPERIENCE_SATURATION_ORDERS), 1.0
        ) * MAX_SCORE

    quality = 0.0
    if metrics.rating_count:
        quality = float(metrics.rating_sum) / metrics.rating_count

    cancellation = float(metrics.cancellation_rate or 0)
    reliability = (1 - cancellation) * MAX_SCORE

    total = (
        SLA_WEIGHT * sla +
        QUALITY_WEIGHT * quality +
        EXPERIENCE_WEIGHT * experience +
        RELIABILITY_WEIGHT * reliability
    )
    return round(total, 2)


def calculate_visibility_tier(metrics: Optional[ProviderMetrics], trust_score: float) -> VisibilityTier:
    if metrics is None:
        return VisibilityTier.EMERGING

    completed = metrics.completed_orders or 0
    cancellation = float(metrics.cancellation_rate or 0)

    if completed >= 200 and trust_score >= 4.5 and cancellation < 0.02:
        return VisibilityTier.ELITE
    if completed >= 51 and trust_score >= 4.0:
        return VisibilityTier.TRUSTED
    if completed >= 10 and trust_score >= 3.5:
        return VisibilityTier.ESTABLISHED
    return VisibilityTier.EMERGING
