from core.ranking.modes import (
    MatchingMode,
    TrustRankedMode,
    OpenMarketMode,
    RankingContext,
    RankedProvider,
    mode_for,
)
from core.ranking.engine import TrustRankingEngine
from core.ranking.trust_score import calculate_trust_score, calculate_visibility_tier

__all__ = [
    'MatchingMode',
    'TrustRankedMode',
    'OpenMarketMode',
    'RankingContext',
    'RankedProvider',
    'mode_for',
    'TrustRankingEngine',
    'calculate_trust_score',
    'calculate_visibility_tier',
]
