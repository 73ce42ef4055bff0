import logging
from typing import List, Optional, Union

from database.models.enums import Urgency
from database.repositories import ProviderCatalog
from core.quote import QuoteCalculator
from core.ranking.modes import MatchingMode, TrustRankedMode, RankingContext, RankedProvider, mode_for

logger = logging.getLogger(__name__)


class TrustRankingEngine:
    """
    Builds the candidate list for an order.

    Read-only: specializations, pricing and preferences are fetched in one
    query each for the whole candidate set, then the mode orders them and
    each entry gets its quote.
    """

    def __init__(
        self,
        quote_calculator: QuoteCalculator,
        new_provider_min_rank: Optional[int] = None,
        default_limit: int = 10
    ):
        self.quote_calculator = quote_calculator
        self.new_provider_min_rank = new_provider_min_rank
        self.default_limit = default_limit
        self.mode = TrustRankedMode(new_provider_min_rank=new_provider_min_rank)

    def mode_for(self, matching_mode: str) -> MatchingMode:
        return mode_for(matching_mode, new_provider_min_rank=self.new_provider_min_rank)

    def rank_providers(
        self,
        catalog: ProviderCatalog,
        category: str,
        urgency: str,
        requester_id: Optional[str] = None,
        limit: Optional[int] = None,
        mode: Union[MatchingMode, str, None] = None,
        require_capacity: bool = False
    ) -> List[RankedProvider]:
        """
        Rank the providers ``mode`` lists for ``category``.

        ``require_capacity`` drops full providers in modes that do not gate on
        capacity themselves (OpenMarket); binding callers always set it.
        """
        if isinstance(mode, str):
            mode = self.mode_for(mode)
        mode = mode or self.mode
        limit = self.default_limit if limit is None else limit
        urgency = Urgency(urgency).value

        providers = mode.candidates(catalog, category)
        if not providers or limit <= 0:
            logger.debug(f"No eligible providers for {category} ({mode.name.value})")
            return []

        ids = [p.id for p in providers]
        specializations = catalog.get_specializations_for_category(category, ids)
        pricing = catalog.get_pricing_for_category(category, ids)

        providers = [p for p in providers if mode.is_eligible(p, specializations.get(p.id))]
        if require_capacity:
            providers = [p for p in providers if p.current_load < p.max_capacity]

        preferred = {}
        if requester_id:
            preferred = {
                pp.provider_id: pp.priority_order
                for pp in catalog.get_preferred_providers(requester_id)
            }

        context = RankingContext(
            category=category,
            urgency=urgency,
            requester_id=requester_id,
            preferred=preferred
        )

        ranked = []
        for position, entry in enumerate(mode.order(providers, context)[:limit], start=1):
            spec = specializations.get(entry.provider.id)
            price = pricing.get(entry.provider.id)
            ranked.append(RankedProvider(
                provider=entry.provider,
                rank=position,
                quote=self.quote_calculator.quote(entry.provider, urgency, spec, price),
                is_preferred=entry.is_preferred,
                effective_score=entry.effective_score,
                specialization=spec,
                pricing=price
            ))

        logger.info(
            f"Ranked {len(ranked)} of {len(providers)} providers for {category}/{urgency} "
            f"({mode.name.value})"
        )
        return ranked
