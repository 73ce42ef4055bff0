"""
Matching modes - who may be listed for an order and in what order.

TrustRankedMode: specialized, active labs with free capacity, preferred labs
first, then by capacity-weighted trust score.
OpenMarketMode: any active lab, alphabetical, no scoring.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from database.models import Provider, ProviderSpecialization, ProviderPricing
from database.models.enums import MatchingModeName
from database.repositories import ProviderCatalog
from core.quote import Quote

logger = logging.getLogger(__name__)


@dataclass
class RankingContext:
    category: str
    urgency: str
    requester_id: Optional[str] = None
    # provider_id -> priority_order
    preferred: Dict[Any, int] = field(default_factory=dict)


@dataclass
class RankedProvider:
    provider: Provider
    rank: int
    quote: Quote
    is_preferred: bool
    effective_score: Optional[float]
    specialization: Optional[ProviderSpecialization] = None
    pricing: Optional[ProviderPricing] = None

    @property
    def provider_id(self) -> Any:
        return self.provider.id


@dataclass
class OrderedProvider:
    """Intermediate result of a mode's ordering step, before quotes are attached."""
    provider: Provider
    is_preferred: bool
    effective_score: Optional[float]


def capacity_weighted_score(provider: Provider) -> float:
    if not provider.max_capacity:
        return 0.0
    free = provider.max_capacity - provider.current_load
    return float(provider.trust_score or 0) * free / provider.max_capacity


class MatchingMode(ABC):
    name: MatchingModeName
    requires_specialization: bool = False

    @abstractmethod
    def candidates(self, catalog: ProviderCatalog, category: str) -> List[Provider]:
        pass

    @abstractmethod
    def is_eligible(self, provider: Provider, specialization: Optional[ProviderSpecialization]) -> bool:
        pass

    @abstractmethod
    def order(self, providers: List[Provider], context: RankingContext) -> List[OrderedProvider]:
        pass


class TrustRankedMode(MatchingMode):
    name = MatchingModeName.TRUST_RANKED
    requires_specialization = True

    def __init__(self, new_provider_min_rank: Optional[int] = None):
        self.new_provider_min_rank = new_provider_min_rank

    def candidates(self, catalog: ProviderCatalog, category: str) -> List[Provider]:
        return catalog.list_specialized_with_capacity(category)

    def is_eligible(self, provider: Provider, specialization: Optional[ProviderSpecialization]) -> bool:
        return (
            bool(provider.is_active)
            and specialization is not None
            and provider.current_load < provider.max_capacity
        )

    def order(self, providers: List[Provider], context: RankingContext) -> List[OrderedProvider]:
        preferred = [p for p in providers if p.id in context.preferred]
        others = [p for p in providers if p.id not in context.preferred]

        preferred.sort(key=lambda p: (context.preferred[p.id], str(p.id)))
        others.sort(key=lambda p: (-capacity_weighted_score(p), p.current_load, str(p.id)))

        others = self._apply_new_provider_floor(others, offset=len(preferred))

        ordered = [OrderedProvider(p, True, capacity_weighted_score(p)) for p in preferred]
        ordered.extend(OrderedProvider(p, False, capacity_weighted_score(p)) for p in others)
        return ordered

    def _apply_new_provider_floor(self, providers: List[Provider], offset: int) -> List[Provider]:
        """Hold new labs back until ``new_provider_min_rank``; labs ahead of them keep their place."""
        floor = self.new_provider_min_rank
        if not floor or floor <= 1:
            return providers

        placed: List[Provider] = []
        held: List[Provider] = []
        for provider in providers:
            if provider.is_new and offset + len(placed) + 1 < floor:
                held.append(provider)
                continue
            placed.append(provider)
            while held and offset + len(placed) + 1 >= floor:
                placed.append(held.pop(0))
        placed.extend(held)
        return placed


class OpenMarketMode(MatchingMode):
    name = MatchingModeName.OPEN_MARKET
    requires_specialization = False

    def candidates(self, catalog: ProviderCatalog, category: str) -> List[Provider]:
        return catalog.list_active_providers()

    def is_eligible(self, provider: Provider, specialization: Optional[ProviderSpecialization]) -> bool:
        return bool(provider.is_active)

    def order(self, providers: List[Provider], context: RankingContext) -> List[OrderedProvider]:
        ordered = sorted(providers, key=lambda p: ((p.name or "").lower(), str(p.id)))
        return [OrderedProvider(p, p.id in context.preferred, None) for p in ordered]


def mode_for(name: str, new_provider_min_rank: Optional[int] = None) -> MatchingMode:
    if MatchingModeName(name) == MatchingModeName.OPEN_MARKET:
        return OpenMarketMode()
    return TrustRankedMode(new_provider_min_rank=new_provider_min_rank)
