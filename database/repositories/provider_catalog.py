"""
Provider catalog - capacity, SLA, pricing and specialization lookups.

Pure data access. Eligibility and ordering policy live in core.ranking;
this module only answers "which rows match".
"""

import logging
from decimal import Decimal
from typing import List, Optional, Dict, Any, Iterable

from sqlalchemy import select, update, and_

from database.models import (
    Provider, ProviderSpecialization, ProviderPricing, ProviderMetrics, PreferredProvider
)
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ProviderCatalog(BaseRepository):
    def get_provider(self, provider_id: Any) -> Optional[Provider]:
        stmt = select(Provider).where(Provider.id == provider_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_active_providers(self) -> List[Provider]:
        stmt = select(Provider).where(Provider.is_active.is_(True))
        return self.db.execute(stmt).scalars().all()

    def list_specialized_with_capacity(self, category: str) -> List[Provider]:
        """Active providers with a specialization row for ``category`` and free capacity."""
        stmt = (
            select(Provider)
            .join(ProviderSpecialization, and_(
                ProviderSpecialization.provider_id == Provider.id,
                ProviderSpecialization.category == category,
            ))
            .where(
                Provider.is_active.is_(True),
                Provider.current_load < Provider.max_capacity,
            )
        )
        return self.db.execute(stmt).scalars().all()

    def get_specialization(self, provider_id: Any, category: str) -> Optional[ProviderSpecialization]:
        stmt = select(ProviderSpecialization).where(
            ProviderSpecialization.provider_id == provider_id,
            ProviderSpecialization.category == category
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_specializations_for_category(
        self,
        category: str,
        provider_ids: Iterable[Any]
    ) -> Dict[Any, ProviderSpecialization]:
        ids = list(provider_ids)
        if not ids:
            return {}
        stmt = select(ProviderSpecialization).where(
            ProviderSpecialization.category == category,
            ProviderSpecialization.provider_id.in_(ids)
        )
        return {s.provider_id: s for s in self.db.execute(stmt).scalars().all()}

    def get_pricing(self, provider_id: Any, category: str) -> Optional[ProviderPricing]:
        stmt = select(ProviderPricing).where(
            ProviderPricing.provider_id == provider_id,
            ProviderPricing.category == category
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_pricing_for_category(
        self,
        category: str,
        provider_ids: Iterable[Any]
    ) -> Dict[Any, ProviderPricing]:
        ids = list(provider_ids)
        if not ids:
            return {}
        stmt = select(ProviderPricing).where(
            ProviderPricing.category == category,
            ProviderPricing.provider_id.in_(ids)
        )
        return {p.provider_id: p for p in self.db.execute(stmt).scalars().all()}

    def get_preferred_providers(self, requester_id: str) -> List[PreferredProvider]:
        stmt = (
            select(PreferredProvider)
            .where(PreferredProvider.requester_id == requester_id)
            .order_by(PreferredProvider.priority_order, PreferredProvider.id)
        )
        return self.db.execute(stmt).scalars().all()

    def get_metrics(self, provider_id: Any) -> Optional[ProviderMetrics]:
        stmt = select(ProviderMetrics).where(ProviderMetrics.provider_id == provider_id)
        return self.db.execute(stmt).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_provider(self, name: str, **attrs) -> Provider:
        provider = Provider(name=name, **attrs)
        self.db.add(provider)
        self.db.flush()
        return provider

    def add_specialization(
        self,
        provider_id: Any,
        category: str,
        expertise_level: str,
        turnaround_days: Optional[int] = None
    ) -> ProviderSpecialization:
        spec = ProviderSpecialization(
            provider_id=provider_id,
            category=category,
            expertise_level=expertise_level,
            turnaround_days=turnaround_days
        )
        self.db.add(spec)
        self.db.flush()
        return spec

    def set_pricing(
        self,
        provider_id: Any,
        category: str,
        fixed_price: Optional[Decimal] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        includes_rush: bool = False,
        rush_surcharge_percent: Optional[int] = None
    ) -> ProviderPricing:
        pricing = self.get_pricing(provider_id, category)
        if pricing is None:
            pricing = ProviderPricing(provider_id=provider_id, category=category)
            self.db.add(pricing)
        pricing.fixed_price = fixed_price
        pricing.min_price = min_price
        pricing.max_price = max_price
        pricing.includes_rush = includes_rush
        pricing.rush_surcharge_percent = rush_surcharge_percent
        self.db.flush()
        return pricing

    def set_preferred_provider(self, requester_id: str, provider_id: Any, priority_order: int) -> PreferredProvider:
        stmt = select(PreferredProvider).where(
            PreferredProvider.requester_id == requester_id,
            PreferredProvider.provider_id == provider_id
        )
        preferred = self.db.execute(stmt).scalar_one_or_none()
        if preferred is None:
            preferred = PreferredProvider(requester_id=requester_id, provider_id=provider_id)
            self.db.add(preferred)
        preferred.priority_order = priority_order
        self.db.flush()
        return preferred

    def increment_load(self, provider_id: Any, enforce_capacity: bool = False) -> int:
        """Add one to the load. With ``enforce_capacity`` a full provider is left alone and 0 is returned."""
        stmt = update(Provider).where(Provider.id == provider_id)
        if enforce_capacity:
            stmt = stmt.where(Provider.current_load < Provider.max_capacity)
        result = self.db.execute(stmt.values(current_load=Provider.current_load + 1))
        return result.rowcount

    def decrement_load(self, provider_id: Any) -> int:
        result = self.db.execute(
            update(Provider)
            .where(Provider.id == provider_id, Provider.current_load > 0)
            .values(current_load=Provider.current_load - 1)
        )
        return result.rowcount

    def record_delivery(self, provider_id: Any, on_time: bool) -> ProviderMetrics:
        metrics = self.get_metrics(provider_id)
        if metrics is None:
            metrics = ProviderMetrics(
                provider_id=provider_id,
                total_orders=0,
                completed_orders=0,
                on_time_deliveries=0,
                rating_sum=0,
                rating_count=0
            )
            self.db.add(metrics)
        metrics.total_orders += 1
        metrics.completed_orders += 1
        if on_time:
            metrics.on_time_deliveries += 1
        self.db.flush()
        return metrics

    def update_trust_profile(self, provider_id: Any, trust_score: float, visibility_tier: str) -> int:
        result = self.db.execute(
            update(Provider)
            .where(Provider.id == provider_id)
            .values(trust_score=trust_score, visibility_tier=visibility_tier)
        )
        logger.info(f"Provider {provider_id} trust score refreshed to {trust_score} ({visibility_tier})")
        return result.rowcount
