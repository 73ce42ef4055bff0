import logging
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional, Union

from database.models import Provider, ProviderSpecialization, ProviderPricing
from database.models.enums import Urgency
from core.quote.models import Quote, FixedPrice, PriceRange, ContactForPricing, PriceDisplay

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class QuoteCalculator:
    """
    Delivery date and price for one provider on one category.

    Pure: all inputs are passed in, ``today`` comes from the injected clock.
    """

    def __init__(
        self,
        default_rush_surcharge_percent: int = 20,
        clock: Optional[Callable[[], date]] = None
    ):
        self.default_rush_surcharge_percent = default_rush_surcharge_percent
        self.clock = clock or date.today

    def turnaround_days(
        self,
        provider: Provider,
        urgency: Union[Urgency, str],
        specialization: Optional[ProviderSpecialization] = None
    ) -> int:
        if specialization is not None and specialization.turnaround_days is not None:
            return specialization.turnaround_days
        if Urgency(urgency) == Urgency.URGENT:
            return provider.urgent_sla_days
        return provider.standard_sla_days

    def price(
        self,
        pricing: Optional[ProviderPricing],
        urgency: Union[Urgency, str]
    ) -> PriceDisplay:
        if pricing is None:
            return ContactForPricing()

        if pricing.fixed_price is not None:
            amount = to_money(pricing.fixed_price)
            if Urgency(urgency) == Urgency.URGENT and not pricing.includes_rush:
                pct = pricing.rush_surcharge_percent
                if pct is None:
                    pct = self.default_rush_surcharge_percent
                multiplier = Decimal(1) + Decimal(pct) / Decimal(100)
                return FixedPrice(amount=to_money(amount * multiplier), rush_applied=True)
            return FixedPrice(amount=amount, rush_applied=False)

        if pricing.min_price is not None and pricing.max_price is not None:
            return PriceRange(min=to_money(pricing.min_price), max=to_money(pricing.max_price))

        return ContactForPricing()

    def quote(
        self,
        provider: Provider,
        urgency: Union[Urgency, str],
        specialization: Optional[ProviderSpecialization] = None,
        pricing: Optional[ProviderPricing] = None
    ) -> Quote:
        days = self.turnaround_days(provider, urgency, specialization)
        return Quote(
            estimated_delivery_date=self.clock() + timedelta(days=days),
            turnaround_days=days,
            price=self.price(pricing, urgency)
        )
