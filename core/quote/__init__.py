from core.quote.models import Quote, FixedPrice, PriceRange, ContactForPricing, PriceDisplay
from core.quote.calculator import QuoteCalculator, to_money

__all__ = [
    'Quote',
    'FixedPrice',
    'PriceRange',
    'ContactForPricing',
    'PriceDisplay',
    'QuoteCalculator',
    'to_money',
]
