"""
Quote data structures.

PriceDisplay is a closed set of three shapes; callers switch on the type.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Union


@dataclass(frozen=True)
class FixedPrice:
    amount: Decimal
    rush_applied: bool = False

    def display(self, currency: str = "USD") -> str:
        return f"{currency} {self.amount:.2f}"


@dataclass(frozen=True)
class PriceRange:
    min: Decimal
    max: Decimal

    def display(self, currency: str = "USD") -> str:
        return f"{currency} {self.min:.2f} - {self.max:.2f}"


@dataclass(frozen=True)
class ContactForPricing:
    def display(self, currency: str = "USD") -> str:
        return "Contact for pricing"


PriceDisplay = Union[FixedPrice, PriceRange, ContactForPricing]


@dataclass(frozen=True)
class Quote:
    estimated_delivery_date: date
    turnaround_days: int
    price: PriceDisplay
