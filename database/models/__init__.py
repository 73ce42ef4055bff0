from .base import Base
from .enums import (
    Urgency,
    DeliveryStatus,
    DELIVERY_SEQUENCE,
    MarketplaceStatus,
    ClaimStatus,
    BidStatus,
    MatchingModeName,
    ExpertiseLevel,
    VisibilityTier,
)
from .provider import Provider, ProviderSpecialization, ProviderPricing, ProviderMetrics, PreferredProvider
from .order import Order, OrderStatusHistory
from .claim import Claim
from .notification import Notification

__all__ = [
    'Base',
    'Urgency',
    'DeliveryStatus',
    'DELIVERY_SEQUENCE',
    'MarketplaceStatus',
    'ClaimStatus',
    'BidStatus',
    'MatchingModeName',
    'ExpertiseLevel',
    'VisibilityTier',
    'Provider',
    'ProviderSpecialization',
    'ProviderPricing',
    'ProviderMetrics',
    'PreferredProvider',
    'Order',
    'OrderStatusHistory',
    'Claim',
    'Notification',
]
