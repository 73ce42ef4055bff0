"""
Status vocabularies stored as plain text columns.

Values match what the marketplace tables hold, so rows written by other
services stay readable.
"""

from enum import Enum


class Urgency(str, Enum):
    NORMAL = "Normal"
    URGENT = "Urgent"


class DeliveryStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    READY_FOR_QC = "ReadyForQC"
    READY_FOR_DELIVERY = "ReadyForDelivery"
    DELIVERED = "Delivered"


# Forward-only delivery lifecycle
DELIVERY_SEQUENCE = [
    DeliveryStatus.PENDING,
    DeliveryStatus.IN_PROGRESS,
    DeliveryStatus.READY_FOR_QC,
    DeliveryStatus.READY_FOR_DELIVERY,
    DeliveryStatus.DELIVERED,
]


class MarketplaceStatus(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    BOUND = "bound"


class ClaimStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REFUSED = "refused"


# Negotiation state of a pending claim; ``status`` stays authoritative
class BidStatus(str, Enum):
    SUBMITTED = "submitted"
    REVISION_REQUESTED = "revision_requested"
    REVISED = "revised"


class MatchingModeName(str, Enum):
    TRUST_RANKED = "trust_ranked"
    OPEN_MARKET = "open_market"


class ExpertiseLevel(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    EXPERT = "expert"


class VisibilityTier(str, Enum):
    EMERGING = "emerging"
    ESTABLISHED = "established"
    TRUSTED = "trusted"
    ELITE = "elite"
