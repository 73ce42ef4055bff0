"""
Marketplace events handed to the notification dispatcher after commit.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class EventType(str, Enum):
    CLAIM_SUBMITTED = "claim_submitted"
    CLAIM_ACCEPTED = "claim_accepted"
    CLAIM_REFUSED = "claim_refused"
    CLAIM_WITHDRAWN = "claim_withdrawn"
    ORDER_BOUND = "order_bound"
    BID_REVISION_REQUESTED = "bid_revision_requested"
    BID_REVISED = "bid_revised"
    REVISION_DECLINED = "revision_declined"


@dataclass
class MatchingEvent:
    type: EventType
    order_id: Any
    recipients: List[str] = field(default_factory=list)
    order_number: Optional[str] = None
    provider_id: Any = None
    claim_id: Any = None
    new_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe payload for queue jobs and webhooks."""
        return {
            'type': self.type.value,
            'order_id': str(self.order_id) if self.order_id is not None else None,
            'order_number': self.order_number,
            'provider_id': str(self.provider_id) if self.provider_id is not None else None,
            'claim_id': str(self.claim_id) if self.claim_id is not None else None,
            'new_status': self.new_status,
            'recipients': list(self.recipients),
        }
