"""
Title and body text for marketplace notifications.
"""

from typing import Tuple

from notification.events import EventType, MatchingEvent


class NotificationMessageBuilder:
    """Builds the (title, message) pair shown to a recipient."""

    @staticmethod
    def _order_label(event: MatchingEvent) -> str:
        return event.order_number or str(event.order_id)

    @classmethod
    def build(cls, event: MatchingEvent) -> Tuple[str, str]:
        order = cls._order_label(event)

        if event.type == EventType.CLAIM_SUBMITTED:
            return (
                f"New Lab Request: {order}",
                "A lab has requested to work on your order.",
            )
        if event.type == EventType.CLAIM_ACCEPTED:
            return (
                f"Request Accepted: {order}",
                "Your request to work on this order has been accepted!",
            )
        if event.type == EventType.CLAIM_REFUSED:
            return (
                f"Request Declined: {order}",
                "Your request to work on this order has been declined.",
            )
        if event.type == EventType.CLAIM_WITHDRAWN:
            return (
                f"Request Withdrawn: {order}",
                "A lab has withdrawn its request for your order.",
            )
        if event.type == EventType.ORDER_BOUND:
            return (
                f"Lab Assigned: {order}",
                "A lab has been assigned to your order.",
            )
        if event.type == EventType.BID_REVISION_REQUESTED:
            return (
                f"Bid Revision Requested: {order}",
                "The requester has asked for a revised bid. Please review and submit a revised bid.",
            )
        if event.type == EventType.BID_REVISED:
            return (
                f"Revised Bid: {order}",
                "A lab has submitted a revised bid for your order.",
            )
        if event.type == EventType.REVISION_DECLINED:
            return (
                f"Revision Declined: {order}",
                "A lab has declined to revise its bid and withdrawn from your order.",
            )
        raise ValueError(f"Unknown event type: {event.type}")
