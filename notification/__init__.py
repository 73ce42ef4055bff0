"""
Notification Module

Delivers marketplace events (claim submitted, accepted, refused, withdrawn,
order bound) to the people involved.

Usage:
    from notification import NotificationService, MatchingEvent, EventType

    service = NotificationService(session_factory=session_factory)
    service.dispatch(MatchingEvent(EventType.CLAIM_ACCEPTED, order_id, ['user-1']))
"""

from notification.channels import (
    NotificationChannel,
    InAppChannel,
    WebhookChannel,
    LogChannel,
    NotificationChannelFactory,
)

from notification.events import EventType, MatchingEvent
from notification.message_builder import NotificationMessageBuilder

from notification.service import (
    NotificationService,
    process_notification_task,
)

__all__ = [
    # Channels
    'NotificationChannel',
    'InAppChannel',
    'WebhookChannel',
    'LogChannel',
    'NotificationChannelFactory',
    # Events
    'EventType',
    'MatchingEvent',
    'NotificationMessageBuilder',
    # Service
    'NotificationService',
    'process_notification_task',
]
