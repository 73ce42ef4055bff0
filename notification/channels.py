#!/usr/bin/env python3
"""
Notification Channels

Each channel delivers one notification to one recipient:
- in_app: stores a row in the notifications table
- webhook: POSTs the event payload as JSON
- log: writes the notification to the application log

Usage:
    from notification.channels import NotificationChannelFactory

    channel = NotificationChannelFactory.get_channel('webhook')
    channel.send(recipient, subject, body, metadata)
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import logging
import urllib.parse
import uuid

import requests
from sqlalchemy.orm import sessionmaker

from database.database import db_session_scope
from database.repositories import NotificationRepository

logger = logging.getLogger(__name__)


def _validate_webhook_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ('http', 'https'):
        logger.error(f"Invalid URL scheme: {parsed.scheme}")
        return False
    if not parsed.hostname:
        logger.error("URL missing hostname")
        return False
    return True


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


class NotificationChannel(ABC):
    """
    Abstract base class for all notification channels.

    ``send`` returns False on a delivery failure instead of raising.
    """

    @property
    @abstractmethod
    def channel_type(self) -> str:
        pass

    @abstractmethod
    def send(self, recipient: str, subject: str, body: str, metadata: Dict[str, Any]) -> bool:
        pass


class InAppChannel(NotificationChannel):
    """In-app notification channel (stores in database)."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    @property
    def channel_type(self) -> str:
        return 'in_app'

    def send(self, recipient: str, subject: str, body: str, metadata: Dict[str, Any]) -> bool:
        try:
            # Own session: the marketplace transition has already committed
            with db_session_scope(self.session_factory) as session:
                NotificationRepository(session).create_notification(
                    user_id=recipient,
                    order_id=_as_uuid(metadata.get('order_id')),
                    type=metadata.get('type', 'general'),
                    title=subject,
                    message=body
                )
            logger.info(f"[IN_APP] User: {recipient}, Title: {subject}")
            return True
        except Exception as e:
            logger.error(f"Failed to store in-app notification for {recipient}: {e}")
            return False


class WebhookChannel(NotificationChannel):
    """Generic webhook notification channel."""

    def __init__(self, timeout_seconds: int = 10):
        self.timeout_seconds = timeout_seconds

    @property
    def channel_type(self) -> str:
        return 'webhook'

    def send(self, recipient: str, subject: str, body: str, metadata: Dict[str, Any]) -> bool:
        """POST the event to ``recipient`` (the webhook URL)."""
        if not _validate_webhook_url(recipient):
            logger.error(f"Invalid webhook URL: {recipient}")
            return False

        payload = {
            'subject': subject,
            'body': body,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'event': metadata.get('event', {}),
        }
        headers = {
            'Content-Type': 'application/json',
            'User-Agent': 'LabMatch-Notification-Service/1.0'
        }

        try:
            response = requests.post(
                recipient,
                json=payload,
                headers=headers,
                timeout=self.timeout_seconds
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to send webhook: {e}")
            return False

        parsed = urllib.parse.urlparse(recipient)
        logger.info(f"Webhook sent to {parsed.scheme}://{parsed.hostname}{parsed.path}")
        return True


class LogChannel(NotificationChannel):
    @property
    def channel_type(self) -> str:
        return 'log'

    def send(self, recipient: str, subject: str, body: str, metadata: Dict[str, Any]) -> bool:
        logger.info(f"[NOTIFY] {recipient}: {subject} - {body}")
        return True


class NotificationChannelFactory:
    """
    Factory for creating notification channels.

    Channels that need settings (session factory, timeouts) receive them as
    keyword arguments; unknown kwargs for a channel are ignored.
    """

    _channels: Dict[str, type] = {
        'in_app': InAppChannel,
        'webhook': WebhookChannel,
        'log': LogChannel,
    }

    @classmethod
    def get_channel(cls, channel_type: str, **options) -> NotificationChannel:
        channel_class = cls._channels.get(channel_type.lower())
        if not channel_class:
            raise ValueError(f"Unknown channel type: {channel_type}. "
                             f"Available: {', '.join(cls._channels.keys())}")

        if channel_class is InAppChannel:
            return InAppChannel(session_factory=options.get('session_factory'))
        if channel_class is WebhookChannel:
            return WebhookChannel(timeout_seconds=options.get('timeout_seconds', 10))
        return channel_class()

    @classmethod
    def register_channel(cls, channel_type: str, channel_class: type):
        if not issubclass(channel_class, NotificationChannel):
            raise ValueError("Channel class must extend NotificationChannel")

        cls._channels[channel_type.lower()] = channel_class
        logger.info(f"Registered new channel type: {channel_type}")

    @classmethod
    def list_channels(cls) -> list:
        return list(cls._channels.keys())
