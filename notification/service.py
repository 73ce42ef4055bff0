#!/usr/bin/env python3
"""
Notification Service

Turns marketplace events into per-recipient notifications and delivers
them through the configured channels, either on an RQ queue backed by
Redis or synchronously.

Dispatch is fire-and-forget: it runs after the marketplace transaction has
committed, and a failed delivery is logged, never raised.

Usage:
    from notification.service import NotificationService

    service = NotificationService(channels={'in_app': NotificationChannelConfig()})
    service.dispatch(event)
"""

import os
import logging
import uuid
from typing import Optional, Dict, Any, List

from redis import Redis
from rq import Queue, Retry
from sqlalchemy.orm import sessionmaker

from core.config_loader import NotificationChannelConfig
from notification.channels import NotificationChannelFactory
from notification.events import MatchingEvent
from notification.message_builder import NotificationMessageBuilder

logger = logging.getLogger(__name__)

# Channels that address the configured endpoint once per event rather than each user
BROADCAST_CHANNELS = {'webhook'}


class NotificationService:
    """
    Main notification service.

    This service coordinates:
    1. Message building (via NotificationMessageBuilder)
    2. Channel selection (via NotificationChannelFactory)
    3. Queueing for async processing (via RQ)
    """

    def __init__(
        self,
        channels: Optional[Dict[str, NotificationChannelConfig]] = None,
        session_factory: Optional[sessionmaker] = None,
        redis_url: Optional[str] = None,
        use_async_queue: bool = False,
        queue_name: str = 'notifications',
        webhook_timeout_seconds: int = 10
    ):
        """
        Args:
            channels: channel type -> channel config; disabled entries are skipped
            session_factory: used by the in_app channel in sync mode
            redis_url: Redis connection URL
            use_async_queue: Whether to use async queue or sync mode
            queue_name: RQ queue name
            webhook_timeout_seconds: HTTP timeout for the webhook channel
        """
        if channels is None:
            channels = {'in_app': NotificationChannelConfig()}
        self.channels = {name: cfg for name, cfg in channels.items() if cfg.enabled}
        self.session_factory = session_factory
        self.webhook_timeout_seconds = webhook_timeout_seconds

        self.redis_url = redis_url or os.environ.get(
            'REDIS_URL',
            'redis://localhost:6379/0'
        )

        if not use_async_queue:
            logger.info("Async queue disabled via config. Using sync mode.")
            self.redis_conn = None
            self.queue = None
            self.async_mode = False
        else:
            try:
                self.redis_conn = Redis.from_url(self.redis_url)
                # Validate connection with ping before using
                self.redis_conn.ping()
                self.queue = Queue(queue_name, connection=self.redis_conn)
                self.async_mode = True
                logger.info("Notification service connected to Redis")
            except Exception as e:
                logger.error(f"Redis connection failed: {e}. Falling back to sync mode.")
                self.redis_conn = None
                self.queue = None
                self.async_mode = False

    def build_notifications(self, event: MatchingEvent) -> List[Dict[str, Any]]:
        """One notification_data dict per (channel, recipient)."""
        subject, body = NotificationMessageBuilder.build(event)
        metadata = {
            'type': event.type.value,
            'order_id': str(event.order_id) if event.order_id is not None else None,
            'event': event.to_dict(),
        }

        notifications = []
        for channel_type, cfg in self.channels.items():
            if channel_type in BROADCAST_CHANNELS:
                if not cfg.recipient:
                    logger.warning(f"Channel {channel_type} enabled without a recipient; skipping")
                    continue
                recipients = [cfg.recipient]
            else:
                recipients = event.recipients

            for recipient in recipients:
                notifications.append({
                    'channel_type': channel_type,
                    'recipient': recipient,
                    'subject': subject,
                    'body': body,
                    'metadata': metadata,
                    'event_type': event.type.value,
                })
        return notifications

    def dispatch(self, event: MatchingEvent) -> List[str]:
        """
        Send or queue every notification for ``event``.

        Returns the ids of notifications that were queued or delivered.
        """
        sent = []
        try:
            notifications = self.build_notifications(event)
        except Exception as e:
            logger.error(f"Failed to build notifications for {event.type.value}: {e}")
            return sent

        for notification_data in notifications:
            try:
                if self.async_mode:
                    retry_policy = Retry(max=3, interval=[10, 30, 60])
                    job = self.queue.enqueue(
                        process_notification_task,
                        notification_data,
                        job_timeout='5m',
                        result_ttl=86400,
                        retry=retry_policy
                    )
                    logger.info(f"Queued notification as job {job.id}")
                    sent.append(job.id)
                else:
                    notification_id = process_notification_task(
                        notification_data,
                        session_factory=self.session_factory,
                        webhook_timeout_seconds=self.webhook_timeout_seconds
                    )
                    if notification_id:
                        sent.append(notification_id)
            except Exception as e:
                logger.error(
                    f"Failed to dispatch {notification_data['event_type']} via "
                    f"{notification_data['channel_type']}: {e}"
                )
        return sent


def process_notification_task(
    notification_data: Dict[str, Any],
    session_factory: Optional[sessionmaker] = None,
    webhook_timeout_seconds: int = 10
) -> Optional[str]:
    """
    Deliver one notification (called by RQ worker or inline in sync mode).

    Returns a notification id on success, None when the channel reported a
    failure.
    """
    notification_id = str(uuid.uuid4())
    channel_type = notification_data['channel_type']

    logger.info(f"Processing notification {notification_id} via {channel_type}")

    channel = NotificationChannelFactory.get_channel(
        channel_type,
        session_factory=session_factory,
        timeout_seconds=webhook_timeout_seconds
    )
    success = channel.send(
        notification_data['recipient'],
        notification_data['subject'],
        notification_data['body'],
        notification_data.get('metadata', {})
    )

    if not success:
        logger.warning(f"Notification {notification_id} via {channel_type} failed")
        return None
    return notification_id
