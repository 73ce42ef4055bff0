import uuid

from sqlalchemy import Column, Text, Boolean, TIMESTAMP, Uuid, Index, func

from .base import Base


class Notification(Base):
    """
    In-app notification rows written by the in_app channel.

    ``order_id`` is deliberately not a foreign key so a notification can
    outlive the order it mentions.
    """
    __tablename__ = 'notifications'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False)
    order_id = Column(Uuid, nullable=True)
    type = Column(Text, nullable=False)  # claim_submitted|claim_accepted|claim_refused|...
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index('idx_notification_user_unread', 'user_id', 'is_read'),
    )
