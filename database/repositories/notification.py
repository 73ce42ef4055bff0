from typing import List, Optional, Any

from sqlalchemy import select, update

from database.models import Notification
from database.repositories.base import BaseRepository


class NotificationRepository(BaseRepository):
    def create_notification(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        order_id: Any = None
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            order_id=order_id,
            type=type,
            title=title,
            message=message,
            is_read=False
        )
        self.db.add(notification)
        self.db.flush()
        return notification

    def list_for_user(self, user_id: str, unread_only: bool = False, limit: Optional[int] = None) -> List[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id)
        if limit:
            stmt = stmt.limit(limit)
        return self.db.execute(stmt).scalars().all()

    def mark_read(self, notification_id: Any, user_id: str) -> bool:
        result = self.db.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
