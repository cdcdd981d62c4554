from typing import List, Optional

from sqlalchemy.orm import Session

from modules.notifications.models.notification import Notification


class NotificationRepository:
    """In-app notices; each write commits on its own, outside any signing transaction."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def save(self, notification: Notification) -> Notification:
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def get_for_user(self, notification_id: str, user_id: Optional[str] = None) -> Optional[Notification]:
        query = self.db.query(Notification).filter(Notification.id == notification_id)
        if user_id is not None:
            query = query.filter(Notification.user_id == user_id)
        return query.first()

    def find_by_user_id(self, user_id: str) -> List[Notification]:
        return (
            self.db
            .query(Notification)
            .filter(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .all()
        )

    def mark_read(self, notification: Notification) -> Notification:
        notification.read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification
