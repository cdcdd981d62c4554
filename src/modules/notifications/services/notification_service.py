# modules/notifications/services/notification_service.py
from typing import List, Optional

from modules.notifications.models.notification import Notification
from modules.notifications.repositories.notification_repository import NotificationRepository


class NotificationTemplate:
    def __init__(self, user_id: str, title: str, message: str):
        self.user_id = user_id
        self.title = title
        self.message = message

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'title': self.title,
            'message': self.message
        }


class SignatureReceivedNotification(NotificationTemplate):
    def __init__(self, user_id: str, document_title: str, signer: str, signed_count: int, signatories_count: int):
        title = "Document signed"
        message = (
            f"{signer} signed '{document_title}' "
            f"({signed_count} of {signatories_count} signatures collected)."
        )
        super().__init__(user_id, title, message)


class DocumentCompletedNotification(NotificationTemplate):
    def __init__(self, user_id: str, document_title: str):
        title = "Document fully signed"
        message = f"The document '{document_title}' has been signed by all parties."
        super().__init__(user_id, title, message)


class NotificationService:
    def __init__(self, repository: NotificationRepository):
        self.notification_repository = repository

    def _save(self, template: NotificationTemplate) -> Notification:
        notif = Notification(**template.to_dict())
        return self.notification_repository.save(notif)

    def create_signature_received_notification(
        self,
        user_id: str,
        document_title: str,
        signer: str,
        signed_count: int,
        signatories_count: int
    ) -> Notification:
        return self._save(SignatureReceivedNotification(
            user_id, document_title, signer, signed_count, signatories_count
        ))

    def create_document_completed_notification(self, user_id: str, document_title: str) -> Notification:
        return self._save(DocumentCompletedNotification(user_id, document_title))

    def get_notifications(self, user_id: str) -> List[Notification]:
        return self.notification_repository.find_by_user_id(user_id)

    def mark_as_read(self, notification_id: str, user_id: Optional[str] = None) -> Optional[Notification]:
        notif = self.notification_repository.get_for_user(notification_id, user_id)
        if notif is None:
            return None
        return self.notification_repository.mark_read(notif)
