import logging

from sqlalchemy.orm import Session

from src import config
from src.domain.exceptions import ValidationError
from src.infrastructure.db.models import Message
from src.infrastructure.repositories.message_repository import MessageRepository
from src.infrastructure.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


class MessagingService:
    """Chat between customers and the single admin inbox."""

    def __init__(self, db: Session, admin_id: str = config.ADMIN_IDENTITY):
        self.db = db
        self.admin_id = admin_id
        self.message_repository = MessageRepository(db)
        self.user_repository = UserRepository(db)

    def send_message(self, sender_id: str, receiver_id: str, body: str) -> Message:
        if not sender_id or not receiver_id or not (body or "").strip():
            raise ValidationError("Missing required fields")
        if self.admin_id not in (sender_id, receiver_id) or sender_id == receiver_id:
            raise ValidationError("Messages must be exchanged with the admin inbox")

        message = self.message_repository.add(sender_id, receiver_id, body)
        logger.info("Message %s from %s to %s stored", message.id, sender_id, receiver_id)
        return message

    def list_conversation(self, user_id: str) -> list[Message]:
        return self.message_repository.thread(user_id, self.admin_id)

    def list_conversations(self) -> list[dict]:
        """Admin inbox: one entry per customer, most recent activity first."""
        # involving() is newest first, so the first hit per customer is the latest.
        latest: dict[str, Message] = {}
        for message in self.message_repository.involving(self.admin_id):
            user_id = message.receiver_id if message.sender_id == self.admin_id else message.sender_id
            latest.setdefault(user_id, message)

        users = self.user_repository.get_many(latest)
        conversations = []
        for user_id, message in latest.items():
            user = users.get(user_id)
            conversations.append(
                {
                    "user_id": user_id,
                    "user_name": user.name if user else "Unknown User",
                    "user_email": user.email if user else "",
                    "last_message": message.body,
                    "last_message_time": message.created_at,
                    "unread_count": self.message_repository.count_unread(
                        receiver_id=self.admin_id,
                        sender_id=user_id,
                    ),
                }
            )
        return conversations

    def mark_read(self, user_id: str, as_admin: bool) -> int:
        if as_admin:
            count = self.message_repository.mark_read(sender_id=user_id, receiver_id=self.admin_id)
        else:
            count = self.message_repository.mark_read(sender_id=self.admin_id, receiver_id=user_id)
        logger.info("Marked %s messages as read for %s", count, user_id)
        return count

    def unread_count(self, user_id: str) -> int:
        return self.message_repository.count_unread(receiver_id=user_id)
