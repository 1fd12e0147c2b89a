# src/infrastructure/repositories/message_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import and_, func, or_, select, update

from src.infrastructure.db.models import Message


class MessageRepository:

    def __init__(self, db: Session):
        self.db = db

    def add(self, sender_id: str, receiver_id: str, body: str) -> Message:
        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            body=body,
            read=False,
        )
        self.db.add(message)
        self.db.flush()
        return message

    def thread(self, user_id: str, admin_id: str) -> list[Message]:
        stmt = (
            select(Message)
            .where(
                or_(
                    and_(Message.sender_id == user_id, Message.receiver_id == admin_id),
                    and_(Message.sender_id == admin_id, Message.receiver_id == user_id),
                )
            )
            .order_by(Message.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def involving(self, admin_id: str) -> list[Message]:
        stmt = (
            select(Message)
            .where(or_(Message.sender_id == admin_id, Message.receiver_id == admin_id))
            .order_by(Message.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def count_unread(self, receiver_id: str, sender_id: str | None = None) -> int:
        stmt = (
            select(func.count())
            .select_from(Message)
            .where(Message.receiver_id == receiver_id)
            .where(Message.read.is_(False))
        )
        if sender_id:
            stmt = stmt.where(Message.sender_id == sender_id)
        return self.db.execute(stmt).scalar_one()

    def mark_read(self, sender_id: str, receiver_id: str) -> int:
        stmt = (
            update(Message)
            .where(Message.sender_id == sender_id)
            .where(Message.receiver_id == receiver_id)
            .where(Message.read == False)  # noqa: E712
            .values(read=True)
            .execution_options(synchronize_session="evaluate")
        )
        return self.db.execute(stmt).rowcount
