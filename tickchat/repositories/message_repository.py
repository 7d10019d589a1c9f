import logging
from typing import Optional, List, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, or_
from sqlalchemy.exc import SQLAlchemyError

from tickchat.models.base import utcnow
from tickchat.models.message import Message
from tickchat.errors import ValidationError, PersistenceError

logger = logging.getLogger(__name__)

class MessageRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        sender_id: str,
        receiver_id: str,
        text: Optional[str] = "",
        image: Optional[str] = None,
        document: Optional[str] = None,
    ) -> Message:
        """Создание нового сообщения (текст, изображение или документ)"""
        text = text or ""
        if not text.strip() and not image and not document:
            raise ValidationError("Message must contain text, an image or a document")

        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=text,
            image=image or None,
            document=document or None,
            seen=False,
        )
        self.db.add(message)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Failed to store message") from e
        await self.db.refresh(message)
        return message

    async def get_by_id(self, message_id: str) -> Optional[Message]:
        """Получение сообщения по ID"""
        try:
            result = await self.db.execute(
                select(Message)
                .where(Message.id == message_id)
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load message") from e
        return result.scalar_one_or_none()

    async def get_by_ids(self, message_ids: Sequence[str]) -> List[Message]:
        """Получение сообщений по списку ID (после массового обновления)"""
        if not message_ids:
            return []
        try:
            result = await self.db.execute(
                select(Message)
                .where(Message.id.in_(list(message_ids)))
                .order_by(Message.created_at.asc(), Message.id.asc())
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load messages") from e
        return list(result.scalars().all())

    async def get_conversation(self, user_id: str, peer_id: str) -> List[Message]:
        """Переписка двух пользователей, отсортирована по времени по возрастанию"""
        try:
            result = await self.db.execute(
                select(Message).where(
                    or_(
                        and_(Message.sender_id == user_id, Message.receiver_id == peer_id),
                        and_(Message.sender_id == peer_id, Message.receiver_id == user_id),
                    )
                ).order_by(Message.created_at.asc(), Message.id.asc())
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load conversation") from e
        return list(result.scalars().all())

    async def mark_seen(self, message_ids: Sequence[str], receiver_id: str) -> int:
        """Отметка сообщений как просмотренных; возвращает число изменённых записей.

        Only messages addressed to ``receiver_id`` and still unseen are touched,
        so repeating the call is a no-op.
        """
        if not message_ids:
            return 0

        stmt = (
            update(Message)
            .where(
                and_(
                    Message.id.in_(list(message_ids)),
                    Message.receiver_id == receiver_id,
                    Message.seen.is_(False),
                )
            )
            .values(seen=True, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Failed to mark messages as seen") from e

        logger.debug("Marked %d/%d messages seen for %s", result.rowcount, len(message_ids), receiver_id)
        return result.rowcount or 0
