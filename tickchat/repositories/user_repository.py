from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.exc import SQLAlchemyError

from tickchat.models.user import User
from tickchat.schemas.user import UserCreate
from tickchat.security import get_password_hash
from tickchat.errors import PersistenceError

class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user_data: UserCreate) -> User:
        hashed_password = get_password_hash(user_data.password)
        db_user = User(
            username=user_data.username,
            email=user_data.email,
            full_name=user_data.full_name,
            hashed_password=hashed_password
        )
        self.db.add(db_user)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Failed to create user") from e
        await self.db.refresh(db_user)
        return db_user

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def list_except(self, user_id: str) -> List[User]:
        """Все пользователи, кроме текущего (список контактов)"""
        result = await self.db.execute(
            select(User).where(User.id != user_id).order_by(User.username.asc())
        )
        return list(result.scalars().all())

    async def exists_by_username_or_email(self, username: str, email: str) -> bool:
        result = await self.db.execute(
            select(User.id).where(
                or_(User.username == username, User.email == email)
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None
