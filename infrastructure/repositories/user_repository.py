"""
用户仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import UserAlreadyExistsException
from domain.user.entity import User
from domain.user.repository import UserRepository
from infrastructure.models.user import UserModel

logger = get_logger(__name__)


class SQLAlchemyUserRepository(UserRepository):
    """用户仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserModel) -> User:
        """将数据库模型转换为领域实体"""
        return User(
            id=model.id,
            email=model.email,
            name=model.name,
            image=model.image,
            role=model.role,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: User) -> UserModel:
        """将领域实体转换为数据库模型"""
        model = UserModel(
            id=entity.id,
            email=entity.email,
            name=entity.name,
            image=entity.image,
            role=entity.role,
        )
        if entity.created_at:
            model.created_at = entity.created_at
        if entity.updated_at:
            model.updated_at = entity.updated_at
        return model

    async def create(self, user: User) -> User:
        """创建用户"""
        try:
            db_user = self._to_model(user)
            self.session.add(db_user)
            await self.session.flush()
            await self.session.refresh(db_user)
            return self._to_entity(db_user)
        except IntegrityError as e:
            await self.session.rollback()
            if "email" in str(e).lower():
                logger.warning("create_user_conflict", field="email", email=user.email)
                raise UserAlreadyExistsException(user.email)
            raise

    async def get_by_id(self, user_id: str) -> Optional[User]:
        """根据ID获取用户"""
        result = await self.session.execute(select(UserModel).where(UserModel.id == user_id))
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def get_by_email(self, email: str) -> Optional[User]:
        """根据邮箱获取用户"""
        result = await self.session.execute(select(UserModel).where(UserModel.email == email))
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None
